"""
Extrema and point-of-interest marker planning.

For the active statistic, the area holding the highest and the lowest
value of each visible boundary kind gets a marker. Externally supplied
point-of-interest (POI) rows can already mark an area for the same
statistic; the computed marker for that area is then dropped. A high and
a low landing on the same area collapse into one combined marker.

Alongside the map markers the planner builds hover badges per area. Each
badge carries a pair key so hovering the high badge can light up its low
counterpart elsewhere on the map.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .areas import AREA_KINDS, AreaKind, BoundaryMode
from .settings import InteractionSettings
from .stat_aggregator import StatEntry, is_finite_number

logger = logging.getLogger(__name__)

HIGH = 'high'
LOW = 'low'
COMBINED = 'combined'

UP = 'up'
DOWN = 'down'

TONE_GOOD = 'good'
TONE_BAD = 'bad'
TONE_NEUTRAL = 'neutral'


def find_extreme_area_ids(values: Optional[Mapping[str, float]]) -> Tuple[Optional[str], Optional[str]]:
    """
    (highest_id, lowest_id) over the finite values.

    Ids are scanned in sorted order and only a strictly better value
    replaces the current pick, so ties go to the lowest id.
    """
    if not values:
        return None, None
    entries = sorted((str(key), value) for key, value in values.items() if is_finite_number(value))
    if not entries:
        return None, None
    highest = lowest = entries[0]
    for entry in entries:
        if entry[1] > highest[1]:
            highest = entry
        if entry[1] < lowest[1]:
            lowest = entry
    return highest[0], lowest[0]


def extrema_tone(good_if_up: Optional[bool], extrema_kind: str) -> str:
    """Tone of a high/low marker given whether higher values are better."""
    if good_if_up is True:
        return TONE_GOOD if extrema_kind == HIGH else TONE_BAD
    if good_if_up is False:
        return TONE_BAD if extrema_kind == HIGH else TONE_GOOD
    return TONE_NEUTRAL


@dataclass(frozen=True)
class PointOfInterestRow:
    """One externally computed extremum (e.g. "highest in the metro area")."""

    poi_key: str
    area_id: str
    kind: AreaKind
    stat_id: str
    extrema_kind: str
    good_if_up: Optional[bool] = None
    stat_name: Optional[str] = None
    category: Optional[str] = None
    scope_key: Optional[str] = None


@dataclass(frozen=True)
class MarkerBadge:
    """Hover badge shown next to an area's label."""

    key: str
    label: str
    tone: str
    direction: str
    stat_id: str
    pair_key: str
    scope_label: Optional[str] = None


@dataclass(frozen=True)
class ExtremaMarker:
    """A map marker anchored at an area centroid."""

    key: str
    kind: AreaKind
    area_id: str
    extrema_kind: str
    stat_id: str
    position: Optional[Tuple[float, float]]
    high_tone: Optional[str] = None
    low_tone: Optional[str] = None

    @property
    def tone(self) -> str:
        """Single tone, or 'high-low' for a combined marker."""
        if self.extrema_kind == COMBINED:
            return f"{self.high_tone}-{self.low_tone}"
        return self.high_tone if self.extrema_kind == HIGH else self.low_tone


@dataclass
class MarkerPlan:
    markers: Dict[AreaKind, List[ExtremaMarker]] = field(
        default_factory=lambda: {kind: [] for kind in AREA_KINDS})
    badges: Dict[AreaKind, Dict[str, List[MarkerBadge]]] = field(
        default_factory=lambda: {kind: {} for kind in AREA_KINDS})

    def badges_for(self, kind: AreaKind, area_id: Optional[str]) -> List[MarkerBadge]:
        if not area_id:
            return []
        return list(self.badges.get(kind, {}).get(area_id, []))

    @property
    def is_empty(self) -> bool:
        return not any(self.markers.values()) and not any(self.badges.values())


@dataclass(frozen=True)
class MarkerContext:
    """Everything the planner reads. Built fresh by the orchestrator on each refresh."""

    selected_stat_id: Optional[str]
    entries: Mapping[AreaKind, Optional[StatEntry]]
    boundary_mode: BoundaryMode
    zoom: float
    extrema_visible: bool = True
    stat_label: str = 'Stat'
    good_if_up: Optional[bool] = None
    poi_rows: Tuple[PointOfInterestRow, ...] = ()
    category: Optional[str] = None
    scope_label: Optional[str] = None


def kind_visible(kind: AreaKind, boundary_mode: BoundaryMode, zoom: float,
                 settings: InteractionSettings) -> bool:
    """Whether the markers of ``kind`` can show at this mode and zoom."""
    if kind is AreaKind.PRIMARY:
        return boundary_mode is BoundaryMode.PRIMARY and zoom < settings.choropleth_hide_zoom
    return boundary_mode is BoundaryMode.AGGREGATE and zoom < settings.aggregate_mode_disable_zoom


def poi_rows_for_view(rows: Iterable[PointOfInterestRow], category: Optional[str],
                      selected_stat_id: Optional[str]) -> List[PointOfInterestRow]:
    """
    POI rows that apply to the category filter. With a statistic selected,
    only that statistic's rows remain.
    """
    matching = [row for row in rows if not category or not row.category or row.category == category]
    if selected_stat_id:
        matching = [row for row in matching if row.stat_id == selected_stat_id]
    return matching


def _append_badge(target: Dict[str, List[MarkerBadge]], area_id: str, badge: MarkerBadge) -> None:
    rows = target.setdefault(area_id, [])
    if any(row.key == badge.key for row in rows):
        return
    rows.append(badge)


def _sort_badges(by_area: Dict[str, List[MarkerBadge]]) -> None:
    for rows in by_area.values():
        rows.sort(key=lambda badge: (0 if badge.direction == UP else 1, badge.label.lower()))


def plan_markers(
    context: MarkerContext,
    settings: Optional[InteractionSettings] = None,
    centroid_of: Optional[Callable[[AreaKind, str], Optional[Tuple[float, float]]]] = None,
) -> MarkerPlan:
    """
    Plan extrema markers and hover badges for both kinds.

    Args:
        context: Active statistic, scoped entries, mode, zoom and POI rows
        settings: Zoom thresholds
        centroid_of: Centroid lookup; markers without a centroid are skipped

    Returns:
        MarkerPlan with markers and badges per kind (empty when suppressed)
    """
    settings = settings or InteractionSettings()
    plan = MarkerPlan()
    if not context.extrema_visible:
        return plan

    stat_id = context.selected_stat_id
    poi_rows = poi_rows_for_view(context.poi_rows, context.category, stat_id)
    if not stat_id and not poi_rows:
        return plan

    for kind in AREA_KINDS:
        if not kind_visible(kind, context.boundary_mode, context.zoom, settings):
            continue

        # area_id -> {'high': (key, tone, stat_id), 'low': ...}
        slots: Dict[str, Dict[str, Tuple[str, str, str]]] = {}
        kind_rows = [row for row in poi_rows if row.kind is kind]
        poi_areas = set()

        seen = set()
        for row in kind_rows:
            if row.poi_key in seen or row.extrema_kind not in (HIGH, LOW):
                continue
            seen.add(row.poi_key)
            poi_areas.add(row.area_id)
            tone = extrema_tone(row.good_if_up, row.extrema_kind)
            slots.setdefault(row.area_id, {}).setdefault(row.extrema_kind, (row.poi_key, tone, row.stat_id))
            _append_badge(plan.badges[kind], row.area_id, MarkerBadge(
                key=row.poi_key,
                label=row.stat_name or context.stat_label,
                tone=tone,
                direction=UP if row.extrema_kind == HIGH else DOWN,
                stat_id=row.stat_id,
                pair_key=f"poi:{kind.value}:{row.stat_id}:{row.scope_key or 'none'}",
                scope_label=row.scope_key,
            ))

        entry = context.entries.get(kind) if stat_id else None
        if entry is not None:
            highest_id, lowest_id = find_extreme_area_ids(entry.values)
            pair_key = f"stat:{stat_id}:{kind.value}"
            for extrema_kind, area_id in ((HIGH, highest_id), (LOW, lowest_id)):
                if not area_id or area_id in poi_areas:
                    continue
                key = f"stat:{stat_id}:{kind.value}:{extrema_kind}"
                tone = extrema_tone(context.good_if_up, extrema_kind)
                slots.setdefault(area_id, {}).setdefault(extrema_kind, (key, tone, stat_id))
                _append_badge(plan.badges[kind], area_id, MarkerBadge(
                    key=key,
                    label=context.stat_label,
                    tone=tone,
                    direction=UP if extrema_kind == HIGH else DOWN,
                    stat_id=stat_id,
                    pair_key=pair_key,
                    scope_label=context.scope_label,
                ))

        for area_id in sorted(slots):
            slot = slots[area_id]
            position = centroid_of(kind, area_id) if centroid_of is not None else None
            if centroid_of is not None and position is None:
                logger.debug(f"No centroid for {kind.value} {area_id}; marker skipped")
                continue
            high = slot.get(HIGH)
            low = slot.get(LOW)
            if high and low:
                plan.markers[kind].append(ExtremaMarker(
                    key=f"{area_id}::{COMBINED}::{kind.value}",
                    kind=kind,
                    area_id=area_id,
                    extrema_kind=COMBINED,
                    stat_id=high[2],
                    position=position,
                    high_tone=high[1],
                    low_tone=low[1],
                ))
            elif high:
                plan.markers[kind].append(ExtremaMarker(
                    key=high[0], kind=kind, area_id=area_id, extrema_kind=HIGH,
                    stat_id=high[2], position=position, high_tone=high[1],
                ))
            else:
                plan.markers[kind].append(ExtremaMarker(
                    key=low[0], kind=kind, area_id=area_id, extrema_kind=LOW,
                    stat_id=low[2], position=position, low_tone=low[1],
                ))

        _sort_badges(plan.badges[kind])

    return plan


def find_linked_badge(
    plan: MarkerPlan,
    kind: AreaKind,
    hovered_area: Optional[str],
    badge_key: Optional[str],
) -> Optional[Tuple[AreaKind, str, MarkerBadge]]:
    """
    Opposite-direction badge sharing the hovered badge's pair key.

    Other areas of the same kind are searched first (in id order), then
    the areas of the other kind.
    """
    if not hovered_area or not badge_key:
        return None
    source = next((badge for badge in plan.badges_for(kind, hovered_area) if badge.key == badge_key), None)
    if source is None or not source.pair_key:
        return None
    target_direction = DOWN if source.direction == UP else UP

    for search_kind in (kind, kind.other):
        by_area = plan.badges.get(search_kind, {})
        for area_id in sorted(by_area):
            if search_kind is kind and area_id == hovered_area:
                continue
            for badge in by_area[area_id]:
                if badge.pair_key == source.pair_key and badge.direction == target_direction:
                    return search_kind, area_id, badge
    return None
