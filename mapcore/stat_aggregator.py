"""
Scoped statistics aggregation for choropleth visualization.

The statistics store delivers a raw table

    stat_id -> parent scope name -> {AreaKind: StatEntry}

This module merges the per-scope entries that are relevant right now into
one entry per (statistic, boundary kind) and computes the legend range
under the active LegendRangeMode:

- GLOBAL:  every known parent scope
- SCOPED:  the active scope plus its neighbor scopes
- DYNAMIC: like SCOPED for coloring, but the primary legend range only
           covers ids currently visible in the viewport

Coloring always uses the full merged value map; the legend range can be
narrower without discarding off-screen color data.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import numpy as np

from .areas import AREA_KINDS, AreaKind

logger = logging.getLogger(__name__)


class LegendRangeMode(str, Enum):
    DYNAMIC = "dynamic"
    SCOPED = "scoped"
    GLOBAL = "global"


def parse_legend_range_mode(value) -> LegendRangeMode:
    if isinstance(value, LegendRangeMode):
        return value
    return LegendRangeMode(str(value).strip().lower())


@dataclass(frozen=True)
class StatEntry:
    """
    Values of one statistic for one boundary kind.

    ``min``/``max`` are always the finite extrema of ``values``. The legend
    range may be narrower (visible-only); it is carried separately.
    """

    value_type: str
    values: Mapping[str, float] = field(default_factory=dict)
    min: float = 0.0
    max: float = 0.0
    legend_min: Optional[float] = None
    legend_max: Optional[float] = None

    @property
    def legend_range(self) -> Tuple[float, float]:
        if self.legend_min is None or self.legend_max is None:
            return self.min, self.max
        return self.legend_min, self.legend_max

    @property
    def is_empty(self) -> bool:
        return len(self.values) == 0


# stat_id -> scope name -> kind -> entry
RawStatTable = Mapping[str, Mapping[str, Mapping[AreaKind, StatEntry]]]
# stat_id -> kind -> entry
ScopedStatTable = Dict[str, Dict[AreaKind, StatEntry]]


def is_finite_number(value) -> bool:
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(float(value))


def finite_values(values: Mapping[str, object]) -> Dict[str, float]:
    """Keep only finite numeric values; malformed entries count as 'no value'."""
    return {str(key): float(value) for key, value in values.items() if is_finite_number(value)}


def _extrema(values: Iterable[float]) -> Tuple[float, float]:
    array = np.fromiter(values, dtype=float)
    if array.size == 0:
        return 0.0, 0.0
    return float(array.min()), float(array.max())


def make_stat_entry(value_type: str, values: Mapping[str, object]) -> StatEntry:
    clean = finite_values(values)
    low, high = _extrema(clean.values())
    return StatEntry(value_type=value_type, values=clean, min=low, max=high)


def merge_stat_entries(existing: Optional[StatEntry], incoming: StatEntry) -> StatEntry:
    """
    Union two value maps (incoming wins on collision), drop non-finite
    values and recompute min/max from scratch (empty -> 0, 0).
    """
    merged: Dict[str, object] = dict(existing.values) if existing is not None else {}
    merged.update(incoming.values)
    value_type = existing.value_type if existing is not None else incoming.value_type
    return make_stat_entry(value_type, merged)


def _range_over(entries: Iterable[Optional[StatEntry]],
                visible_ids: Optional[Set[str]] = None) -> Optional[Tuple[float, float]]:
    low = math.inf
    high = -math.inf
    for entry in entries:
        if entry is None:
            continue
        for area_id, value in entry.values.items():
            if visible_ids is not None and area_id not in visible_ids:
                continue
            if not is_finite_number(value):
                continue
            low = min(low, value)
            high = max(high, value)
    if not (math.isfinite(low) and math.isfinite(high)):
        return None
    return low, high


def scope_names_for_mode(mode: LegendRangeMode, known_scopes: Iterable[str],
                         active_scope: Optional[str], neighbor_scopes: Iterable[str],
                         fallback_scope: Optional[str] = None) -> List[str]:
    """
    Scope names whose entries feed the merged table under ``mode``.

    The fallback scope (the statewide parent that aggregate rows hang off)
    rides along in SCOPED/DYNAMIC so aggregate boundaries stay colored.
    """
    if mode is LegendRangeMode.GLOBAL:
        return list(known_scopes)
    names: List[str] = []
    for name in [active_scope, *neighbor_scopes, fallback_scope]:
        if name and name not in names:
            names.append(name)
    return names


def compute_primary_legend_range(
    by_scope: Mapping[str, Mapping[AreaKind, StatEntry]],
    mode: LegendRangeMode,
    legend_scopes: List[str],
    visible_ids: Optional[Set[str]] = None,
) -> Optional[Tuple[float, float]]:
    """
    Legend range for the primary kind, computed apart from the merged map.

    DYNAMIC falls back to SCOPED when no visible area carries a value.
    """
    if mode is LegendRangeMode.GLOBAL:
        return _range_over(entry.get(AreaKind.PRIMARY) for entry in by_scope.values())
    entries = [by_scope[name].get(AreaKind.PRIMARY) for name in legend_scopes if name in by_scope]
    if mode is LegendRangeMode.DYNAMIC and visible_ids:
        visible_range = _range_over(entries, visible_ids)
        if visible_range is not None:
            return visible_range
    return _range_over(entries)


def build_scoped_stat_table(
    raw: RawStatTable,
    mode: LegendRangeMode,
    active_scope: Optional[str],
    neighbor_scopes: Iterable[str] = (),
    visible_ids: Optional[Set[str]] = None,
    fallback_scope: Optional[str] = None,
) -> ScopedStatTable:
    """
    Build a fresh scoped table from the raw per-scope table.

    The returned dict is new on every call; callers swap it in wholesale.

    Args:
        raw: stat_id -> scope name -> kind -> StatEntry
        mode: Legend range mode
        active_scope: Name of the active parent scope
        neighbor_scopes: Names of the scopes adjacent to the active one
        visible_ids: Primary ids on screen (DYNAMIC only)
        fallback_scope: Statewide scope merged alongside the local ones

    Returns:
        stat_id -> kind -> merged StatEntry, primary entries carrying a legend range
    """
    neighbor_scopes = list(neighbor_scopes)
    legend_scopes = scope_names_for_mode(LegendRangeMode.SCOPED, (), active_scope, neighbor_scopes)
    aggregated: ScopedStatTable = {}

    for stat_id, by_scope in raw.items():
        data_scopes = scope_names_for_mode(mode, by_scope.keys(), active_scope, neighbor_scopes,
                                           fallback_scope)
        scoped: Dict[AreaKind, StatEntry] = {}
        for scope_name in data_scopes:
            parent_entry = by_scope.get(scope_name)
            if not parent_entry:
                continue
            for kind in AREA_KINDS:
                incoming = parent_entry.get(kind)
                if incoming is None:
                    continue
                scoped[kind] = merge_stat_entries(scoped.get(kind), incoming)

        primary = scoped.get(AreaKind.PRIMARY)
        if primary is not None:
            legend = compute_primary_legend_range(by_scope, mode, legend_scopes, visible_ids)
            if legend is not None:
                scoped[AreaKind.PRIMARY] = replace(primary, legend_min=legend[0], legend_max=legend[1])

        if scoped:
            aggregated[stat_id] = scoped

    logger.debug(f"Scoped stat table rebuilt: {len(aggregated)} stats, mode={mode.value}, "
                 f"scope={active_scope}, neighbors={len(neighbor_scopes)}")
    return aggregated


class ScopedStatAggregator:
    """
    Holds the latest raw table and the derived scoped table.

    ``table`` is only ever replaced, never mutated, so readers holding a
    reference always see a consistent snapshot.
    """

    def __init__(self, mode: LegendRangeMode = LegendRangeMode.SCOPED, fallback_scope: Optional[str] = None):
        self.mode = mode
        self.fallback_scope = fallback_scope
        self.raw: RawStatTable = {}
        self.active_scope: Optional[str] = None
        self.neighbor_scopes: List[str] = []
        self.visible_ids: Set[str] = set()
        self.table: ScopedStatTable = {}

    def set_raw(self, raw: RawStatTable) -> ScopedStatTable:
        self.raw = raw
        return self.recompute()

    def set_scope(self, active_scope: Optional[str], neighbor_scopes: Iterable[str]) -> ScopedStatTable:
        self.active_scope = active_scope
        self.neighbor_scopes = list(neighbor_scopes)
        return self.recompute()

    def set_mode(self, mode: LegendRangeMode) -> ScopedStatTable:
        self.mode = mode
        return self.recompute()

    def set_visible_ids(self, visible_ids: Set[str]) -> ScopedStatTable:
        self.visible_ids = set(visible_ids)
        return self.recompute()

    def recompute(self) -> ScopedStatTable:
        self.table = build_scoped_stat_table(
            self.raw,
            self.mode,
            self.active_scope,
            self.neighbor_scopes,
            self.visible_ids if self.mode is LegendRangeMode.DYNAMIC else None,
            self.fallback_scope,
        )
        return self.table

    def get_entry(self, stat_id: Optional[str], kind: AreaKind) -> Optional[StatEntry]:
        if not stat_id:
            return None
        return self.table.get(stat_id, {}).get(kind)

    def scope_names(self) -> List[str]:
        """Parent-area names the statistics store should keep loaded."""
        return scope_names_for_mode(LegendRangeMode.SCOPED, (), self.active_scope, self.neighbor_scopes,
                                    self.fallback_scope)
