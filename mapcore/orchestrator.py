"""
Map interaction orchestrator.

MapInteractionCore is the single writer of selection, hover, statistics
and marker state. Everything else (aggregator, scope tracker, marker
planner, visibility tracker) only reads and returns derived values.

Inputs arrive three ways:
- map events (clicks, pointer moves, badge hovers, camera motion),
- typed host commands via ``dispatch``,
- statistics snapshots from the store subscription.

Outputs go to the rendering engine (always through ``safe_call``) and to
the host as typed notifications.
"""
import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .areas import AREA_KINDS, AreaKind, BoundaryMode, BoundsArray, ChunkSummary
from .choropleth import FILL_OPACITY, HIDDEN_LEGEND, LegendModel, build_fill_colors, build_legend
from .commands import (
    AddTransientIds,
    AreaHoverChanged,
    AreaSelectionChanged,
    BoundaryModeChanged,
    ClearTransientSelection,
    Command,
    Notification,
    ScopeChanged,
    SetBoundaryMode,
    SetHoveredId,
    SetLegendRangeMode,
    SetPinnedIds,
    SetSelectedStat,
    StatSelectionChanged,
    parse_command,
)
from .errors import UnknownCommandError
from .extrema import (
    MarkerBadge,
    MarkerContext,
    MarkerPlan,
    PointOfInterestRow,
    find_linked_badge,
    plan_markers,
)
from .hover import HoverArbiter, HoverWeight
from .interfaces import GeometryLoader, RenderingEngine, StatisticsStore, safe_call
from .scheduler import FrameCoalescer, GenerationToken, ManualScheduler, TaskScheduler
from .scope import ScopeTracker
from .selection import SelectionStore
from .settings import PRIMARY_FEATURE_PROPERTY, InteractionSettings
from .stat_aggregator import LegendRangeMode, RawStatTable, ScopedStatAggregator, parse_legend_range_mode
from .visibility import VisibilityTracker

logger = logging.getLogger(__name__)

# =============================================================================
# HIGHLIGHT LAYERS (per kind, passed to RenderingEngine.set_highlight_filter)
# =============================================================================
LAYER_PINNED = 'pinned'
LAYER_TRANSIENT = 'transient'
LAYER_SELECTED = 'selected'
LAYER_HOVER = 'hover'
LAYER_HOVER_PREVIEW = 'hover-preview'
LAYER_HOVER_TRAILING = 'hover-trailing'
LAYER_LINKED = 'linked'

HIGHLIGHT_LAYERS = [
    LAYER_PINNED,
    LAYER_TRANSIENT,
    LAYER_SELECTED,
    LAYER_HOVER,
    LAYER_HOVER_PREVIEW,
    LAYER_HOVER_TRAILING,
    LAYER_LINKED,
]

# Task ids
REFRESH_TASK = 'core:refresh'
VIEWPORT_SETTLED_TASK = 'core:viewport-settled'
VISIBILITY_TASK = 'core:visibility'


def _mode_clear_task(kind: AreaKind) -> str:
    return f"core:mode-clear:{kind.value}"


class MapInteractionCore:
    """
    Args:
        engine: Rendering engine receiving paint/filter/camera calls
        geometry: Boundary chunk loader
        stats_store: Raw statistics source
        scheduler: Timer source (a ManualScheduler when omitted)
        settings: Interaction tunables
        on_notification: Host callback receiving typed notifications
        stat_catalog: stat_id -> {'name', 'category', 'good_if_up'}
        poi_rows: Externally computed extrema rows
    """

    def __init__(
        self,
        engine: Optional[RenderingEngine] = None,
        geometry: Optional[GeometryLoader] = None,
        stats_store: Optional[StatisticsStore] = None,
        scheduler: Optional[TaskScheduler] = None,
        settings: Optional[InteractionSettings] = None,
        on_notification: Optional[Callable[[Notification], None]] = None,
        stat_catalog: Optional[Dict[str, dict]] = None,
        poi_rows: Iterable[PointOfInterestRow] = (),
    ):
        self.engine = engine
        self.geometry = geometry
        self.stats_store = stats_store
        self.scheduler = scheduler or ManualScheduler()
        self.settings = settings or InteractionSettings()
        self.on_notification = on_notification
        self.stat_catalog: Dict[str, dict] = dict(stat_catalog or {})
        self.poi_rows: Tuple[PointOfInterestRow, ...] = tuple(poi_rows)

        self.boundary_mode = BoundaryMode.PRIMARY
        self.selected_stat_id: Optional[str] = None
        self.category: Optional[str] = None
        self.extrema_visible = True
        self.is_refreshing = False
        self.is_loading = False
        self.marker_plan = MarkerPlan()
        self.legend: LegendModel = HIDDEN_LEGEND
        self.scope_pass_pending = False

        self.aggregator = ScopedStatAggregator(
            parse_legend_range_mode(self.settings.default_legend_range_mode),
            fallback_scope=self.settings.fallback_parent_area,
        )
        self.aggregator.active_scope = self.settings.fallback_parent_area
        self.visibility = VisibilityTracker(PRIMARY_FEATURE_PROPERTY, layers=[])
        self.scope_tracker = ScopeTracker(
            selection_ratio=self.settings.selection_dominance_ratio,
            viewport_ratio=self.settings.viewport_dominance_ratio,
            scope_name=self._scope_name,
            neighbor_ids=self._neighbor_scope_ids,
            last_scope_name=self.settings.fallback_parent_area,
        )

        self._scope_generation = GenerationToken()
        self._awaiting_stat_data = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._scope_tasks: Set[asyncio.Task] = set()
        self._refresh = FrameCoalescer(self.scheduler, REFRESH_TASK, self._run_refresh,
                                       self.settings.frame_delay_ms)

        self.selection: Dict[AreaKind, SelectionStore] = {}
        self.hover: Dict[AreaKind, HoverArbiter] = {}
        for kind in AREA_KINDS:
            self.selection[kind] = SelectionStore(
                kind,
                on_highlight=lambda kind=kind: self._paint_selection(kind),
                on_hover_refresh=lambda kind=kind: self._paint_hover(kind),
                on_notify=self._notify_selection,
                on_after_apply=lambda union, kind=kind: self._after_selection_apply(kind, union),
                get_bounds=lambda area_id, kind=kind: self._area_bounds(kind, area_id),
                fit_bounds=self._fit_bounds,
            )
            self.hover[kind] = HoverArbiter(
                kind,
                self.scheduler,
                self.settings,
                on_change=lambda kind=kind: self._paint_hover(kind),
                on_forward=self._notify_hover,
            )

    # ==========================================================================
    # Lifecycle
    # ==========================================================================
    def attach(self) -> None:
        """Subscribe to the statistics store and paint the initial state."""
        if self.stats_store is not None and self._unsubscribe is None:
            self._unsubscribe = safe_call(self.stats_store.subscribe, self.on_stats_snapshot,
                                          description="stats subscribe")
        self._push_stat_focus()
        self.request_refresh()

    def detach(self) -> None:
        if self._unsubscribe is not None:
            safe_call(self._unsubscribe, description="stats unsubscribe")
            self._unsubscribe = None
        for task in list(self._scope_tasks):
            if not task.done():
                task.cancel()
        self._scope_tasks.clear()
        self.scheduler.cancel_all()
        self._refresh.scheduled = False

    # ==========================================================================
    # Host commands
    # ==========================================================================
    def dispatch(self, command: Union[Command, dict]) -> bool:
        """
        Apply one host command. Unknown or malformed commands are logged and
        ignored. Returns True when the command was recognised.
        """
        if isinstance(command, dict):
            try:
                command = parse_command(command)
            except UnknownCommandError as e:
                logger.warning(f"Ignoring host command: {e}")
                return False

        try:
            if isinstance(command, SetPinnedIds):
                self.set_pinned_ids(command.kind, command.ids, should_zoom=command.should_zoom)
            elif isinstance(command, SetHoveredId):
                self.set_hovered_id(command.kind, command.id)
            elif isinstance(command, ClearTransientSelection):
                self.clear_transient_selection(command.kind)
            elif isinstance(command, AddTransientIds):
                self.add_transient_ids(command.kind, command.ids)
            elif isinstance(command, SetBoundaryMode):
                self.set_boundary_mode(command.mode)
            elif isinstance(command, SetSelectedStat):
                self.set_selected_stat(command.stat_id)
            elif isinstance(command, SetLegendRangeMode):
                self.set_legend_range_mode(command.mode)
            else:
                logger.warning(f"Ignoring unknown host command: {command!r}")
                return False
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed host command {command!r}: {e}")
            return False
        return True

    def set_pinned_ids(self, kind: AreaKind, area_ids: Iterable[str], should_zoom: bool = False) -> bool:
        return self.selection[kind].set_pinned_ids(area_ids, should_zoom=should_zoom, notify=False)

    def set_hovered_id(self, kind: AreaKind, area_id: Optional[str]) -> bool:
        return self.hover[kind].set_external(area_id)

    def clear_transient_selection(self, kind: Optional[AreaKind] = None) -> None:
        for target in ([kind] if kind else AREA_KINDS):
            self.selection[target].clear_transient(notify=False)

    def add_transient_ids(self, kind: AreaKind, area_ids: Iterable[str]) -> bool:
        return self.selection[kind].add_transient(area_ids, notify=False)

    def set_boundary_mode(self, mode: BoundaryMode, notify: bool = False) -> bool:
        """
        Switch the visible boundary layer. The kind being left loses its hover
        and (on the next frame) its transient selection.
        """
        mode = BoundaryMode(mode)
        if mode is self.boundary_mode:
            return False
        previous = self.boundary_mode
        self.boundary_mode = mode

        left_kind = previous.area_kind
        if left_kind is not None and left_kind is not mode.area_kind:
            self.hover[left_kind].reset()
            self.scheduler.schedule(
                _mode_clear_task(left_kind),
                self.settings.frame_delay_ms,
                lambda kind=left_kind: self.selection[kind].clear_transient(notify=True),
            )

        logger.info(f"Boundary mode {previous.value} -> {mode.value}")
        if notify:
            self._notify(BoundaryModeChanged(mode))
        self._recompute_loading()
        self.request_refresh()
        return True

    def set_selected_stat(self, stat_id: Optional[str], notify: bool = False) -> bool:
        stat_id = stat_id or None
        if stat_id == self.selected_stat_id:
            return False
        self.selected_stat_id = stat_id
        self._awaiting_stat_data = stat_id is not None
        self._push_stat_focus()
        self._recompute_loading()
        if notify:
            self._notify(StatSelectionChanged(stat_id))
        self.request_refresh()
        return True

    def set_legend_range_mode(self, mode: Union[str, LegendRangeMode]) -> bool:
        mode = parse_legend_range_mode(mode)
        if mode is self.aggregator.mode:
            return False
        self.aggregator.mode = mode
        if mode is LegendRangeMode.DYNAMIC:
            self.refresh_visible_ids(force_recompute=True)
        else:
            self.aggregator.recompute()
        self.request_refresh()
        return True

    def set_points_of_interest(self, rows: Iterable[PointOfInterestRow]) -> None:
        self.poi_rows = tuple(rows)
        self.request_refresh()

    def set_category(self, category: Optional[str]) -> None:
        self.category = category or None
        self.request_refresh()

    def set_extrema_visible(self, visible: bool) -> None:
        self.extrema_visible = bool(visible)
        self.request_refresh()

    # ==========================================================================
    # Map events
    # ==========================================================================
    def click(self, kind: AreaKind, area_id: str, additive: bool = False, should_zoom: bool = False) -> None:
        if not area_id:
            return
        self.selection[kind].toggle(area_id, additive, should_zoom=should_zoom)

    def pointer_enter(self, kind: AreaKind) -> None:
        self.hover[kind].pointer_enter()

    def pointer_move(self, kind: AreaKind, area_id: Optional[str]) -> None:
        self.hover[kind].pointer_move(area_id)

    def pointer_leave(self, kind: AreaKind) -> None:
        self.hover[kind].pointer_leave()

    def badge_hover(self, kind: AreaKind, area_id: Optional[str], badge_key: Optional[str] = None) -> bool:
        return self.hover[kind].set_label_badge(area_id, badge_key)

    def badge_click(self, kind: AreaKind, area_id: str, badge_key: str) -> bool:
        """Clicking an extremum badge selects its statistic (map-originated)."""
        badge = next((b for b in self.marker_plan.badges_for(kind, area_id) if b.key == badge_key), None)
        if badge is None:
            return False
        return self.set_selected_stat(badge.stat_id, notify=True)

    def escape(self) -> None:
        self.clear_all_transient()

    def clear_all_transient(self) -> None:
        for kind in AREA_KINDS:
            self.selection[kind].clear_transient(notify=True)

    def begin_motion(self) -> None:
        self.scheduler.cancel(VIEWPORT_SETTLED_TASK)
        for arbiter in self.hover.values():
            arbiter.begin_motion()

    def end_motion(self) -> None:
        for arbiter in self.hover.values():
            arbiter.end_motion()
        self.scheduler.schedule(VIEWPORT_SETTLED_TASK, self.settings.viewport_settled_debounce_ms,
                                self.on_viewport_settled)

    def on_viewport_settled(self) -> None:
        self.refresh_visible_ids()
        self._schedule_scope_pass()
        self.request_refresh()

    # ==========================================================================
    # Statistics
    # ==========================================================================
    def on_stats_snapshot(self, raw: RawStatTable, is_refreshing: bool = False) -> None:
        self.is_refreshing = bool(is_refreshing)
        if not is_refreshing:
            self._awaiting_stat_data = False
        self.aggregator.set_raw(raw or {})
        self._recompute_loading()
        self.request_refresh()

    def _push_stat_focus(self) -> None:
        if self.stats_store is None:
            return
        stat_ids = [self.selected_stat_id] if self.selected_stat_id else []
        safe_call(self.stats_store.prioritize, stat_ids, description="stats prioritize")
        safe_call(self.stats_store.set_scope, self.aggregator.scope_names(), description="stats set_scope")

    def _recompute_loading(self) -> None:
        missing = False
        kind = self.boundary_mode.area_kind
        if self.selected_stat_id and kind is not None and self._awaiting_stat_data:
            missing = self.aggregator.get_entry(self.selected_stat_id, kind) is None
        self.is_loading = self.is_refreshing or missing

    # ==========================================================================
    # Visibility (dynamic legend mode)
    # ==========================================================================
    def primary_geometry_hidden(self) -> bool:
        return self.boundary_mode is not BoundaryMode.PRIMARY or self.zoom >= self.settings.choropleth_hide_zoom

    def refresh_visible_ids(self, force_recompute: bool = False) -> bool:
        """Re-query visible primary ids; re-aggregate only when the set changed."""
        if self.primary_geometry_hidden():
            changed = self.visibility.clear()
        elif self.aggregator.mode is LegendRangeMode.DYNAMIC:
            changed = self.visibility.refresh(self.engine)
        else:
            changed = False

        if changed or force_recompute:
            self.aggregator.set_visible_ids(self.visibility.visible_ids)
            self.request_refresh()
        return changed

    # ==========================================================================
    # Scope pass
    # ==========================================================================
    def _schedule_scope_pass(self) -> None:
        if self.geometry is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (e.g. a Streamlit rerun); the host runs the pass itself
            self.scope_pass_pending = True
            return
        task = loop.create_task(self.ensure_scope_for_viewport())
        self._scope_tasks.add(task)
        task.add_done_callback(self._scope_tasks.discard)

    async def ensure_scope_for_viewport(self) -> bool:
        """
        Load geometry for the viewport, resolve the active scope and re-scope
        the statistics. Returns False when a newer pass superseded this one.
        """
        self.scope_pass_pending = False
        if self.geometry is None:
            return False
        token = self._scope_generation.issue()
        bounds = self._viewport_bounds()
        selected = self.selection[AreaKind.PRIMARY].get_union()

        viewport_chunks = await self._await_chunks(self.geometry.ensure_viewport(bounds) if bounds else None)
        selection_chunks = await self._await_chunks(self.geometry.ensure_ids(AreaKind.PRIMARY, selected))
        if not self._scope_generation.is_current(token):
            logger.debug(f"Discarding stale scope pass {token}")
            return False

        resolution = self.scope_tracker.resolve(selected, self._parent_of, bounds, viewport_chunks)
        scope_ids = [scope_id for scope_id in (resolution.scope_id, *resolution.neighbor_ids) if scope_id]
        scope_chunks = await self._await_chunks(self.geometry.ensure_scope_chunks(scope_ids))
        if not self._scope_generation.is_current(token):
            logger.debug(f"Discarding stale scope pass {token}")
            return False

        keep: Set[str] = {chunk.id for chunk in (*viewport_chunks, *selection_chunks, *scope_chunks)}
        for kind in AREA_KINDS:
            hovered = self.hover[kind].visual
            if hovered:
                chunk_id = safe_call(self.geometry.chunk_id_for_area, kind, hovered, description="chunk_id_for_area")
                if chunk_id:
                    keep.add(chunk_id)
        safe_call(self.geometry.prune, keep, description="geometry prune")

        self.apply_scope(resolution.scope_name, resolution.neighbor_names)
        if self.aggregator.mode is LegendRangeMode.DYNAMIC:
            self.scheduler.schedule(VISIBILITY_TASK, self.settings.frame_delay_ms, self.refresh_visible_ids)
        return True

    def apply_scope(self, scope_name: Optional[str], neighbor_names: Sequence[str] = ()) -> bool:
        """Point the aggregator and the statistics store at a new scope."""
        scope_name = scope_name or self.aggregator.active_scope or self.settings.fallback_parent_area
        neighbor_names = list(neighbor_names)
        changed = (scope_name != self.aggregator.active_scope
                   or neighbor_names != self.aggregator.neighbor_scopes)
        self.aggregator.set_scope(scope_name, neighbor_names)
        self._push_stat_focus()
        if changed:
            logger.info(f"Active scope: {scope_name} (+{len(neighbor_names)} neighbors)")
            self._notify(ScopeChanged(scope_name, tuple(neighbor_names)))
        self._recompute_loading()
        self.request_refresh()
        return changed

    async def _await_chunks(self, awaitable) -> List[ChunkSummary]:
        if awaitable is None:
            return []
        try:
            return list(await awaitable or [])
        except Exception as e:
            logger.warning(f"Geometry request failed: {e}")
            return []

    # ==========================================================================
    # Refresh / paint
    # ==========================================================================
    def request_refresh(self) -> bool:
        """Queue one repaint frame; requests made before it runs are coalesced."""
        return self._refresh.request()

    @property
    def refresh_scheduled(self) -> bool:
        return self._refresh.scheduled

    def refresh_now(self) -> None:
        self._refresh.cancel()
        self._run_refresh()

    def _run_refresh(self) -> None:
        self.marker_plan = plan_markers(self._marker_context(), self.settings, self._centroid)
        self._paint_fills()
        for kind in AREA_KINDS:
            safe_call(getattr(self.engine, 'set_markers', None), kind, self.marker_plan.markers[kind],
                      description="set_markers")
            self._paint_selection(kind)
            self._paint_hover(kind)
        self.legend = self._build_legend()

    def _marker_context(self) -> MarkerContext:
        meta = self.stat_catalog.get(self.selected_stat_id or '', {})
        return MarkerContext(
            selected_stat_id=self.selected_stat_id,
            entries={kind: self.aggregator.get_entry(self.selected_stat_id, kind) for kind in AREA_KINDS},
            boundary_mode=self.boundary_mode,
            zoom=self.zoom,
            extrema_visible=self.extrema_visible,
            stat_label=meta.get('name') or self.selected_stat_id or 'Stat',
            good_if_up=meta.get('good_if_up'),
            poi_rows=self.poi_rows,
            category=self.category,
            scope_label=self.aggregator.active_scope,
        )

    def _build_legend(self) -> LegendModel:
        kind = self.boundary_mode.area_kind
        if not self.selected_stat_id or kind is None:
            return HIDDEN_LEGEND
        meta = self.stat_catalog.get(self.selected_stat_id, {})
        return build_legend(self.aggregator.get_entry(self.selected_stat_id, kind),
                            label=meta.get('name') or self.selected_stat_id,
                            is_loading=self.is_loading)

    def _paint_fills(self) -> None:
        if self.engine is None:
            return
        active = self.boundary_mode.area_kind
        for kind in AREA_KINDS:
            entry = self.aggregator.get_entry(self.selected_stat_id, kind) if kind is active else None
            if entry is None or (kind is AreaKind.PRIMARY and self.primary_geometry_hidden()):
                safe_call(self.engine.set_fill_paint, kind, {}, 0.0, description="set_fill_paint")
                continue
            low, high = entry.legend_range
            colors = build_fill_colors(entry.values, low, high, entry.value_type)
            safe_call(self.engine.set_fill_paint, kind, colors, FILL_OPACITY['light'], description="set_fill_paint")

    def _set_filter(self, kind: AreaKind, layer: str, area_ids: Iterable[Optional[str]]) -> None:
        if self.engine is None:
            return
        ids = sorted(area_id for area_id in area_ids if area_id)
        safe_call(self.engine.set_highlight_filter, kind, layer, ids, description=f"{layer} filter")

    def _paint_selection(self, kind: AreaKind) -> None:
        store = self.selection.get(kind)
        if store is None:
            return
        self._set_filter(kind, LAYER_PINNED, store.pinned)
        self._set_filter(kind, LAYER_TRANSIENT, store.transient)
        self._set_filter(kind, LAYER_SELECTED, store.get_union())

    def _paint_hover(self, kind: AreaKind) -> None:
        arbiter = self.hover.get(kind)
        if arbiter is None:
            return
        visual = arbiter.visual
        weight = arbiter.weight
        self._set_filter(kind, LAYER_HOVER, [visual] if weight is HoverWeight.FULL else [])
        self._set_filter(kind, LAYER_HOVER_PREVIEW, [visual] if weight is HoverWeight.PREVIEW else [])
        trailing = arbiter.state.map_preview_trailing
        self._set_filter(kind, LAYER_HOVER_TRAILING, [trailing] if trailing != visual else [])
        self._paint_linked()

    def linked_badges(self) -> Dict[AreaKind, Tuple[str, MarkerBadge]]:
        """
        Secondary highlights: the opposite-direction badge paired with the
        badge (or the first badge of the area) currently hovered.
        """
        linked: Dict[AreaKind, Tuple[str, MarkerBadge]] = {}
        for kind in AREA_KINDS:
            state = self.hover[kind].state
            area_id = state.label_badge or self.hover[kind].visual
            badge_key = state.label_badge_key if state.label_badge else None
            if area_id and not badge_key:
                badges = self.marker_plan.badges_for(kind, area_id)
                badge_key = badges[0].key if badges else None
            match = find_linked_badge(self.marker_plan, kind, area_id, badge_key)
            if match is not None:
                target_kind, target_area, badge = match
                linked.setdefault(target_kind, (target_area, badge))
        return linked

    def _paint_linked(self) -> None:
        if self.engine is None or len(self.hover) < len(AREA_KINDS):
            return
        linked = self.linked_badges()
        for kind in AREA_KINDS:
            match = linked.get(kind)
            self._set_filter(kind, LAYER_LINKED, [match[0]] if match else [])

    # ==========================================================================
    # Engine / geometry helpers
    # ==========================================================================
    @property
    def zoom(self) -> float:
        if self.engine is None:
            return 0.0
        value = safe_call(self.engine.get_zoom, description="get_zoom")
        return float(value) if isinstance(value, (int, float)) else 0.0

    def _viewport_bounds(self) -> Optional[BoundsArray]:
        if self.engine is None:
            return None
        return safe_call(self.engine.get_bounds, description="get_bounds")

    def _fit_bounds(self, bounds: BoundsArray) -> None:
        if self.engine is None:
            return
        self.engine.fit_bounds(bounds, padding=self.settings.selection_fit_padding_px,
                               max_zoom=self.settings.selection_fit_max_zoom)

    def _area_bounds(self, kind: AreaKind, area_id: str) -> Optional[BoundsArray]:
        record = self.geometry.get_area(kind, area_id) if self.geometry is not None else None
        return record.bounds if record else None

    def _centroid(self, kind: AreaKind, area_id: str):
        if self.geometry is None:
            return None
        record = safe_call(self.geometry.get_area, kind, area_id, description="get_area")
        return record.centroid if record else None

    def _parent_of(self, area_id: str) -> Optional[str]:
        record = safe_call(self.geometry.get_area, AreaKind.PRIMARY, area_id, description="get_area")
        return record.parent_id if record else None

    def _scope_name(self, scope_id: str) -> Optional[str]:
        if self.geometry is None:
            return scope_id
        return safe_call(self.geometry.scope_name, scope_id, description="scope_name")

    def _neighbor_scope_ids(self, scope_id: str) -> List[str]:
        if self.geometry is None:
            return []
        return safe_call(self.geometry.neighbor_scope_ids, scope_id, description="neighbor_scope_ids") or []

    def _after_selection_apply(self, kind: AreaKind, union: List[str]) -> None:
        if kind is AreaKind.PRIMARY:
            self._schedule_scope_pass()

    # ==========================================================================
    # Notifications
    # ==========================================================================
    def _notify(self, notification: Notification) -> None:
        safe_call(self.on_notification, notification, description=type(notification).__name__)

    def _notify_selection(self, kind: AreaKind, union: List[str], pinned: List[str], transient: List[str]) -> None:
        self._notify(AreaSelectionChanged(kind, tuple(union), tuple(pinned), tuple(transient)))

    def _notify_hover(self, kind: AreaKind, area_id: Optional[str]) -> None:
        self._notify(AreaHoverChanged(kind, area_id))

    # ==========================================================================
    # Introspection
    # ==========================================================================
    def snapshot(self) -> dict:
        """Plain-data view of the current state (for hosts and debugging)."""
        return {
            'boundary_mode': self.boundary_mode.value,
            'selected_stat_id': self.selected_stat_id,
            'legend_range_mode': self.aggregator.mode.value,
            'active_scope': self.aggregator.active_scope,
            'neighbor_scopes': list(self.aggregator.neighbor_scopes),
            'is_loading': self.is_loading,
            'selection': {
                kind.value: {
                    'pinned': sorted(self.selection[kind].pinned),
                    'transient': sorted(self.selection[kind].transient),
                }
                for kind in AREA_KINDS
            },
            'hover': {
                kind.value: {
                    'authoritative': self.hover[kind].authoritative,
                    'visual': self.hover[kind].visual,
                    'weight': self.hover[kind].weight.value,
                }
                for kind in AREA_KINDS
            },
        }
