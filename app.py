"""
Area Statistics Map

Streamlit host for the map interaction core:
- ZIP / county choropleth of a selected statistic
- Click-to-select areas (pinned from the sidebar, transient from the map)
- High / low markers and badges per boundary kind
- Scoped, dynamic or statewide legend ranges

Built with Streamlit + Pydeck.
"""
import asyncio
import logging
import sys
from collections import deque
from pathlib import Path

import streamlit as st

# Add project root to path for imports
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from mapcore import AreaKind, BoundaryMode, InteractionSettings, MapInteractionCore
from mapcore.commands import notification_to_dict
from mapcore.data_loader import InMemoryStatStore, get_stat_options, load_stat_catalog, load_stat_csv
from mapcore.geometry import GeoJsonGeometryLoader, load_geojson
from mapcore.settings import AGGREGATE_GEOJSON_PATH, PRIMARY_GEOJSON_PATH, STATISTICS_CSV_PATH
from mapviews import PydeckMapEngine, picked_area, render_badges, render_legend, render_scope_chip
from mapviews.legend import render_tone_key
from mapviews.map_view import DEFAULT_VIEW

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

MAP_KEY = "area_map"
MAP_HEIGHT = 680
EVENT_LOG_SIZE = 12

BOUNDARY_LABELS = {
    BoundaryMode.PRIMARY.value: "ZIP codes",
    BoundaryMode.AGGREGATE.value: "Counties",
    BoundaryMode.NONE.value: "None",
}
LEGEND_MODE_LABELS = {
    'scoped': "Active county + neighbors",
    'dynamic': "Visible areas",
    'global': "Statewide",
}

# Page configuration
st.set_page_config(
    page_title="Area Statistics Map",
    page_icon="🗺️",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .block-container {
        padding-top: 0.5rem !important;
        padding-bottom: 0.5rem !important;
        max-width: 100% !important;
    }
    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)


@st.cache_data(ttl=3600)  # Cache for 1 hour
def load_boundaries():
    """Load and cache the two boundary FeatureCollections."""
    return load_geojson(PRIMARY_GEOJSON_PATH), load_geojson(AGGREGATE_GEOJSON_PATH)


@st.cache_data(ttl=3600)
def load_statistics():
    """Load and cache the long-format statistics table."""
    return load_stat_csv(STATISTICS_CSV_PATH)


def create_core() -> MapInteractionCore:
    """One core per browser session; loaders and stores are not shared."""
    try:
        primary_geojson, aggregate_geojson = load_boundaries()
        stats_df = load_statistics()
    except Exception as e:
        st.error(f"Failed to load map data: {e}")
        st.stop()

    geometry = GeoJsonGeometryLoader(primary_geojson, aggregate_geojson)
    store = InMemoryStatStore.from_frame(stats_df)
    engine = PydeckMapEngine(geometry, height_px=MAP_HEIGHT)
    events = deque(maxlen=EVENT_LOG_SIZE)

    core = MapInteractionCore(
        engine=engine,
        geometry=geometry,
        stats_store=store,
        settings=InteractionSettings(),
        on_notification=lambda notification: events.appendleft(notification_to_dict(notification)),
        stat_catalog=load_stat_catalog(stats_df),
    )
    core.attach()
    core.on_viewport_settled()

    st.session_state.events = events
    st.session_state.last_pick = None
    st.session_state.last_clicked = None
    logger.info("Created map interaction core for new session")
    return core


def settle(core: MapInteractionCore) -> None:
    """Drain timers and scope passes queued by this rerun."""
    for _ in range(4):
        if core.scope_pass_pending:
            asyncio.run(core.ensure_scope_for_viewport())
        core.scheduler.run_pending()
        if not core.scope_pass_pending:
            break


def move_camera(core: MapInteractionCore, before: dict) -> None:
    """Report a camera change (fit to selection, recenter) as one motion gesture."""
    if core.engine.view != before:
        core.begin_motion()
        core.end_motion()


def handle_map_pick(core: MapInteractionCore, additive: bool) -> None:
    """Turn a new pydeck pick into an area click."""
    event = st.session_state.get(MAP_KEY)
    selection = event.get('selection') if event else None
    pick = picked_area(selection)
    if pick == st.session_state.last_pick:
        return
    st.session_state.last_pick = pick
    if pick is None:
        return
    kind, area_id = pick
    if core.boundary_mode.area_kind is not kind:
        return
    core.click(kind, area_id, additive=additive)
    st.session_state.last_clicked = pick


def render_sidebar(core: MapInteractionCore) -> bool:
    """Sidebar controls. Returns the additive-click flag."""
    store = core.stats_store
    with st.sidebar:
        st.markdown("### Map")

        mode_values = list(BOUNDARY_LABELS)
        mode = st.radio(
            "Boundaries",
            options=mode_values,
            index=mode_values.index(core.boundary_mode.value),
            format_func=BOUNDARY_LABELS.get,
            horizontal=True,
            key="boundary_mode",
        )
        if core.dispatch({'type': 'setBoundaryMode', 'mode': mode}):
            st.session_state.last_pick = None

        options = get_stat_options(store.table, core.stat_catalog)
        stat_ids = [None] + [option['id'] for option in options]
        names = {option['id']: option['name'] for option in options}
        stat_id = st.selectbox(
            "Statistic",
            options=stat_ids,
            index=stat_ids.index(core.selected_stat_id) if core.selected_stat_id in stat_ids else 0,
            format_func=lambda value: names.get(value, "— none —"),
            key="selected_stat",
        )
        core.dispatch({'type': 'setSelectedStat', 'statId': stat_id})

        legend_modes = list(LEGEND_MODE_LABELS)
        legend_mode = st.radio(
            "Legend range",
            options=legend_modes,
            index=legend_modes.index(core.aggregator.mode.value),
            format_func=LEGEND_MODE_LABELS.get,
            key="legend_mode",
        )
        core.dispatch({'type': 'setLegendRangeMode', 'mode': legend_mode})

        core.set_extrema_visible(st.checkbox("Show highs / lows", value=core.extrema_visible, key="extrema"))

        st.divider()
        st.markdown("### Selection")
        kind = core.boundary_mode.area_kind
        if kind is not None:
            area_ids = core.geometry.area_ids(kind)
            pinned = st.multiselect(
                "Pinned areas",
                options=area_ids,
                default=sorted(core.selection[kind].pinned & set(area_ids)),
                format_func=lambda area_id: _area_label(core, kind, area_id),
                key=f"pinned_{kind.value}",
            )
            if set(pinned) != set(core.selection[kind].pinned):
                before = dict(core.engine.view)
                core.dispatch({'type': 'setPinnedIds', 'kind': kind.value, 'ids': pinned, 'shouldZoom': True})
                move_camera(core, before)

        additive = st.checkbox("Add clicks to selection", value=False, key="additive",
                               help="Like shift-click: keep other map selections")
        col1, col2 = st.columns([1, 1])
        with col1:
            if st.button("Clear", key="clear_transient", help="Clear map-clicked areas"):
                core.escape()
                st.session_state.last_clicked = None
        with col2:
            if st.button("Recenter", key="recenter"):
                before = dict(core.engine.view)
                core.engine.set_view(**DEFAULT_VIEW)
                move_camera(core, before)

        st.divider()
        col1, col2 = st.columns([1, 1])
        with col1:
            st.caption("Data cached 1hr")
        with col2:
            if st.button("↻ Refresh", key="refresh_data", help="Clear cache and reload"):
                st.cache_data.clear()
                store.begin_refresh()
                store.publish(InMemoryStatStore.from_frame(load_statistics()).table)

    return additive


def _area_label(core: MapInteractionCore, kind: AreaKind, area_id: str) -> str:
    record = core.geometry.get_area(kind, area_id)
    if record is None or record.name == area_id:
        return area_id
    return f"{area_id} · {record.name}"


def render_event_log() -> None:
    events = list(st.session_state.get('events', []))
    with st.expander(f"Host notifications ({len(events)})", expanded=False):
        if not events:
            st.caption("No notifications yet")
        for event in events:
            st.json(event, expanded=False)


def main():
    """Main application entry point."""
    if 'map_core' not in st.session_state:
        with st.spinner("Loading map data..."):
            st.session_state.map_core = create_core()
    core: MapInteractionCore = st.session_state.map_core

    additive = render_sidebar(core)
    handle_map_pick(core, additive)
    settle(core)

    core.engine.show_boundary_mode(core.boundary_mode)
    kind = core.boundary_mode.area_kind

    st.markdown(
        '<div style="display:flex;justify-content:space-between;align-items:center;'
        'padding:0.5rem 0;border-bottom:1px solid #eee;margin-bottom:0.5rem;">'
        '<h4 style="margin:0;color:#333;">🗺️ Area Statistics Map</h4>'
        f'<span style="color:#666;font-size:13px;">{len(core.geometry.area_ids(AreaKind.PRIMARY)):,} ZIPs · '
        f'{len(core.geometry.area_ids(AreaKind.AGGREGATE)):,} counties</span>'
        '</div>',
        unsafe_allow_html=True
    )

    col_legend, col_scope = st.columns([3, 2])
    with col_legend:
        render_legend(core.legend)
    with col_scope:
        render_scope_chip(core.aggregator.active_scope, core.aggregator.neighbor_scopes,
                          len(core.selection[kind].get_union()) if kind else 0)
    if not core.marker_plan.is_empty:
        render_tone_key()

    st.pydeck_chart(
        core.engine.build_deck(),
        use_container_width=True,
        height=MAP_HEIGHT,
        on_select="rerun",
        selection_mode="single-object",
        key=MAP_KEY,
    )

    last = st.session_state.get('last_clicked')
    if last:
        render_badges(core.marker_plan.badges_for(*last))

    render_event_log()


if __name__ == "__main__":
    main()
