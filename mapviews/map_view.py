"""
Pydeck (Deck.gl for Python) rendering engine for the area map.

PydeckMapEngine implements the core's RenderingEngine interface by
recording paint and filter state, then building pydeck layers from it on
every Streamlit rerun:

- one GeoJsonLayer per boundary kind with choropleth fills,
- one outline GeoJsonLayer per highlight (selected, hover, preview, ...),
- a ScatterplotLayer for extrema markers.

Deck.gl does its own hit-testing, so ``query_rendered_features`` is
approximated by intersecting loaded feature bounds with the viewport.
"""
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pydeck as pdk

from mapcore.areas import AREA_KINDS, AreaKind, BoundaryMode, BoundsArray, bounds_touch
from mapcore.choropleth import TONE_COLORS_HEX, hex_to_rgba
from mapcore.extrema import COMBINED, LOW, TONE_NEUTRAL, ExtremaMarker
from mapcore.geometry import GeoJsonGeometryLoader
from mapcore.orchestrator import (
    LAYER_HOVER,
    LAYER_HOVER_PREVIEW,
    LAYER_HOVER_TRAILING,
    LAYER_LINKED,
    LAYER_PINNED,
    LAYER_TRANSIENT,
)

logger = logging.getLogger(__name__)

# Statewide default view
DEFAULT_VIEW = {
    'latitude': 35.55,
    'longitude': -97.50,
    'zoom': 6.4,
}

MIN_ZOOM = 5.5
MAX_ZOOM = 15.5

# CartoDB Positron - free basemap, no API key required
MAP_STYLE = "https://basemaps.cartocdn.com/gl/positron-gl-style/style.json"

# Outline styles per highlight layer, drawn bottom to top
HIGHLIGHT_STYLES = {
    LAYER_PINNED: {'color': [55, 65, 81, 230], 'width': 2.5},
    LAYER_TRANSIENT: {'color': [99, 102, 241, 230], 'width': 2.5},
    LAYER_HOVER_TRAILING: {'color': [99, 102, 241, 70], 'width': 1.5},
    LAYER_HOVER_PREVIEW: {'color': [99, 102, 241, 140], 'width': 1.5},
    LAYER_LINKED: {'color': [248, 216, 55, 230], 'width': 2.5},
    LAYER_HOVER: {'color': [17, 24, 39, 255], 'width': 3},
}

BOUNDARY_LINE_COLOR = [120, 120, 120, 140]
UNCOLORED_FILL = [0, 0, 0, 0]
MARKER_RADIUS_PX = 7

# Deck.gl zoom 0 renders the world 256px wide
TILE_SIZE_PX = 256


def tone_rgba(tone: Optional[str]) -> List[int]:
    return hex_to_rgba(TONE_COLORS_HEX.get(tone or TONE_NEUTRAL, TONE_COLORS_HEX[TONE_NEUTRAL]))


def fill_layer_id(kind: AreaKind) -> str:
    return f"{kind.value.lower()}-fill"


def highlight_layer_id(kind: AreaKind, layer: str) -> str:
    return f"{kind.value.lower()}-{layer}"


def marker_layer_id(kind: AreaKind) -> str:
    return f"{kind.value.lower()}-markers"


def calculate_view_state(
    bounds: Optional[BoundsArray],
    padding_px: int = 48,
    max_zoom: Optional[float] = None,
    width_px: int = 1000,
    height_px: int = 600,
) -> dict:
    """
    Center + zoom that fits ``bounds`` inside the viewport.

    Args:
        bounds: ((west, south), (east, north))
        padding_px: Padding kept on every side
        max_zoom: Upper zoom clamp (defaults to MAX_ZOOM)
        width_px: Viewport width
        height_px: Viewport height

    Returns:
        Dict with 'latitude', 'longitude', 'zoom' keys
    """
    if not bounds:
        return DEFAULT_VIEW.copy()

    (west, south), (east, north) = bounds
    center_lng = (west + east) / 2
    center_lat = (south + north) / 2

    # Handle edge case of a single point or very tight cluster
    lng_span = max(east - west, 0.01)
    lat_span = max(north - south, 0.01)

    usable_width = max(width_px - 2 * padding_px, 64)
    usable_height = max(height_px - 2 * padding_px, 64)

    lng_zoom = math.log2(360 * usable_width / (lng_span * TILE_SIZE_PX))
    lat_zoom = math.log2(180 * usable_height / (lat_span * TILE_SIZE_PX))

    # Use the smaller zoom (wider view) to ensure everything fits
    zoom = min(lng_zoom, lat_zoom)
    zoom = max(MIN_ZOOM, min(zoom, max_zoom if max_zoom is not None else MAX_ZOOM))

    return {
        'latitude': center_lat,
        'longitude': center_lng,
        'zoom': zoom,
    }


def view_bounds(view: dict, width_px: int = 1000, height_px: int = 600) -> BoundsArray:
    """Approximate geographic box covered by a view (plate carree, good enough at state scale)."""
    degrees_per_px = 360 / (TILE_SIZE_PX * 2 ** view['zoom'])
    half_lng = width_px * degrees_per_px / 2
    half_lat = height_px * degrees_per_px / 2
    return (
        (view['longitude'] - half_lng, view['latitude'] - half_lat),
        (view['longitude'] + half_lng, view['latitude'] + half_lat),
    )


class PydeckMapEngine:
    """
    RenderingEngine backed by pydeck.

    Args:
        geometry: Loader providing loaded features and area bounds
        view: Initial view dict (latitude, longitude, zoom)
        width_px: Assumed viewport width for bounds math
        height_px: Map height in pixels
    """

    def __init__(
        self,
        geometry: GeoJsonGeometryLoader,
        view: Optional[dict] = None,
        width_px: int = 1000,
        height_px: int = 600,
    ):
        self.geometry = geometry
        self.view = dict(view or DEFAULT_VIEW)
        self.width_px = width_px
        self.height_px = height_px
        self.visible_kinds = set(AREA_KINDS)
        self.filters: Dict[AreaKind, Dict[str, List[str]]] = {kind: {} for kind in AREA_KINDS}
        self.fills: Dict[AreaKind, Tuple[Dict[str, str], float]] = {kind: ({}, 0.0) for kind in AREA_KINDS}
        self.markers: Dict[AreaKind, List[ExtremaMarker]] = {kind: [] for kind in AREA_KINDS}

    # ------------------------------------------------------------------
    # RenderingEngine
    # ------------------------------------------------------------------
    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self.layer_ids()

    def layer_ids(self) -> List[str]:
        ids = []
        for kind in self.visible_kinds:
            ids.append(fill_layer_id(kind))
            ids.extend(highlight_layer_id(kind, layer) for layer in HIGHLIGHT_STYLES)
            ids.append(marker_layer_id(kind))
        return sorted(ids)

    def set_highlight_filter(self, kind: AreaKind, layer: str, area_ids: Sequence[str]) -> None:
        self.filters[kind][layer] = list(area_ids)

    def set_fill_paint(self, kind: AreaKind, fill_colors: Dict[str, str], opacity: float) -> None:
        self.fills[kind] = (dict(fill_colors), float(opacity))

    def set_markers(self, kind: AreaKind, markers: List[ExtremaMarker]) -> None:
        self.markers[kind] = list(markers)

    def query_rendered_features(
        self, rect: Optional[BoundsArray] = None, layers: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        """Loaded features of the requested fill layers whose bounds touch ``rect`` (default: viewport)."""
        rect = rect or self.get_bounds()
        wanted = set(layers) if layers else {fill_layer_id(kind) for kind in self.visible_kinds}
        features = []
        for kind in AREA_KINDS:
            if fill_layer_id(kind) not in wanted or kind not in self.visible_kinds:
                continue
            for feature in self.geometry.feature_collection(kind)['features']:
                area_id = self._feature_id(kind, feature)
                bounds = self.geometry.get_bounds(kind, area_id) if area_id else None
                if bounds and bounds_touch(bounds, rect):
                    features.append(feature)
        return features

    def fit_bounds(self, bounds: BoundsArray, padding: int = 48, max_zoom: Optional[float] = None) -> None:
        self.view = calculate_view_state(bounds, padding, max_zoom, self.width_px, self.height_px)

    def get_zoom(self) -> float:
        return float(self.view['zoom'])

    def get_bounds(self) -> BoundsArray:
        return view_bounds(self.view, self.width_px, self.height_px)

    def set_view(self, latitude: float, longitude: float, zoom: float) -> None:
        self.view = {'latitude': latitude, 'longitude': longitude, 'zoom': zoom}

    def show_boundary_mode(self, mode: BoundaryMode) -> None:
        """Only the active boundary kind gets layers; 'none' shows the basemap alone."""
        kind = BoundaryMode(mode).area_kind
        self.visible_kinds = {kind} if kind is not None else set()

    # ------------------------------------------------------------------
    # Layer building
    # ------------------------------------------------------------------
    def _feature_id(self, kind: AreaKind, feature: dict) -> Optional[str]:
        properties = feature.get('properties') or {}
        prop = self.geometry.primary_id_property if kind is AreaKind.PRIMARY else self.geometry.aggregate_id_property
        value = properties.get(prop, properties.get('id'))
        return str(value) if value is not None else None

    def decorated_features(self, kind: AreaKind) -> List[dict]:
        colors, opacity = self.fills[kind]
        alpha = int(round(opacity * 255))
        decorated = []
        for feature in self.geometry.feature_collection(kind)['features']:
            area_id = self._feature_id(kind, feature)
            if area_id is None:
                continue
            record = self.geometry.get_area(kind, area_id)
            fill_hex = colors.get(area_id)
            decorated.append({
                **feature,
                'properties': {
                    **(feature.get('properties') or {}),
                    'area_id': area_id,
                    'area_kind': kind.value,
                    'area_name': record.name if record else area_id,
                    'fill_color': hex_to_rgba(fill_hex, alpha) if fill_hex else UNCOLORED_FILL,
                },
            })
        return decorated

    def create_fill_layer(self, kind: AreaKind) -> pdk.Layer:
        """Choropleth fill for one boundary kind (pickable: clicks select areas)."""
        return pdk.Layer(
            "GeoJsonLayer",
            id=fill_layer_id(kind),
            data={'type': 'FeatureCollection', 'features': self.decorated_features(kind)},
            get_fill_color="properties.fill_color",
            get_line_color=BOUNDARY_LINE_COLOR,
            line_width_min_pixels=0.5,
            pickable=True,
            stroked=True,
            filled=True,
            extruded=False,
            auto_highlight=True,
            highlight_color=[99, 102, 241, 60],
        )

    def create_highlight_layers(self, kind: AreaKind) -> List[pdk.Layer]:
        layers = []
        features = None
        for layer, style in HIGHLIGHT_STYLES.items():
            ids = set(self.filters[kind].get(layer, []))
            if not ids:
                continue
            if features is None:
                features = self.geometry.feature_collection(kind)['features']
            matching = [f for f in features if self._feature_id(kind, f) in ids]
            if not matching:
                continue
            layers.append(pdk.Layer(
                "GeoJsonLayer",
                id=highlight_layer_id(kind, layer),
                data={'type': 'FeatureCollection', 'features': matching},
                get_line_color=style['color'],
                line_width_min_pixels=style['width'],
                filled=False,
                stroked=True,
                pickable=False,
            ))
        return layers

    def create_marker_layer(self, kind: AreaKind) -> Optional[pdk.Layer]:
        rows = []
        for marker in self.markers[kind]:
            if not marker.position:
                continue
            # Combined markers: fill shows the high tone, ring shows the low tone
            fill_tone = marker.low_tone if marker.extrema_kind == LOW else marker.high_tone
            ring_tone = marker.low_tone if marker.extrema_kind == COMBINED else None
            rows.append({
                'position': list(marker.position),
                'marker_key': marker.key,
                'area_id': marker.area_id,
                'area_kind': kind.value,
                'extrema_kind': marker.extrema_kind,
                'color': tone_rgba(fill_tone),
                'line_color': tone_rgba(ring_tone) if ring_tone else [255, 255, 255, 255],
            })
        if not rows:
            return None
        return pdk.Layer(
            "ScatterplotLayer",
            id=marker_layer_id(kind),
            data=rows,
            get_position="position",
            get_fill_color="color",
            get_line_color="line_color",
            get_radius=MARKER_RADIUS_PX,
            radius_units="pixels",
            line_width_min_pixels=2,
            stroked=True,
            pickable=True,
        )

    def build_layers(self) -> List[pdk.Layer]:
        layers = []
        for kind in AREA_KINDS:
            if kind not in self.visible_kinds:
                continue
            layers.append(self.create_fill_layer(kind))
            layers.extend(self.create_highlight_layers(kind))
        for kind in AREA_KINDS:
            if kind in self.visible_kinds:
                marker_layer = self.create_marker_layer(kind)
                if marker_layer is not None:
                    layers.append(marker_layer)
        return layers

    def build_deck(self) -> pdk.Deck:
        view_state = pdk.ViewState(
            latitude=self.view['latitude'],
            longitude=self.view['longitude'],
            zoom=self.view['zoom'],
            pitch=0,
            bearing=0,
        )
        return pdk.Deck(
            layers=self.build_layers(),
            initial_view_state=view_state,
            tooltip=create_area_tooltip(),
            map_style=MAP_STYLE,
        )


def create_area_tooltip() -> dict:
    """Create tooltip for area hover."""
    return {
        "html": '<div style="font-family:-apple-system,BlinkMacSystemFont,sans-serif;padding:8px;min-width:140px;">'
                '<div style="font-weight:600;font-size:13px;">{area_name}</div>'
                '<div style="font-size:11px;color:#666;">{area_kind} {area_id}</div>'
                '</div>',
        "style": {
            "backgroundColor": "white",
            "color": "#333",
            "borderRadius": "8px",
            "boxShadow": "0 2px 10px rgba(0,0,0,0.18)",
            "maxWidth": "240px"
        }
    }


def picked_area(selection: Optional[dict]) -> Optional[Tuple[AreaKind, str]]:
    """
    (kind, area_id) of the object picked in a ``st.pydeck_chart`` selection
    event, or None. Marker picks resolve to the marker's area.
    """
    if not selection:
        return None
    objects = selection.get('objects') or {}
    for layer_id, picked in objects.items():
        if not picked:
            continue
        obj = picked[0]
        properties = obj.get('properties', obj) if isinstance(obj, dict) else {}
        area_id = properties.get('area_id')
        kind_value = properties.get('area_kind')
        for kind in AREA_KINDS:
            if kind.value == kind_value and area_id:
                return kind, str(area_id)
        logger.debug(f"Ignoring pick on layer {layer_id} without area id")
    return None
