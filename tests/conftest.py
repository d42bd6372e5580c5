"""
Shared fixtures: a three-county sample region, a recording rendering
engine, a recording host and a manual clock.

    Canadian (017)  | Oklahoma (109)
    73036 | 73099   | 73102 | 73111
                    +---------------
                    | Cleveland (027)
                    | 73069 | 73071
"""
import pytest

from mapcore.areas import AreaKind
from mapcore.data_loader import InMemoryStatStore
from mapcore.geometry import GeoJsonGeometryLoader
from mapcore.orchestrator import MapInteractionCore
from mapcore.scheduler import ManualScheduler
from mapcore.stat_aggregator import make_stat_entry


def rect_feature(properties: dict, west: float, south: float, east: float, north: float) -> dict:
    ring = [[west, south], [east, south], [east, north], [west, north], [west, south]]
    return {'type': 'Feature', 'properties': properties, 'geometry': {'type': 'Polygon', 'coordinates': [ring]}}


COUNTY_BOXES = {
    '109': ('Oklahoma County', -97.68, 35.38, -97.14, 35.73),
    '027': ('Cleveland County', -97.68, 35.00, -97.14, 35.38),
    '017': ('Canadian County', -98.31, 35.38, -97.68, 35.73),
}

ZIP_BOXES = {
    '73102': ('109', -97.68, 35.38, -97.41, 35.73),
    '73111': ('109', -97.41, 35.38, -97.14, 35.73),
    '73069': ('027', -97.68, 35.00, -97.41, 35.38),
    '73071': ('027', -97.41, 35.00, -97.14, 35.38),
    '73036': ('017', -98.31, 35.38, -97.99, 35.73),
    '73099': ('017', -97.99, 35.38, -97.68, 35.73),
}


@pytest.fixture
def aggregate_geojson():
    return {
        'type': 'FeatureCollection',
        'features': [
            rect_feature({'county': county_id, 'name': name}, *box)
            for county_id, (name, *box) in COUNTY_BOXES.items()
        ],
    }


@pytest.fixture
def primary_geojson():
    return {
        'type': 'FeatureCollection',
        'features': [
            rect_feature({'zip': zip_id, 'county': county_id, 'name': f"ZIP {zip_id}"}, *box)
            for zip_id, (county_id, *box) in ZIP_BOXES.items()
        ],
    }


@pytest.fixture
def geometry(primary_geojson, aggregate_geojson):
    return GeoJsonGeometryLoader(primary_geojson, aggregate_geojson)


@pytest.fixture
def raw_stats():
    """stat_id -> parent scope -> kind -> StatEntry"""
    return {
        'population': {
            'Oklahoma County': {AreaKind.PRIMARY: make_stat_entry('count', {'73102': 10, '73111': 100})},
            'Cleveland County': {AreaKind.PRIMARY: make_stat_entry('count', {'73069': 30, '73071': 60})},
            'Canadian County': {AreaKind.PRIMARY: make_stat_entry('count', {'73036': 5, '73099': 500})},
            'Oklahoma': {AreaKind.AGGREGATE: make_stat_entry('count', {'109': 1000, '027': 400, '017': 200})},
        },
    }


@pytest.fixture
def scheduler():
    return ManualScheduler()


class RecordingEngine:
    """RenderingEngine double that records every paint call."""

    def __init__(self, zoom=8.0, bounds=((-98.5, 34.9), (-97.0, 35.8)), features=None, layers=()):
        self.zoom = zoom
        self.bounds = bounds
        self.features = list(features or [])
        self.layers = set(layers)
        self.filters = {}
        self.fills = {}
        self.markers = {}
        self.fit_calls = []
        self.queries = 0
        self.fail_queries = False
        self.fail_filters = False

    def has_layer(self, layer_id):
        return layer_id in self.layers

    def set_highlight_filter(self, kind, layer, area_ids):
        if self.fail_filters:
            raise RuntimeError("layer missing during style reload")
        self.filters[(kind, layer)] = list(area_ids)

    def set_fill_paint(self, kind, fill_colors, opacity):
        self.fills[kind] = (dict(fill_colors), opacity)

    def set_markers(self, kind, markers):
        self.markers[kind] = list(markers)

    def query_rendered_features(self, rect=None, layers=None):
        self.queries += 1
        if self.fail_queries:
            raise RuntimeError("style reloading")
        return list(self.features)

    def fit_bounds(self, bounds, padding=48, max_zoom=None):
        self.fit_calls.append((bounds, padding, max_zoom))

    def get_zoom(self):
        return self.zoom

    def get_bounds(self):
        return self.bounds

    def filter(self, kind, layer):
        return self.filters.get((kind, layer), [])


class RecordingHost:
    """Collects core notifications."""

    def __init__(self):
        self.notifications = []

    def __call__(self, notification):
        self.notifications.append(notification)

    def of_type(self, cls):
        return [n for n in self.notifications if isinstance(n, cls)]

    def clear(self):
        self.notifications.clear()


@pytest.fixture
def engine():
    return RecordingEngine()


@pytest.fixture
def host():
    return RecordingHost()


@pytest.fixture
def store(raw_stats):
    return InMemoryStatStore(raw_stats)


@pytest.fixture
def core(engine, geometry, store, scheduler, host):
    core = MapInteractionCore(
        engine=engine,
        geometry=geometry,
        stats_store=store,
        scheduler=scheduler,
        on_notification=host,
        stat_catalog={'population': {'name': 'Population', 'category': 'Demographics', 'good_if_up': None}},
    )
    core.attach()
    return core
