"""Tests for the pydeck rendering engine and view math."""
import asyncio

import pydeck as pdk
import pytest

from mapcore.areas import AreaKind, BoundaryMode
from mapcore.extrema import COMBINED, ExtremaMarker
from mapviews.map_view import (
    DEFAULT_VIEW,
    MIN_ZOOM,
    UNCOLORED_FILL,
    PydeckMapEngine,
    calculate_view_state,
    fill_layer_id,
    highlight_layer_id,
    picked_area,
    view_bounds,
)

P = AreaKind.PRIMARY
A = AreaKind.AGGREGATE


@pytest.fixture
def map_engine(geometry):
    asyncio.run(geometry.ensure_scope_chunks(['109']))
    return PydeckMapEngine(geometry)


def feature_ids(features, prop):
    return {feature['properties'][prop] for feature in features}


class TestViewMath:

    def test_no_bounds_gives_default_view(self):
        view = calculate_view_state(None)
        assert view == DEFAULT_VIEW
        assert view is not DEFAULT_VIEW

    def test_fits_and_clamps(self):
        view = calculate_view_state(((-97.68, 35.38), (-97.41, 35.73)), max_zoom=9)
        assert view['zoom'] == 9
        assert view['latitude'] == pytest.approx(35.555)
        assert view['longitude'] == pytest.approx(-97.545)

    def test_huge_bounds_clamp_to_min_zoom(self):
        assert calculate_view_state(((-180, -85), (180, 85)))['zoom'] == MIN_ZOOM

    def test_view_bounds_surround_center(self):
        (west, south), (east, north) = view_bounds(DEFAULT_VIEW)
        assert west < DEFAULT_VIEW['longitude'] < east
        assert south < DEFAULT_VIEW['latitude'] < north


class TestEngineState:

    def test_layer_ids_follow_boundary_mode(self, map_engine):
        assert map_engine.has_layer('zip-fill')
        assert map_engine.has_layer(highlight_layer_id(A, 'hover'))
        map_engine.show_boundary_mode(BoundaryMode.AGGREGATE)
        assert not map_engine.has_layer('zip-fill')
        map_engine.show_boundary_mode('none')
        assert map_engine.layer_ids() == []

    def test_camera(self, map_engine):
        map_engine.fit_bounds(((-97.68, 35.38), (-97.41, 35.73)), padding=48, max_zoom=8.5)
        assert map_engine.get_zoom() == 8.5
        (west, south), (east, north) = map_engine.get_bounds()
        assert west < -97.545 < east and south < 35.555 < north

        map_engine.set_view(35.0, -97.0, 7)
        assert map_engine.view == {'latitude': 35.0, 'longitude': -97.0, 'zoom': 7}

    def test_query_returns_loaded_features_in_rect(self, map_engine):
        rect = ((-97.3, 35.5), (-97.2, 35.6))
        features = map_engine.query_rendered_features(rect)
        assert {f['properties'].get('zip') or f['properties']['county'] for f in features} == {'73111', '109'}
        primary_only = map_engine.query_rendered_features(rect, layers=[fill_layer_id(P)])
        assert feature_ids(primary_only, 'zip') == {'73111'}

    def test_query_defaults_to_viewport(self, map_engine):
        features = map_engine.query_rendered_features()
        primary = [f for f in features if 'zip' in f['properties']]
        # Only chunk 109 is loaded
        assert feature_ids(primary, 'zip') == {'73102', '73111'}

    def test_hidden_kinds_are_not_queried(self, map_engine):
        map_engine.show_boundary_mode(BoundaryMode.AGGREGATE)
        features = map_engine.query_rendered_features()
        assert all('zip' not in f['properties'] for f in features)
        assert len(features) == 3


class TestLayers:

    def test_decorated_features_carry_fill_colors(self, map_engine, geometry):
        map_engine.set_fill_paint(P, {'73102': '#ff0000'}, 0.45)
        features = {f['properties']['area_id']: f['properties'] for f in map_engine.decorated_features(P)}
        assert features['73102']['fill_color'] == [255, 0, 0, 115]
        assert features['73111']['fill_color'] == UNCOLORED_FILL
        assert features['73102']['area_kind'] == 'ZIP'
        assert features['73102']['area_name'] == geometry.get_area(P, '73102').name
        # Source features stay untouched
        source = geometry.feature_collection(P)['features'][0]['properties']
        assert 'fill_color' not in source

    def test_highlight_layers_only_for_matching_ids(self, map_engine):
        assert map_engine.create_highlight_layers(P) == []
        map_engine.set_highlight_filter(P, 'hover', ['73102'])
        map_engine.set_highlight_filter(P, 'pinned', ['73069'])  # not loaded
        layers = map_engine.create_highlight_layers(P)
        assert [layer.id for layer in layers] == ['zip-hover']

    def test_marker_layer(self, map_engine):
        assert map_engine.create_marker_layer(P) is None
        map_engine.set_markers(P, [
            ExtremaMarker(key='k', kind=P, area_id='73102', extrema_kind=COMBINED, stat_id='population',
                          position=(-97.5, 35.5), high_tone='good', low_tone='bad'),
            ExtremaMarker(key='lost', kind=P, area_id='73111', extrema_kind=COMBINED, stat_id='population',
                          position=None, high_tone='good', low_tone='bad'),
        ])
        layer = map_engine.create_marker_layer(P)
        assert layer.id == 'zip-markers'
        assert layer.type == 'ScatterplotLayer'

    def test_build_deck(self, map_engine):
        map_engine.set_highlight_filter(A, 'transient', ['109'])
        deck = map_engine.build_deck()
        assert isinstance(deck, pdk.Deck)
        assert [layer.id for layer in deck.layers] == ['zip-fill', 'county-fill', 'county-transient']


class TestPickedArea:

    def test_fill_pick(self):
        selection = {'objects': {'zip-fill': [{'properties': {'area_id': '73102', 'area_kind': 'ZIP'}}]}}
        assert picked_area(selection) == (P, '73102')

    def test_marker_pick(self):
        selection = {'objects': {'county-markers': [{'area_id': '109', 'area_kind': 'COUNTY'}]}}
        assert picked_area(selection) == (A, '109')

    @pytest.mark.parametrize("selection", [
        None,
        {},
        {'objects': {}},
        {'objects': {'zip-fill': []}},
        {'objects': {'zip-fill': [{'properties': {'area_id': '1', 'area_kind': 'TRACT'}}]}},
    ])
    def test_nothing_picked(self, selection):
        assert picked_area(selection) is None
