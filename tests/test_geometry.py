"""Tests for GeoJSON loading, chunk bookkeeping and neighbor derivation."""
import asyncio
import json

import pytest

from mapcore.areas import AreaKind
from mapcore.errors import GeometryDataError
from mapcore.geometry import UNASSIGNED_CHUNK_ID, GeoJsonGeometryLoader, geometry_bounds, load_geojson

from conftest import rect_feature


class TestLoadGeojson:

    def test_reads_feature_collection(self, tmp_path, aggregate_geojson):
        path = tmp_path / 'counties.geojson'
        path.write_text(json.dumps(aggregate_geojson))
        assert len(load_geojson(path)['features']) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_geojson(tmp_path / 'missing.geojson')

    def test_invalid_json(self, tmp_path):
        path = tmp_path / 'broken.geojson'
        path.write_text('{"type": ')
        with pytest.raises(GeometryDataError):
            load_geojson(path)

    def test_not_a_feature_collection(self, tmp_path):
        path = tmp_path / 'feature.geojson'
        path.write_text(json.dumps(rect_feature({}, 0, 0, 1, 1)))
        with pytest.raises(GeometryDataError, match="FeatureCollection"):
            load_geojson(path)


class TestGeometryBounds:

    def test_multipolygon(self):
        geometry = {
            'type': 'MultiPolygon',
            'coordinates': [
                [[[0, 0], [1, 0], [1, 1], [0, 0]]],
                [[[5, -2, 100], [6, -2, 100], [6, 3, 100], [5, -2, 100]]],
            ],
        }
        assert geometry_bounds(geometry) == ((0.0, -2.0), (6.0, 3.0))

    def test_point(self):
        assert geometry_bounds({'type': 'Point', 'coordinates': [-97.5, 35.5]}) == ((-97.5, 35.5), (-97.5, 35.5))

    def test_missing_geometry(self):
        assert geometry_bounds(None) is None
        assert geometry_bounds({'type': 'Polygon', 'coordinates': []}) is None


class TestGeoJsonGeometryLoader:

    def test_indexes_areas_and_parents(self, geometry):
        record = geometry.get_area(AreaKind.PRIMARY, '73069')
        assert record.parent_id == '027'
        assert record.parent_name == 'Cleveland County'
        assert record.centroid == pytest.approx((-97.545, 35.19))
        assert geometry.area_ids(AreaKind.AGGREGATE) == ['017', '027', '109']

    def test_chunk_ids(self, geometry):
        assert geometry.chunk_id_for_area(AreaKind.PRIMARY, '73102') == 'chunk:109'
        assert geometry.chunk_id_for_area(AreaKind.AGGREGATE, '109') == 'chunk:109'
        assert geometry.chunk_id_for_area(AreaKind.PRIMARY, 'nope') is None
        assert geometry.chunk_ids_for_scope('027') == ['chunk:027']
        assert geometry.chunk_ids_for_scope('999') == []

    def test_neighbors_from_touching_boxes(self, geometry):
        assert sorted(geometry.neighbor_scope_ids('109')) == ['017', '027']
        assert geometry.scope_name('109') == 'Oklahoma County'
        assert geometry.scope_name('unknown') == 'unknown'
        assert geometry.scope_name(None) is None

    def test_features_without_parent_go_to_unassigned_chunk(self, aggregate_geojson):
        primary = {'type': 'FeatureCollection', 'features': [
            rect_feature({'zip': '00001'}, 0, 0, 1, 1),
            rect_feature({'name': 'no id'}, 0, 0, 1, 1),
        ]}
        loader = GeoJsonGeometryLoader(primary, aggregate_geojson)
        assert loader.chunk_id_for_area(AreaKind.PRIMARY, '00001') == UNASSIGNED_CHUNK_ID
        assert loader.area_ids(AreaKind.PRIMARY) == ['00001']

    def test_viewport_loading_and_prune(self, geometry):
        loaded = asyncio.run(geometry.ensure_viewport(((-97.6, 35.5), (-97.2, 35.7))))
        assert [chunk.id for chunk in loaded] == ['chunk:109']
        ids = {f['properties']['zip'] for f in geometry.feature_collection(AreaKind.PRIMARY)['features']}
        assert ids == {'73102', '73111'}

        asyncio.run(geometry.ensure_scope_chunks(['027']))
        asyncio.run(geometry.ensure_ids(AreaKind.PRIMARY, ['73036', 'nope']))
        assert geometry.loaded_chunk_ids == {'chunk:109', 'chunk:027', 'chunk:017'}

        geometry.prune({'chunk:027'})
        assert geometry.loaded_chunk_ids == {'chunk:027'}
        assert len(geometry.feature_collection(AreaKind.AGGREGATE)['features']) == 3

    def test_from_files(self, tmp_path, primary_geojson, aggregate_geojson):
        primary_path = tmp_path / 'zips.geojson'
        aggregate_path = tmp_path / 'counties.geojson'
        primary_path.write_text(json.dumps(primary_geojson))
        aggregate_path.write_text(json.dumps(aggregate_geojson))
        loader = GeoJsonGeometryLoader.from_files(primary_path, aggregate_path)
        assert len(loader.area_ids(AreaKind.PRIMARY)) == 6
