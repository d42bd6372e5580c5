"""Tests for statistics loading and the in-memory store."""
import pandas as pd
import pytest

from mapcore.areas import AreaKind
from mapcore.data_loader import (
    InMemoryStatStore,
    build_raw_stat_table,
    get_stat_options,
    load_stat_catalog,
    load_stat_csv,
    normalize_stat_frame,
)
from mapcore.errors import StatDataError


@pytest.fixture
def stats_df():
    return pd.DataFrame({
        'Stat_ID': ['income', 'income', 'income', 'income', 'income', 'rent'],
        'parent_area': ['Oklahoma County', 'Oklahoma County', 'Oklahoma', 'Oklahoma County', 'X', 'Oklahoma County'],
        'boundary_type': ['zip', 'ZCTA', 'county', 'ZIP', 'tract', 'ZIP'],
        'area_id': ['73102', ' 73111 ', '109', '73120', '1', '73102'],
        'value': [10, '20', 300, 'n/a', 5, 900],
        'value_type': ['currency', 'currency', 'currency', 'currency', 'currency', None],
    })


class TestNormalize:

    def test_missing_columns_raise(self):
        with pytest.raises(StatDataError, match="parent_area"):
            normalize_stat_frame(pd.DataFrame({'stat_id': [], 'boundary_type': [], 'area_id': [], 'value': []}))

    def test_cleans_rows(self, stats_df):
        df = normalize_stat_frame(stats_df)
        assert len(df) == 4
        assert set(df['boundary_type']) == {'ZIP', 'COUNTY'}
        assert '73111' in set(df['area_id'])
        assert df.loc[df['stat_id'] == 'rent', 'value_type'].iloc[0] == 'count'


class TestRawTable:

    def test_builds_nested_table(self, stats_df):
        table = build_raw_stat_table(stats_df)
        income = table['income']
        assert income['Oklahoma County'][AreaKind.PRIMARY].values == {'73102': 10.0, '73111': 20.0}
        assert income['Oklahoma'][AreaKind.AGGREGATE].values == {'109': 300.0}
        assert income['Oklahoma County'][AreaKind.PRIMARY].value_type == 'currency'
        assert table['rent']['Oklahoma County'][AreaKind.PRIMARY].max == 900.0

    def test_csv_round_trip(self, tmp_path, stats_df):
        path = tmp_path / 'stats.csv'
        stats_df.to_csv(path, index=False)
        store = InMemoryStatStore.from_csv(path)
        assert set(store.table) == {'income', 'rent'}

    def test_missing_csv(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_stat_csv(tmp_path / 'missing.csv')


def test_catalog_and_options():
    df = pd.DataFrame({
        'stat_id': ['income', 'unemployment', 'population'],
        'name': ['Median income', 'Unemployment', None],
        'category': ['Economy', 'Economy', None],
        'good_if_up': ['true', 'false', None],
    })
    catalog = load_stat_catalog(df)
    assert catalog['income'] == {'name': 'Median income', 'category': 'Economy', 'good_if_up': True}
    assert catalog['unemployment']['good_if_up'] is False
    assert catalog['population'] == {'name': 'population', 'category': None, 'good_if_up': None}

    options = get_stat_options({'income': {}, 'unemployment': {}, 'population': {}}, catalog)
    assert [option['name'] for option in options] == ['Median income', 'population', 'Unemployment']


class TestInMemoryStatStore:

    def test_subscribe_delivers_current_table(self, raw_stats):
        store = InMemoryStatStore(raw_stats)
        received = []
        store.subscribe(lambda table, refreshing: received.append((table, refreshing)))
        assert received == [(raw_stats, False)]

    def test_refresh_cycle_and_unsubscribe(self):
        store = InMemoryStatStore()
        received = []
        unsubscribe = store.subscribe(lambda table, refreshing: received.append(refreshing))
        store.begin_refresh()
        store.publish({'x': {}})
        unsubscribe()
        store.publish({'y': {}})
        assert received == [False, True, False]
        assert store.table == {'y': {}}

    def test_failing_subscriber_does_not_block_others(self):
        store = InMemoryStatStore()
        received = []

        def broken(table, refreshing):
            raise RuntimeError("subscriber bug")

        store._listeners.append(broken)
        store.subscribe(lambda table, refreshing: received.append(table))
        store.publish({'x': {}})
        assert received == [{}, {'x': {}}]

    def test_records_focus(self):
        store = InMemoryStatStore()
        store.prioritize(['income', None])
        store.set_scope(['Oklahoma County', '', 'Oklahoma'])
        assert store.priority_ids == ['income']
        assert store.scope_names == ['Oklahoma County', 'Oklahoma']
