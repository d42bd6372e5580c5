"""Tests for statistics merging, scoping and legend ranges."""
import math

import numpy as np
import pytest

from mapcore.areas import AreaKind
from mapcore.stat_aggregator import (
    LegendRangeMode,
    ScopedStatAggregator,
    StatEntry,
    build_scoped_stat_table,
    is_finite_number,
    make_stat_entry,
    merge_stat_entries,
    parse_legend_range_mode,
)

P = AreaKind.PRIMARY
A = AreaKind.AGGREGATE


def entry(values, value_type='count'):
    return make_stat_entry(value_type, values)


class TestMerge:

    def test_incoming_wins_and_extrema_recomputed(self):
        merged = merge_stat_entries(entry({'a': 1, 'b': 2}), entry({'b': 5, 'c': 9}))
        assert merged.values == {'a': 1.0, 'b': 5.0, 'c': 9.0}
        assert (merged.min, merged.max) == (1.0, 9.0)

    def test_first_entry_is_taken_as_is(self):
        merged = merge_stat_entries(None, entry({'a': 3}))
        assert merged.values == {'a': 3.0}
        assert (merged.min, merged.max) == (3.0, 3.0)

    def test_non_finite_values_are_dropped(self):
        dirty = StatEntry('count', {'a': math.nan, 'b': 2.0, 'c': None, 'd': True})
        merged = merge_stat_entries(dirty, StatEntry('count', {'e': math.inf}))
        assert merged.values == {'b': 2.0}
        assert (merged.min, merged.max) == (2.0, 2.0)

    def test_empty_merge_has_zero_range(self):
        merged = merge_stat_entries(entry({}), entry({}))
        assert merged.is_empty
        assert (merged.min, merged.max) == (0.0, 0.0)

    def test_numpy_numbers_count_as_finite(self):
        assert is_finite_number(np.float64(1.5))
        assert is_finite_number(np.int32(2))
        assert not is_finite_number(np.float64('nan'))
        assert not is_finite_number(False)


@pytest.fixture
def raw():
    return {
        'income': {
            'A': {P: entry({'z1': 10, 'z2': 100})},
            'B': {P: entry({'z3': 50})},
            'C': {P: entry({'z4': 1000})},
            'State': {A: entry({'c1': 7, 'c2': 3})},
        },
    }


class TestScopedTable:

    def test_scoped_uses_active_and_neighbors_only(self, raw):
        table = build_scoped_stat_table(raw, LegendRangeMode.SCOPED, 'A', ['B'])
        primary = table['income'][P]
        assert set(primary.values) == {'z1', 'z2', 'z3'}
        assert primary.legend_range == (10.0, 100.0)

    def test_global_uses_every_scope(self, raw):
        table = build_scoped_stat_table(raw, LegendRangeMode.GLOBAL, 'A', [])
        primary = table['income'][P]
        assert set(primary.values) == {'z1', 'z2', 'z3', 'z4'}
        assert primary.legend_range == (10.0, 1000.0)
        assert set(table['income'][A].values) == {'c1', 'c2'}

    def test_dynamic_narrows_legend_but_keeps_colors(self, raw):
        dynamic = build_scoped_stat_table(raw, LegendRangeMode.DYNAMIC, 'A', [], visible_ids={'z1'})
        scoped = build_scoped_stat_table(raw, LegendRangeMode.SCOPED, 'A', [])
        assert dynamic['income'][P].legend_range == (10.0, 10.0)
        assert scoped['income'][P].legend_range == (10.0, 100.0)
        assert dynamic['income'][P].values == scoped['income'][P].values
        assert (dynamic['income'][P].min, dynamic['income'][P].max) == (10.0, 100.0)

    def test_dynamic_without_visible_ids_falls_back_to_scoped(self, raw):
        table = build_scoped_stat_table(raw, LegendRangeMode.DYNAMIC, 'A', ['B'], visible_ids=set())
        assert table['income'][P].legend_range == (10.0, 100.0)

    def test_dynamic_with_no_valued_visible_areas_falls_back_to_scoped(self, raw):
        table = build_scoped_stat_table(raw, LegendRangeMode.DYNAMIC, 'A', ['B'],
                                        visible_ids={'z4', 'z99'})
        assert table['income'][P].legend_range == (10.0, 100.0)

    def test_fallback_scope_keeps_aggregate_rows(self, raw):
        table = build_scoped_stat_table(raw, LegendRangeMode.SCOPED, 'A', [], fallback_scope='State')
        assert table['income'][A].values == {'c1': 7.0, 'c2': 3.0}
        assert table['income'][A].legend_range == (3.0, 7.0)

    def test_stats_without_scoped_data_are_absent(self, raw):
        table = build_scoped_stat_table(raw, LegendRangeMode.SCOPED, 'Nowhere', [])
        assert table == {}


class TestAggregator:

    def test_visible_ids_only_apply_in_dynamic(self, raw):
        aggregator = ScopedStatAggregator(LegendRangeMode.SCOPED)
        aggregator.set_raw(raw)
        aggregator.set_scope('A', [])
        aggregator.set_visible_ids({'z1'})
        assert aggregator.get_entry('income', P).legend_range == (10.0, 100.0)

        aggregator.set_mode(LegendRangeMode.DYNAMIC)
        assert aggregator.get_entry('income', P).legend_range == (10.0, 10.0)

    def test_table_is_replaced_not_mutated(self, raw):
        aggregator = ScopedStatAggregator()
        aggregator.set_raw(raw)
        before = aggregator.table
        aggregator.set_scope('B', [])
        assert aggregator.table is not before
        assert 'z1' in before['income'][P].values

    def test_get_entry_without_stat(self, raw):
        aggregator = ScopedStatAggregator()
        aggregator.set_raw(raw)
        assert aggregator.get_entry(None, P) is None
        assert aggregator.get_entry('missing', P) is None

    def test_scope_names_include_fallback(self):
        aggregator = ScopedStatAggregator(fallback_scope='State')
        aggregator.set_scope('A', ['B', 'A'])
        assert aggregator.scope_names() == ['A', 'B', 'State']


def test_parse_legend_range_mode():
    assert parse_legend_range_mode(' Global ') is LegendRangeMode.GLOBAL
    assert parse_legend_range_mode(LegendRangeMode.DYNAMIC) is LegendRangeMode.DYNAMIC
    with pytest.raises(ValueError):
        parse_legend_range_mode('viewport')
