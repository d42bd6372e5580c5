"""Tests for choropleth classing, palettes and legend models."""
import math

import pytest

from mapcore.choropleth import (
    CHOROPLETH_COLORS,
    DIVERGING_NEGATIVE_COLORS,
    DIVERGING_POSITIVE_COLORS,
    PERCENT_CHANGE_TYPE,
    build_fill_colors,
    build_legend,
    get_choropleth_color,
    get_class_index,
    hex_to_rgba,
)
from mapcore.stat_aggregator import StatEntry, make_stat_entry


class TestClassIndex:

    def test_zero_width_range_uses_middle_class(self):
        assert get_class_index(5, 5, 5, 7) == 3

    def test_ends_and_clamping(self):
        assert get_class_index(0, 0, 100, 7) == 0
        assert get_class_index(100, 0, 100, 7) == 6
        assert get_class_index(-50, 0, 100, 7) == 0
        assert get_class_index(500, 0, 100, 7) == 6

    def test_non_finite_value(self):
        assert get_class_index(math.nan, 0, 100, 7) == 0


class TestColors:

    def test_sequential_palette(self):
        assert get_choropleth_color(0, 0, 10) == CHOROPLETH_COLORS[0]
        assert get_choropleth_color(10, 0, 10) == CHOROPLETH_COLORS[-1]

    def test_percent_change_diverges_at_zero(self):
        assert get_choropleth_color(-10, -10, 10, PERCENT_CHANGE_TYPE) == DIVERGING_NEGATIVE_COLORS[-1]
        assert get_choropleth_color(10, -10, 10, PERCENT_CHANGE_TYPE) == DIVERGING_POSITIVE_COLORS[-1]
        assert get_choropleth_color(0, -10, 10, PERCENT_CHANGE_TYPE) == DIVERGING_POSITIVE_COLORS[0]

    def test_fill_colors_skip_missing_values(self):
        colors = build_fill_colors({'a': 1.0, 'b': math.nan, 'c': 3.0}, 1.0, 3.0)
        assert set(colors) == {'a', 'c'}

    @pytest.mark.parametrize("hex_color, alpha, expected", [
        ('#ff0080', 100, [255, 0, 128, 100]),
        ('00ff00', 255, [0, 255, 0, 255]),
        ('#abc', 10, [0, 0, 0, 10]),
    ])
    def test_hex_to_rgba(self, hex_color, alpha, expected):
        assert hex_to_rgba(hex_color, alpha) == expected


class TestLegend:

    def test_hidden_without_values(self):
        assert not build_legend(None).visible
        assert not build_legend(make_stat_entry('count', {})).visible

    def test_hidden_legend_still_reports_loading(self):
        assert build_legend(None, is_loading=True).is_loading

    def test_uses_legend_range(self):
        entry = StatEntry('count', {'a': 10.0, 'b': 100.0}, 10.0, 100.0, legend_min=10.0, legend_max=10.0)
        legend = build_legend(entry, label='Income')
        assert legend.visible
        assert (legend.min, legend.max) == (10.0, 10.0)
        assert legend.label == 'Income'

    def test_percent_change_legend_colors(self):
        legend = build_legend(make_stat_entry(PERCENT_CHANGE_TYPE, {'a': -1, 'b': 2}))
        assert legend.low_color == DIVERGING_NEGATIVE_COLORS[-1]
        assert legend.high_color == DIVERGING_POSITIVE_COLORS[-1]
