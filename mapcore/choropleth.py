"""
Choropleth color schemes for statistic overlays.

Sequential statistics use a 7-class indigo ramp; percent-change
statistics use a diverging plum (negative) / indigo (positive) scale
centred on zero. Colors are hex strings, with RGBA helpers for pydeck.
"""
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

# =============================================================================
# SEQUENTIAL (primary statistic)
# =============================================================================
CHOROPLETH_COLORS = [
    '#f0f1ff',
    '#e3e5ff',
    '#ccd0ff',
    '#a8afff',
    '#8a93ff',
    '#7d87f0',
    '#737de6',
]

# =============================================================================
# DIVERGING (percent change)
# =============================================================================
DIVERGING_NEGATIVE_COLORS = [
    '#f6f0f7',   # Very light plum tint
    '#ead9ec',
    '#d7b7dc',
    '#c08fc7',
    '#a56cab',
    '#8a5a92',   # Strongest negative
]

DIVERGING_POSITIVE_COLORS = [
    '#eef2ff',   # Very light indigo
    '#e0e7ff',
    '#c7d2fe',
    '#a5b4fc',
    '#818cf8',
    '#6366f1',   # Strongest positive
]

PERCENT_CHANGE_TYPE = 'percent_change'

# Fill opacity by theme
FILL_OPACITY = {
    'light': 0.45,
    'dark': 0.35,
}

# Marker tones (extrema badges)
TONE_COLORS_HEX = {
    'good': '#22c55e',
    'bad': '#f15b41',
    'neutral': '#f8d837',
}


def _is_finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def get_class_index(value: float, min_value: float, max_value: float, num_classes: int) -> int:
    """
    Bucket a value into one of ``num_classes`` classes over [min, max].

    Values outside the range clamp to the end classes; a zero-width range
    maps everything to the middle class.
    """
    if not _is_finite(value):
        return 0
    if not _is_finite(min_value) or not _is_finite(max_value) or num_classes <= 1:
        return 0
    span = max_value - min_value
    if span <= 0:
        return (num_classes - 1) // 2
    ratio = (value - min_value) / span
    return max(0, min(num_classes - 1, math.floor(ratio * (num_classes - 1))))


def get_diverging_color(value: float, min_value: float, max_value: float) -> str:
    """Color for a percent-change value: plum below zero, indigo at or above."""
    if not _is_finite(value):
        return DIVERGING_POSITIVE_COLORS[0]

    if value >= 0:
        max_abs = max(0.001, max_value)
        ratio = min(1.0, value / max_abs)
        colors = DIVERGING_POSITIVE_COLORS
    else:
        min_abs = abs(min(-0.001, min_value))
        ratio = min(1.0, abs(value) / min_abs)
        colors = DIVERGING_NEGATIVE_COLORS

    idx = math.floor(ratio * (len(colors) - 1))
    return colors[min(len(colors) - 1, max(0, idx))]


def get_choropleth_color(value: float, min_value: float, max_value: float,
                         value_type: Optional[str] = None, palette: Optional[List[str]] = None) -> str:
    """Fill color for one area value given the legend range."""
    if value_type == PERCENT_CHANGE_TYPE:
        return get_diverging_color(value, min_value, max_value)
    colors = palette or CHOROPLETH_COLORS
    return colors[get_class_index(value, min_value, max_value, len(colors))]


def build_fill_colors(values: Dict[str, float], min_value: float, max_value: float,
                      value_type: Optional[str] = None) -> Dict[str, str]:
    """Area id -> fill color for every finite value. Missing values stay uncolored."""
    return {
        area_id: get_choropleth_color(value, min_value, max_value, value_type)
        for area_id, value in values.items()
        if _is_finite(value)
    }


def get_legend_colors(value_type: Optional[str] = None) -> tuple:
    """(low, high) swatch colors for the legend bar."""
    if value_type == PERCENT_CHANGE_TYPE:
        return DIVERGING_NEGATIVE_COLORS[-1], DIVERGING_POSITIVE_COLORS[-1]
    return CHOROPLETH_COLORS[0], CHOROPLETH_COLORS[-1]


def hex_to_rgba(hex_color: str, alpha: int = 255) -> List[int]:
    """'#RRGGBB' -> [R, G, B, A] for pydeck color accessors."""
    value = hex_color.lstrip('#')
    if len(value) != 6:
        return [0, 0, 0, alpha]
    return [int(value[i:i + 2], 16) for i in (0, 2, 4)] + [alpha]


@dataclass(frozen=True)
class LegendModel:
    """What the legend widget shows for the active statistic and boundary kind."""

    visible: bool
    min: float = 0.0
    max: float = 0.0
    value_type: Optional[str] = None
    label: Optional[str] = None
    low_color: str = CHOROPLETH_COLORS[0]
    high_color: str = CHOROPLETH_COLORS[-1]
    is_loading: bool = False


HIDDEN_LEGEND = LegendModel(visible=False)


def build_legend(entry, label: Optional[str] = None, is_loading: bool = False) -> LegendModel:
    """
    Legend for a scoped StatEntry. Hidden when there is no entry or it has
    no values; the range is the entry's legend range.
    """
    if entry is None or not entry.values:
        return LegendModel(visible=False, label=label, is_loading=is_loading)
    low, high = entry.legend_range
    low_color, high_color = get_legend_colors(entry.value_type)
    return LegendModel(
        visible=True,
        min=low,
        max=high,
        value_type=entry.value_type,
        label=label,
        low_color=low_color,
        high_color=high_color,
        is_loading=is_loading,
    )
