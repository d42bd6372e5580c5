"""
Legend and info bar rendering for the map.

The HTML builders are pure functions so they can be checked without a
running Streamlit session; the ``render_*`` wrappers push them through
``st.markdown``.
"""
import html
import math
from typing import Optional, Sequence

import streamlit as st

from mapcore.choropleth import PERCENT_CHANGE_TYPE, TONE_COLORS_HEX, LegendModel
from mapcore.extrema import TONE_BAD, TONE_GOOD, TONE_NEUTRAL, MarkerBadge


def format_legend_value(value: float, value_type: Optional[str] = None) -> str:
    """Compact number for legend ends (1.2K, 3.4M, 12.5%)."""
    if value is None or not math.isfinite(value):
        return "–"
    if value_type == PERCENT_CHANGE_TYPE:
        return f"{value:+.1f}%"
    if value_type in ('percent', 'rate'):
        return f"{value:.1f}%"
    magnitude = abs(value)
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{value / 1_000:.1f}K"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def build_legend_html(legend: LegendModel) -> str:
    """Gradient bar with min/max labels; empty string when the legend is hidden."""
    if not legend.visible:
        if legend.is_loading:
            return '<div style="font-size:12px;color:#888;margin-bottom:6px;">Loading statistics…</div>'
        return ''

    label = html.escape(legend.label or '')
    low = format_legend_value(legend.min, legend.value_type)
    high = format_legend_value(legend.max, legend.value_type)
    loading = (
        '<span style="color:#888;font-style:italic;margin-left:6px;">updating…</span>'
        if legend.is_loading else ''
    )
    return (
        f'<div style="display:flex;align-items:center;gap:8px;font-size:12px;margin-bottom:6px;flex-wrap:wrap;">'
        f'<span style="font-weight:600;color:#333;">{label}</span>'
        f'<span style="color:#666;">{low}</span>'
        f'<span style="width:140px;height:10px;border-radius:3px;border:1px solid #ccc;'
        f'background:linear-gradient(to right, {legend.low_color}, {legend.high_color});"></span>'
        f'<span style="color:#666;">{high}</span>'
        f'{loading}'
        f'</div>'
    )


def build_scope_chip_html(scope_name: Optional[str], neighbor_names: Sequence[str] = (),
                          selected_count: int = 0) -> str:
    if not scope_name:
        return ''
    neighbors = ''
    if neighbor_names:
        shown = ', '.join(html.escape(name) for name in list(neighbor_names)[:3])
        extra = len(neighbor_names) - 3
        if extra > 0:
            shown += f" +{extra}"
        neighbors = f'<span style="color:#888;">with {shown}</span>'
    selection = (
        f'<span style="font-weight:600;color:#1a73e8;">{selected_count:,} selected</span>'
        if selected_count else ''
    )
    return (
        f'<div style="display:flex;gap:10px;align-items:center;font-size:11px;color:#333;margin-bottom:6px;">'
        f'<span>📍 {html.escape(scope_name)}</span>{neighbors}{selection}'
        f'</div>'
    )


def build_badges_html(badges: Sequence[MarkerBadge]) -> str:
    """Hover badges for one area: arrow, statistic label, tone-colored dot."""
    items = []
    for badge in badges:
        arrow = '▲' if badge.direction == 'up' else '▼'
        color = TONE_COLORS_HEX.get(badge.tone, TONE_COLORS_HEX[TONE_NEUTRAL])
        scope = f' <span style="color:#888;">({html.escape(badge.scope_label)})</span>' if badge.scope_label else ''
        items.append(
            f'<span style="display:flex;align-items:center;gap:4px;">'
            f'<span style="width:10px;height:10px;border-radius:50%;background:{color};border:1px solid #999;"></span>'
            f'{arrow} {html.escape(badge.label)}{scope}</span>'
        )
    if not items:
        return ''
    return (
        '<div style="display:flex;gap:14px;font-size:12px;margin-bottom:6px;flex-wrap:wrap;">'
        + ''.join(items)
        + '</div>'
    )


def render_legend(legend: LegendModel) -> None:
    """Render the choropleth legend above the map."""
    content = build_legend_html(legend)
    if content:
        st.markdown(content, unsafe_allow_html=True)


def render_scope_chip(scope_name: Optional[str], neighbor_names: Sequence[str] = (),
                      selected_count: int = 0) -> None:
    content = build_scope_chip_html(scope_name, neighbor_names, selected_count)
    if content:
        st.markdown(content, unsafe_allow_html=True)


def render_badges(badges: Sequence[MarkerBadge]) -> None:
    content = build_badges_html(badges)
    if content:
        st.markdown(content, unsafe_allow_html=True)


def render_tone_key() -> None:
    """Compact key for the extrema marker colors."""
    st.markdown(f"""
    <div style="display:flex; gap:16px; font-size:11px; color:#555; margin-bottom:4px;">
        <span style="display:flex; align-items:center; gap:4px;">
            <span style="width:9px; height:9px; border-radius:50%; background:{TONE_COLORS_HEX[TONE_GOOD]};"></span>
            Better
        </span>
        <span style="display:flex; align-items:center; gap:4px;">
            <span style="width:9px; height:9px; border-radius:50%; background:{TONE_COLORS_HEX[TONE_BAD]};"></span>
            Worse
        </span>
        <span style="display:flex; align-items:center; gap:4px;">
            <span style="width:9px; height:9px; border-radius:50%; background:{TONE_COLORS_HEX[TONE_NEUTRAL]};"></span>
            High / low
        </span>
    </div>
    """, unsafe_allow_html=True)
