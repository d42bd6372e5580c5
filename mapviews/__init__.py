"""
Streamlit / pydeck views for the interaction core.
"""

from .map_view import PydeckMapEngine, calculate_view_state, picked_area
from .legend import render_badges, render_legend, render_scope_chip

__all__ = [
    'PydeckMapEngine',
    'calculate_view_state',
    'picked_area',
    'render_badges',
    'render_legend',
    'render_scope_chip',
]
