"""
Tunable constants for the map interaction core.

Timer lengths are in milliseconds. The dominance ratios used for scope
resolution were tuned by eye against real county/ZIP layouts and are
product judgement calls, so they are exposed here rather than hard-coded
inside the algorithms.
"""
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Optional


# =============================================================================
# HOVER TIMING
# =============================================================================
HOVER_DWELL_MS = 120             # Pointer must rest this long before a map hover commits
HOVER_PREVIEW_TRAIL_MS = 120     # Previous preview id fades out over this window
BOUNDARY_LEAVE_GRACE_MS = 45     # Leaving a polygon waits this long before clearing hover
MAP_HOVER_ECHO_WINDOW_MS = 1500  # Host echoes older than this are treated as real commands

# Camera / refresh scheduling
VIEWPORT_SETTLED_DEBOUNCE_MS = 200
FRAME_DELAY_MS = 16

# =============================================================================
# SCOPE RESOLUTION
# =============================================================================
SELECTION_DOMINANCE_RATIO = 0.5   # Share of selected cells one region needs to become the scope
VIEWPORT_DOMINANCE_RATIO = 0.45   # Share of the viewport one region must cover

FALLBACK_PARENT_AREA = "Oklahoma"

# =============================================================================
# ZOOM THRESHOLDS
# =============================================================================
CHOROPLETH_HIDE_ZOOM = 13          # Primary fills/extrema hidden at or above this zoom
AGGREGATE_MODE_DISABLE_ZOOM = 9.6  # Aggregate extrema hidden at or above this zoom

# =============================================================================
# DISPLAY
# =============================================================================
DEFAULT_LEGEND_RANGE_MODE = "scoped"
SELECTION_FIT_PADDING_PX = 48
SELECTION_FIT_MAX_ZOOM = 12.5

# Primary features carry their id under this property, aggregate features under the other
PRIMARY_FEATURE_PROPERTY = "zip"
AGGREGATE_FEATURE_PROPERTY = "county"

# Demo host data locations
BASE_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = BASE_DIR / "data"
PRIMARY_GEOJSON_PATH = DATA_DIR / "geo" / "primary_areas.geojson"
AGGREGATE_GEOJSON_PATH = DATA_DIR / "geo" / "aggregate_areas.geojson"
STATISTICS_CSV_PATH = DATA_DIR / "stats" / "area_statistics.csv"


@dataclass(frozen=True)
class InteractionSettings:
    """Per-instance copy of the tunables above."""

    hover_dwell_ms: int = HOVER_DWELL_MS
    hover_preview_trail_ms: int = HOVER_PREVIEW_TRAIL_MS
    boundary_leave_grace_ms: int = BOUNDARY_LEAVE_GRACE_MS
    map_hover_echo_window_ms: int = MAP_HOVER_ECHO_WINDOW_MS
    viewport_settled_debounce_ms: int = VIEWPORT_SETTLED_DEBOUNCE_MS
    frame_delay_ms: int = FRAME_DELAY_MS
    selection_dominance_ratio: float = SELECTION_DOMINANCE_RATIO
    viewport_dominance_ratio: float = VIEWPORT_DOMINANCE_RATIO
    fallback_parent_area: str = FALLBACK_PARENT_AREA
    choropleth_hide_zoom: float = CHOROPLETH_HIDE_ZOOM
    aggregate_mode_disable_zoom: float = AGGREGATE_MODE_DISABLE_ZOOM
    default_legend_range_mode: str = DEFAULT_LEGEND_RANGE_MODE
    selection_fit_padding_px: int = SELECTION_FIT_PADDING_PX
    selection_fit_max_zoom: float = SELECTION_FIT_MAX_ZOOM

    @classmethod
    def from_overrides(cls, overrides: Optional[dict] = None) -> "InteractionSettings":
        """
        Build settings from a partial mapping of field name -> value.

        Raises:
            ValueError: If a key does not name a setting
        """
        if not overrides:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown interaction settings: {', '.join(unknown)}")
        return cls(**overrides)

    def to_dict(self) -> dict:
        return asdict(self)
