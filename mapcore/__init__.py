"""
Headless interaction core for the thematic area map.

Modules:
- selection: Pinned/transient area selection and toggle rules
- hover: Multi-source hover arbitration with dwell, preview and echo suppression
- stat_aggregator: Scoped statistics merging and legend ranges
- extrema: High/low marker and badge planning
- orchestrator: MapInteractionCore, the single writer of interaction state
- data_loader / geometry: pandas statistics and GeoJSON boundary loading
"""

from .areas import (
    AreaKind,
    AreaRecord,
    BoundaryMode,
    ChunkSummary,
    AREA_KINDS,
    parse_area_kind,
)

from .selection import (
    SelectionState,
    SelectionStore,
    compute_toggle,
    compute_add_transient,
    compute_clear_transient,
)

from .hover import (
    HoverArbiter,
    HoverSource,
    HoverState,
    HoverWeight,
    PendingEchoLedger,
)

from .scheduler import (
    AsyncioScheduler,
    FrameCoalescer,
    GenerationToken,
    ManualScheduler,
)

from .stat_aggregator import (
    LegendRangeMode,
    ScopedStatAggregator,
    StatEntry,
    build_scoped_stat_table,
    merge_stat_entries,
)

from .extrema import (
    ExtremaMarker,
    MarkerBadge,
    PointOfInterestRow,
    find_extreme_area_ids,
    plan_markers,
)

from .orchestrator import MapInteractionCore
from .settings import InteractionSettings

__all__ = [
    # Areas
    'AreaKind',
    'AreaRecord',
    'BoundaryMode',
    'ChunkSummary',
    'AREA_KINDS',
    'parse_area_kind',
    # Selection
    'SelectionState',
    'SelectionStore',
    'compute_toggle',
    'compute_add_transient',
    'compute_clear_transient',
    # Hover
    'HoverArbiter',
    'HoverSource',
    'HoverState',
    'HoverWeight',
    'PendingEchoLedger',
    # Scheduling
    'AsyncioScheduler',
    'FrameCoalescer',
    'GenerationToken',
    'ManualScheduler',
    # Statistics
    'LegendRangeMode',
    'ScopedStatAggregator',
    'StatEntry',
    'build_scoped_stat_table',
    'merge_stat_entries',
    # Extrema
    'ExtremaMarker',
    'MarkerBadge',
    'PointOfInterestRow',
    'find_extreme_area_ids',
    'plan_markers',
    # Core
    'MapInteractionCore',
    'InteractionSettings',
]
