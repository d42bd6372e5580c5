"""
Active parent-scope resolution.

The active scope is the aggregate region that the user is "looking at":

1. the region holding a plurality (>= SELECTION_DOMINANCE_RATIO) of the
   selected primary areas,
2. else the region whose loaded chunk covers >= VIEWPORT_DOMINANCE_RATIO
   of the viewport,
3. else the last known scope.

Neighbor regions of the active scope always ride along.
"""
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from .areas import BoundsArray, ChunkSummary, bounds_area, intersection_area

logger = logging.getLogger(__name__)

SCOPE_SOURCE_SELECTION = "selection"
SCOPE_SOURCE_VIEWPORT = "viewport"
SCOPE_SOURCE_LAST_KNOWN = "last_known"


@dataclass(frozen=True)
class ScopeResolution:
    scope_id: Optional[str]
    scope_name: Optional[str]
    source: str
    neighbor_ids: Tuple[str, ...] = ()
    neighbor_names: Tuple[str, ...] = ()

    @property
    def names(self) -> List[str]:
        names = [self.scope_name] if self.scope_name else []
        names.extend(name for name in self.neighbor_names if name and name not in names)
        return names


def resolve_selection_scope(
    selected_ids: Iterable[str],
    parent_of: Callable[[str], Optional[str]],
    min_ratio: float,
) -> Optional[str]:
    """
    Parent scope id holding at least ``min_ratio`` of the selected ids.

    Only ids with a known parent count towards the total. Ties on count go
    to the lowest scope id.
    """
    counts: Counter = Counter()
    for area_id in selected_ids:
        parent = parent_of(area_id)
        if parent:
            counts[parent] += 1
    total = sum(counts.values())
    if total == 0:
        return None
    top_id, top_count = min(counts.items(), key=lambda item: (-item[1], item[0]))
    if top_count / total >= min_ratio:
        return top_id
    return None


def resolve_viewport_scope(
    viewport: Optional[BoundsArray],
    chunks: Iterable[ChunkSummary],
    min_ratio: float,
) -> Optional[str]:
    """Parent scope id whose chunk covers at least ``min_ratio`` of the viewport."""
    if not viewport:
        return None
    viewport_area = bounds_area(viewport)
    if viewport_area <= 0:
        return None

    leading_id = None
    leading_ratio = 0.0
    for chunk in chunks:
        if not chunk.parent_id:
            continue
        overlap = intersection_area(chunk.bbox, viewport)
        if overlap <= 0:
            continue
        ratio = overlap / viewport_area
        if leading_id is None or ratio > leading_ratio:
            leading_id = chunk.parent_id
            leading_ratio = ratio

    if leading_id is not None and leading_ratio >= min_ratio:
        return leading_id
    return None


@dataclass
class ScopeTracker:
    """
    Remembers the last resolved scope so resolution can fall back to it.

    Args:
        selection_ratio: Plurality share needed from the selection
        viewport_ratio: Viewport share one region must cover
        scope_name: Scope id -> display name lookup
        neighbor_ids: Scope id -> adjacent scope ids
    """

    selection_ratio: float
    viewport_ratio: float
    scope_name: Callable[[str], Optional[str]] = lambda scope_id: scope_id
    neighbor_ids: Callable[[str], List[str]] = lambda scope_id: []
    last_scope_id: Optional[str] = None
    last_scope_name: Optional[str] = None

    def resolve(
        self,
        selected_ids: Iterable[str],
        parent_of: Callable[[str], Optional[str]],
        viewport: Optional[BoundsArray],
        chunks: Iterable[ChunkSummary],
    ) -> ScopeResolution:
        scope_id = resolve_selection_scope(selected_ids, parent_of, self.selection_ratio)
        source = SCOPE_SOURCE_SELECTION
        if scope_id is None:
            scope_id = resolve_viewport_scope(viewport, chunks, self.viewport_ratio)
            source = SCOPE_SOURCE_VIEWPORT
        if scope_id is None:
            scope_id = self.last_scope_id
            source = SCOPE_SOURCE_LAST_KNOWN

        if scope_id is None:
            resolution = ScopeResolution(None, self.last_scope_name, source)
        else:
            name = self.scope_name(scope_id) or self.last_scope_name
            neighbors = tuple(sorted(self.neighbor_ids(scope_id) or ()))
            neighbor_names = tuple(
                label for label in (self.scope_name(neighbor) for neighbor in neighbors) if label
            )
            resolution = ScopeResolution(scope_id, name, source, neighbors, neighbor_names)
            self.last_scope_id = scope_id
            self.last_scope_name = name

        logger.debug(f"Scope resolved from {resolution.source}: {resolution.scope_name} "
                     f"(+{len(resolution.neighbor_names)} neighbors)")
        return resolution
