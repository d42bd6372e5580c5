"""
Interfaces of the external collaborators the core talks to.

- RenderingEngine: vector map engine (paint/filter, hit-testing, camera)
- GeometryLoader: boundary chunk loader (fetch/evict per viewport)
- StatisticsStore: async source of raw per-area statistic values

Engine and host calls go through ``safe_call`` so that a missing layer
during a style reload, or a host callback that throws, never corrupts
selection or hover state.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set

from .areas import AreaKind, AreaRecord, BoundsArray, ChunkSummary

logger = logging.getLogger(__name__)


def safe_call(fn: Optional[Callable], *args, description: str = "", **kwargs) -> Any:
    """Call ``fn`` and swallow any exception it raises. Returns None on failure."""
    if fn is None:
        return None
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        logger.warning(f"Ignored failure in {description or getattr(fn, '__name__', 'callback')}: {e}")
        return None


class RenderingEngine(Protocol):
    """Outbound, fire-and-forget map engine operations."""

    def has_layer(self, layer_id: str) -> bool: ...

    def set_highlight_filter(self, kind: AreaKind, layer: str, area_ids: Sequence[str]) -> None: ...

    def set_fill_paint(self, kind: AreaKind, fill_colors: Dict[str, str], opacity: float) -> None: ...

    def set_markers(self, kind: AreaKind, markers: List[Any]) -> None: ...

    def query_rendered_features(
        self, rect: Optional[BoundsArray] = None, layers: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]: ...

    def fit_bounds(self, bounds: BoundsArray, padding: int = 48, max_zoom: Optional[float] = None) -> None: ...

    def get_zoom(self) -> float: ...

    def get_bounds(self) -> Optional[BoundsArray]: ...


class GeometryLoader(Protocol):
    """Boundary chunk loader. Async methods may resolve out of order."""

    async def ensure_viewport(self, bounds: BoundsArray) -> List[ChunkSummary]: ...

    async def ensure_ids(self, kind: AreaKind, area_ids: Iterable[str]) -> List[ChunkSummary]: ...

    async def ensure_scope_chunks(self, scope_ids: Iterable[str]) -> List[ChunkSummary]: ...

    def prune(self, keep_chunk_ids: Set[str]) -> None: ...

    def chunk_id_for_area(self, kind: AreaKind, area_id: str) -> Optional[str]: ...

    def chunk_ids_for_scope(self, scope_id: str) -> List[str]: ...

    def neighbor_scope_ids(self, scope_id: str) -> List[str]: ...

    def scope_name(self, scope_id: str) -> Optional[str]: ...

    def get_area(self, kind: AreaKind, area_id: str) -> Optional[AreaRecord]: ...


class StatisticsStore(Protocol):
    """Raw statistics source: prioritise ids, scope by parent names, subscribe."""

    def prioritize(self, stat_ids: Iterable[str]) -> None: ...

    def set_scope(self, parent_names: Iterable[str]) -> None: ...

    def subscribe(self, listener: Callable[[Dict, bool], None]) -> Callable[[], None]: ...
