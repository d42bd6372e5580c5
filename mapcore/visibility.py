"""
Tracks which primary areas are currently rendered in the viewport.

Only needed for the DYNAMIC legend mode. The tracker asks the rendering
engine for rendered primary features across the whole canvas and reports
a change only when the id set actually differs.
"""
import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .interfaces import RenderingEngine, safe_call

logger = logging.getLogger(__name__)


def extract_area_ids(features: Optional[Iterable[Dict[str, Any]]], id_property: str) -> FrozenSet[str]:
    """Area ids from rendered features; features without a usable id are skipped."""
    ids = set()
    for feature in features or ():
        properties = feature.get('properties') if isinstance(feature, dict) else None
        if not isinstance(properties, dict):
            continue
        area_id = properties.get(id_property)
        if isinstance(area_id, str) and area_id:
            ids.add(area_id)
    return frozenset(ids)


class VisibilityTracker:
    """
    Args:
        id_property: Feature property carrying the primary area id
        layers: Layer ids to query (only those the engine currently has)
    """

    def __init__(self, id_property: str, layers: Iterable[str] = ()):
        self.id_property = id_property
        self.layers: List[str] = list(layers)
        self._visible: FrozenSet[str] = frozenset()

    @property
    def visible_ids(self) -> FrozenSet[str]:
        return self._visible

    def update(self, ids: Iterable[str]) -> bool:
        """Replace the visible set. Returns True only when it changed."""
        next_ids = frozenset(ids)
        if not (next_ids ^ self._visible):
            return False
        self._visible = next_ids
        logger.debug(f"Visible primary ids changed: {len(next_ids)} on screen")
        return True

    def clear(self) -> bool:
        return self.update(())

    def refresh(self, engine: Optional[RenderingEngine]) -> bool:
        """Query the engine and update. A failed query leaves the set untouched."""
        if engine is None:
            return False
        layers = [layer for layer in self.layers
                  if safe_call(engine.has_layer, layer, description="has_layer")]
        if self.layers and not layers:
            return False
        features = safe_call(engine.query_rendered_features, None, layers or None,
                             description="query_rendered_features")
        if features is None:
            return False
        return self.update(extract_area_ids(features, self.id_property))
