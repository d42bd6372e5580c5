"""
GeoJSON boundary loading.

Two FeatureCollections feed the map: primary areas (ZIP-like cells, each
tagged with its parent region) and aggregate areas (the parent regions).
Primary features are grouped into one chunk per parent region; chunks are
"loaded" on demand for the viewport, the selection and the active scope,
and pruned back when they fall out of interest. Aggregate regions are
small in number and always resident.

Neighbor regions are derived from bounding-box adjacency.
"""
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import numpy as np

from .areas import (
    AreaKind,
    AreaRecord,
    BoundsArray,
    ChunkSummary,
    bounds_center,
    bounds_touch,
    union_bounds,
)
from .errors import GeometryDataError
from .settings import AGGREGATE_FEATURE_PROPERTY, PRIMARY_FEATURE_PROPERTY

logger = logging.getLogger(__name__)

UNASSIGNED_CHUNK_ID = 'chunk:unassigned'

# Property names tried (in order) for display names and parent links
NAME_PROPERTIES = ['name', 'NAME', 'label']
PARENT_PROPERTIES = ['COUNTYFP', 'county_id']


def load_geojson(geo_path: Path) -> dict:
    """
    Load a GeoJSON FeatureCollection.

    Args:
        geo_path: Path to the GeoJSON file

    Returns:
        GeoJSON dict

    Raises:
        FileNotFoundError: If the file does not exist
        GeometryDataError: If the file is not a readable FeatureCollection
    """
    geo_path = Path(geo_path)
    if not geo_path.exists():
        raise FileNotFoundError(f"GeoJSON not found: {geo_path}")

    try:
        with open(geo_path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise GeometryDataError(f"Invalid GeoJSON in {geo_path.name}: {e}")

    if not isinstance(data, dict) or data.get('type') != 'FeatureCollection':
        raise GeometryDataError(f"{geo_path.name} is not a FeatureCollection")
    return data


def geometry_bounds(geometry: Optional[dict]) -> Optional[BoundsArray]:
    """Bounding box of a GeoJSON geometry, or None when it has no coordinates."""
    if not isinstance(geometry, dict):
        return None
    coords = geometry.get('coordinates')
    if coords is None:
        return None
    try:
        points = np.asarray(_flatten_positions(coords), dtype=float)
    except (TypeError, ValueError):
        return None
    if points.size == 0:
        return None
    points = points.reshape(-1, points.shape[-1])[:, :2]
    west, south = points.min(axis=0)
    east, north = points.max(axis=0)
    return (float(west), float(south)), (float(east), float(north))


def _flatten_positions(coords) -> List[List[float]]:
    if not coords:
        return []
    if isinstance(coords[0], (int, float)):
        return [list(coords[:2])]
    positions = []
    for part in coords:
        positions.extend(_flatten_positions(part))
    return positions


def _first_property(properties: dict, names: Iterable[str]) -> Optional[str]:
    for name in names:
        value = properties.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


class GeoJsonGeometryLoader:
    """
    Geometry loader over in-memory GeoJSON.

    Args:
        primary_geojson: FeatureCollection of primary areas
        aggregate_geojson: FeatureCollection of aggregate regions
        primary_id_property: Property holding the primary area id
        aggregate_id_property: Property holding the aggregate region id
    """

    def __init__(
        self,
        primary_geojson: dict,
        aggregate_geojson: dict,
        primary_id_property: str = PRIMARY_FEATURE_PROPERTY,
        aggregate_id_property: str = AGGREGATE_FEATURE_PROPERTY,
    ):
        self.primary_id_property = primary_id_property
        self.aggregate_id_property = aggregate_id_property
        self._areas: Dict[AreaKind, Dict[str, AreaRecord]] = {AreaKind.PRIMARY: {}, AreaKind.AGGREGATE: {}}
        self._features: Dict[AreaKind, Dict[str, dict]] = {AreaKind.PRIMARY: {}, AreaKind.AGGREGATE: {}}
        self._chunk_members: Dict[str, List[str]] = {}
        self._chunks: Dict[str, ChunkSummary] = {}
        self._neighbors: Dict[str, List[str]] = {}
        self.loaded_chunk_ids: Set[str] = set()

        self._index_aggregates(aggregate_geojson)
        self._index_primaries(primary_geojson)
        self._build_neighbors()
        logger.info(f"Indexed {len(self._areas[AreaKind.PRIMARY])} primary areas in "
                    f"{len(self._chunks)} chunks, {len(self._areas[AreaKind.AGGREGATE])} aggregate areas")

    @classmethod
    def from_files(cls, primary_path: Path, aggregate_path: Path, **kwargs) -> 'GeoJsonGeometryLoader':
        return cls(load_geojson(primary_path), load_geojson(aggregate_path), **kwargs)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------
    def _index_aggregates(self, geojson: dict) -> None:
        for feature in geojson.get('features', []):
            properties = feature.get('properties') or {}
            area_id = _first_property(properties, [self.aggregate_id_property, 'id'])
            if not area_id:
                continue
            bounds = geometry_bounds(feature.get('geometry'))
            self._areas[AreaKind.AGGREGATE][area_id] = AreaRecord(
                id=area_id,
                kind=AreaKind.AGGREGATE,
                name=_first_property(properties, NAME_PROPERTIES) or area_id,
                centroid=bounds_center(bounds) if bounds else None,
                bounds=bounds,
            )
            self._features[AreaKind.AGGREGATE][area_id] = feature

    def _index_primaries(self, geojson: dict) -> None:
        skipped = 0
        for feature in geojson.get('features', []):
            properties = feature.get('properties') or {}
            area_id = _first_property(properties, [self.primary_id_property, 'id'])
            if not area_id:
                skipped += 1
                continue
            parent_id = _first_property(properties, ['parent_id', self.aggregate_id_property, *PARENT_PROPERTIES])
            parent = self._areas[AreaKind.AGGREGATE].get(parent_id) if parent_id else None
            bounds = geometry_bounds(feature.get('geometry'))
            self._areas[AreaKind.PRIMARY][area_id] = AreaRecord(
                id=area_id,
                kind=AreaKind.PRIMARY,
                name=_first_property(properties, NAME_PROPERTIES) or area_id,
                parent_id=parent_id,
                parent_name=parent.name if parent else None,
                centroid=bounds_center(bounds) if bounds else None,
                bounds=bounds,
            )
            self._features[AreaKind.PRIMARY][area_id] = feature
            chunk_id = f"chunk:{parent_id}" if parent_id else UNASSIGNED_CHUNK_ID
            self._chunk_members.setdefault(chunk_id, []).append(area_id)

        if skipped:
            logger.warning(f"Skipped {skipped} primary features without an id")

        for chunk_id, members in self._chunk_members.items():
            records = [self._areas[AreaKind.PRIMARY][member] for member in members]
            bbox = union_bounds(record.bounds for record in records)
            if bbox is None:
                continue
            parent_id = records[0].parent_id if chunk_id != UNASSIGNED_CHUNK_ID else None
            self._chunks[chunk_id] = ChunkSummary(
                id=chunk_id,
                bbox=bbox,
                parent_id=parent_id,
                parent_name=self.scope_name(parent_id) if parent_id else None,
            )

    def _build_neighbors(self) -> None:
        # Region bounds come from the aggregate layer, falling back to chunk boxes
        region_bounds: Dict[str, BoundsArray] = {}
        for chunk in self._chunks.values():
            if chunk.parent_id:
                region_bounds[chunk.parent_id] = chunk.bbox
        for area_id, record in self._areas[AreaKind.AGGREGATE].items():
            if record.bounds:
                region_bounds[area_id] = record.bounds

        ids = sorted(region_bounds)
        self._neighbors = {scope_id: [] for scope_id in ids}
        for i, a in enumerate(ids):
            for b in ids[i + 1:]:
                if bounds_touch(region_bounds[a], region_bounds[b]):
                    self._neighbors[a].append(b)
                    self._neighbors[b].append(a)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_area(self, kind: AreaKind, area_id: str) -> Optional[AreaRecord]:
        return self._areas[kind].get(area_id)

    def area_ids(self, kind: AreaKind) -> List[str]:
        return sorted(self._areas[kind])

    def get_bounds(self, kind: AreaKind, area_id: str) -> Optional[BoundsArray]:
        record = self.get_area(kind, area_id)
        return record.bounds if record else None

    def chunk_id_for_area(self, kind: AreaKind, area_id: str) -> Optional[str]:
        if kind is AreaKind.AGGREGATE:
            chunk_id = f"chunk:{area_id}"
            return chunk_id if chunk_id in self._chunks else None
        record = self.get_area(AreaKind.PRIMARY, area_id)
        if record is None:
            return None
        return f"chunk:{record.parent_id}" if record.parent_id else UNASSIGNED_CHUNK_ID

    def chunk_ids_for_scope(self, scope_id: str) -> List[str]:
        chunk_id = f"chunk:{scope_id}"
        return [chunk_id] if chunk_id in self._chunks else []

    def neighbor_scope_ids(self, scope_id: str) -> List[str]:
        return list(self._neighbors.get(scope_id, []))

    def scope_name(self, scope_id: Optional[str]) -> Optional[str]:
        if not scope_id:
            return None
        record = self._areas[AreaKind.AGGREGATE].get(scope_id)
        return record.name if record else scope_id

    def chunk_summaries(self, chunk_ids: Optional[Iterable[str]] = None) -> List[ChunkSummary]:
        ids = self._chunks.keys() if chunk_ids is None else chunk_ids
        return [self._chunks[chunk_id] for chunk_id in sorted(ids) if chunk_id in self._chunks]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def _load(self, chunk_ids: Iterable[str]) -> List[ChunkSummary]:
        summaries = self.chunk_summaries(chunk_ids)
        self.loaded_chunk_ids.update(summary.id for summary in summaries)
        return summaries

    async def ensure_viewport(self, bounds: BoundsArray) -> List[ChunkSummary]:
        """Load every chunk whose box touches the viewport."""
        if not bounds:
            return []
        return self._load(chunk.id for chunk in self._chunks.values() if bounds_touch(chunk.bbox, bounds))

    async def ensure_ids(self, kind: AreaKind, area_ids: Iterable[str]) -> List[ChunkSummary]:
        chunk_ids = {self.chunk_id_for_area(kind, area_id) for area_id in area_ids}
        chunk_ids.discard(None)
        return self._load(chunk_ids)

    async def ensure_scope_chunks(self, scope_ids: Iterable[str]) -> List[ChunkSummary]:
        chunk_ids = []
        for scope_id in scope_ids:
            chunk_ids.extend(self.chunk_ids_for_scope(scope_id))
        return self._load(chunk_ids)

    def prune(self, keep_chunk_ids: Set[str]) -> None:
        before = len(self.loaded_chunk_ids)
        self.loaded_chunk_ids &= set(keep_chunk_ids)
        evicted = before - len(self.loaded_chunk_ids)
        if evicted:
            logger.debug(f"Pruned {evicted} geometry chunks, {len(self.loaded_chunk_ids)} remain")

    def feature_collection(self, kind: AreaKind) -> dict:
        """Loaded features of ``kind`` as a FeatureCollection (aggregates are always loaded)."""
        if kind is AreaKind.AGGREGATE:
            features = list(self._features[AreaKind.AGGREGATE].values())
        else:
            features = [
                self._features[AreaKind.PRIMARY][area_id]
                for chunk_id in sorted(self.loaded_chunk_ids)
                for area_id in self._chunk_members.get(chunk_id, [])
            ]
        return {'type': 'FeatureCollection', 'features': features}
