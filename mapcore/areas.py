"""
Area identifiers, boundary kinds and the small amount of bounding-box
math the core needs (selection fly-to, viewport dominance).
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

# ((west, south), (east, north))
BoundsArray = Tuple[Tuple[float, float], Tuple[float, float]]


class AreaKind(str, Enum):
    """The two selectable granularities: fine cells and coarser regions."""

    PRIMARY = "ZIP"
    AGGREGATE = "COUNTY"

    @property
    def other(self) -> "AreaKind":
        return AreaKind.AGGREGATE if self is AreaKind.PRIMARY else AreaKind.PRIMARY


AREA_KINDS = (AreaKind.PRIMARY, AreaKind.AGGREGATE)


class BoundaryMode(str, Enum):
    """Which boundary layer the map currently shows."""

    PRIMARY = "zips"
    AGGREGATE = "counties"
    NONE = "none"

    @property
    def area_kind(self) -> Optional[AreaKind]:
        if self is BoundaryMode.PRIMARY:
            return AreaKind.PRIMARY
        if self is BoundaryMode.AGGREGATE:
            return AreaKind.AGGREGATE
        return None


def parse_area_kind(value) -> Optional[AreaKind]:
    """Accept an AreaKind, its value ('ZIP'/'COUNTY') or its name."""
    if isinstance(value, AreaKind):
        return value
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper()
    for kind in AREA_KINDS:
        if normalized in (kind.value, kind.name):
            return kind
    return None


@dataclass(frozen=True)
class AreaRecord:
    """One known area: its id, human name, parent scope and geometry summary."""

    id: str
    kind: AreaKind
    name: str
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    centroid: Optional[Tuple[float, float]] = None
    bounds: Optional[BoundsArray] = None


@dataclass(frozen=True)
class ChunkSummary:
    """A loaded geometry chunk, as reported by the geometry loader."""

    id: str
    bbox: BoundsArray
    parent_id: Optional[str]
    parent_name: Optional[str]


def union_bounds(bounds_list: Iterable[Optional[BoundsArray]]) -> Optional[BoundsArray]:
    """Smallest box covering every non-empty entry, or None if there are none."""
    combined = None
    for bounds in bounds_list:
        if not bounds:
            continue
        if combined is None:
            combined = bounds
            continue
        combined = (
            (min(combined[0][0], bounds[0][0]), min(combined[0][1], bounds[0][1])),
            (max(combined[1][0], bounds[1][0]), max(combined[1][1], bounds[1][1])),
        )
    return combined


def bounds_area(bounds: BoundsArray) -> float:
    width = bounds[1][0] - bounds[0][0]
    height = bounds[1][1] - bounds[0][1]
    if width <= 0 or height <= 0:
        return 0.0
    return width * height


def intersection_area(a: BoundsArray, b: BoundsArray) -> float:
    west = max(a[0][0], b[0][0])
    south = max(a[0][1], b[0][1])
    east = min(a[1][0], b[1][0])
    north = min(a[1][1], b[1][1])
    if east <= west or north <= south:
        return 0.0
    return (east - west) * (north - south)


def bounds_touch(a: BoundsArray, b: BoundsArray, tolerance: float = 1e-9) -> bool:
    """True if two boxes overlap or share an edge (within tolerance)."""
    return not (
        a[1][0] < b[0][0] - tolerance
        or b[1][0] < a[0][0] - tolerance
        or a[1][1] < b[0][1] - tolerance
        or b[1][1] < a[0][1] - tolerance
    )


def bounds_center(bounds: BoundsArray) -> Tuple[float, float]:
    return ((bounds[0][0] + bounds[1][0]) / 2, (bounds[0][1] + bounds[1][1]) / 2)
