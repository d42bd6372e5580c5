"""
Typed host <-> core messages.

Inbound commands are what a host may ask of the map; outbound
notifications are what the map reports back. Both unions are closed and
versioned: a host built against a different COMMAND_VERSION should not
assume the same shapes.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple, Type, Union

from .areas import AreaKind, BoundaryMode, parse_area_kind
from .errors import UnknownCommandError

COMMAND_VERSION = 1


# =============================================================================
# INBOUND (host -> core)
# =============================================================================
@dataclass(frozen=True)
class SetPinnedIds:
    kind: AreaKind
    ids: Tuple[str, ...]
    should_zoom: bool = False


@dataclass(frozen=True)
class SetHoveredId:
    kind: AreaKind
    id: Optional[str]


@dataclass(frozen=True)
class ClearTransientSelection:
    kind: Optional[AreaKind] = None   # None clears both kinds


@dataclass(frozen=True)
class AddTransientIds:
    kind: AreaKind
    ids: Tuple[str, ...]


@dataclass(frozen=True)
class SetBoundaryMode:
    mode: BoundaryMode


@dataclass(frozen=True)
class SetSelectedStat:
    stat_id: Optional[str]


@dataclass(frozen=True)
class SetLegendRangeMode:
    mode: str


Command = Union[
    SetPinnedIds,
    SetHoveredId,
    ClearTransientSelection,
    AddTransientIds,
    SetBoundaryMode,
    SetSelectedStat,
    SetLegendRangeMode,
]

COMMAND_TYPES: Dict[str, Type] = {
    'setPinnedIds': SetPinnedIds,
    'setHoveredId': SetHoveredId,
    'clearTransientSelection': ClearTransientSelection,
    'addTransientIds': AddTransientIds,
    'setBoundaryMode': SetBoundaryMode,
    'setSelectedStat': SetSelectedStat,
    'setLegendRangeMode': SetLegendRangeMode,
}


# =============================================================================
# OUTBOUND (core -> host)
# =============================================================================
@dataclass(frozen=True)
class AreaSelectionChanged:
    kind: AreaKind
    selected_ids: Tuple[str, ...]
    pinned_ids: Tuple[str, ...]
    transient_ids: Tuple[str, ...]
    version: int = field(default=COMMAND_VERSION, compare=False)


@dataclass(frozen=True)
class AreaHoverChanged:
    kind: AreaKind
    id: Optional[str]
    version: int = field(default=COMMAND_VERSION, compare=False)


@dataclass(frozen=True)
class StatSelectionChanged:
    stat_id: Optional[str]
    version: int = field(default=COMMAND_VERSION, compare=False)


@dataclass(frozen=True)
class BoundaryModeChanged:
    mode: BoundaryMode
    version: int = field(default=COMMAND_VERSION, compare=False)


@dataclass(frozen=True)
class ScopeChanged:
    scope_name: Optional[str]
    neighbor_names: Tuple[str, ...]
    version: int = field(default=COMMAND_VERSION, compare=False)


Notification = Union[
    AreaSelectionChanged,
    AreaHoverChanged,
    StatSelectionChanged,
    BoundaryModeChanged,
    ScopeChanged,
]


def notification_to_dict(notification: Notification) -> Dict[str, Any]:
    """Plain dict (enums as values) for hosts that serialize notifications."""
    payload = asdict(notification)
    for key, value in payload.items():
        if isinstance(value, (AreaKind, BoundaryMode)):
            payload[key] = value.value
        elif isinstance(value, tuple):
            payload[key] = list(value)
    payload['type'] = type(notification).__name__
    return payload


# =============================================================================
# PARSING
# =============================================================================
def _require_kind(payload: Dict[str, Any], name: str) -> AreaKind:
    kind = parse_area_kind(payload.get('kind'))
    if kind is None:
        raise UnknownCommandError(f"{name}: unknown area kind {payload.get('kind')!r}")
    return kind


def _id_tuple(values, name: str) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        values = [values]
    elif not isinstance(values, (list, tuple, set, frozenset)):
        raise UnknownCommandError(f"{name}: ids must be a list, got {type(values).__name__}")
    return tuple(str(value) for value in values if value not in (None, ''))


def _optional_id(value) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def parse_command(payload: Dict[str, Any]) -> Command:
    """
    Build a typed command from a ``{'type': ..., ...}`` mapping.

    Raises:
        UnknownCommandError: If the type or its arguments are not recognised
    """
    if not isinstance(payload, dict):
        raise UnknownCommandError(f"Command must be a mapping, got {type(payload).__name__}")
    name = payload.get('type')
    if name not in COMMAND_TYPES:
        raise UnknownCommandError(f"Unknown command type: {name!r}")

    version = payload.get('version', COMMAND_VERSION)
    if version != COMMAND_VERSION:
        raise UnknownCommandError(f"{name}: unsupported command version {version!r}")

    if name == 'setPinnedIds':
        return SetPinnedIds(_require_kind(payload, name), _id_tuple(payload.get('ids'), name),
                            bool(payload.get('shouldZoom', False)))
    if name == 'setHoveredId':
        return SetHoveredId(_require_kind(payload, name), _optional_id(payload.get('id')))
    if name == 'clearTransientSelection':
        raw_kind = payload.get('kind')
        return ClearTransientSelection(None if raw_kind is None else _require_kind(payload, name))
    if name == 'addTransientIds':
        return AddTransientIds(_require_kind(payload, name), _id_tuple(payload.get('ids'), name))
    if name == 'setBoundaryMode':
        try:
            return SetBoundaryMode(BoundaryMode(payload.get('mode')))
        except ValueError:
            raise UnknownCommandError(f"{name}: unknown boundary mode {payload.get('mode')!r}")
    if name == 'setSelectedStat':
        return SetSelectedStat(_optional_id(payload.get('statId')))
    mode = str(payload.get('mode', '')).strip().lower()
    if mode not in ('dynamic', 'scoped', 'global'):
        raise UnknownCommandError(f"{name}: unknown legend range mode {payload.get('mode')!r}")
    return SetLegendRangeMode(mode)
