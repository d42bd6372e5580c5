"""
Area selection: pinned vs transient ids per area kind.

Pinned ids are owned by the host (durable, persisted elsewhere). Transient
ids come from in-map click/drag gestures and are cleared on mode switches,
Escape, or explicit clear calls. The effective selection is the union of
the two; an id never sits in both sets at once.

The compute_* functions are pure. SelectionStore wraps them with the side
effects callers need: highlight refresh, optional camera fly-to, and host
notification (suppressed when the host itself caused the change).
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from .areas import AreaKind, BoundsArray, union_bounds
from .interfaces import safe_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionState:
    pinned: FrozenSet[str] = field(default_factory=frozenset)
    transient: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def selected(self) -> FrozenSet[str]:
        return self.pinned | self.transient


def compute_toggle(
    area_id: str,
    additive: bool,
    pinned: Iterable[str],
    transient: Iterable[str],
) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """
    Next (pinned, transient) pair for a click on ``area_id``.

    Additive clicks (shift/ctrl) flip membership: a selected id is removed
    from whichever set holds it, anything else joins the transient set.

    Plain clicks narrow focus:
    - the sole selected id is deselected,
    - a pinned id keeps every pinned id and drops all transient ids,
    - any other id becomes the only transient id.
    """
    pinned = frozenset(pinned)
    transient = frozenset(transient)
    is_pinned = area_id in pinned
    is_transient = area_id in transient

    if additive:
        if is_pinned or is_transient:
            return pinned - {area_id}, transient - {area_id}
        return pinned, transient | {area_id}

    selected = pinned | transient
    if selected == {area_id}:
        return frozenset(), frozenset()
    if is_pinned:
        return pinned, frozenset()
    return pinned, frozenset({area_id})


def compute_add_transient(area_ids: Iterable[str], transient: Iterable[str]) -> FrozenSet[str]:
    return frozenset(transient) | frozenset(area_ids)


def compute_clear_transient() -> FrozenSet[str]:
    return frozenset()


# (kind, union, pinned, transient)
SelectionNotifier = Callable[[AreaKind, List[str], List[str], List[str]], None]


class SelectionStore:
    """
    Selection state for one area kind plus its apply side effects.

    Args:
        kind: Area kind this store holds
        on_highlight: Re-render highlight layers (called on every apply)
        on_hover_refresh: Re-derive hover paint (selected areas style hover differently)
        on_notify: Host notification (union, pinned, transient)
        on_after_apply: Hook receiving the new union (scope re-derivation)
        get_bounds: Bounds lookup for camera fly-to
        fit_bounds: Camera fly-to
    """

    def __init__(
        self,
        kind: AreaKind,
        on_highlight: Optional[Callable[[], None]] = None,
        on_hover_refresh: Optional[Callable[[], None]] = None,
        on_notify: Optional[SelectionNotifier] = None,
        on_after_apply: Optional[Callable[[List[str]], None]] = None,
        get_bounds: Optional[Callable[[str], Optional[BoundsArray]]] = None,
        fit_bounds: Optional[Callable[[BoundsArray], None]] = None,
    ):
        self.kind = kind
        self._state = SelectionState()
        self._on_highlight = on_highlight
        self._on_hover_refresh = on_hover_refresh
        self._on_notify = on_notify
        self._on_after_apply = on_after_apply
        self._get_bounds = get_bounds
        self._fit_bounds = fit_bounds

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def pinned(self) -> FrozenSet[str]:
        return self._state.pinned

    @property
    def transient(self) -> FrozenSet[str]:
        return self._state.transient

    def get_union(self) -> List[str]:
        return sorted(self._state.selected)

    def is_selected(self, area_id: str) -> bool:
        return area_id in self._state.selected

    def _set(self, pinned: Iterable[str], transient: Iterable[str]) -> None:
        pinned = frozenset(pinned)
        # Pinned wins when an id would land in both sets
        self._state = SelectionState(pinned=pinned, transient=frozenset(transient) - pinned)

    def selection_bounds(self, area_ids: Iterable[str]) -> Optional[BoundsArray]:
        if self._get_bounds is None:
            return None
        return union_bounds(safe_call(self._get_bounds, area_id, description="get_bounds")
                            for area_id in area_ids)

    def apply(self, should_zoom: bool = False, notify: bool = False) -> None:
        """Push the current state out: highlights first, then camera, then host."""
        safe_call(self._on_highlight, description=f"{self.kind.value} highlight")
        safe_call(self._on_hover_refresh, description=f"{self.kind.value} hover refresh")
        union = self.get_union()
        safe_call(self._on_after_apply, union, description=f"{self.kind.value} after-apply")
        if should_zoom and union:
            bounds = self.selection_bounds(union)
            if bounds is not None:
                safe_call(self._fit_bounds, bounds, description="fit_bounds")
        if notify:
            self._emit(union)

    def _emit(self, union: List[str]) -> None:
        safe_call(
            self._on_notify,
            self.kind,
            union,
            sorted(self._state.pinned),
            sorted(self._state.transient),
            description=f"{self.kind.value} selection notify",
        )

    def refresh(self) -> None:
        self.apply()

    def set_pinned_ids(self, area_ids: Iterable[str], should_zoom: bool = False, notify: bool = False) -> bool:
        """Replace the pinned set. No-op (returns False) when nothing changed."""
        next_pinned = frozenset(area_ids)
        if next_pinned == self._state.pinned:
            return False
        self._set(next_pinned, self._state.transient)
        self.apply(should_zoom=should_zoom, notify=notify)
        return True

    def clear_transient(self, notify: bool = False) -> bool:
        if not self._state.transient:
            if notify:
                self._emit(self.get_union())
            return False
        self._set(self._state.pinned, compute_clear_transient())
        self.apply(should_zoom=False, notify=notify)
        return True

    def add_transient(self, area_ids: Iterable[str], notify: bool = True) -> bool:
        area_ids = [area_id for area_id in area_ids if area_id]
        if not area_ids:
            return False
        next_transient = compute_add_transient(area_ids, self._state.transient)
        self._set(self._state.pinned, next_transient)
        self.apply(should_zoom=False, notify=notify)
        return True

    def toggle(self, area_id: str, additive: bool, should_zoom: bool = False) -> SelectionState:
        was_selected = self.is_selected(area_id)
        pinned, transient = compute_toggle(area_id, additive, self._state.pinned, self._state.transient)
        self._set(pinned, transient)
        logger.debug(f"{self.kind.value} toggle {area_id} additive={additive} -> "
                     f"pinned={len(pinned)} transient={len(transient)}")
        self.apply(should_zoom=bool(should_zoom and not was_selected), notify=True)
        return self._state
