"""
Hover arbitration for one area kind.

Three sources compete for the hovered id:

    External (host command)  >  LabelBadge (marker badge)  >  MapPointer

The authoritative hovered id is the first non-null of external, label
badge and the committed map hover. Map pointer hover is debounced: the
pointer has to dwell inside one polygon before its id commits, while a
lightweight preview follows the pointer instantly so boundaries light up
during traversal. When the preview moves on, the previous id lingers as a
"trailing" id for a short fade.

Map commits are forwarded to the host, which usually mirrors them back
through ``set_external``. The PendingEchoLedger recognises those echoes so
the map's own hover never latches as an external command.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from .areas import AreaKind
from .interfaces import safe_call
from .scheduler import TaskScheduler
from .settings import InteractionSettings

logger = logging.getLogger(__name__)

_UNSET = object()


class HoverSource(str, Enum):
    EXTERNAL = "external"
    LABEL_BADGE = "label_badge"
    MAP_POINTER = "map_pointer"


class HoverWeight(str, Enum):
    """Paint weight of the visually hovered boundary."""

    NONE = "none"
    PREVIEW = "preview"
    FULL = "full"


@dataclass
class HoverState:
    external: Optional[str] = None
    label_badge: Optional[str] = None
    label_badge_key: Optional[str] = None
    map_committed: Optional[str] = None
    map_preview: Optional[str] = None
    map_preview_trailing: Optional[str] = None

    @property
    def authoritative(self) -> Optional[str]:
        return self.external or self.label_badge or self.map_committed

    @property
    def authoritative_source(self) -> Optional[HoverSource]:
        if self.external:
            return HoverSource.EXTERNAL
        if self.label_badge:
            return HoverSource.LABEL_BADGE
        if self.map_committed:
            return HoverSource.MAP_POINTER
        return None

    @property
    def visual(self) -> Optional[str]:
        return self.authoritative or self.map_preview

    @property
    def weight(self) -> HoverWeight:
        if self.authoritative:
            return HoverWeight.FULL
        if self.map_preview:
            return HoverWeight.PREVIEW
        return HoverWeight.NONE


@dataclass
class PendingEcho:
    count: int
    last_queued_at: float


class PendingEchoLedger:
    """
    Map-originated hover commits already forwarded to the host.

    Keyed by area id with a count, so several commits of the same id that
    arrive back out of order are each matched once. Entries older than the
    window are dropped and the command is treated as real.
    """

    def __init__(self, window_ms: float):
        self.window_ms = window_ms
        self._entries: Dict[str, PendingEcho] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, area_id: str) -> bool:
        return area_id in self._entries

    def get(self, area_id: str) -> Optional[PendingEcho]:
        return self._entries.get(area_id)

    def queue(self, area_id: str, now_ms: float) -> None:
        current = self._entries.get(area_id)
        if current is None:
            self._entries[area_id] = PendingEcho(count=1, last_queued_at=now_ms)
        else:
            self._entries[area_id] = PendingEcho(count=current.count + 1, last_queued_at=now_ms)

    def consume(self, area_id: Optional[str], now_ms: float) -> bool:
        """True if ``area_id`` is an echo of a pending map commit (and consume it)."""
        if not area_id:
            return False
        current = self._entries.get(area_id)
        if current is None:
            return False
        if now_ms - current.last_queued_at > self.window_ms:
            del self._entries[area_id]
            return False
        if current.count <= 1:
            del self._entries[area_id]
        else:
            self._entries[area_id] = PendingEcho(count=current.count - 1, last_queued_at=current.last_queued_at)
        return True

    def clear(self) -> None:
        self._entries.clear()


class HoverArbiter:
    """
    Hover state machine for one area kind.

    Args:
        kind: Area kind this arbiter owns
        scheduler: Timer source for dwell, trail and leave-grace timers
        settings: Timer lengths and echo window
        on_change: Repaint callback, called after every visible state change
        on_forward: Host notification with the new hovered id (or None)
    """

    def __init__(
        self,
        kind: AreaKind,
        scheduler: TaskScheduler,
        settings: Optional[InteractionSettings] = None,
        on_change: Optional[Callable[[], None]] = None,
        on_forward: Optional[Callable[[AreaKind, Optional[str]], None]] = None,
    ):
        self.kind = kind
        self.settings = settings or InteractionSettings()
        self.state = HoverState()
        self.ledger = PendingEchoLedger(self.settings.map_hover_echo_window_ms)
        self._scheduler = scheduler
        self._on_change = on_change
        self._on_forward = on_forward
        self._dwell_candidate: Optional[str] = None
        self._in_motion = False
        self._pending_forward = _UNSET
        self._last_forwarded: Optional[str] = None
        prefix = f"hover:{kind.value}"
        self._dwell_task = f"{prefix}:dwell"
        self._trail_task = f"{prefix}:trail"
        self._leave_task = f"{prefix}:leave"

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------
    @property
    def authoritative(self) -> Optional[str]:
        return self.state.authoritative

    @property
    def visual(self) -> Optional[str]:
        return self.state.visual

    @property
    def weight(self) -> HoverWeight:
        return self.state.weight

    @property
    def in_motion(self) -> bool:
        return self._in_motion

    @property
    def dwell_pending(self) -> bool:
        return self._scheduler.is_pending(self._dwell_task)

    @property
    def leave_pending(self) -> bool:
        return self._scheduler.is_pending(self._leave_task)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    def _changed(self) -> None:
        safe_call(self._on_change, description=f"{self.kind.value} hover repaint")

    def _forward(self, area_id: Optional[str]) -> None:
        if self._in_motion:
            self._pending_forward = area_id
            return
        self._last_forwarded = area_id
        safe_call(self._on_forward, self.kind, area_id, description=f"{self.kind.value} hover forward")

    def _host_view(self) -> Optional[str]:
        """The id the host will hold once any deferred forward is flushed."""
        if self._pending_forward is _UNSET:
            return self._last_forwarded
        return self._pending_forward

    # ------------------------------------------------------------------
    # External command
    # ------------------------------------------------------------------
    def set_external(self, area_id: Optional[str]) -> bool:
        """
        Host-issued hover. Returns False when the command was recognised as
        an echo of a map commit and ignored.
        """
        if self.ledger.consume(area_id, self._scheduler.now_ms()):
            logger.debug(f"{self.kind.value} hover echo consumed: {area_id}")
            return False
        self.state.external = area_id
        if area_id:
            self._cancel_dwell()
            self._clear_preview()
        self._changed()
        final = self.state.authoritative
        if final != self._host_view():
            if final and self.state.authoritative_source is HoverSource.MAP_POINTER:
                # Re-exposed map hover goes back out; expect the host to mirror it
                self.ledger.queue(final, self._scheduler.now_ms())
            self._forward(final)
        return True

    # ------------------------------------------------------------------
    # Label badge hover
    # ------------------------------------------------------------------
    def set_label_badge(self, area_id: Optional[str], badge_key: Optional[str] = None) -> bool:
        """Badge hover. Returns True when the hovered area or badge changed."""
        self._scheduler.cancel(self._leave_task)
        previous = (self.state.label_badge, self.state.label_badge_key)
        self.state.label_badge = area_id
        self.state.label_badge_key = badge_key if area_id else None
        if previous[0] != self.state.label_badge:
            self._changed()
        return previous != (self.state.label_badge, self.state.label_badge_key)

    # ------------------------------------------------------------------
    # Map pointer hover
    # ------------------------------------------------------------------
    def pointer_enter(self) -> None:
        self._scheduler.cancel(self._leave_task)

    def pointer_move(self, area_id: Optional[str]) -> None:
        """Pointer moved over the boundary layer, currently above ``area_id``."""
        if not area_id:
            return
        self._scheduler.cancel(self._leave_task)

        # Pointer is back on the map, so it cannot still be over a badge
        cleared_badge = False
        if self.state.label_badge:
            self.state.label_badge = None
            self.state.label_badge_key = None
            cleared_badge = True

        committed = self.state.map_committed
        if committed and area_id != committed and not self.state.external:
            # Left the committed area: drop detail hover now, keep previewing
            self.state.map_committed = None
            self._forward(None)

        if area_id != self.state.map_committed and self._set_preview(area_id):
            self._changed()
        elif cleared_badge:
            self._changed()

        if area_id == self.state.map_committed:
            self._cancel_dwell()
            return

        self._dwell_candidate = area_id
        self._scheduler.schedule(self._dwell_task, self.settings.hover_dwell_ms,
                                 lambda: self._on_dwell_expired(area_id))

    def pointer_leave(self) -> None:
        """Pointer left the boundary polygon; clear after a short grace period."""
        self._scheduler.schedule(self._leave_task, self.settings.boundary_leave_grace_ms,
                                 self._on_leave_expired)

    def _on_dwell_expired(self, area_id: str) -> None:
        if self._dwell_candidate != area_id:
            return
        self._dwell_candidate = None
        self.commit(area_id)

    def _on_leave_expired(self) -> None:
        if self.state.label_badge:
            return
        self.clear_map_hover()

    def commit(self, area_id: str) -> None:
        """Promote ``area_id`` to the committed map hover and tell the host."""
        self._scheduler.cancel(self._leave_task)
        self._clear_preview()
        self.state.map_committed = area_id
        self.ledger.queue(area_id, self._scheduler.now_ms())
        self._changed()
        self._forward(area_id)

    def clear_map_hover(self) -> None:
        self._cancel_dwell()
        self._clear_preview()
        self.state.map_committed = None
        self._changed()
        self._forward(None)

    def _cancel_dwell(self) -> None:
        self._scheduler.cancel(self._dwell_task)
        self._dwell_candidate = None

    # ------------------------------------------------------------------
    # Preview / trailing
    # ------------------------------------------------------------------
    def _set_preview(self, area_id: str) -> bool:
        if area_id == self.state.map_preview:
            return False
        self._scheduler.cancel(self._trail_task)
        previous = self.state.map_preview
        self.state.map_preview = area_id
        self.state.map_preview_trailing = None
        if previous and previous != area_id:
            self.state.map_preview_trailing = previous
            self._scheduler.schedule(self._trail_task, self.settings.hover_preview_trail_ms,
                                     self._on_trail_expired)
        return True

    def _on_trail_expired(self) -> None:
        self.state.map_preview_trailing = None
        self._changed()

    def _clear_preview(self) -> None:
        self._scheduler.cancel(self._trail_task)
        self.state.map_preview = None
        self.state.map_preview_trailing = None

    # ------------------------------------------------------------------
    # Camera motion
    # ------------------------------------------------------------------
    def begin_motion(self) -> None:
        self._in_motion = True

    def end_motion(self) -> None:
        """Motion ended: flush the hover forward queued during the drag."""
        if not self._in_motion:
            return
        self._in_motion = False
        pending = self._pending_forward
        self._pending_forward = _UNSET
        if pending is not _UNSET:
            self._forward(pending)

    # ------------------------------------------------------------------
    # Mode switches
    # ------------------------------------------------------------------
    def reset(self) -> bool:
        """
        Drop every hover signal and timer for this kind (boundary mode left).

        A null hover is forwarded when the host was last told about an id,
        deferred like any other forward while the camera is moving. Returns
        True if that null was sent or queued.
        """
        self._cancel_dwell()
        self._scheduler.cancel(self._leave_task)
        self._clear_preview()
        self.ledger.clear()
        self.state = HoverState()
        self._pending_forward = _UNSET
        self._changed()
        if self._last_forwarded is None:
            return False
        self._forward(None)
        return True
