"""
Cancellable task scheduling for debounce, dwell and decay timers.

Every timer in the core is scheduled under a string id. Scheduling an id
that is already pending replaces it, so "reset the dwell timer on every
pointer move" is just another ``schedule`` call. Two schedulers ship:

- ManualScheduler: deterministic clock driven by ``advance(ms)``, used by
  tests and by hosts that run their own frame loop (Streamlit reruns).
- AsyncioScheduler: backed by ``loop.call_later`` for long-lived hosts.
"""
import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Interface: schedule-with-id, cancel-by-id, monotonic clock."""

    def now_ms(self) -> float:
        raise NotImplementedError

    def schedule(self, task_id: str, delay_ms: float, callback: Callable[[], None]) -> None:
        raise NotImplementedError

    def cancel(self, task_id: str) -> bool:
        raise NotImplementedError

    def is_pending(self, task_id: str) -> bool:
        raise NotImplementedError

    def cancel_all(self) -> None:
        raise NotImplementedError


def _run_task(task_id: str, callback: Callable[[], None]) -> None:
    # A failing timer callback must not take the scheduler down with it
    try:
        callback()
    except Exception:
        logger.exception(f"Scheduled task '{task_id}' failed")


class ManualScheduler(TaskScheduler):
    """Scheduler whose clock only moves when ``advance`` is called."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._counter = itertools.count()
        self._heap: List[Tuple[float, int, str]] = []
        self._tasks: Dict[str, Tuple[int, Callable[[], None]]] = {}

    def now_ms(self) -> float:
        return self._now

    def schedule(self, task_id: str, delay_ms: float, callback: Callable[[], None]) -> None:
        seq = next(self._counter)
        self._tasks[task_id] = (seq, callback)
        heapq.heappush(self._heap, (self._now + max(0.0, float(delay_ms)), seq, task_id))

    def cancel(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    def is_pending(self, task_id: str) -> bool:
        return task_id in self._tasks

    def cancel_all(self) -> None:
        self._tasks.clear()
        self._heap.clear()

    def pending_ids(self) -> List[str]:
        return sorted(self._tasks)

    def advance(self, ms: float) -> None:
        """Move the clock forward, running every task that falls due in order."""
        target = self._now + float(ms)
        while self._heap and self._heap[0][0] <= target:
            due, seq, task_id = heapq.heappop(self._heap)
            current = self._tasks.get(task_id)
            # Stale heap entry: task was cancelled or rescheduled since
            if current is None or current[0] != seq:
                continue
            del self._tasks[task_id]
            self._now = max(self._now, due)
            _run_task(task_id, current[1])
        self._now = target

    def run_pending(self) -> None:
        """Run everything currently scheduled, however far in the future."""
        while self._tasks:
            due = min(entry[0] for entry in self._heap)
            self.advance(max(0.0, due - self._now))


class AsyncioScheduler(TaskScheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handles: Dict[str, asyncio.TimerHandle] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        if self._loop is not None:
            return self._loop.time() * 1000.0
        return time.monotonic() * 1000.0

    def schedule(self, task_id: str, delay_ms: float, callback: Callable[[], None]) -> None:
        self.cancel(task_id)

        def fire():
            self._handles.pop(task_id, None)
            _run_task(task_id, callback)

        self._handles[task_id] = self._get_loop().call_later(max(0.0, delay_ms) / 1000.0, fire)

    def cancel(self, task_id: str) -> bool:
        handle = self._handles.pop(task_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_pending(self, task_id: str) -> bool:
        return task_id in self._handles

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()


class GenerationToken:
    """
    Monotonic counter guarding async responses.

    ``issue()`` before starting a request, then ``is_current(token)`` once
    the response lands; anything older than the latest issue is stale.
    """

    def __init__(self):
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def issue(self) -> int:
        self._value += 1
        return self._value

    def is_current(self, token: int) -> bool:
        return token == self._value


class FrameCoalescer:
    """Collapse many refresh requests into one scheduled frame."""

    def __init__(self, scheduler: TaskScheduler, task_id: str, callback: Callable[[], None],
                 delay_ms: float = 0):
        self._scheduler = scheduler
        self._task_id = task_id
        self._callback = callback
        self._delay_ms = delay_ms
        self.scheduled = False

    def request(self) -> bool:
        """Schedule the frame unless one is already queued. Returns True if newly queued."""
        if self.scheduled:
            return False
        self.scheduled = True
        self._scheduler.schedule(self._task_id, self._delay_ms, self._run)
        return True

    def cancel(self) -> None:
        self.scheduled = False
        self._scheduler.cancel(self._task_id)

    def _run(self) -> None:
        self.scheduled = False
        self._callback()
