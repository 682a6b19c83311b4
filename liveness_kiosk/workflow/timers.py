import heapq
import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)


class Scheduler:
    """Cancelable single-shot timers."""

    def schedule(self, delay_s: float, fn: Callable[[], None]) -> Any:
        raise NotImplementedError

    def cancel(self, handle: Any) -> None:
        raise NotImplementedError

    def shutdown(self) -> None:
        pass


class ThreadingScheduler(Scheduler):
    def __init__(self):
        self._lock = threading.Lock()
        self._timers: Dict[int, threading.Timer] = {}
        self._ids = itertools.count(1)

    def schedule(self, delay_s: float, fn: Callable[[], None]) -> int:
        handle = next(self._ids)

        def _run():
            with self._lock:
                if self._timers.pop(handle, None) is None:
                    return
            fn()

        timer = threading.Timer(max(0.0, float(delay_s)), _run)
        timer.daemon = True
        with self._lock:
            self._timers[handle] = timer
        timer.start()
        return handle

    def cancel(self, handle: Any) -> None:
        with self._lock:
            timer = self._timers.pop(handle, None)
        if timer is not None:
            timer.cancel()

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for t in timers:
            t.cancel()


class ManualScheduler(Scheduler):
    """Virtual clock; timers fire only from ``advance``."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)
        self._lock = threading.RLock()
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []
        self._live: Dict[int, float] = {}
        self._ids = itertools.count(1)

    def schedule(self, delay_s: float, fn: Callable[[], None]) -> int:
        with self._lock:
            handle = next(self._ids)
            due = self.now + max(0.0, float(delay_s))
            heapq.heappush(self._queue, (due, handle, fn))
            self._live[handle] = due
            return handle

    def cancel(self, handle: Any) -> None:
        with self._lock:
            self._live.pop(handle, None)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._live)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order. Returns how many fired."""
        target = self.now + max(0.0, float(seconds))
        fired = 0
        while True:
            with self._lock:
                nxt = self._pop_due(target)
                if nxt is None:
                    self.now = target
                    return fired
                due, fn = nxt
                self.now = due
            fn()
            fired += 1

    def advance_to(self, timestamp: float) -> int:
        return self.advance(max(0.0, float(timestamp) - self.now))

    def _pop_due(self, target: float) -> Optional[Tuple[float, Callable[[], None]]]:
        while self._queue and self._queue[0][0] <= target:
            due, handle, fn = heapq.heappop(self._queue)
            if self._live.pop(handle, None) is not None:
                return due, fn
        return None

    def shutdown(self) -> None:
        with self._lock:
            self._queue.clear()
            self._live.clear()
