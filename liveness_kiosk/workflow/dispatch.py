import logging
import queue
import threading
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class Dispatcher:
    def post(self, fn: Callable[[], None]) -> None:
        raise NotImplementedError

    def flush(self, timeout: Optional[float] = None) -> bool:
        return True

    def close(self) -> None:
        pass


class InlineDispatcher(Dispatcher):
    """Runs callbacks on the posting thread."""

    def post(self, fn: Callable[[], None]) -> None:
        _safe_call(fn)


class NotificationDispatcher(Dispatcher):
    """Single consumer thread; callbacks run in post order, never on the caller's thread."""

    def __init__(self, name: str = "liveness-notify"):
        self._name = name
        self._queue: "queue.Queue[Optional[Callable[[], None]]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._closed = False

    def _ensure_thread(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
                self._thread.start()

    def _loop(self) -> None:
        while True:
            fn = self._queue.get()
            try:
                if fn is None:
                    return
                _safe_call(fn)
            finally:
                self._queue.task_done()

    def post(self, fn: Callable[[], None]) -> None:
        if self._closed:
            logger.debug("dispatcher closed, dropping notification")
            return
        self._ensure_thread()
        self._queue.put(fn)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every posted callback has run."""
        if self._thread is None:
            return True
        done = threading.Event()

        def _waiter():
            self._queue.join()
            done.set()

        threading.Thread(target=_waiter, daemon=True).start()
        return done.wait(timeout)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
        if thread is not None and thread.is_alive():
            self._queue.put(None)
            if thread is not threading.current_thread():
                thread.join(timeout=1.0)


def _safe_call(fn: Callable[[], None]) -> None:
    try:
        fn()
    except Exception:
        logger.exception("state listener failed")
