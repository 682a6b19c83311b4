import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional

from liveness_kiosk.app.config import WorkflowSettings
from .dispatch import Dispatcher, NotificationDispatcher
from .states import DETECTION_TIMEOUT_STATES, WorkflowState
from .timers import Scheduler, ThreadingScheduler


logger = logging.getLogger(__name__)

S = WorkflowState

# Sources with a whitelist; error states are always reachable from them.
# Every other non-final source accepts any destination.
ALLOWED_TRANSITIONS: Dict[WorkflowState, FrozenSet[WorkflowState]] = {
    S.INITIALIZING: frozenset({S.READY, S.NO_FACE, S.FACE_DETECTED, S.MULTIPLE_FACES, S.FACE_OUT_OF_BOUNDS}),
    S.PROCESSING: frozenset({S.SUCCESS}),
    S.CAPTURING: frozenset({S.PROCESSING}),
    S.FACE_REAL: frozenset({S.CAPTURING, S.PROCESSING}),
}

DETECTION_TIMEOUT_MESSAGE = "Face detection timeout. Please try again."
REGISTRATION_TIMEOUT_MESSAGE = "Registration timeout. Please try again."
PENDING_PREFIX = "Confirming: "


@dataclass(frozen=True)
class StateChange:
    state: WorkflowState
    previous: WorkflowState
    message: str
    pending: bool = False
    # Bumped by reset(); listeners drop changes from an earlier attempt
    epoch: int = 0


@dataclass(frozen=True)
class PendingTransition:
    state: WorkflowState
    count: int


StateListener = Callable[[StateChange], None]


def is_valid_transition(src: WorkflowState, dst: WorkflowState) -> bool:
    if src.is_final:
        return False
    allowed = ALLOWED_TRANSITIONS.get(src)
    if allowed is None:
        return True
    return dst in allowed or dst.is_error


class AtomicState:
    """State cell with lock-free reads and compare-and-set writes."""

    def __init__(self, value: WorkflowState):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> WorkflowState:
        return self._value

    def compare_and_set(self, expected: WorkflowState, new: WorkflowState) -> bool:
        with self._lock:
            if self._value is not expected:
                return False
            self._value = new
            return True

    def set(self, value: WorkflowState) -> None:
        with self._lock:
            self._value = value


class WorkflowStateMachine:
    """Debounced, timeout-guarded enrollment/verification flow.

    Errors, SUCCESS, INITIALIZING, LIVENESS_CHALLENGE and FACE_REAL commit at
    once. Any other candidate has to be requested ``confirmation_threshold``
    times in a row; until then listeners get a provisional ``pending`` change.
    Entering READY / NO_FACE / FACE_DETECTED arms the detection timeout,
    PROCESSING arms the registration timeout; any committed change disarms both
    first. Listeners are called on the dispatcher's thread, never the caller's.
    """

    def __init__(
        self,
        settings: Optional[WorkflowSettings] = None,
        scheduler: Optional[Scheduler] = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        self.settings = settings or WorkflowSettings()
        self._owns_scheduler = scheduler is None
        self._owns_dispatcher = dispatcher is None
        self.scheduler = scheduler or ThreadingScheduler()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self._state = AtomicState(S.INITIALIZING)
        self._lock = threading.RLock()
        self._pending: Optional[PendingTransition] = None
        self._timeouts: Dict[str, Any] = {}
        self._generation = 0
        self._epoch = 0
        self._listener: Optional[StateListener] = None
        self._closed = False

    @property
    def current_state(self) -> WorkflowState:
        return self._state.get()

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def pending(self) -> Optional[PendingTransition]:
        return self._pending

    @property
    def scheduled_timeouts(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._timeouts)

    def set_listener(self, listener: Optional[StateListener]) -> None:
        self._listener = listener

    def request_transition(self, state: WorkflowState, message: Optional[str] = None) -> bool:
        """Ask for ``state``. Returns True only if the visible state changed."""
        state = WorkflowState(state)
        if self._closed:
            return False
        current = self.current_state
        logger.debug("transition requested %s -> %s", current.value, state.value)

        if state is current:
            with self._lock:
                self._pending = None
            return False

        if not is_valid_transition(current, state):
            logger.warning("invalid transition %s -> %s dropped", current.value, state.value)
            return False

        if not state.requires_confirmation:
            with self._lock:
                self._pending = None
            return self._commit(current, state, message)

        with self._lock:
            epoch = self._epoch
            if self._pending is not None and self._pending.state is state:
                count = self._pending.count + 1
            else:
                count = 1
            confirmed = count >= self.settings.confirmation_threshold
            self._pending = None if confirmed else PendingTransition(state, count)

        if confirmed:
            return self._commit(current, state, message)

        logger.debug("confirming %s: %d/%d", state.value, count, self.settings.confirmation_threshold)
        text = PENDING_PREFIX + (message or state.default_message)
        self._notify(StateChange(state, current, text, pending=True, epoch=epoch))
        return False

    def _commit(
        self,
        expected: WorkflowState,
        state: WorkflowState,
        message: Optional[str],
        generation: Optional[int] = None,
    ) -> bool:
        if expected is state:
            return False
        with self._lock:
            if self._closed:
                return False
            if generation is not None and generation != self._generation:
                logger.debug("stale timeout for %s ignored", state.value)
                return False
            if not self._state.compare_and_set(expected, state):
                logger.debug("lost race committing %s -> %s", expected.value, state.value)
                return False
            self._reschedule(state)
            epoch = self._epoch
        logger.info("state %s -> %s", expected.value, state.value)
        self._notify(StateChange(state, expected, message or state.default_message, epoch=epoch))
        return True

    def _reschedule(self, state: WorkflowState) -> None:
        self._cancel_timeouts()
        gen = self._generation
        if state in DETECTION_TIMEOUT_STATES:
            self._timeouts["detection"] = self.scheduler.schedule(
                self.settings.detection_timeout_ms / 1000.0,
                lambda: self._fire_timeout(gen, S.TIMEOUT_DETECTION, DETECTION_TIMEOUT_MESSAGE),
            )
        elif state is S.PROCESSING:
            self._timeouts["registration"] = self.scheduler.schedule(
                self.settings.registration_timeout_ms / 1000.0,
                lambda: self._fire_timeout(gen, S.TIMEOUT_REGISTRATION, REGISTRATION_TIMEOUT_MESSAGE),
            )

    def _cancel_timeouts(self) -> None:
        # Bumping the generation also disarms a timer already past its cancel window
        self._generation += 1
        for handle in self._timeouts.values():
            self.scheduler.cancel(handle)
        self._timeouts.clear()

    def _fire_timeout(self, generation: int, target: WorkflowState, message: str) -> None:
        with self._lock:
            if generation != self._generation or self._closed:
                return
            current = self.current_state
            if not is_valid_transition(current, target):
                logger.warning("timeout %s not applicable in %s", target.value, current.value)
                return
            self._pending = None
        # Commit outside the lock so listeners never run while it is held
        logger.warning("%s fired in %s", target.value, current.value)
        self._commit(current, target, message, generation=generation)

    def _notify(self, change: StateChange) -> None:
        listener = self._listener
        if listener is None:
            return
        self.dispatcher.post(lambda: listener(change))

    def reset(self) -> None:
        with self._lock:
            self._cancel_timeouts()
            self._pending = None
            self._epoch += 1
            self._state.set(S.INITIALIZING)
        logger.debug("workflow reset")

    def teardown(self) -> None:
        with self._lock:
            self._cancel_timeouts()
            self._pending = None
            self._closed = True
            self._listener = None
        if self._owns_scheduler:
            self.scheduler.shutdown()
        if self._owns_dispatcher:
            self.dispatcher.close()
        logger.debug("workflow torn down")
