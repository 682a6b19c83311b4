import logging
import threading
import uuid
from enum import Enum
from typing import Any, List, Optional

from liveness_kiosk.app.config import AppConfig
from liveness_kiosk.engine import DecisionEngine
from liveness_kiosk.models.base import DecisionReason, DecisionResult, Evidence, EvidenceSource, FaceBox
from liveness_kiosk.workflow import (
    Dispatcher,
    Scheduler,
    StateChange,
    StateListener,
    WorkflowState,
    WorkflowStateMachine,
)


logger = logging.getLogger(__name__)

W = WorkflowState


class Signal(str, Enum):
    """Out-of-band facts from the capture / detection layer."""

    FACE_DETECTED = "face_detected"
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    FACE_TOO_FAR = "face_too_far"
    FACE_TOO_CLOSE = "face_too_close"
    FACE_NOT_CENTERED = "face_not_centered"
    FACE_OUT_OF_BOUNDS = "face_out_of_bounds"
    CAMERA_ERROR = "camera_error"
    PERMISSION_DENIED = "permission_denied"
    NETWORK_ERROR = "network_error"


SIGNAL_STATES = {
    Signal.FACE_DETECTED: W.FACE_DETECTED,
    Signal.NO_FACE: W.NO_FACE,
    Signal.MULTIPLE_FACES: W.MULTIPLE_FACES,
    Signal.FACE_TOO_FAR: W.FACE_TOO_FAR,
    Signal.FACE_TOO_CLOSE: W.FACE_TOO_CLOSE,
    Signal.FACE_NOT_CENTERED: W.FACE_NOT_CENTERED,
    Signal.FACE_OUT_OF_BOUNDS: W.FACE_OUT_OF_BOUNDS,
    Signal.CAMERA_ERROR: W.FAILED_CAMERA,
    Signal.PERMISSION_DENIED: W.FAILED_PERMISSION,
    Signal.NETWORK_ERROR: W.FAILED_NETWORK,
}

# Capture is underway; frame verdicts no longer steer the flow
BUSY_STATES = frozenset({W.CAPTURING, W.PROCESSING})
TIMEOUT_STATES = frozenset({W.TIMEOUT_DETECTION, W.TIMEOUT_REGISTRATION})


class LivenessSession:
    """One enrollment / verification attempt: a decision engine driving a workflow."""

    def __init__(
        self,
        cfg: Optional[AppConfig] = None,
        scheduler: Optional[Scheduler] = None,
        dispatcher: Optional[Dispatcher] = None,
        session_id: Optional[str] = None,
    ):
        self.cfg = cfg or AppConfig()
        self.id = session_id or str(uuid.uuid4())
        self.engine = DecisionEngine(self.cfg)
        self.workflow = WorkflowStateMachine(self.cfg.workflow, scheduler=scheduler, dispatcher=dispatcher)
        self.workflow.set_listener(self._on_state_change)
        self._lock = threading.RLock()
        self._listener: Optional[StateListener] = None
        self.last_result: Optional[DecisionResult] = None
        self.last_change: Optional[StateChange] = None

    @property
    def state(self) -> WorkflowState:
        return self.workflow.current_state

    def set_listener(self, listener: Optional[StateListener]) -> None:
        self._listener = listener

    def start(self) -> bool:
        self.workflow.request_transition(W.INITIALIZING)
        return self._command(W.READY)

    def submit(self, evidence: Evidence) -> DecisionResult:
        with self._lock:
            result = self.engine.evaluate(evidence)
            self.last_result = result
        state = self.state
        if state.is_final or state in BUSY_STATES:
            return result
        self._route(result, state)
        return result

    def process_frame(self, source: EvidenceSource, frame: Any, face_box: Optional[FaceBox] = None) -> None:
        """Hand a frame to the classifier; its single callback is fed to ``submit``."""
        source.analyze(frame, face_box, self.submit)

    def _route(self, result: DecisionResult, state: WorkflowState) -> None:
        req = self.workflow.request_transition
        if state is W.LIVENESS_CHALLENGE:
            # Only a verdict that ends the challenge moves the flow on
            if result.reason is DecisionReason.LIVENESS_CONFIRMED:
                req(W.FACE_REAL, result.explanation)
            elif result.reason is DecisionReason.LIVENESS_FAILED:
                req(W.FACE_SPOOFED, result.explanation)
            return
        if state is W.FACE_REAL:
            if result.is_spoof:
                req(W.FACE_SPOOFED, result.explanation)
            elif result.reason is DecisionReason.REAL_FACE:
                req(W.CAPTURING)
            return

        if result.trigger_challenge:
            req(W.LIVENESS_CHALLENGE, result.explanation)
        elif result.is_spoof:
            req(W.FACE_SPOOFED, result.explanation)
        elif result.reason is DecisionReason.LIVENESS_CONFIRMED:
            req(W.FACE_REAL, result.explanation)
        elif result.should_proceed:
            req(W.CAPTURING if state is W.FACE_STABLE else W.FACE_STABLE, result.explanation)
        elif result.suspicion > 0:
            req(W.FACE_SUSPICIOUS, result.explanation)
        else:
            req(W.FACE_STABILIZING, result.explanation)

    def signal(self, sig: Signal, message: Optional[str] = None) -> bool:
        return self.workflow.request_transition(SIGNAL_STATES[Signal(sig)], message)

    def confirm_liveness(self, message: Optional[str] = "Liveness verified!") -> bool:
        """A UI-level blink check passed outside the engine."""
        with self._lock:
            self.engine.mark_liveness_success()
        return self.workflow.request_transition(W.FACE_REAL, message)

    def retry_liveness(self) -> bool:
        """Start over on the challenge but keep suspicion and history."""
        with self._lock:
            self.engine.reset_challenge()
        return self.workflow.request_transition(W.LIVENESS_CHALLENGE)

    def begin_capture(self) -> bool:
        return self._command(W.CAPTURING)

    def begin_processing(self, message: Optional[str] = None) -> bool:
        return self._command(W.PROCESSING, message)

    def complete(self, ok: bool, message: Optional[str] = None, failure: WorkflowState = W.FAILED_OTHER) -> bool:
        target = W.SUCCESS if ok else WorkflowState(failure)
        return self.workflow.request_transition(target, message)

    def _command(self, state: WorkflowState, message: Optional[str] = None) -> bool:
        # Flow commands are deliberate, so satisfy the debounce in one call
        for _ in range(max(1, self.workflow.settings.confirmation_threshold)):
            if self.workflow.request_transition(state, message):
                return True
            if self.workflow.pending is None:
                break
        return self.state is state

    def _on_state_change(self, change: StateChange) -> None:
        with self._lock:
            if change.epoch != self.workflow.epoch:
                logger.debug("session %s dropping %s from before restart", self.id, change.state.value)
                return
            if not change.pending:
                self.last_change = change
                if change.state in TIMEOUT_STATES:
                    logger.info("session %s timed out in %s, clearing evidence", self.id, change.previous.value)
                    self.engine.reset()
        listener = self._listener
        if listener is not None:
            listener(change)

    def restart(self) -> bool:
        with self._lock:
            self.engine.reset()
            self.workflow.reset()
            self.last_result = None
            self.last_change = None
        return self.start()

    def close(self) -> None:
        self._listener = None
        self.workflow.teardown()
        with self._lock:
            self.engine.reset()

    def movement_insights(self) -> List[str]:
        with self._lock:
            return self.engine.movement.insights(self.engine.liveness_verified)

    def status(self) -> dict:
        with self._lock:
            change = self.last_change
            state = self.state
            return {
                "id": self.id,
                "scenario": self.cfg.scenario,
                "state": state.value,
                "message": change.message if change and change.state is state else state.default_message,
                "final": state.is_final,
                "processing": state.is_processing,
                "engine": self.engine.snapshot(),
                "last_result": self.last_result.to_dict() if self.last_result else None,
                "movement": self.engine.movement_report().to_dict(),
            }
