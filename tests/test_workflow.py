import threading
import time

from liveness_kiosk.app.config import WorkflowSettings
from liveness_kiosk.workflow import (
    InlineDispatcher,
    ManualScheduler,
    NotificationDispatcher,
    WorkflowState as S,
    WorkflowStateMachine,
    is_valid_transition,
)
from liveness_kiosk.workflow.machine import AtomicState


def make_machine(**settings):
    clock = ManualScheduler()
    sm = WorkflowStateMachine(WorkflowSettings(**settings), scheduler=clock, dispatcher=InlineDispatcher())
    changes = []
    sm.set_listener(changes.append)
    return sm, clock, changes


def drive(sm, *states):
    for st in states:
        for _ in range(sm.settings.confirmation_threshold):
            if sm.request_transition(st):
                break
        assert sm.current_state is st


def test_starts_initializing():
    sm, clock, _ = make_machine()
    assert sm.current_state is S.INITIALIZING
    assert clock.pending == 0


def test_debounce_needs_two_requests():
    sm, _, changes = make_machine()
    drive(sm, S.NO_FACE)
    changes.clear()

    assert not sm.request_transition(S.FACE_DETECTED)
    assert sm.current_state is S.NO_FACE
    assert sm.pending.state is S.FACE_DETECTED and sm.pending.count == 1
    assert changes[-1].pending
    assert changes[-1].message == "Confirming: Face detected"

    assert sm.request_transition(S.FACE_DETECTED)
    assert sm.current_state is S.FACE_DETECTED
    assert sm.pending is None
    assert not changes[-1].pending
    assert changes[-1].previous is S.NO_FACE


def test_different_candidate_restarts_count():
    sm, _, _ = make_machine()
    drive(sm, S.READY)
    sm.request_transition(S.FACE_STABILIZING)
    sm.request_transition(S.FACE_SUSPICIOUS)
    assert sm.pending.state is S.FACE_SUSPICIOUS
    assert not sm.request_transition(S.FACE_STABILIZING)
    assert sm.current_state is S.READY
    assert sm.request_transition(S.FACE_STABILIZING)


def test_immediate_states_skip_debounce():
    sm, _, changes = make_machine()
    drive(sm, S.READY)
    assert sm.request_transition(S.LIVENESS_CHALLENGE, "blink please")
    assert changes[-1].message == "blink please"
    assert sm.request_transition(S.FACE_SPOOFED)
    assert changes[-1].message == "Spoof detected! Use real face"
    assert sm.request_transition(S.FACE_REAL)


def test_same_state_request_is_noop():
    sm, _, changes = make_machine()
    drive(sm, S.READY)
    sm.request_transition(S.NO_FACE)
    n = len(changes)
    assert not sm.request_transition(S.READY)
    assert sm.pending is None
    assert len(changes) == n


def test_whitelist_from_initializing():
    sm, _, changes = make_machine()
    assert not sm.request_transition(S.LIVENESS_CHALLENGE)
    assert sm.current_state is S.INITIALIZING
    assert changes == []
    assert sm.request_transition(S.FAILED_CAMERA)


def test_processing_cannot_go_back():
    sm, _, _ = make_machine()
    drive(sm, S.READY)
    sm.request_transition(S.FACE_REAL)
    drive(sm, S.CAPTURING, S.PROCESSING)
    assert not sm.request_transition(S.READY)
    assert not sm.request_transition(S.READY)
    assert sm.current_state is S.PROCESSING
    assert sm.request_transition(S.SUCCESS)


def test_final_states_are_locked():
    sm, _, _ = make_machine()
    assert sm.request_transition(S.FAILED_NETWORK)
    for st in (S.READY, S.SUCCESS, S.INITIALIZING, S.FAILED_OTHER):
        assert not sm.request_transition(st)
    assert sm.current_state is S.FAILED_NETWORK


def test_transition_table():
    assert is_valid_transition(S.FACE_REAL, S.CAPTURING)
    assert not is_valid_transition(S.FACE_REAL, S.READY)
    assert is_valid_transition(S.CAPTURING, S.FAILED_CAMERA)
    assert not is_valid_transition(S.CAPTURING, S.FACE_STABLE)
    assert is_valid_transition(S.FACE_SPOOFED, S.READY)
    assert not is_valid_transition(S.SUCCESS, S.READY)


def test_detection_timeout_fires():
    sm, clock, changes = make_machine()
    drive(sm, S.READY)
    assert sm.scheduled_timeouts == frozenset({"detection"})
    clock.advance(29.9)
    assert sm.current_state is S.READY
    clock.advance(0.2)
    assert sm.current_state is S.TIMEOUT_DETECTION
    assert changes[-1].message == "Face detection timeout. Please try again."
    assert changes[-1].previous is S.READY
    assert clock.pending == 0


def test_detection_timeout_rearmed_on_each_eligible_state():
    sm, clock, _ = make_machine()
    drive(sm, S.READY)
    clock.advance(20)
    drive(sm, S.NO_FACE)
    clock.advance(20)
    assert sm.current_state is S.NO_FACE
    clock.advance(10)
    assert sm.current_state is S.TIMEOUT_DETECTION


def test_committed_transition_cancels_timeout():
    sm, clock, _ = make_machine()
    drive(sm, S.READY)
    clock.advance(10)
    drive(sm, S.FACE_STABILIZING)
    assert sm.scheduled_timeouts == frozenset()
    assert clock.pending == 0
    clock.advance(60)
    assert sm.current_state is S.FACE_STABILIZING


def test_pending_request_does_not_cancel_timeout():
    sm, clock, _ = make_machine()
    drive(sm, S.READY)
    sm.request_transition(S.FACE_STABILIZING)
    clock.advance(30)
    assert sm.current_state is S.TIMEOUT_DETECTION
    assert sm.pending is None


def test_registration_timeout():
    sm, clock, changes = make_machine(registration_timeout_ms=15000)
    drive(sm, S.READY)
    sm.request_transition(S.FACE_REAL)
    drive(sm, S.CAPTURING, S.PROCESSING)
    assert sm.scheduled_timeouts == frozenset({"registration"})
    clock.advance(14.9)
    assert sm.current_state is S.PROCESSING
    clock.advance(0.2)
    assert sm.current_state is S.TIMEOUT_REGISTRATION
    assert changes[-1].message == "Registration timeout. Please try again."


def test_success_disarms_registration_timeout():
    sm, clock, _ = make_machine()
    drive(sm, S.READY)
    sm.request_transition(S.FACE_REAL)
    drive(sm, S.CAPTURING, S.PROCESSING)
    sm.request_transition(S.SUCCESS)
    clock.advance(60)
    assert sm.current_state is S.SUCCESS


def test_reset_returns_to_initializing_quietly():
    sm, clock, changes = make_machine()
    drive(sm, S.READY)
    n = len(changes)
    sm.reset()
    assert sm.current_state is S.INITIALIZING
    assert clock.pending == 0
    assert len(changes) == n


def test_teardown_stops_everything():
    sm, clock, changes = make_machine()
    drive(sm, S.READY)
    sm.teardown()
    assert clock.pending == 0
    assert not sm.request_transition(S.FAILED_OTHER)
    assert sm.current_state is S.READY
    clock.advance(60)
    assert sm.current_state is S.READY


def test_listener_errors_do_not_break_machine():
    sm, _, _ = make_machine()

    def boom(change):
        raise RuntimeError("listener bug")

    sm.set_listener(boom)
    assert sm.request_transition(S.FAILED_OTHER)
    assert sm.current_state is S.FAILED_OTHER


def test_atomic_state_compare_and_set():
    cell = AtomicState(S.READY)
    assert not cell.compare_and_set(S.NO_FACE, S.FACE_DETECTED)
    assert cell.get() is S.READY
    assert cell.compare_and_set(S.READY, S.NO_FACE)
    assert cell.get() is S.NO_FACE


def test_notifications_run_off_caller_thread():
    dispatcher = NotificationDispatcher()
    sm = WorkflowStateMachine(WorkflowSettings(), scheduler=ManualScheduler(), dispatcher=dispatcher)
    seen = []
    sm.set_listener(lambda ch: seen.append((ch.state, threading.get_ident())))
    sm.request_transition(S.READY)
    sm.request_transition(S.READY)
    sm.request_transition(S.SUCCESS)
    assert dispatcher.flush(timeout=2.0)
    assert [st for st, _ in seen] == [S.READY, S.READY, S.SUCCESS]
    assert all(tid != threading.get_ident() for _, tid in seen)
    dispatcher.close()


def test_real_timer_cancelled_by_commit():
    sm = WorkflowStateMachine(WorkflowSettings(detection_timeout_ms=50))
    try:
        drive(sm, S.READY)
        drive(sm, S.FACE_STABILIZING)
        time.sleep(0.2)
        assert sm.current_state is S.FACE_STABILIZING
    finally:
        sm.teardown()


def test_concurrent_requests_commit_once():
    sm, _, changes = make_machine()
    drive(sm, S.READY)
    changes.clear()
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(sm.request_transition(S.FAILED_CAMERA))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1
    assert [c.state for c in changes] == [S.FAILED_CAMERA]
