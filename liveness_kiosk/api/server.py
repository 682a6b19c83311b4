import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from liveness_kiosk.app.config import AppConfig, config_from_dict, load_config
from liveness_kiosk.models.base import Evidence, FaceBox
from liveness_kiosk.pipeline.session import LivenessSession, Signal
from liveness_kiosk.workflow import WorkflowState


logger = logging.getLogger(__name__)


class SessionRegistry:
    """Live sessions for this process. One session per authentication attempt.

    A finished session stays readable for ``final_ttl_s`` after its last
    lookup; any other session is dropped after ``idle_ttl_s`` without one.
    Expired sessions are closed by ``sweep``, which runs on every create and
    lookup and periodically from the app's lifespan.
    """

    def __init__(self, cfg: AppConfig, clock: Callable[[], float] = time.monotonic):
        self.cfg = cfg
        self._clock = clock
        self._sessions: Dict[str, LivenessSession] = {}
        self._touched: Dict[str, float] = {}
        self._lock = threading.Lock()

    def create(self, scenario: Optional[str] = None) -> LivenessSession:
        self.sweep()
        cfg = self.cfg
        if scenario:
            cfg = config_from_dict({"scenario": scenario}, self.cfg)
        sess = LivenessSession(cfg)
        with self._lock:
            self._sessions[sess.id] = sess
            self._touched[sess.id] = self._clock()
        sess.start()
        return sess

    def get(self, session_id: str) -> LivenessSession:
        self.sweep()
        with self._lock:
            sess = self._sessions.get(session_id)
            if sess is not None:
                self._touched[session_id] = self._clock()
        if sess is None:
            raise HTTPException(status_code=404, detail="session not found")
        return sess

    def remove(self, session_id: str) -> None:
        with self._lock:
            sess = self._sessions.pop(session_id, None)
            self._touched.pop(session_id, None)
        if sess is None:
            raise HTTPException(status_code=404, detail="session not found")
        sess.close()

    def sweep(self) -> int:
        """Close and drop expired sessions. Returns how many went."""
        now = self._clock()
        ttl = self.cfg.sessions
        with self._lock:
            expired = [
                sid
                for sid, sess in self._sessions.items()
                if now - self._touched[sid] >= (ttl.final_ttl_s if sess.state.is_final else ttl.idle_ttl_s)
            ]
            evicted = [self._sessions.pop(sid) for sid in expired]
            for sid in expired:
                del self._touched[sid]
        for sess in evicted:
            logger.info("evicting session %s in %s", sess.id, sess.state.value)
            sess.close()
        return len(evicted)

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._touched.clear()
        for s in sessions:
            s.close()

    def __len__(self) -> int:
        return len(self._sessions)


class CreateSessionRequest(BaseModel):
    scenario: Optional[str] = None


class FaceBoxModel(BaseModel):
    x: float
    y: float
    w: float
    h: float


class EvidenceRequest(BaseModel):
    confidence: float
    is_spoof: bool
    timestamp: Optional[float] = None
    face_box: Optional[FaceBoxModel] = None


class SignalRequest(BaseModel):
    signal: Signal
    message: Optional[str] = None


class CompleteRequest(BaseModel):
    ok: bool
    message: Optional[str] = None
    failure: WorkflowState = WorkflowState.FAILED_OTHER


class DecisionResponse(BaseModel):
    is_spoof: bool
    confidence: float
    confidence_level: str
    explanation: str
    should_proceed: bool
    trigger_challenge: bool
    reason: str
    suspicion: int
    state: str


class TransitionResponse(BaseModel):
    committed: bool
    state: str


class SessionStatus(BaseModel):
    id: str
    scenario: str
    state: str
    message: str
    final: bool
    processing: bool
    engine: dict
    last_result: Optional[dict] = None
    movement: dict
    insights: List[str] = Field(default_factory=list)


def create_app(cfg: Optional[AppConfig] = None) -> FastAPI:
    cfg = cfg or load_config()
    registry = SessionRegistry(cfg)

    async def sweeper():
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(cfg.sessions.sweep_interval_s)
            # close() joins notifier threads, keep it off the event loop
            await loop.run_in_executor(None, registry.sweep)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        task = asyncio.create_task(sweeper())
        try:
            yield
        finally:
            task.cancel()
            registry.close_all()

    app = FastAPI(title="Liveness Kiosk API", version="0.1.0", lifespan=lifespan)
    app.state.registry = registry

    def _status(sess: LivenessSession) -> SessionStatus:
        return SessionStatus(insights=sess.movement_insights(), **sess.status())

    def _transition(sess: LivenessSession, committed: bool) -> TransitionResponse:
        return TransitionResponse(committed=committed, state=sess.state.value)

    @app.post("/sessions", response_model=SessionStatus, status_code=201)
    def create_session(req: CreateSessionRequest):
        try:
            sess = registry.create(req.scenario)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        return _status(sess)

    @app.get("/sessions/{session_id}", response_model=SessionStatus)
    def get_session(session_id: str):
        return _status(registry.get(session_id))

    @app.post("/sessions/{session_id}/evidence", response_model=DecisionResponse)
    def submit_evidence(session_id: str, req: EvidenceRequest):
        sess = registry.get(session_id)
        box = FaceBox(**req.face_box.model_dump()) if req.face_box else None
        if req.timestamp is None:
            ev = Evidence(req.confidence, req.is_spoof, face_box=box)
        else:
            ev = Evidence(req.confidence, req.is_spoof, req.timestamp, box)
        res = sess.submit(ev)
        return DecisionResponse(state=sess.state.value, **res.to_dict())

    @app.post("/sessions/{session_id}/signals", response_model=TransitionResponse)
    def send_signal(session_id: str, req: SignalRequest):
        sess = registry.get(session_id)
        return _transition(sess, sess.signal(req.signal, req.message))

    @app.post("/sessions/{session_id}/liveness", response_model=TransitionResponse)
    def confirm_liveness(session_id: str):
        sess = registry.get(session_id)
        return _transition(sess, sess.confirm_liveness())

    @app.post("/sessions/{session_id}/capture", response_model=TransitionResponse)
    def begin_capture(session_id: str):
        sess = registry.get(session_id)
        return _transition(sess, sess.begin_capture())

    @app.post("/sessions/{session_id}/processing", response_model=TransitionResponse)
    def begin_processing(session_id: str):
        sess = registry.get(session_id)
        return _transition(sess, sess.begin_processing())

    @app.post("/sessions/{session_id}/complete", response_model=TransitionResponse)
    def complete(session_id: str, req: CompleteRequest):
        sess = registry.get(session_id)
        return _transition(sess, sess.complete(req.ok, req.message, req.failure))

    @app.post("/sessions/{session_id}/restart", response_model=SessionStatus)
    def restart(session_id: str):
        sess = registry.get(session_id)
        sess.restart()
        return _status(sess)

    @app.delete("/sessions/{session_id}", status_code=204)
    def delete_session(session_id: str):
        registry.remove(session_id)

    return app
