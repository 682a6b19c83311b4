import logging
from typing import Optional

from liveness_kiosk.app.config import AppConfig
from liveness_kiosk.app.utils import clamp01
from liveness_kiosk.models.base import ConfidenceLevel, DecisionReason, DecisionResult, Evidence
from .challenge import ChallengeOutcome, LivenessChallenge
from .history import FrameHistory
from .movement import MovementAnalyzer, MovementReport
from .suspicion import SuspicionScorer


logger = logging.getLogger(__name__)

EXPLANATIONS = {
    DecisionReason.LIVENESS_REQUIRED: "blink to confirm liveness",
    DecisionReason.CHALLENGE_PENDING: "blink your eyes",
    DecisionReason.LIVENESS_CONFIRMED: "liveness confirmed",
    DecisionReason.LIVENESS_FAILED: "liveness failed",
    DecisionReason.HIGH_SUSPICION: "high suspicion",
    DecisionReason.SUSPICIOUS: "suspicious activity, please blink",
    DecisionReason.REAL_FACE: "real face detected",
    DecisionReason.HOLD_STEADY: "hold steady",
}


class DecisionEngine:
    """Turns a noisy per-frame spoof score stream into accept / reject / challenge.

    One instance per authentication attempt. Not thread-safe; callers
    serialise access.

    Per frame:
      1. while the post-liveness bonus window is open, boost confidence and
         suppress spoof flags the boost lifts above the high threshold
      2. record the frame in the rolling history
      3. bucket confidence into HIGH / MEDIUM / LOW / VERY_LOW
      4. an active challenge consumes the frame (blink found / expired / pending)
      5. no accept is issued until a challenge has passed: a plausible real
         face outside the bonus window starts one
      6. update the suspicion score
      7. reject on high suspicion, re-challenge on moderate suspicion, accept
         after enough consecutive high-confidence real frames
    """

    def __init__(self, cfg: Optional[AppConfig] = None):
        self.cfg = cfg or AppConfig()
        self.thresholds = self.cfg.thresholds
        self.history = FrameHistory(self.cfg.suspicion.history_size)
        self.scorer = SuspicionScorer(self.cfg.suspicion, self.thresholds.low)
        self.challenge = LivenessChallenge(self.cfg.challenge)
        self.movement = MovementAnalyzer(self.cfg.scenario)
        self.bonus_frames = 0
        self.real_streak = 0

    @property
    def suspicion(self) -> int:
        return self.scorer.level

    @property
    def liveness_verified(self) -> bool:
        return self.bonus_frames > 0

    def classify(self, confidence: float) -> ConfidenceLevel:
        t = self.thresholds
        if confidence >= t.high:
            return ConfidenceLevel.HIGH
        if confidence >= t.medium:
            return ConfidenceLevel.MEDIUM
        if confidence >= t.low:
            return ConfidenceLevel.LOW
        return ConfidenceLevel.VERY_LOW

    def evaluate(self, evidence: Evidence) -> DecisionResult:
        confidence = clamp01(evidence.confidence)
        is_spoof = bool(evidence.is_spoof)

        if self.bonus_frames > 0:
            confidence = min(1.0, confidence + self.cfg.challenge.bonus_amount)
            if is_spoof and confidence >= self.thresholds.high:
                is_spoof = False
            self.bonus_frames -= 1

        self.history.push(confidence, is_spoof)
        if evidence.face_box is not None:
            self.movement.add(evidence.face_box, confidence)
        level = self.classify(confidence)

        if self.challenge.active:
            # Challenge frames never count towards the accept streak
            self.real_streak = 0
            return self._challenge_step(confidence, level)

        if not self.liveness_verified and not is_spoof and level != ConfidenceLevel.VERY_LOW:
            self._start_challenge()
            return self._result(DecisionReason.LIVENESS_REQUIRED, confidence, level, trigger_challenge=True)

        suspicion = self.scorer.update(is_spoof, confidence, self.history)

        if suspicion >= self.cfg.suspicion.reject_threshold:
            logger.warning("rejecting: suspicion %d", suspicion)
            self.real_streak = 0
            return self._result(DecisionReason.HIGH_SUSPICION, confidence, level, is_spoof=True)

        if suspicion >= self.cfg.suspicion.challenge_threshold:
            self._start_challenge()
            return self._result(DecisionReason.SUSPICIOUS, confidence, level, trigger_challenge=True)

        if not is_spoof and confidence > self.thresholds.high:
            self.real_streak += 1
            if self.real_streak >= self.thresholds.min_real_face_frames:
                return self._result(DecisionReason.REAL_FACE, confidence, level, should_proceed=True)
        else:
            self.real_streak = 0
        return self._result(DecisionReason.HOLD_STEADY, confidence, level)

    def _challenge_step(self, confidence: float, level: ConfidenceLevel) -> DecisionResult:
        outcome = self.challenge.step(self.history)
        if outcome is ChallengeOutcome.CONFIRMED:
            self._open_bonus_window()
            return self._result(DecisionReason.LIVENESS_CONFIRMED, confidence, level, should_proceed=True)
        if outcome is ChallengeOutcome.FAILED:
            return self._result(DecisionReason.LIVENESS_FAILED, confidence, level, is_spoof=True)
        return self._result(DecisionReason.CHALLENGE_PENDING, confidence, level, trigger_challenge=True)

    def _start_challenge(self) -> None:
        self.real_streak = 0
        self.challenge.start()

    def _open_bonus_window(self) -> None:
        self.scorer.reset()
        self.real_streak = 0
        self.bonus_frames = self.cfg.challenge.bonus_window_frames
        logger.info("liveness confirmed, bonus window %d frames", self.bonus_frames)

    def _result(
        self,
        reason: DecisionReason,
        confidence: float,
        level: ConfidenceLevel,
        is_spoof: bool = False,
        should_proceed: bool = False,
        trigger_challenge: bool = False,
    ) -> DecisionResult:
        return DecisionResult(
            is_spoof=is_spoof,
            confidence=confidence,
            confidence_level=level,
            explanation=EXPLANATIONS[reason],
            should_proceed=should_proceed,
            trigger_challenge=trigger_challenge,
            reason=reason,
            suspicion=self.scorer.level,
        )

    def reset(self) -> None:
        self.history.clear()
        self.scorer.reset()
        self.challenge.reset()
        self.movement.clear()
        self.bonus_frames = 0
        self.real_streak = 0

    def reset_challenge(self) -> None:
        """Drop the challenge sub-machine only; suspicion, history and bonus survive."""
        self.challenge.reset()

    reset_liveness_state = reset_challenge

    def mark_liveness_success(self) -> None:
        """Liveness was confirmed elsewhere (e.g. a UI-level blink check)."""
        self.challenge.reset()
        self._open_bonus_window()

    def movement_report(self) -> MovementReport:
        return self.movement.analyze(self.liveness_verified)

    def snapshot(self) -> dict:
        return {
            "suspicion": self.scorer.level,
            "real_streak": self.real_streak,
            "bonus_frames": self.bonus_frames,
            "challenge_active": self.challenge.active,
            "challenge_frames": self.challenge.frames_elapsed,
            "history_size": len(self.history),
        }
