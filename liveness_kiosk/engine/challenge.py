import logging
from enum import Enum
from typing import Sequence

from liveness_kiosk.app.config import ChallengeSettings
from .history import FrameHistory, FrameSample


logger = logging.getLogger(__name__)


class ChallengeOutcome(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


def detect_blink(frames: Sequence[FrameSample], open_conf: float = 0.6, closed_conf: float = 0.3) -> bool:
    """Open -> dip -> open across three consecutive real frames.

    A blink briefly drags the classifier confidence down while the face stays
    classified as real, so the middle sample sits below ``closed_conf`` and is
    flanked by samples above ``open_conf``.
    """
    if len(frames) < 3:
        return False
    before, dip, after = frames[-3], frames[-2], frames[-1]
    if before.is_spoof or dip.is_spoof or after.is_spoof:
        return False
    return before.confidence > open_conf and after.confidence > open_conf and dip.confidence < closed_conf


class LivenessChallenge:
    """Bounded window in which a blink must be seen."""

    def __init__(self, settings: ChallengeSettings):
        self.settings = settings
        self.active = False
        self.frames_elapsed = 0
        self.signal_detected = False

    def start(self) -> bool:
        if self.active:
            return False
        self.active = True
        self.frames_elapsed = 0
        self.signal_detected = False
        logger.debug("liveness challenge started")
        return True

    def step(self, history: FrameHistory) -> ChallengeOutcome:
        if not self.active:
            return ChallengeOutcome.PENDING
        self.frames_elapsed += 1
        s = self.settings
        if detect_blink(history.last(3), s.blink_open_confidence, s.blink_closed_confidence):
            self.signal_detected = True
            self.active = False
            logger.debug("blink seen after %d frames", self.frames_elapsed)
            return ChallengeOutcome.CONFIRMED
        if self.frames_elapsed >= s.duration_frames:
            self.active = False
            logger.warning("liveness challenge expired after %d frames", self.frames_elapsed)
            return ChallengeOutcome.FAILED
        return ChallengeOutcome.PENDING

    def reset(self) -> None:
        self.active = False
        self.frames_elapsed = 0
        self.signal_detected = False
