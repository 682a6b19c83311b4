from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Optional

from liveness_kiosk.app.utils import now_ts


@dataclass(frozen=True)
class FaceBox:
    x: float
    y: float
    w: float
    h: float

    @property
    def center(self):
        return self.x + self.w / 2.0, self.y + self.h / 2.0


@dataclass(frozen=True)
class Evidence:
    """One frame's classifier output."""

    confidence: float
    is_spoof: bool
    timestamp: float = field(default_factory=now_ts)
    face_box: Optional[FaceBox] = None


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    VERY_LOW = "VERY_LOW"


class DecisionReason(str, Enum):
    LIVENESS_REQUIRED = "LIVENESS_REQUIRED"
    CHALLENGE_PENDING = "CHALLENGE_PENDING"
    LIVENESS_CONFIRMED = "LIVENESS_CONFIRMED"
    LIVENESS_FAILED = "LIVENESS_FAILED"
    HIGH_SUSPICION = "HIGH_SUSPICION"
    SUSPICIOUS = "SUSPICIOUS"
    REAL_FACE = "REAL_FACE"
    HOLD_STEADY = "HOLD_STEADY"


@dataclass(frozen=True)
class DecisionResult:
    is_spoof: bool
    confidence: float
    confidence_level: ConfidenceLevel
    explanation: str
    should_proceed: bool
    trigger_challenge: bool
    reason: DecisionReason
    suspicion: int = 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["confidence_level"] = self.confidence_level.value
        d["reason"] = self.reason.value
        return d


EvidenceCallback = Callable[[Evidence], None]


class EvidenceSource:
    """Per-frame spoof classifier. Calls back exactly once per submitted frame."""

    def analyze(self, frame: Any, face_box: Optional[FaceBox], callback: EvidenceCallback) -> None:
        raise NotImplementedError
