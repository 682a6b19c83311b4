from .history import FrameHistory, FrameSample
from .suspicion import SuspicionScorer
from .challenge import ChallengeOutcome, LivenessChallenge, detect_blink
from .movement import MovementAnalyzer, MovementReport
from .decision import DecisionEngine

__all__ = [
    "FrameHistory",
    "FrameSample",
    "SuspicionScorer",
    "ChallengeOutcome",
    "LivenessChallenge",
    "detect_blink",
    "MovementAnalyzer",
    "MovementReport",
    "DecisionEngine",
]
