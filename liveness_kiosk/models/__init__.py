from .base import (
    FaceBox,
    Evidence,
    ConfidenceLevel,
    DecisionReason,
    DecisionResult,
    EvidenceCallback,
    EvidenceSource,
)

__all__ = [
    "FaceBox",
    "Evidence",
    "ConfidenceLevel",
    "DecisionReason",
    "DecisionResult",
    "EvidenceCallback",
    "EvidenceSource",
]
