"""Face movement statistics over recent frames.

A printed photo or a replayed video held in front of the camera tends to
either not move at all or to jump around; a live face drifts a little. The
analyzer tracks face-box centre and size over a short window and reports
whether that drift falls inside the band expected for the active scenario.
It is advisory: the decision engine never changes its verdict because of it.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np

from liveness_kiosk.models.base import FaceBox


logger = logging.getLogger(__name__)


class MovementBounds(NamedTuple):
    min_position: float
    max_position: float
    min_size: float
    max_size: float
    min_frames: int


# (liveness not yet verified, liveness verified)
SCENARIO_BOUNDS: Dict[str, Tuple[MovementBounds, MovementBounds]] = {
    "registration": (
        MovementBounds(0.00003, 0.12, 0.00003, 0.10, 3),
        MovementBounds(0.00001, 0.15, 0.00001, 0.12, 2),
    ),
    "verification": (
        MovementBounds(0.00005, 0.10, 0.00005, 0.08, 4),
        MovementBounds(0.00002, 0.12, 0.00002, 0.10, 3),
    ),
    "security_check": (
        MovementBounds(0.0001, 0.08, 0.0001, 0.06, 5),
        MovementBounds(0.00005, 0.10, 0.00005, 0.08, 4),
    ),
}
DEFAULT_BOUNDS = MovementBounds(0.00005, 0.10, 0.00005, 0.08, 3)
# Once liveness is verified, drift up to this factor above the ceiling is tolerated
VERIFIED_SLACK = 1.5


@dataclass(frozen=True)
class MovementReport:
    natural_movement: bool
    position_variance: float
    size_variance: float
    confidence_variance: float
    enough_history: bool

    def to_dict(self) -> dict:
        return {
            "natural_movement": self.natural_movement,
            "position_variance": self.position_variance,
            "size_variance": self.size_variance,
            "confidence_variance": self.confidence_variance,
            "enough_history": self.enough_history,
        }


class MovementAnalyzer:
    def __init__(self, scenario: str = "verification", capacity: int = 12):
        self.scenario = scenario
        self._boxes: deque = deque(maxlen=capacity)
        self._confidences: deque = deque(maxlen=capacity)

    def add(self, box: FaceBox, confidence: float) -> None:
        if box.w <= 0 or box.h <= 0:
            return
        self._boxes.append(box)
        self._confidences.append(float(confidence))

    def clear(self) -> None:
        self._boxes.clear()
        self._confidences.clear()

    def __len__(self) -> int:
        return len(self._boxes)

    def bounds(self, liveness_verified: bool) -> MovementBounds:
        pair = SCENARIO_BOUNDS.get(self.scenario)
        if pair is None:
            return DEFAULT_BOUNDS
        return pair[1] if liveness_verified else pair[0]

    def position_variance(self) -> float:
        if len(self._boxes) < 2:
            return 0.01
        centers = np.array([b.center for b in self._boxes], dtype=np.float64)
        last = self._boxes[-1]
        size = max(last.w, last.h)
        var = centers.var(axis=0) / (size * size)
        return float(var.mean())

    def size_variance(self) -> float:
        if len(self._boxes) < 2:
            return 0.005
        dims = np.array([(b.w, b.h) for b in self._boxes], dtype=np.float64)
        last = self._boxes[-1]
        var = dims.var(axis=0) / np.array([last.w * last.w, last.h * last.h])
        return float(var.mean())

    def confidence_variance(self) -> float:
        if len(self._confidences) < 2:
            return 0.01
        return float(np.var(np.asarray(self._confidences, dtype=np.float64)))

    def analyze(self, liveness_verified: bool = False) -> MovementReport:
        b = self.bounds(liveness_verified)
        if len(self._boxes) < b.min_frames:
            # Too little data: assume natural
            return MovementReport(True, 0.01, 0.005, 0.01, False)

        pos = self.position_variance()
        size = self.size_variance()
        natural = b.min_position <= pos <= b.max_position and b.min_size <= size <= b.max_size
        if liveness_verified and not natural:
            if pos <= b.max_position * VERIFIED_SLACK and size <= b.max_size * VERIFIED_SLACK:
                natural = True
        logger.debug(
            "movement (%s): pos=%.5f size=%.5f natural=%s verified=%s",
            self.scenario, pos, size, natural, liveness_verified,
        )
        return MovementReport(natural, pos, size, self.confidence_variance(), True)

    def insights(self, liveness_verified: bool = False, report: Optional[MovementReport] = None) -> List[str]:
        r = report or self.analyze(liveness_verified)
        if not r.enough_history:
            return ["Insufficient movement data"]
        out: List[str] = []
        b = self.bounds(liveness_verified)
        if r.natural_movement:
            out.append("Natural face movement detected")
        else:
            if r.position_variance < b.min_position:
                out.append("Face position too stable, may indicate a photo")
            elif r.position_variance > b.max_position:
                out.append("Excessive face movement detected")
            if r.size_variance < b.min_size:
                out.append("Face size too stable, may indicate a photo")
            elif r.size_variance > b.max_size:
                out.append("Excessive face size changes detected")
        if r.confidence_variance < 0.01:
            out.append("Stable detection confidence")
        elif r.confidence_variance > 0.05:
            out.append("Unstable detection confidence")
        return out
