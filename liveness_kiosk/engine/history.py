from collections import deque
from dataclasses import dataclass
from typing import List

from liveness_kiosk.app.utils import confidence_variance


@dataclass(frozen=True)
class FrameSample:
    confidence: float
    is_spoof: bool


class FrameHistory:
    """Rolling window of recent (possibly bonus-adjusted) frames."""

    def __init__(self, capacity: int = 15):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._frames: deque = deque(maxlen=self.capacity)

    def push(self, confidence: float, is_spoof: bool) -> None:
        self._frames.append(FrameSample(confidence, is_spoof))

    def last(self, n: int) -> List[FrameSample]:
        if n <= 0:
            return []
        return list(self._frames)[-n:]

    def variance(self) -> float:
        return confidence_variance(f.confidence for f in self._frames)

    @property
    def full(self) -> bool:
        return len(self._frames) >= self.capacity

    def clear(self) -> None:
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self):
        return iter(list(self._frames))
