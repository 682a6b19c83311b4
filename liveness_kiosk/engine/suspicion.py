import logging

from liveness_kiosk.app.config import SuspicionSettings
from .history import FrameHistory


logger = logging.getLogger(__name__)


class SuspicionScorer:
    """Integer distrust accumulator: rises fast on bad evidence, decays slowly."""

    def __init__(self, settings: SuspicionSettings, low_confidence: float):
        self.settings = settings
        self.low_confidence = float(low_confidence)
        self.level = 0

    def update(self, is_spoof: bool, confidence: float, history: FrameHistory) -> int:
        s = self.settings
        before = self.level
        if is_spoof:
            self.level += s.spoof_step
        elif confidence < self.low_confidence:
            self.level += s.low_confidence_step
        else:
            self.level = max(0, self.level - s.decay_step)

        if self.abnormal_variance(history):
            self.level += s.variance_penalty

        if self.level != before:
            logger.debug("suspicion %d -> %d", before, self.level)
        return self.level

    def abnormal_variance(self, history: FrameHistory) -> bool:
        # Only judged on a full window; warm-up frames never count as abnormal
        if not history.full:
            return False
        var = history.variance()
        return var < self.settings.min_variance or var > self.settings.max_variance

    def reset(self) -> None:
        self.level = 0
