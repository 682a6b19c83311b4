import math
import time
from typing import Iterable
import numpy as np


def now_ts() -> float:
    return time.time()


def clamp01(x: float) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(v):
        return 0.0
    return min(1.0, max(0.0, v))


def confidence_variance(values: Iterable[float]) -> float:
    """Population variance; fewer than two samples reads as 0.0."""
    arr = np.fromiter(values, dtype=np.float64)
    if arr.size < 2:
        return 0.0
    return float(arr.var())
