"""Temporal filters for per-frame facial features."""

from __future__ import annotations

import statistics
from collections import deque


class MedianFilter:
    """Fixed-size sliding median; suppresses single-frame jitter."""

    def __init__(self, window: int = 5) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self._values: deque[float] = deque(maxlen=window)

    def update(self, value: float) -> float:
        self._values.append(value)
        return statistics.median(self._values)

    def reset(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)


class ExponentialMovingAverage:
    """EMA with a fixed smoothing factor.

    Higher ``alpha`` tracks the input more closely; lower ``alpha`` is
    steadier.  The first sample seeds the average.
    """

    def __init__(self, alpha: float) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        self.alpha = alpha
        self._value: float | None = None

    def update(self, value: float) -> float:
        if self._value is None:
            self._value = value
        else:
            self._value = self.alpha * value + (1 - self.alpha) * self._value
        return self._value

    @property
    def value(self) -> float | None:
        return self._value

    def reset(self) -> None:
        self._value = None
