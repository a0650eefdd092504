"""Hysteresis blink detector.

Two states, ``OPEN`` and ``CLOSING``.  The eye must fall below
``close_threshold`` to start a blink and rise to ``open_threshold`` to end
it; values in between never change state.  A completed blink is recorded
only if its duration lies within ``[min_duration_ms, max_duration_ms]``.
"""

from __future__ import annotations

from collections import deque
from enum import Enum

import structlog

from emotion_guard.models import BlinkEvent

logger = structlog.get_logger(__name__)

DEFAULT_CLOSE_THRESHOLD = 0.20
DEFAULT_OPEN_THRESHOLD = 0.25
MIN_BLINK_MS = 50.0
MAX_BLINK_MS = 500.0


class BlinkState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"


class BlinkDetector:
    """Turn a filtered EAR stream into discrete :class:`BlinkEvent` records.

    Parameters
    ----------
    close_threshold, open_threshold : float
        Hysteresis band; ``close_threshold`` must be below ``open_threshold``.
    history_seconds : float
        Blink events older than this are pruned on every update.
    window_seconds : float
        Trailing window used by :meth:`rate`.
    """

    def __init__(
        self,
        close_threshold: float = DEFAULT_CLOSE_THRESHOLD,
        open_threshold: float = DEFAULT_OPEN_THRESHOLD,
        *,
        min_duration_ms: float = MIN_BLINK_MS,
        max_duration_ms: float = MAX_BLINK_MS,
        history_seconds: float = 120.0,
        window_seconds: float = 60.0,
    ) -> None:
        if close_threshold >= open_threshold:
            raise ValueError("close_threshold must be below open_threshold")
        self.close_threshold = close_threshold
        self.open_threshold = open_threshold
        self.min_duration_ms = min_duration_ms
        self.max_duration_ms = max_duration_ms
        self.history_seconds = history_seconds
        self.window_seconds = window_seconds

        self._state = BlinkState.OPEN
        self._closed_at: float | None = None
        self._events: deque[BlinkEvent] = deque()

    @property
    def state(self) -> BlinkState:
        return self._state

    def update(self, ear: float, timestamp: float) -> BlinkEvent | None:
        """Feed one filtered EAR sample (``timestamp`` in seconds).

        Returns the recorded event when this sample completes a valid
        blink, otherwise ``None``.
        """
        event: BlinkEvent | None = None

        if self._state is BlinkState.OPEN:
            if ear < self.close_threshold:
                self._state = BlinkState.CLOSING
                self._closed_at = timestamp
        elif ear >= self.open_threshold:
            duration_ms = (timestamp - self._closed_at) * 1000.0
            self._state = BlinkState.OPEN
            self._closed_at = None
            if self.min_duration_ms <= duration_ms <= self.max_duration_ms:
                event = BlinkEvent(timestamp=timestamp, duration_ms=round(duration_ms, 2))
                self._events.append(event)
            else:
                logger.debug("blink.discarded", duration_ms=round(duration_ms, 2))

        self._prune(timestamp)
        return event

    def rate(self, now: float) -> float:
        """Blinks per minute over the trailing window ending at *now*."""
        cutoff = now - self.window_seconds
        count = sum(1 for e in self._events if e.timestamp > cutoff)
        return count * 60.0 / self.window_seconds

    def history(self) -> list[BlinkEvent]:
        return list(self._events)

    def clear_history(self) -> None:
        self._events.clear()

    def abort(self) -> None:
        """Drop an in-progress blink without touching history."""
        self._state = BlinkState.OPEN
        self._closed_at = None

    def reset(self) -> None:
        self.abort()
        self.clear_history()

    def _prune(self, now: float) -> None:
        cutoff = now - self.history_seconds
        while self._events and self._events[0].timestamp <= cutoff:
            self._events.popleft()
