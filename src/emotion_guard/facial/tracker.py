"""Facial tracking session — per-frame smoothing, blinks, watchdog.

A :class:`FacialTrackingSession` owns every rolling buffer for one
camera session (median window, per-metric EMAs, blink history).  Nothing
is shared across sessions and :meth:`FacialTrackingSession.stop` discards
all of it.

The async :meth:`FacialTrackingSession.run` loop consumes frames from an
:class:`asyncio.Queue`.  When no frame arrives within the watchdog
timeout it fails over to a degraded simulated stream that reports "face
not present", apart from a small configurable presence chance.  Absent
faces score zero, so a stalled camera can never manufacture risk.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Sequence

import structlog
from pydantic import BaseModel

from emotion_guard.config import Settings, get_settings
from emotion_guard.facial.blink import BlinkDetector
from emotion_guard.facial.filters import ExponentialMovingAverage, MedianFilter
from emotion_guard.facial.landmarks import (
    Point,
    average_eye_aspect_ratio,
    brow_furrow,
    eye_centre,
    gaze_stability,
    has_required_landmarks,
    jaw_openness,
)
from emotion_guard.models import BlinkEvent, FaceMetrics
from emotion_guard.scoring.analyzers import (
    FACE_BLINK_RATE_HIGH,
    FACE_BLINK_RATE_LOW,
    FACE_BROW_FURROW_LIMIT,
    FACE_EAR_FATIGUE,
    FACE_GAZE_STABILITY_FLOOR,
    FACE_JAW_TENSION,
)

logger = structlog.get_logger(__name__)

# ── Smoothing ─────────────────────────────────────────────────

MEDIAN_WINDOW = 5

# EAR tracks closely for responsiveness; gaze is held steadier.
EMA_ALPHAS = {
    "eye_aspect_ratio": 0.6,
    "jaw_openness": 0.4,
    "brow_furrow": 0.4,
    "gaze_stability": 0.2,
}

_FPS_WINDOW = 30

# Simulated readings stay strictly inside the analyzer's neutral band.
_SIMULATED_RANGES = {
    "blink_rate": (FACE_BLINK_RATE_LOW + 4, FACE_BLINK_RATE_HIGH - 2),
    "eye_aspect_ratio": (FACE_EAR_FATIGUE + 0.1, FACE_EAR_FATIGUE + 0.15),
    "jaw_openness": (0.0, FACE_JAW_TENSION / 2),
    "brow_furrow": (0.1, FACE_BROW_FURROW_LIMIT - 0.1),
    "gaze_stability": (FACE_GAZE_STABILITY_FLOOR + 0.1, FACE_GAZE_STABILITY_FLOOR + 0.3),
}

MetricsCallback = Callable[[FaceMetrics], None]


@dataclass(frozen=True, slots=True)
class FaceFrame:
    """One camera frame's landmarks; ``landmarks=None`` means no face found."""

    landmarks: Sequence[Point] | None
    timestamp: float | None = None


class FrameTelemetry(BaseModel):
    fps: float = 0.0
    latency_ms: float = 0.0
    frames_processed: int = 0
    simulated_frames: int = 0
    degraded: bool = False


class FacialTrackingSession:
    """Smoothed facial metrics and blink events for one tracking session.

    Parameters
    ----------
    settings : Settings | None
        Source of watchdog / fallback / blink-window configuration.
    rng : random.Random | None
        Randomness for the degraded stream's presence chance.  Inject a
        seeded instance for deterministic behaviour.
    clock : Callable[[], float]
        Monotonic clock in seconds, used when frames carry no timestamp.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        blink_detector: BlinkDetector | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._watchdog_timeout = settings.face_watchdog_timeout_seconds
        self._fallback_interval = settings.face_fallback_interval_seconds
        self._presence_chance = settings.face_fallback_presence_chance
        self._rng = rng or random.Random()
        self._clock = clock

        self._median = MedianFilter(MEDIAN_WINDOW)
        self._emas = {name: ExponentialMovingAverage(alpha) for name, alpha in EMA_ALPHAS.items()}
        self._blink = blink_detector or BlinkDetector(
            history_seconds=settings.blink_history_seconds,
            window_seconds=settings.blink_window_seconds,
        )
        self._last_eye_centre: tuple[float, float] | None = None

        self._latest = FaceMetrics.not_present()
        self._frame_times: deque[float] = deque(maxlen=_FPS_WINDOW)
        self._telemetry = FrameTelemetry()
        self._subscribers: list[MetricsCallback] = []
        self._running = False

    # ── Accessors ─────────────────────────────────────────────

    @property
    def latest_metrics(self) -> FaceMetrics:
        return self._latest

    @property
    def telemetry(self) -> FrameTelemetry:
        return self._telemetry.model_copy()

    @property
    def degraded(self) -> bool:
        return self._telemetry.degraded

    @property
    def running(self) -> bool:
        return self._running

    def blink_history(self) -> list[BlinkEvent]:
        return self._blink.history()

    def clear_blink_history(self) -> None:
        self._blink.clear_history()

    # ── Subscribers ───────────────────────────────────────────

    def subscribe(self, callback: MetricsCallback) -> Callable[[], None]:
        """Register *callback* for every emitted metrics frame.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _emit(self, metrics: FaceMetrics) -> None:
        self._latest = metrics
        for callback in list(self._subscribers):
            try:
                callback(metrics)
            except Exception as exc:
                logger.error(
                    "facial.subscriber_error",
                    subscriber=getattr(callback, "__qualname__", repr(callback)),
                    error=str(exc),
                )

    # ── Frame processing ──────────────────────────────────────

    def process_frame(self, landmarks: Sequence[Point] | None, timestamp: float | None = None) -> FaceMetrics:
        """Smooth one frame into :class:`FaceMetrics` and notify subscribers."""
        started = time.perf_counter()
        now = self._clock() if timestamp is None else timestamp

        if not has_required_landmarks(landmarks):
            if landmarks:
                logger.warning("facial.incomplete_landmarks", count=len(landmarks))
            # A face lost mid-blink must not complete that blink later.
            self._blink.abort()
            self._median.reset()
            self._last_eye_centre = None
            metrics = FaceMetrics.not_present(timestamp=now)
        else:
            ear = self._median.update(average_eye_aspect_ratio(landmarks))
            event = self._blink.update(ear, now)
            if event is not None:
                logger.debug("facial.blink", duration_ms=event.duration_ms)

            centre = eye_centre(landmarks)
            raw_gaze = gaze_stability(self._last_eye_centre, centre)
            self._last_eye_centre = centre

            metrics = FaceMetrics(
                is_present=True,
                blink_rate=self._blink.rate(now),
                eye_aspect_ratio=self._emas["eye_aspect_ratio"].update(ear),
                jaw_openness=self._emas["jaw_openness"].update(jaw_openness(landmarks)),
                brow_furrow=self._emas["brow_furrow"].update(brow_furrow(landmarks)),
                gaze_stability=self._emas["gaze_stability"].update(raw_gaze),
                timestamp=now,
            )

        self._record_frame(now, started)
        self._emit(metrics)
        return metrics

    def _record_frame(self, now: float, started: float) -> None:
        self._frame_times.append(now)
        fps = 0.0
        if len(self._frame_times) >= 2:
            span = self._frame_times[-1] - self._frame_times[0]
            if span > 0:
                fps = (len(self._frame_times) - 1) / span
        self._telemetry = self._telemetry.model_copy(
            update={
                "fps": round(fps, 2),
                "latency_ms": round((time.perf_counter() - started) * 1000, 3),
                "frames_processed": self._telemetry.frames_processed + 1,
            }
        )

    # ── Degraded stream ───────────────────────────────────────

    def simulated_metrics(self) -> FaceMetrics:
        """One degraded-mode reading: not present unless the presence roll hits."""
        now = self._clock()
        if self._rng.random() >= self._presence_chance:
            return FaceMetrics.not_present(timestamp=now)
        values = {name: lo + self._rng.random() * (hi - lo) for name, (lo, hi) in _SIMULATED_RANGES.items()}
        return FaceMetrics(is_present=True, timestamp=now, **values)

    def _set_degraded(self, degraded: bool) -> None:
        if degraded == self._telemetry.degraded:
            return
        self._telemetry = self._telemetry.model_copy(update={"degraded": degraded})
        if degraded:
            logger.warning("facial.watchdog_failover", timeout_seconds=self._watchdog_timeout)
        else:
            logger.info("facial.stream_recovered")

    def _emit_simulated(self) -> None:
        self._telemetry = self._telemetry.model_copy(
            update={"simulated_frames": self._telemetry.simulated_frames + 1}
        )
        self._emit(self.simulated_metrics())

    # ── Async loop ────────────────────────────────────────────

    async def run(self, frames: asyncio.Queue[FaceFrame | None]) -> None:
        """Consume frames until :meth:`stop` is called or ``None`` is received."""
        self._running = True
        logger.info("facial.session_started", watchdog_timeout=self._watchdog_timeout)

        while self._running:
            timeout = self._fallback_interval if self.degraded else self._watchdog_timeout
            try:
                frame = await asyncio.wait_for(frames.get(), timeout=timeout)
            except asyncio.TimeoutError:
                if not self._running:
                    break
                self._set_degraded(True)
                self._emit_simulated()
                continue

            frames.task_done()
            if frame is None:
                break
            self._set_degraded(False)
            self.process_frame(frame.landmarks, frame.timestamp)

        self._running = False
        logger.info("facial.session_ended", frames_processed=self._telemetry.frames_processed)

    def stop(self) -> None:
        """Stop the loop and discard all filter state."""
        self._running = False
        self._median.reset()
        for ema in self._emas.values():
            ema.reset()
        self._blink.reset()
        self._last_eye_centre = None
        self._frame_times.clear()
        self._latest = FaceMetrics.not_present()
        self._telemetry = FrameTelemetry()
        logger.info("facial.session_stopped")
