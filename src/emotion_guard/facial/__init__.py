"""Facial temporal filtering: landmark geometry, smoothing and blink detection."""

from emotion_guard.facial.blink import BlinkDetector, BlinkState
from emotion_guard.facial.filters import ExponentialMovingAverage, MedianFilter
from emotion_guard.facial.tracker import FaceFrame, FacialTrackingSession, FrameTelemetry

__all__ = [
    "BlinkDetector",
    "BlinkState",
    "ExponentialMovingAverage",
    "FaceFrame",
    "FacialTrackingSession",
    "FrameTelemetry",
    "MedianFilter",
]
