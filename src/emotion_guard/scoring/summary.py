"""0-1 summary scores stored with an assessment for reporting.

These are coarse indicators for dashboards; they do not feed the risk
score.
"""

from __future__ import annotations

import math

from emotion_guard.models import (
    AssessmentSignals,
    FaceMetrics,
    FacialExpressionFeatures,
    VoiceProsodyFeatures,
)
from emotion_guard.scoring.analyzers import FACE_EAR_FATIGUE

_QUICK_CHECK_BASE_MS = 1000
_QUICK_CHECK_PER_MOUSE_SAMPLE_MS = 10


def _gt(value: float | None, limit: float) -> bool:
    return value is not None and math.isfinite(value) and value > limit


def _lt(value: float | None, limit: float) -> bool:
    return value is not None and math.isfinite(value) and value < limit


def voice_prosody_score(features: VoiceProsodyFeatures | None) -> float:
    if features is None:
        return 0.0
    score = (
        (0.3 if _gt(features.pitch, 200) else 0.0)
        + (0.25 if _gt(features.jitter, 0.01) else 0.0)
        + (0.25 if _gt(features.shimmer, 0.05) else 0.0)
        + (0.2 if _lt(features.energy, 0.5) else 0.0)
    )
    return min(1.0, round(score, 4))


def facial_expression_score(features: FacialExpressionFeatures | FaceMetrics | None) -> float:
    """Score landmark metrics or legacy coarse features; 0 when no face."""
    if features is None:
        return 0.0

    if isinstance(features, FaceMetrics):
        if not features.is_present:
            return 0.0
        if _gt(features.brow_furrow, 0.6):
            brow = 0.35
        elif _gt(features.brow_furrow, 0.3):
            brow = 0.15
        else:
            brow = 0.0
        if _lt(features.gaze_stability, 0.5):
            gaze = 0.25
        elif _lt(features.gaze_stability, 0.7):
            gaze = 0.1
        else:
            gaze = 0.0
        score = (
            (0.3 if _lt(features.blink_rate, 8) or _gt(features.blink_rate, 25) else 0.0)
            + brow
            + gaze
            + (0.2 if _lt(features.eye_aspect_ratio, FACE_EAR_FATIGUE) else 0.0)
            + (0.1 if _gt(features.jaw_openness, 0.7) else 0.0)
        )
        return min(1.0, round(score, 4))

    score = (
        (0.4 if _gt(features.brow_furrow, 0.5) else 0.0)
        + (0.3 if _gt(features.blink_rate, 20) else 0.0)
        + (0.3 if _lt(features.gaze_fixation, 0.3) else 0.0)
    )
    return min(1.0, round(score, 4))


def quick_check_duration_ms(signals: AssessmentSignals) -> int:
    """Rough time spent on the quick check: base + mouse samples + typing."""
    mouse = len(signals.mouse_movements or []) * _QUICK_CHECK_PER_MOUSE_SAMPLE_MS
    typing = sum(signals.keystroke_timings or [])
    return int(_QUICK_CHECK_BASE_MS + mouse + typing)


def summarize(signals: AssessmentSignals) -> dict[str, float | int | None]:
    """Summary fields for an assessment record."""
    facial_source = signals.facial_metrics or signals.facial_expression_features
    return {
        "quick_check_duration_ms": quick_check_duration_ms(signals),
        "voice_prosody_score": (
            voice_prosody_score(signals.voice_prosody_features)
            if signals.voice_prosody_features is not None
            else None
        ),
        "facial_expression_score": (
            facial_expression_score(facial_source) if facial_source is not None else None
        ),
    }
