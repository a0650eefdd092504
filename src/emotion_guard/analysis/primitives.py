"""Local biometric and cognitive primitives for AI-assisted analysis.

All values are normalised to 0-1.  Short inputs return neutral defaults
rather than raising.
"""

from __future__ import annotations

import math
import statistics
from typing import Sequence

from emotion_guard.analysis.models import BiometricPattern, CognitiveProfile
from emotion_guard.models import AssessmentSignals
from emotion_guard.scoring.metrics import completed_trials, variance

_NEUTRAL = 0.5

_MIN_MOUSE_SAMPLES = 5
_MIN_KEYSTROKES = 3
_MIN_TREMOR_SAMPLES = 10
_TREMOR_HALF_WINDOW = 3
_TREMOR_LOCAL_VARIANCE = 5.0


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def mouse_stability_cv(movements: Sequence[float]) -> float:
    """Stability from the coefficient of variation of mouse samples."""
    if len(movements) < _MIN_MOUSE_SAMPLES:
        return _NEUTRAL
    mean = statistics.fmean(movements)
    std = math.sqrt(variance(movements))
    if mean == 0:
        return 1.0 if std == 0 else 0.0
    return _clamp01(1 - (std / abs(mean)) / 2)


def keystroke_rhythm_score(intervals: Sequence[float]) -> float:
    """1 / (1 + var/1000) over inter-key intervals."""
    if len(intervals) < _MIN_KEYSTROKES:
        return _NEUTRAL
    return _clamp01(1 / (1 + variance(intervals) / 1000))


def velocity_variance(movements: Sequence[float]) -> float:
    """Variance of absolute step sizes, per 100."""
    if len(movements) < _MIN_MOUSE_SAMPLES:
        return _NEUTRAL
    velocities = [abs(b - a) for a, b in zip(movements, movements[1:])]
    return _clamp01(variance(velocities) / 100)


def micro_tremors(movements: Sequence[float]) -> float:
    """Share of 7-sample windows whose local variance exceeds the tremor limit."""
    if len(movements) < _MIN_TREMOR_SAMPLES:
        return 0.0
    w = _TREMOR_HALF_WINDOW
    centres = range(w, len(movements) - w)
    tremors = sum(
        1 for i in centres if statistics.pvariance(movements[i - w : i + w + 1]) > _TREMOR_LOCAL_VARIANCE
    )
    return _clamp01(tremors / (len(movements) - 2 * w))


def biometric_pattern(signals: AssessmentSignals) -> BiometricPattern:
    movements = signals.mouse_movements or []
    return BiometricPattern(
        mouse_stability=mouse_stability_cv(movements),
        keystroke_rhythm=keystroke_rhythm_score(signals.keystroke_timings or []),
        velocity_variance=velocity_variance(movements),
        micro_tremors=micro_tremors(movements),
    )


def cognitive_profile(signals: AssessmentSignals) -> CognitiveProfile:
    trials = completed_trials(signals)
    if not trials:
        return CognitiveProfile()

    reaction_times = [t.reaction_time_ms for t in trials]
    mean_rt = statistics.fmean(reaction_times)
    accuracy = sum(1 for t in trials if t.correct) / len(trials)
    consistency = _clamp01(1 - variance(reaction_times) / 1_000_000)
    return CognitiveProfile(
        reaction_speed=_clamp01(1 - (mean_rt - 500) / 2000),
        accuracy=accuracy,
        consistency=consistency,
        attention_stability=accuracy * 0.6 + consistency * 0.4,
    )
