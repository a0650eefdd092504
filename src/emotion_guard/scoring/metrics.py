"""Signal primitives shared by the analyzers and baseline calibration.

Each helper returns ``None`` when there is nothing to measure so callers
can tell "not run" apart from "measured as zero".
"""

from __future__ import annotations

import math
import statistics
from typing import Sequence

from emotion_guard.models import AssessmentSignals, CognitiveTrial


def variance(values: Sequence[float]) -> float:
    """Population variance; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return statistics.pvariance(values)


def completed_trials(signals: AssessmentSignals) -> list[CognitiveTrial]:
    """Trials with a usable, positive reaction time."""
    return [
        t
        for t in signals.cognitive_trials or []
        if math.isfinite(t.reaction_time_ms) and t.reaction_time_ms > 0
    ]


def mouse_stability(movements: Sequence[float]) -> float | None:
    """Smoothness 0-1: one minus the average absolute step, per 100 px."""
    if not movements:
        return None
    if len(movements) < 2:
        return 1.0
    steps = [abs(b - a) for a, b in zip(movements, movements[1:])]
    return max(0.0, 1.0 - statistics.fmean(steps) / 100)


def keystroke_rhythm(intervals: Sequence[float]) -> float | None:
    """Consistency 0-1: one minus the coefficient of variation of intervals."""
    if not intervals:
        return None
    if len(intervals) < 2:
        return 1.0
    mean = statistics.fmean(intervals)
    if mean <= 0:
        return None
    cv = math.sqrt(variance(intervals)) / mean
    return max(0.0, 1.0 - cv)
