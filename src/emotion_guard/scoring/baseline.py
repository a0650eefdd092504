"""Baseline comparison and calibration.

Key responsibilities
--------------------
1. **Deviation** — turn a raw metric and an optional personalised
   mean / standard deviation into a discrete risk band.  With a baseline
   the band comes from a directional z-score; without one, from fixed
   population thresholds.
2. **Calibration** — fold a calibration session into a user's baseline
   via EWMA, tracking calibration maturity.

Neither function raises: missing data yields "no evidence".
"""

from __future__ import annotations

import math
import statistics
from datetime import datetime

import structlog

from emotion_guard.models import AssessmentSignals, UserBaseline
from emotion_guard.scoring.metrics import completed_trials, keystroke_rhythm, mouse_stability
from emotion_guard.scoring.models import (
    Deviation,
    DeviationBand,
    PopulationThresholds,
    RiskDirection,
)

logger = structlog.get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────

EPSILON = 1e-6

Z_MODERATE = 1.0
Z_HIGH = 2.0

# Confidence attached to the evidence source
_BASELINE_CONFIDENCE = 1.0
_POPULATION_CONFIDENCE = 0.6

_BAND_SCORE = {
    DeviationBand.NONE: 0,
    DeviationBand.MODERATE: 1,
    DeviationBand.HIGH: 2,
}


# ── Comparator ───────────────────────────────────────────────


def _is_number(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def _directional(value: float, direction: RiskDirection) -> float:
    """Orient *value* so that larger always means riskier."""
    if direction is RiskDirection.LOWER:
        return -value
    if direction is RiskDirection.EITHER:
        return abs(value)
    return value


def _band_from_population(raw: float, population: PopulationThresholds) -> DeviationBand:
    if population.direction is RiskDirection.LOWER:
        breached = lambda limit: raw < limit  # noqa: E731
    else:
        breached = lambda limit: raw > limit  # noqa: E731

    if population.high is not None and breached(population.high):
        return DeviationBand.HIGH
    if population.moderate is not None and breached(population.moderate):
        return DeviationBand.MODERATE
    return DeviationBand.NONE


def compare_to_baseline(
    raw: float | None,
    *,
    mean: float | None = None,
    std_dev: float | None = None,
    direction: RiskDirection = RiskDirection.HIGHER,
    population: PopulationThresholds | None = None,
    z_moderate: float = Z_MODERATE,
    z_high: float = Z_HIGH,
) -> Deviation:
    """Compare *raw* against a personalised baseline or population thresholds.

    Parameters
    ----------
    raw : float | None
        Observed value for this assessment.
    mean, std_dev : float | None
        Personalised baseline statistics.  ``std_dev`` is floored at
        :data:`EPSILON`.
    direction : RiskDirection
        Which side of the baseline mean carries risk.
    population : PopulationThresholds | None
        Fixed cut-offs used when ``mean`` is unavailable.

    Returns
    -------
    Deviation
        ``band`` / ``score`` 0-2.  Missing data yields score 0 with
        confidence 0.
    """
    if not _is_number(raw):
        return Deviation()

    if _is_number(mean):
        sigma = max(std_dev if _is_number(std_dev) else 0.0, EPSILON)
        z = (raw - mean) / sigma
        oriented = _directional(z, direction)
        if oriented > z_high:
            band = DeviationBand.HIGH
        elif oriented > z_moderate:
            band = DeviationBand.MODERATE
        else:
            band = DeviationBand.NONE
        return Deviation(
            band=band,
            source="baseline",
            z_score=round(z, 4),
            score=_BAND_SCORE[band],
            confidence=_BASELINE_CONFIDENCE,
        )

    if population is None:
        return Deviation()

    band = _band_from_population(raw, population)
    return Deviation(
        band=band,
        source="population",
        score=_BAND_SCORE[band],
        confidence=_POPULATION_CONFIDENCE,
    )


# ── Calibration ──────────────────────────────────────────────


def calibrate_baseline(
    baseline: UserBaseline | None,
    signals: AssessmentSignals,
    alpha: float = 0.3,
    *,
    user_id: str | None = None,
) -> UserBaseline:
    """Update a personalised baseline via EWMA from one calibration session.

    Only fields with valid session data are updated.  A new baseline is
    created when *baseline* is ``None`` (``user_id`` is then required).
    ``calibration_count`` is incremented to track calibration maturity.
    """
    if baseline is None:
        if user_id is None:
            raise ValueError("user_id is required to create a new baseline")
        baseline = UserBaseline(user_id=user_id)

    def _ewma(old: float | None, new: float | None) -> float | None:
        if new is None:
            return old
        if old is None:
            return new
        return alpha * new + (1 - alpha) * old

    def _ewma_std(old_std: float, old_mean: float | None, new_val: float | None) -> float:
        """Approximate running std via EWMA of squared deviations."""
        if new_val is None or old_mean is None:
            return old_std
        deviation_sq = (new_val - old_mean) ** 2
        new_var = alpha * deviation_sq + (1 - alpha) * old_std ** 2
        return math.sqrt(new_var) if new_var > 0 else old_std

    updates: dict = {}

    trials = completed_trials(signals)
    if trials:
        rt_mean = statistics.fmean(t.reaction_time_ms for t in trials)
        accuracy = sum(1 for t in trials if t.correct) / len(trials)
        updates["reaction_time_std_dev"] = _ewma_std(
            baseline.reaction_time_std_dev, baseline.reaction_time_ms, rt_mean
        )
        updates["reaction_time_ms"] = _ewma(baseline.reaction_time_ms, rt_mean)
        updates["accuracy_std_dev"] = _ewma_std(baseline.accuracy_std_dev, baseline.accuracy, accuracy)
        updates["accuracy"] = _ewma(baseline.accuracy, accuracy)

    stability = mouse_stability(signals.mouse_movements or [])
    if stability is not None:
        updates["mouse_stability_std_dev"] = _ewma_std(
            baseline.mouse_stability_std_dev, baseline.mouse_stability, stability
        )
        updates["mouse_stability"] = _ewma(baseline.mouse_stability, stability)

    rhythm = keystroke_rhythm(signals.keystroke_timings or [])
    if rhythm is not None:
        updates["keystroke_rhythm_std_dev"] = _ewma_std(
            baseline.keystroke_rhythm_std_dev, baseline.keystroke_rhythm, rhythm
        )
        updates["keystroke_rhythm"] = _ewma(baseline.keystroke_rhythm, rhythm)

    now = datetime.utcnow()
    updated = baseline.model_copy(
        update={
            **updates,
            "calibration_count": baseline.calibration_count + 1,
            "last_calibrated": now,
            "updated_at": now,
        }
    )
    logger.info(
        "baseline.calibrated",
        user_id=updated.user_id,
        calibration_count=updated.calibration_count,
        fields=sorted(k for k in updates if not k.endswith("_std_dev")),
    )
    return updated

