"""Per-modality analyzers.

Every analyzer is a pure function returning a fresh, capped
:class:`ModalityResult`.  Missing or out-of-range sub-fields contribute
nothing; analyzers never raise.

Evidence mapping
----------------
============  ==========================================================
Modality      Signals
============  ==========================================================
cognitive     mean reaction time ↑, accuracy ↓, reaction-time variance
behavioral    mouse smoothness ↓, keystroke rhythm drift, click latency
self_report   0-10 self-rated stress, tiered
voice         pitch ↑, jitter ↑, shimmer ↑, energy ↓
facial        blink rate outside normal band, brow furrow, gaze deficit,
              low eye-aspect-ratio (fatigue), jaw openness (tension)
contextual    leverage, recent losses, running P&L, off-hours, volatility
============  ==========================================================
"""

from __future__ import annotations

import math
import statistics

from emotion_guard.models import (
    AssessmentSignals,
    FaceMetrics,
    FacialExpressionFeatures,
    OrderContext,
    UserBaseline,
)
from emotion_guard.scoring.baseline import compare_to_baseline
from emotion_guard.scoring.metrics import (
    completed_trials,
    keystroke_rhythm,
    mouse_stability,
    variance,
)
from emotion_guard.scoring.models import (
    Deviation,
    Modality,
    ModalityResult,
    PopulationThresholds,
    RiskDirection,
)
from emotion_guard.scoring.profile import DEFAULT_PROFILE, ScoringProfile

# ── Thresholds & points ───────────────────────────────────────
# Points are (moderate, high), keyed by evidence source.

_RT_POPULATION = PopulationThresholds(direction=RiskDirection.HIGHER, moderate=600, high=800)
_RT_POINTS = {"baseline": (15, 30), "population": (10, 25)}

_ACCURACY_POPULATION = PopulationThresholds(direction=RiskDirection.LOWER, moderate=0.85, high=0.7)
_ACCURACY_POINTS = {"baseline": (12, 25), "population": (8, 20)}

_RT_VARIANCE_LIMIT = 10_000  # ms²
_RT_VARIANCE_POINTS = 10

_MOUSE_POPULATION = PopulationThresholds(direction=RiskDirection.LOWER, moderate=0.5)
_MOUSE_POINTS = {"baseline": (8, 15), "population": (12, 12)}

_KEYSTROKE_POPULATION = PopulationThresholds(direction=RiskDirection.LOWER, moderate=0.3)
_KEYSTROKE_POINTS = {"baseline": (6, 12), "population": (10, 10)}

_CLICK_SLOW_MS = 300
_CLICK_FAST_MS = 50
_CLICK_SLOW_POINTS = 8
_CLICK_FAST_POINTS = 12

_SELF_REPORT_TIERS = ((8, 40), (6, 25), (4, 10))

# Landmark facial metrics: values inside these limits score nothing.
FACE_BLINK_RATE_LOW = 8  # blinks/min, fixed stare below
FACE_BLINK_RATE_HIGH = 22
FACE_BROW_FURROW_LIMIT = 0.4
FACE_GAZE_STABILITY_FLOOR = 0.6
FACE_EAR_FATIGUE = 0.15
FACE_JAW_TENSION = 0.3


def _points(deviation: Deviation, table: dict[str, tuple[int, int]]) -> int:
    if not deviation.elevated:
        return 0
    moderate, high = table[deviation.source]
    return high if deviation.score == 2 else moderate


def _valid(value: float | None, *, lo: float = 0.0) -> bool:
    """A usable reading: present, finite and not below *lo*."""
    return value is not None and math.isfinite(value) and value >= lo


# ── Cognitive ────────────────────────────────────────────────


def analyze_cognitive(
    signals: AssessmentSignals,
    baseline: UserBaseline | None = None,
    *,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> ModalityResult:
    """Score mean reaction time and accuracy over completed trials."""
    trials = completed_trials(signals)
    if not trials:
        return ModalityResult.absent(Modality.COGNITIVE)

    reaction_times = [t.reaction_time_ms for t in trials]
    mean_rt = statistics.fmean(reaction_times)
    accuracy = sum(1 for t in trials if t.correct) / len(trials)

    rt_dev = compare_to_baseline(
        mean_rt,
        mean=baseline.reaction_time_ms if baseline else None,
        std_dev=baseline.reaction_time_std_dev if baseline else None,
        direction=RiskDirection.HIGHER,
        population=_RT_POPULATION,
    )
    acc_dev = compare_to_baseline(
        accuracy,
        mean=baseline.accuracy if baseline else None,
        std_dev=baseline.accuracy_std_dev if baseline else None,
        direction=RiskDirection.LOWER,
        population=_ACCURACY_POPULATION,
    )

    score = _points(rt_dev, _RT_POINTS) + _points(acc_dev, _ACCURACY_POINTS)

    inconsistent = variance(reaction_times) > _RT_VARIANCE_LIMIT
    if inconsistent:
        score += _RT_VARIANCE_POINTS

    return ModalityResult(
        modality=Modality.COGNITIVE,
        score=min(score, profile.cap(Modality.COGNITIVE)),
        confidence=profile.confidence(Modality.COGNITIVE),
        flags={
            "reaction_time_elevated": rt_dev.elevated,
            "accuracy_low": acc_dev.elevated,
            "inconsistent": inconsistent,
        },
    )


# ── Behavioral ───────────────────────────────────────────────


def analyze_behavioral(
    signals: AssessmentSignals,
    baseline: UserBaseline | None = None,
    *,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> ModalityResult:
    """Score mouse smoothness, keystroke rhythm and click latency."""
    score = 0
    measured = False
    flags: dict[str, bool] = {}

    stability = mouse_stability(signals.mouse_movements or [])
    if stability is not None:
        measured = True
        dev = compare_to_baseline(
            stability,
            mean=baseline.mouse_stability if baseline else None,
            std_dev=baseline.mouse_stability_std_dev if baseline else None,
            direction=RiskDirection.LOWER,
            population=_MOUSE_POPULATION,
        )
        score += _points(dev, _MOUSE_POINTS)
        flags["mouse_unstable"] = dev.elevated

    rhythm = keystroke_rhythm(signals.keystroke_timings or [])
    if rhythm is not None:
        measured = True
        dev = compare_to_baseline(
            rhythm,
            mean=baseline.keystroke_rhythm if baseline else None,
            std_dev=baseline.keystroke_rhythm_std_dev if baseline else None,
            direction=RiskDirection.EITHER,
            population=_KEYSTROKE_POPULATION,
        )
        score += _points(dev, _KEYSTROKE_POINTS)
        flags["keystroke_irregular"] = dev.elevated

    latency = signals.click_latency
    if _valid(latency) and latency > 0:
        measured = True
        flags["click_hesitation"] = latency > _CLICK_SLOW_MS
        flags["click_impulsive"] = latency < _CLICK_FAST_MS
        if flags["click_hesitation"]:
            score += _CLICK_SLOW_POINTS
        elif flags["click_impulsive"]:
            score += _CLICK_FAST_POINTS

    if not measured:
        return ModalityResult.absent(Modality.BEHAVIORAL)

    flags["anomalies_detected"] = any(flags.values())
    return ModalityResult(
        modality=Modality.BEHAVIORAL,
        score=min(score, profile.cap(Modality.BEHAVIORAL)),
        confidence=profile.confidence(Modality.BEHAVIORAL),
        flags=flags,
    )


# ── Self-report ──────────────────────────────────────────────


def analyze_self_report(
    signals: AssessmentSignals,
    baseline: UserBaseline | None = None,
    *,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> ModalityResult:
    """Map a 0-10 self-rating onto tiered points (≥4 / ≥6 / ≥8)."""
    level = signals.stress_level
    if level is None or not 0 <= level <= 10:
        return ModalityResult.absent(Modality.SELF_REPORT)

    score = next((points for floor, points in _SELF_REPORT_TIERS if level >= floor), 0)
    return ModalityResult(
        modality=Modality.SELF_REPORT,
        score=min(score, profile.cap(Modality.SELF_REPORT)),
        confidence=profile.confidence(Modality.SELF_REPORT),
        flags={"high_stress": level >= profile.self_report_tag_level},
    )


# ── Voice ────────────────────────────────────────────────────


def analyze_voice(
    signals: AssessmentSignals,
    baseline: UserBaseline | None = None,
    *,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> ModalityResult:
    """Fixed increments for pitch, jitter, shimmer and energy breaches."""
    features = signals.voice_prosody_features
    if features is None:
        return ModalityResult.absent(Modality.VOICE)

    score = 0
    breaches: list[str] = []

    if _valid(features.pitch):
        if features.pitch > 250:
            score += 15
            breaches.append("pitch")
        elif features.pitch > 200:
            score += 8
            breaches.append("pitch")

    if _valid(features.jitter) and features.jitter > 0.02:
        score += 10
        breaches.append("jitter")

    if _valid(features.shimmer) and features.shimmer > 0.08:
        score += 10
        breaches.append("shimmer")

    if _valid(features.energy) and features.energy < 0.3:
        score += 8
        breaches.append("energy")

    return ModalityResult(
        modality=Modality.VOICE,
        score=min(score, profile.cap(Modality.VOICE)),
        confidence=profile.confidence(Modality.VOICE),
        flags={"stress_detected": bool(breaches), **{f"{name}_breach": True for name in breaches}},
    )


# ── Facial ───────────────────────────────────────────────────


def _score_face_metrics(metrics: FaceMetrics, profile: ScoringProfile) -> ModalityResult:
    if not metrics.is_present:
        return ModalityResult.absent(Modality.FACIAL)

    score = 0
    flags: dict[str, bool] = {}

    if _valid(metrics.blink_rate):
        flags["hyper_blink"] = metrics.blink_rate > FACE_BLINK_RATE_HIGH
        flags["hypo_blink"] = metrics.blink_rate < FACE_BLINK_RATE_LOW
        if metrics.blink_rate > 30:
            score += 15
        elif flags["hyper_blink"]:
            score += 10
        elif flags["hypo_blink"]:
            score += 8

    if _valid(metrics.brow_furrow):
        flags["brow_furrow"] = metrics.brow_furrow > FACE_BROW_FURROW_LIMIT
        if metrics.brow_furrow > 0.7:
            score += 12
        elif flags["brow_furrow"]:
            score += 6

    if _valid(metrics.gaze_stability):
        flags["gaze_unstable"] = metrics.gaze_stability < FACE_GAZE_STABILITY_FLOOR
        if metrics.gaze_stability < 0.3:
            score += 10
        elif flags["gaze_unstable"]:
            score += 5

    if _valid(metrics.eye_aspect_ratio):
        flags["fatigue"] = metrics.eye_aspect_ratio < FACE_EAR_FATIGUE
        if flags["fatigue"]:
            score += 8

    if _valid(metrics.jaw_openness):
        flags["jaw_tension"] = metrics.jaw_openness > FACE_JAW_TENSION
        if flags["jaw_tension"]:
            score += 6

    flags["stress_detected"] = any(flags.values())
    return ModalityResult(
        modality=Modality.FACIAL,
        score=min(score, profile.cap(Modality.FACIAL)),
        confidence=profile.confidence(Modality.FACIAL),
        flags=flags,
    )


def _score_legacy_features(features: FacialExpressionFeatures, profile: ScoringProfile) -> ModalityResult:
    score = 0
    flags: dict[str, bool] = {}

    if _valid(features.brow_furrow):
        flags["brow_furrow"] = features.brow_furrow > 0.4
        if features.brow_furrow > 0.7:
            score += 12
        elif features.brow_furrow > 0.4:
            score += 6

    if _valid(features.blink_rate):
        flags["hyper_blink"] = features.blink_rate > 18
        if features.blink_rate > 25:
            score += 10
        elif features.blink_rate > 18:
            score += 5

    if _valid(features.gaze_fixation):
        flags["gaze_unstable"] = features.gaze_fixation < 0.2
        if flags["gaze_unstable"]:
            score += 8

    flags["stress_detected"] = any(flags.values())
    return ModalityResult(
        modality=Modality.FACIAL,
        score=min(score, profile.legacy_facial_cap),
        confidence=profile.legacy_facial_confidence,
        flags=flags,
    )


def analyze_facial(
    signals: AssessmentSignals,
    baseline: UserBaseline | None = None,
    *,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> ModalityResult:
    """Score landmark metrics, or legacy coarse features when only those exist.

    Landmark-derived metrics take precedence; a face that is not present
    yields zero score and zero confidence.
    """
    if signals.facial_metrics is not None:
        return _score_face_metrics(signals.facial_metrics, profile)
    if signals.facial_expression_features is not None:
        return _score_legacy_features(signals.facial_expression_features, profile)
    return ModalityResult.absent(Modality.FACIAL)


# ── Contextual ───────────────────────────────────────────────


def analyze_contextual(
    context: OrderContext | None,
    *,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> ModalityResult:
    """Objective exposure of the order itself; added unweighted."""
    if context is None:
        return ModalityResult.absent(Modality.CONTEXTUAL)

    score = 0
    flags: dict[str, bool] = {}

    leverage = context.leverage
    if _valid(leverage):
        flags["high_leverage"] = leverage > 5
        if leverage > 10:
            score += 20
        elif leverage > 5:
            score += 10

    losses = context.recent_losses
    if losses is not None and math.isfinite(losses):
        flags["recent_losses"] = losses < -1000
        if losses < -10_000:
            score += 25
        elif losses < -5000:
            score += 15
        elif losses < -1000:
            score += 8

    pnl = context.current_pnl
    if pnl is not None and math.isfinite(pnl):
        flags["negative_pnl"] = pnl < -500
        if pnl < -5000:
            score += 15
        elif pnl < -2500:
            score += 8
        elif pnl < -500:
            score += 4

    if context.time_of_day is not None:
        hour = context.time_of_day.hour
        flags["off_hours"] = hour < 6 or hour > 22
        if flags["off_hours"]:
            score += 5

    volatility = context.market_volatility
    if _valid(volatility):
        flags["high_volatility"] = volatility > 0.8
        if volatility > 1.0:
            score += 15
        elif volatility > 0.8:
            score += 8

    return ModalityResult(
        modality=Modality.CONTEXTUAL,
        score=min(score, profile.cap(Modality.CONTEXTUAL)),
        confidence=1.0,
        flags=flags,
    )


ANALYZERS = {
    Modality.COGNITIVE: analyze_cognitive,
    Modality.BEHAVIORAL: analyze_behavioral,
    Modality.SELF_REPORT: analyze_self_report,
    Modality.VOICE: analyze_voice,
    Modality.FACIAL: analyze_facial,
}
