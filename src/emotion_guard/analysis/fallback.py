"""Deterministic local stress heuristic.

Produces an :class:`AIAnalysisResult` of the same shape as the external
analyzer.  Thresholds are conservative: missing cognitive data counts
against the trader, and a result with no measured signals at all is
never ``go``.
"""

from __future__ import annotations

from emotion_guard.analysis.models import AIAnalysisResult, AnalysisContext
from emotion_guard.models import Verdict

BLOCK_STRESS_LEVEL = 7.5
BLOCK_MICRO_TREMORS = 0.4
HOLD_STRESS_LEVEL = 5.0

_BASE_CONFIDENCE = 0.7


def fallback_analysis(context: AnalysisContext, *, measured: bool = True) -> AIAnalysisResult:
    """Score *context* locally.

    Parameters
    ----------
    context : AnalysisContext
        Primitives and summaries computed from the assessment signals.
    measured : bool
        ``False`` when the assessment carried no behavioural, cognitive,
        self-report or facial input; the verdict is then at least ``hold``.
    """
    bio = context.biometric
    cog = context.cognitive

    stress = 0.0
    indicators: list[str] = []
    risk_factors: list[str] = []
    anomalies: list[str] = []

    # Biometric
    if bio.mouse_stability < 0.4:
        stress += 2.0
        indicators.append("Erratic mouse movements")
    if bio.velocity_variance > 0.6:
        stress += 1.5
        indicators.append("High movement variability")
    if bio.micro_tremors > 0.3:
        stress += 2.5
        indicators.append("Micro-tremors detected")
        anomalies.append("Unusual tremor patterns")
    if bio.keystroke_rhythm < 0.4:
        stress += 1.0
        indicators.append("Irregular typing rhythm")

    # Cognitive
    if cog.accuracy < 0.7:
        stress += 2.0
        indicators.append("Reduced cognitive accuracy")
    if cog.consistency < 0.5:
        stress += 1.5
        indicators.append("Inconsistent reaction times")
    if cog.attention_stability < 0.6:
        stress += 2.0
        indicators.append("Attention instability")

    # Self-report
    if context.self_report is not None and context.self_report > 6:
        stress += (context.self_report - 5) * 0.8
        indicators.append("High self-reported stress")

    # Facial
    facial = context.facial_metrics
    if facial:
        if facial.get("blink_rate", 15) > 25:
            stress += 1.0
            indicators.append("Elevated blink rate")
        if facial.get("brow_furrow", 0) > 0.5:
            stress += 1.5
            indicators.append("Brow furrowing detected")
        if facial.get("gaze_stability", 1) < 0.7:
            stress += 1.0
            indicators.append("Unstable gaze pattern")

    # Order context
    order = context.order_context
    if order:
        leverage = order.get("leverage")
        if leverage is not None and leverage > 10:
            stress += 0.5
            risk_factors.append("High leverage trading")

    stress_level = max(0.0, min(10.0, stress))

    confidence = _BASE_CONFIDENCE
    if bio.mouse_stability > 0 or cog.accuracy > 0:
        confidence += 0.1
    if context.self_report:
        confidence += 0.15
    if facial:
        confidence += 0.05
    confidence = max(0.3, min(1.0, confidence))

    if stress_level >= BLOCK_STRESS_LEVEL or bio.micro_tremors > BLOCK_MICRO_TREMORS:
        verdict = Verdict.BLOCK
    elif stress_level >= HOLD_STRESS_LEVEL or len(risk_factors) > 1:
        verdict = Verdict.HOLD
    else:
        verdict = Verdict.GO

    if not measured:
        anomalies.append("No measured signals")
        if verdict is Verdict.GO:
            verdict = Verdict.HOLD

    concerns = ", ".join(indicators[:2]) or "None detected"
    reasoning = (
        f"Stress analysis: {stress_level:.1f}/10 based on {len(indicators)} indicators. "
        f"Confidence: {confidence * 100:.0f}%. "
        f"Primary concerns: {concerns}."
    )

    return AIAnalysisResult(
        stress_level=stress_level,
        confidence=confidence,
        verdict=verdict,
        primary_indicators=indicators,
        risk_factors=risk_factors,
        reasoning=reasoning,
        anomalies=anomalies,
    )
