"""AI-assisted scoring with a guaranteed local fallback.

:meth:`AIScoringService.analyze` always returns an ``AnalysisOutcome``:
``AIAnalysisSuccess`` when the external analyzer answered with a valid
result, otherwise ``AIAnalysisDegraded`` carrying the local heuristic's
result and the failure reason.  It never raises for analyzer failures.
"""

from __future__ import annotations

import time

import structlog

from emotion_guard.analysis.external import ExternalAnalyzer
from emotion_guard.analysis.fallback import fallback_analysis
from emotion_guard.analysis.models import (
    AIAnalysisDegraded,
    AIAnalysisSuccess,
    AnalysisContext,
    AnalysisOutcome,
)
from emotion_guard.analysis.primitives import biometric_pattern, cognitive_profile
from emotion_guard.errors import ExternalAnalysisError
from emotion_guard.models import AssessmentSignals, OrderContext, UserBaseline

logger = structlog.get_logger(__name__)


def build_context(
    signals: AssessmentSignals,
    baseline: UserBaseline | None = None,
    order_context: OrderContext | None = None,
) -> AnalysisContext:
    """Summarise signals into the primitives both analysis paths consume."""
    facial = None
    if signals.facial_metrics is not None and signals.facial_metrics.is_present:
        m = signals.facial_metrics
        facial = {
            "blink_rate": m.blink_rate,
            "brow_furrow": m.brow_furrow,
            "jaw_openness": m.jaw_openness,
            "gaze_stability": m.gaze_stability,
        }

    order = None
    if order_context is not None:
        order = {
            "size": order_context.size,
            "leverage": order_context.leverage,
            "market_volatility": order_context.market_volatility,
        }

    base = None
    if baseline is not None:
        base = {
            "reaction_time_ms": baseline.reaction_time_ms,
            "accuracy": baseline.accuracy,
            "mouse_stability": baseline.mouse_stability,
            "keystroke_rhythm": baseline.keystroke_rhythm,
        }

    return AnalysisContext(
        biometric=biometric_pattern(signals),
        cognitive=cognitive_profile(signals),
        self_report=signals.stress_level,
        facial_metrics=facial,
        order_context=order,
        baseline=base,
    )


def _has_measurements(signals: AssessmentSignals) -> bool:
    return any(
        (
            signals.mouse_movements,
            signals.keystroke_timings,
            signals.cognitive_trials,
            signals.stress_level is not None,
            signals.facial_metrics is not None and signals.facial_metrics.is_present,
        )
    )


class AIScoringService:
    """Run the external analyzer when configured, the local heuristic otherwise."""

    def __init__(self, external: ExternalAnalyzer | None = None) -> None:
        self._external = external

    async def analyze(
        self,
        signals: AssessmentSignals,
        baseline: UserBaseline | None = None,
        order_context: OrderContext | None = None,
    ) -> AnalysisOutcome:
        context = build_context(signals, baseline, order_context)

        if self._external is None or not self._external.configured:
            return self._degraded(context, signals, reason="external analyzer not configured")

        started = time.perf_counter()
        try:
            result = await self._external.analyze(context)
        except ExternalAnalysisError as exc:
            return self._degraded(context, signals, reason=str(exc))
        except Exception as exc:
            logger.exception("ai_scoring.external_crashed", error_type=type(exc).__name__)
            return self._degraded(context, signals, reason=f"unexpected error: {exc}")

        return AIAnalysisSuccess(
            result=result,
            model=self._external.model,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
        )

    @staticmethod
    def _degraded(context: AnalysisContext, signals: AssessmentSignals, *, reason: str) -> AIAnalysisDegraded:
        result = fallback_analysis(context, measured=_has_measurements(signals))
        logger.warning(
            "ai_scoring.fallback_used",
            reason=reason,
            verdict=result.verdict.value,
            stress_level=result.stress_level,
        )
        return AIAnalysisDegraded(result=result, reason=reason)
