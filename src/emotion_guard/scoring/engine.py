"""Risk scoring engine — runs the enabled analyzers and aggregates them.

Scoring is a pure, synchronous function over its inputs: the same
signals, baseline, context and policy always produce the same result.
"""

from __future__ import annotations

import structlog

from emotion_guard.models import AssessmentSignals, OrderContext, Policy, UserBaseline
from emotion_guard.scoring.aggregator import aggregate
from emotion_guard.scoring.analyzers import ANALYZERS, analyze_contextual
from emotion_guard.scoring.models import ModalityResult, RiskAssessmentResult
from emotion_guard.scoring.profile import ScoringProfile, get_scoring_profile

logger = structlog.get_logger(__name__)


class RiskScoringEngine:
    """Score one assessment against a versioned :class:`ScoringProfile`.

    Parameters
    ----------
    profile : ScoringProfile | None
        Weight / cap table to score with.  Defaults to the registered
        default version.
    """

    def __init__(self, profile: ScoringProfile | None = None) -> None:
        self._profile = profile or get_scoring_profile()

    @property
    def profile(self) -> ScoringProfile:
        return self._profile

    def assess(
        self,
        signals: AssessmentSignals,
        baseline: UserBaseline | None = None,
        context: OrderContext | None = None,
        policy: Policy | None = None,
    ) -> RiskAssessmentResult:
        """Run every analyzer the policy enables and aggregate the results.

        Disabled modalities are treated as absent.  Contextual risk always
        applies.
        """
        results: list[ModalityResult] = []
        skipped: list[str] = []

        for modality, analyzer in ANALYZERS.items():
            if policy is not None and not policy.enabled_modes.allows(modality):
                results.append(ModalityResult.absent(modality))
                skipped.append(modality.value)
                continue
            results.append(analyzer(signals, baseline, profile=self._profile))

        results.append(analyze_contextual(context, profile=self._profile))

        risk = aggregate(results, self._profile)
        logger.info(
            "risk.assessment_complete",
            risk_score=risk.risk_score,
            confidence=round(risk.confidence, 3),
            contributing=[m.value for m in risk.contributing_modalities],
            contextual_risk=risk.contextual_risk,
            skipped=skipped,
            has_baseline=baseline is not None,
            scoring_version=self._profile.version,
        )
        return risk
