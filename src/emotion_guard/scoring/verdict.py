"""Verdict engine — map an aggregated score to go / hold / block.

Verdicts are recomputed per assessment, never transitioned in place.
Reason tags and recommended actions use fixed wording and a fixed order
so audit records are reproducible.
"""

from __future__ import annotations

from emotion_guard.models import Policy, Verdict
from emotion_guard.scoring.models import RiskAssessmentResult
from emotion_guard.scoring.profile import DEFAULT_PROFILE, ScoringProfile

# ── Reason tags (order is part of the audit contract) ─────────

_REASON_TAGS: tuple[tuple[str, str], ...] = (
    ("reaction_time_elevated", "Reaction time elevated"),
    ("accuracy_low", "Accuracy below baseline"),
    ("self_report_high_stress", "Self-report high stress"),
    ("behavioral_anomalies", "Behavioral anomalies detected"),
    ("voice_stress_detected", "Voice stress indicators"),
    ("facial_stress_detected", "Facial stress indicators"),
)

_RECOMMENDED_ACTIONS = {
    Verdict.GO: "Proceed with trade - stress levels appear normal",
    Verdict.HOLD: "Consider taking a breathing break before proceeding",
    Verdict.BLOCK: "High stress detected - recommend postponing trade and reflecting on triggers",
}


def determine_verdict(
    risk_score: int,
    policy: Policy,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> Verdict:
    """``block`` at or above the ceiling, ``hold`` at or above the policy threshold."""
    if risk_score >= profile.block_ceiling:
        return Verdict.BLOCK
    if risk_score >= policy.risk_threshold:
        return Verdict.HOLD
    return Verdict.GO


def cooldown_for(verdict: Verdict, policy: Policy) -> int | None:
    """Cooldown in seconds; only a ``hold`` carries one."""
    return policy.cooldown_duration if verdict is Verdict.HOLD else None


def reason_tags(risk: RiskAssessmentResult) -> list[str]:
    return [label for field, label in _REASON_TAGS if getattr(risk, field)]


def recommended_action(verdict: Verdict) -> str:
    return _RECOMMENDED_ACTIONS[verdict]
