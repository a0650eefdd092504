"""Risk aggregation — fuse modality results into one bounded score."""

from __future__ import annotations

import math
from typing import Iterable

from emotion_guard.scoring.models import Modality, ModalityResult, RiskAssessmentResult
from emotion_guard.scoring.profile import DEFAULT_PROFILE, ScoringProfile


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregate(
    results: Iterable[ModalityResult],
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> RiskAssessmentResult:
    """Combine modality results into a :class:`RiskAssessmentResult`.

    Every weighted modality with a nonzero score adds ``score * weight``
    to the total and ``confidence * weight`` to the confidence
    accumulator.  Final confidence is the accumulator divided by the
    number of contributing modalities (0 when none contributed).
    Contextual risk is added unweighted.  The total is clamped to
    ``[0, 100]`` and rounded.
    """
    by_modality: dict[Modality, ModalityResult] = {}
    for result in results:
        by_modality[result.modality] = result

    total = 0.0
    confidence_acc = 0.0
    contributing: list[Modality] = []

    for modality, result in by_modality.items():
        if modality is Modality.CONTEXTUAL or not result.contributes:
            continue
        weight = profile.weight(modality)
        total += result.score * weight
        confidence_acc += result.confidence * weight
        contributing.append(modality)

    contextual = by_modality.get(Modality.CONTEXTUAL)
    contextual_risk = contextual.score if contextual is not None else 0.0
    total += contextual_risk

    confidence = confidence_acc / len(contributing) if contributing else 0.0

    def _flag(modality: Modality, name: str) -> bool:
        result = by_modality.get(modality)
        return result.flag(name) if result is not None else False

    return RiskAssessmentResult(
        risk_score=_round_half_up(min(100.0, max(0.0, total))),
        confidence=min(1.0, max(0.0, confidence)),
        reaction_time_elevated=_flag(Modality.COGNITIVE, "reaction_time_elevated"),
        accuracy_low=_flag(Modality.COGNITIVE, "accuracy_low"),
        behavioral_anomalies=_flag(Modality.BEHAVIORAL, "anomalies_detected"),
        self_report_high_stress=_flag(Modality.SELF_REPORT, "high_stress"),
        voice_stress_detected=_flag(Modality.VOICE, "stress_detected"),
        facial_stress_detected=_flag(Modality.FACIAL, "stress_detected"),
        contextual_risk=contextual_risk,
        modalities=by_modality,
        contributing_modalities=contributing,
        scoring_version=profile.version,
    )
