"""Pydantic models for AI-assisted stress analysis.

These models represent:
- Locally computed biometric and cognitive primitives
- The validated analysis result shared by the external and fallback paths
- The tagged ``AnalysisOutcome`` union (``external`` vs ``fallback``)
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from emotion_guard.models import Verdict


class BiometricPattern(BaseModel):
    mouse_stability: float = 0.5  # higher = steadier
    keystroke_rhythm: float = 0.5  # higher = more consistent
    velocity_variance: float = 0.5  # higher = more erratic
    micro_tremors: float = 0.0  # share of windows with tremor-like jitter


class CognitiveProfile(BaseModel):
    reaction_speed: float = 0.5
    accuracy: float = 0.5
    consistency: float = 0.5
    attention_stability: float = 0.5


class AIAnalysisResult(BaseModel):
    """Stress analysis of one assessment, from either source.

    Accepts camelCase keys so external replies validate directly.
    Out-of-range numbers are clamped; a missing or non-numeric stress
    level, or an unknown verdict, is a validation error.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    stress_level: float
    confidence: float = 0.5
    verdict: Verdict
    primary_indicators: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    reasoning: str = "Analysis completed"
    anomalies: list[str] = Field(default_factory=list)

    @field_validator("stress_level")
    @classmethod
    def _clamp_stress(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("stress_level must be finite")
        return max(0.0, min(10.0, value))

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("confidence must be finite")
        return max(0.0, min(1.0, value))


class AIAnalysisSuccess(BaseModel):
    source: Literal["external"] = "external"
    result: AIAnalysisResult
    model: str = ""
    latency_ms: float = 0.0


class AIAnalysisDegraded(BaseModel):
    source: Literal["fallback"] = "fallback"
    result: AIAnalysisResult
    reason: str


AnalysisOutcome = Annotated[
    Union[AIAnalysisSuccess, AIAnalysisDegraded],
    Field(discriminator="source"),
]


class AnalysisContext(BaseModel):
    """Serialized summary sent to the external analyzer."""

    biometric: BiometricPattern
    cognitive: CognitiveProfile
    self_report: int | None = None
    facial_metrics: dict[str, float] | None = None
    order_context: dict[str, Any] | None = None
    baseline: dict[str, float | None] | None = None
