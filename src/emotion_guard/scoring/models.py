"""Pydantic models for the risk scoring subsystem.

These models represent:
- Modality identifiers and per-modality analyzer output
- Baseline-relative deviation evidence
- The aggregated risk assessment with explainability flags
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ─────────────────────────────────────────────────────


class Modality(str, Enum):
    """One category of input signal."""

    COGNITIVE = "cognitive"
    BEHAVIORAL = "behavioral"
    SELF_REPORT = "self_report"
    VOICE = "voice"
    FACIAL = "facial"
    CONTEXTUAL = "contextual"


class RiskDirection(str, Enum):
    """Which side of the reference value carries risk."""

    HIGHER = "higher"  # e.g. slower reaction time
    LOWER = "lower"  # e.g. lower accuracy
    EITHER = "either"  # e.g. keystroke rhythm drifting either way


class DeviationBand(str, Enum):
    """Discrete risk band derived from a deviation."""

    NONE = "none"
    MODERATE = "moderate"
    HIGH = "high"


# ── Baseline comparison ──────────────────────────────────────


class PopulationThresholds(BaseModel):
    """Fixed thresholds used when no personalised baseline exists.

    Values are in the raw metric's units.  Either tier may be ``None`` for
    metrics that only have a single population cut-off.
    """

    model_config = ConfigDict(frozen=True)

    direction: RiskDirection = RiskDirection.HIGHER
    moderate: float | None = None
    high: float | None = None


class Deviation(BaseModel):
    """Normalised deviation of a raw metric from its reference."""

    model_config = ConfigDict(frozen=True)

    band: DeviationBand = DeviationBand.NONE
    source: Literal["baseline", "population", "none"] = "none"
    z_score: float | None = None
    score: int = Field(0, ge=0, le=2, description="0 = no risk, 1 = moderate, 2 = high.")
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    @property
    def elevated(self) -> bool:
        return self.band is not DeviationBand.NONE


# ── Analyzer output ──────────────────────────────────────────


class ModalityResult(BaseModel):
    """Capped sub-score produced by one modality analyzer.

    Produced fresh per assessment and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    modality: Modality
    score: float = Field(0.0, ge=0.0)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    flags: dict[str, bool] = Field(default_factory=dict)

    @property
    def contributes(self) -> bool:
        return self.score > 0

    def flag(self, name: str) -> bool:
        return self.flags.get(name, False)

    @classmethod
    def absent(cls, modality: Modality) -> ModalityResult:
        """Result for a modality that was not run."""
        return cls(modality=modality)


# ── Aggregated result ────────────────────────────────────────


class RiskAssessmentResult(BaseModel):
    """Aggregated risk assessment for one request.

    ``risk_score`` is the clamped, rounded sum of weighted modality
    contributions plus the additive contextual risk.
    """

    model_config = ConfigDict(frozen=True)

    risk_score: int = Field(0, ge=0, le=100)
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    # ── Explainability flags
    reaction_time_elevated: bool = False
    accuracy_low: bool = False
    behavioral_anomalies: bool = False
    self_report_high_stress: bool = False
    voice_stress_detected: bool = False
    facial_stress_detected: bool = False
    contextual_risk: float = 0.0

    # ── Breakdown
    modalities: dict[Modality, ModalityResult] = Field(default_factory=dict)
    contributing_modalities: list[Modality] = Field(default_factory=list)
    scoring_version: str = "v1"
