"""Versioned weight / cap table for risk aggregation.

A :class:`ScoringProfile` is the single source of truth for modality
weights, sub-score caps and confidences.  Profiles are immutable and
registered by version; assessments record the version they were scored
with, so publishing a new profile changes future verdicts only.

=============  ======  ====  ==========
Modality       Weight  Cap   Confidence
=============  ======  ====  ==========
cognitive      0.5     60    0.90
behavioral     0.4     35    0.70
self_report    0.6     40    0.95
voice          0.3     25    0.60
facial         0.3     30    0.80
contextual     1.0     40    (additive)
=============  ======  ====  ==========

(``v1``; legacy coarse facial features are capped at 25 with
confidence 0.6.)
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from emotion_guard.errors import PolicyConfigurationError
from emotion_guard.scoring.models import Modality

logger = structlog.get_logger(__name__)

WEIGHTED_MODALITIES = (
    Modality.COGNITIVE,
    Modality.BEHAVIORAL,
    Modality.SELF_REPORT,
    Modality.VOICE,
    Modality.FACIAL,
)


class ScoringProfile(BaseModel):
    """Immutable, versioned scoring configuration."""

    model_config = ConfigDict(frozen=True)

    version: str
    description: str = ""
    weights: dict[Modality, float]
    caps: dict[Modality, float]
    confidences: dict[Modality, float]
    legacy_facial_cap: float = Field(25.0, ge=0)
    legacy_facial_confidence: float = Field(0.6, ge=0.0, le=1.0)
    contextual_cap: float = Field(40.0, ge=0)
    block_ceiling: int = Field(80, ge=1, le=100)
    self_report_tag_level: int = Field(7, ge=0, le=10)

    @model_validator(mode="after")
    def _complete_tables(self) -> ScoringProfile:
        for name, table in (("weights", self.weights), ("caps", self.caps), ("confidences", self.confidences)):
            missing = [m.value for m in WEIGHTED_MODALITIES if m not in table]
            if missing:
                raise ValueError(f"{name} missing modalities: {', '.join(missing)}")
            if any(v < 0 for v in table.values()):
                raise ValueError(f"{name} must be non-negative")
        if any(v > 1 for v in self.confidences.values()):
            raise ValueError("confidences must lie in [0, 1]")
        return self

    def weight(self, modality: Modality) -> float:
        return self.weights.get(modality, 0.0)

    def cap(self, modality: Modality) -> float:
        if modality is Modality.CONTEXTUAL:
            return self.contextual_cap
        return self.caps[modality]

    def confidence(self, modality: Modality) -> float:
        return self.confidences.get(modality, 0.0)


# ── Registry ──────────────────────────────────────────────────

PROFILE_V1 = ScoringProfile(
    version="v1",
    description="Primary scoring service weights and caps.",
    weights={
        Modality.COGNITIVE: 0.5,
        Modality.BEHAVIORAL: 0.4,
        Modality.SELF_REPORT: 0.6,
        Modality.VOICE: 0.3,
        Modality.FACIAL: 0.3,
    },
    caps={
        Modality.COGNITIVE: 60,
        Modality.BEHAVIORAL: 35,
        Modality.SELF_REPORT: 40,
        Modality.VOICE: 25,
        Modality.FACIAL: 30,
    },
    confidences={
        Modality.COGNITIVE: 0.9,
        Modality.BEHAVIORAL: 0.7,
        Modality.SELF_REPORT: 0.95,
        Modality.VOICE: 0.6,
        Modality.FACIAL: 0.8,
    },
)

DEFAULT_PROFILE = PROFILE_V1

_PROFILES: dict[str, ScoringProfile] = {PROFILE_V1.version: PROFILE_V1}


def register_scoring_profile(profile: ScoringProfile) -> None:
    """Publish a new profile version.  Existing versions are immutable."""
    existing = _PROFILES.get(profile.version)
    if existing is not None and existing != profile:
        raise PolicyConfigurationError(
            f"Scoring profile {profile.version!r} is already registered with different values"
        )
    _PROFILES[profile.version] = profile
    logger.info("scoring.profile_registered", version=profile.version)


def get_scoring_profile(version: str | None = None) -> ScoringProfile:
    """Look up a registered profile; ``None`` returns the default."""
    if version is None:
        return DEFAULT_PROFILE
    try:
        return _PROFILES[version]
    except KeyError:
        raise PolicyConfigurationError(
            f"Unknown scoring profile version {version!r} "
            f"(known: {', '.join(sorted(_PROFILES))})"
        ) from None


def available_versions() -> list[str]:
    return sorted(_PROFILES)
