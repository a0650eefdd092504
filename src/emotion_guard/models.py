"""Shared Pydantic models used across the gate."""

from __future__ import annotations

import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from emotion_guard.scoring.models import Modality, RiskAssessmentResult

# ── Constants ─────────────────────────────────────────────────

# Population standard deviations used when a baseline leaves them unset.
POPULATION_REACTION_TIME_STD_MS = 50.0
POPULATION_ACCURACY_STD = 0.075
POPULATION_MOUSE_STABILITY_STD = 0.15
POPULATION_KEYSTROKE_RHYTHM_STD = 0.2

CALIBRATED_AFTER_SESSIONS = 3


# ── Enums ─────────────────────────────────────────────────────

class Verdict(str, Enum):
    """Gating decision rendered for a trade action."""
    GO = "go"
    HOLD = "hold"
    BLOCK = "block"


class StrictnessLevel(str, Enum):
    LENIENT = "lenient"
    STANDARD = "standard"
    STRICT = "strict"
    CUSTOM = "custom"


# ── Signals ───────────────────────────────────────────────────

class CognitiveTrial(BaseModel):
    """A single cognitive-test trial (e.g. one Stroop stimulus)."""
    word: str = ""
    color: str = ""
    response: str = ""
    reaction_time_ms: float
    correct: bool


class VoiceProsodyFeatures(BaseModel):
    pitch: float | None = None  # Hz
    jitter: float | None = None  # relative period perturbation
    shimmer: float | None = None  # relative amplitude perturbation
    energy: float | None = None  # normalised 0-1


class FacialExpressionFeatures(BaseModel):
    """Legacy coarse facial features."""
    brow_furrow: float | None = None
    blink_rate: float | None = None  # blinks per minute
    gaze_fixation: float | None = None


class FaceMetrics(BaseModel):
    """Smoothed landmark-derived facial metrics for one frame."""
    is_present: bool = False
    blink_rate: float = 0.0  # blinks per minute
    eye_aspect_ratio: float = 0.3
    jaw_openness: float = 0.0
    brow_furrow: float = 0.0
    gaze_stability: float = 1.0
    timestamp: float | None = None  # seconds, monotonic clock of the producer

    @classmethod
    def not_present(cls, timestamp: float | None = None) -> FaceMetrics:
        return cls(is_present=False, timestamp=timestamp)


class BlinkEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: float  # seconds, time the eye re-opened
    duration_ms: float


class AssessmentSignals(BaseModel):
    """Optional bag of per-modality inputs.

    Absence of a field means the modality was not run, not that it
    carries zero risk.
    """
    # ── Quick check
    mouse_movements: list[float] | None = None
    keystroke_timings: list[float] | None = None
    click_latency: float | None = None  # ms

    # ── Cognitive test
    cognitive_trials: list[CognitiveTrial] | None = None

    # ── Self-report
    stress_level: int | None = None  # 0-10

    # ── Optional biometrics
    voice_prosody_features: VoiceProsodyFeatures | None = None
    facial_expression_features: FacialExpressionFeatures | None = None
    facial_metrics: FaceMetrics | None = None

    @field_validator("mouse_movements", "keystroke_timings")
    @classmethod
    def _drop_non_finite(cls, values: list[float] | None) -> list[float] | None:
        if values is None:
            return None
        return [v for v in values if math.isfinite(v)]


class OrderContext(BaseModel):
    """Read-only description of the order being gated."""
    instrument: str = ""
    size: float = 0.0
    order_type: Literal["market", "limit"] = "market"
    side: Literal["buy", "sell"] = "buy"
    leverage: float | None = None
    current_pnl: float | None = None
    recent_losses: float | None = None  # negative = loss
    time_of_day: datetime | None = None
    market_volatility: float | None = None


# ── Baseline ──────────────────────────────────────────────────

class UserBaseline(BaseModel):
    """Personalised cognitive / behavioural statistics for one user.

    Standard deviations fall back to population constants when unset so
    z-scoring never divides by zero.
    """
    user_id: str
    reaction_time_ms: float | None = None
    reaction_time_std_dev: float = POPULATION_REACTION_TIME_STD_MS
    accuracy: float | None = None
    accuracy_std_dev: float = POPULATION_ACCURACY_STD
    mouse_stability: float | None = None
    mouse_stability_std_dev: float = POPULATION_MOUSE_STABILITY_STD
    keystroke_rhythm: float | None = None
    keystroke_rhythm_std_dev: float = POPULATION_KEYSTROKE_RHYTHM_STD
    calibration_count: int = 0
    last_calibrated: datetime | None = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator(
        "reaction_time_std_dev",
        "accuracy_std_dev",
        "mouse_stability_std_dev",
        "keystroke_rhythm_std_dev",
        mode="before",
    )
    @classmethod
    def _population_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, (int, float)) and value <= 0):
            return cls.model_fields[info.field_name].default
        return value

    @property
    def is_calibrated(self) -> bool:
        return self.calibration_count >= CALIBRATED_AFTER_SESSIONS


# ── Policy ────────────────────────────────────────────────────

class EnabledModes(BaseModel):
    cognitive_test: bool = True
    behavioral_biometrics: bool = True
    self_report: bool = True
    voice_prosody: bool = True
    facial_expression: bool = True

    def allows(self, modality: Modality) -> bool:
        """Contextual risk is objective exposure and is never disabled."""
        return {
            Modality.COGNITIVE: self.cognitive_test,
            Modality.BEHAVIORAL: self.behavioral_biometrics,
            Modality.SELF_REPORT: self.self_report,
            Modality.VOICE: self.voice_prosody,
            Modality.FACIAL: self.facial_expression,
        }.get(modality, True)


class Policy(BaseModel):
    """Gating policy for a desk or user.

    ``risk_threshold`` separates ``go`` from ``hold``; scores at or above
    the scoring profile's block ceiling always block, whatever the
    threshold.  The threshold is checked against that ceiling when the
    policy is loaded (see :func:`emotion_guard.policy.load_policy`).
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Default Standard Policy"
    strictness_level: StrictnessLevel = StrictnessLevel.STANDARD
    risk_threshold: int = Field(65, ge=0, le=100)
    cooldown_duration: int = Field(30, ge=15, le=120, description="Seconds.")
    enabled_modes: EnabledModes = Field(default_factory=EnabledModes)
    override_allowed: bool = True
    supervisor_notification: bool = True
    data_retention_days: int = Field(30, ge=7, le=90)
    version: int = Field(1, ge=1)


# ── Assessment records ────────────────────────────────────────

class TradeOutcome(BaseModel):
    executed: bool
    pnl: float | None = None
    duration: float | None = None
    max_favorable_excursion: float | None = None
    max_adverse_excursion: float | None = None


class Assessment(BaseModel):
    """Persisted pre-trade assessment and everything that happened after it."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    policy_id: str
    order_context: OrderContext
    signals: AssessmentSignals = Field(default_factory=AssessmentSignals)

    # ── Summary scores
    quick_check_duration_ms: int | None = None
    voice_prosody_score: float | None = None
    facial_expression_score: float | None = None

    # ── Risk
    risk: RiskAssessmentResult = Field(default_factory=RiskAssessmentResult)
    verdict: Verdict = Verdict.GO
    reason_tags: list[str] = Field(default_factory=list)

    # ── Follow-up actions
    cooldown_completed: bool = False
    cooldown_duration_ms: int | None = None
    journal_trigger: str | None = None
    journal_plan: str | None = None
    journal_entry: str | None = None
    override_used: bool = False
    override_reason: str | None = None
    supervisor_notified: bool = False
    trade_executed: bool = False
    trade_outcome: TradeOutcome | None = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def risk_score(self) -> int:
        return self.risk.risk_score


class AssessmentResult(BaseModel):
    """What the gate hands back to the caller."""
    assessment_id: str
    risk_score: int = Field(ge=0, le=100)
    verdict: Verdict
    reason_tags: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    recommended_action: str
    cooldown_duration: int | None = None
    scoring_version: str = "v1"


class AuditLogEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str | None = None
    assessment_id: str | None = None
    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class RealTimeEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str  # verdict_rendered, override_used, ...
    user_id: str | None = None
    assessment_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    processed: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
