"""Tests for aggregation, verdicts, scoring profiles and the scoring engine."""

from __future__ import annotations

import random

import pytest

from conftest import make_trials
from emotion_guard.errors import PolicyConfigurationError
from emotion_guard.models import (
    AssessmentSignals,
    EnabledModes,
    FaceMetrics,
    OrderContext,
    Policy,
    Verdict,
    VoiceProsodyFeatures,
)
from emotion_guard.scoring.aggregator import aggregate
from emotion_guard.scoring.analyzers import analyze_facial
from emotion_guard.scoring.engine import RiskScoringEngine
from emotion_guard.scoring.models import Modality, ModalityResult, RiskAssessmentResult
from emotion_guard.scoring.profile import (
    PROFILE_V1,
    ScoringProfile,
    available_versions,
    get_scoring_profile,
    register_scoring_profile,
)
from emotion_guard.scoring.summary import facial_expression_score
from emotion_guard.scoring.verdict import (
    cooldown_for,
    determine_verdict,
    reason_tags,
    recommended_action,
)


def _result(modality: Modality, score: float, confidence: float | None = None, **flags: bool) -> ModalityResult:
    if confidence is None:
        confidence = 1.0 if modality is Modality.CONTEXTUAL else PROFILE_V1.confidence(modality)
    return ModalityResult(modality=modality, score=score, confidence=confidence, flags=flags)


# ── Aggregation ───────────────────────────────────────────────


class TestAggregate:
    def test_nothing_measured(self):
        risk = aggregate([])
        assert risk.risk_score == 0
        assert risk.confidence == 0.0

    def test_context_only(self):
        risk = aggregate([_result(Modality.CONTEXTUAL, 30)])
        assert risk.risk_score == 30
        assert risk.risk_score == risk.contextual_risk
        assert risk.confidence == 0.0

    def test_weighted_sum_and_confidence(self):
        risk = aggregate([_result(Modality.COGNITIVE, 30), _result(Modality.SELF_REPORT, 40)])
        assert risk.risk_score == 39  # 30 * 0.5 + 40 * 0.6
        assert risk.confidence == pytest.approx((0.9 * 0.5 + 0.95 * 0.6) / 2)
        assert risk.contributing_modalities == [Modality.COGNITIVE, Modality.SELF_REPORT]

    def test_zero_scores_do_not_dilute_confidence(self):
        risk = aggregate([_result(Modality.SELF_REPORT, 40), _result(Modality.BEHAVIORAL, 0)])
        assert risk.confidence == pytest.approx(0.95 * 0.6)
        assert Modality.BEHAVIORAL not in risk.contributing_modalities

    def test_clamped_to_100(self):
        risk = aggregate(
            [
                _result(Modality.COGNITIVE, 60),
                _result(Modality.BEHAVIORAL, 35),
                _result(Modality.SELF_REPORT, 40),
                _result(Modality.VOICE, 25),
                _result(Modality.FACIAL, 30),
                _result(Modality.CONTEXTUAL, 40),
            ]
        )
        assert risk.risk_score == 100

    def test_rounds_half_up(self):
        risk = aggregate([_result(Modality.COGNITIVE, 25)])  # 12.5
        assert risk.risk_score == 13

    def test_flags_carried_through(self):
        risk = aggregate(
            [
                _result(Modality.COGNITIVE, 30, reaction_time_elevated=True),
                _result(Modality.VOICE, 8, stress_detected=True),
            ]
        )
        assert risk.reaction_time_elevated
        assert risk.voice_stress_detected
        assert not risk.facial_stress_detected

    def test_idempotent(self):
        results = [_result(Modality.COGNITIVE, 30), _result(Modality.CONTEXTUAL, 12)]
        assert aggregate(results) == aggregate(results)

    def test_records_scoring_version(self):
        assert aggregate([]).scoring_version == "v1"


# ── Verdict ───────────────────────────────────────────────────


class TestVerdict:
    def test_hold_between_threshold_and_ceiling(self, policy):
        verdict = determine_verdict(70, policy)
        assert verdict == Verdict.HOLD
        assert cooldown_for(verdict, policy) == 30

    def test_ceiling_blocks_regardless_of_threshold(self):
        low = Policy(id="low", risk_threshold=10)
        verdict = determine_verdict(85, low)
        assert verdict == Verdict.BLOCK
        assert cooldown_for(verdict, low) is None

    @pytest.mark.parametrize(
        ("score", "expected"),
        [(0, Verdict.GO), (64, Verdict.GO), (65, Verdict.HOLD), (79, Verdict.HOLD), (80, Verdict.BLOCK), (100, Verdict.BLOCK)],
    )
    def test_boundaries(self, policy, score, expected):
        assert determine_verdict(score, policy) == expected

    def test_go_has_no_cooldown(self, policy):
        assert cooldown_for(Verdict.GO, policy) is None

    def test_reason_tags_fixed_order(self):
        risk = RiskAssessmentResult(
            facial_stress_detected=True,
            reaction_time_elevated=True,
            voice_stress_detected=True,
            accuracy_low=True,
            behavioral_anomalies=True,
            self_report_high_stress=True,
        )
        assert reason_tags(risk) == [
            "Reaction time elevated",
            "Accuracy below baseline",
            "Self-report high stress",
            "Behavioral anomalies detected",
            "Voice stress indicators",
            "Facial stress indicators",
        ]

    def test_no_tags(self):
        assert reason_tags(RiskAssessmentResult()) == []

    def test_recommended_actions(self):
        assert recommended_action(Verdict.GO).startswith("Proceed with trade")
        assert "breathing break" in recommended_action(Verdict.HOLD)
        assert "postponing trade" in recommended_action(Verdict.BLOCK)


# ── Scoring profiles ──────────────────────────────────────────


class TestScoringProfile:
    def test_default_is_v1(self):
        assert get_scoring_profile().version == "v1"
        assert "v1" in available_versions()

    def test_unknown_version(self):
        with pytest.raises(PolicyConfigurationError):
            get_scoring_profile("v999")

    def test_register_and_lookup(self):
        profile = PROFILE_V1.model_copy(update={"version": "test-register"})
        register_scoring_profile(profile)
        register_scoring_profile(profile)  # same values: no-op
        assert get_scoring_profile("test-register") == profile

    def test_registered_versions_are_immutable(self):
        register_scoring_profile(PROFILE_V1.model_copy(update={"version": "test-immutable"}))
        changed = PROFILE_V1.model_copy(update={"version": "test-immutable", "contextual_cap": 10.0})
        with pytest.raises(PolicyConfigurationError):
            register_scoring_profile(changed)

    def test_incomplete_tables_rejected(self):
        with pytest.raises(ValueError):
            ScoringProfile(
                version="broken",
                weights={Modality.COGNITIVE: 0.5},
                caps=PROFILE_V1.caps,
                confidences=PROFILE_V1.confidences,
            )


# ── Engine ────────────────────────────────────────────────────


class TestEngine:
    def test_baseline_scenario(self, baseline):
        signals = AssessmentSignals(cognitive_trials=make_trials([700.0] * 5))
        risk = RiskScoringEngine().assess(signals, baseline)
        assert risk.reaction_time_elevated
        assert risk.risk_score == 15

    def test_disabled_modes_are_skipped(self):
        policy = Policy(id="no-self-report", enabled_modes=EnabledModes(self_report=False))
        risk = RiskScoringEngine().assess(AssessmentSignals(stress_level=9), policy=policy)
        assert risk.risk_score == 0
        assert Modality.SELF_REPORT not in risk.contributing_modalities

    def test_context_always_applies(self):
        policy = Policy(
            id="all-off",
            enabled_modes=EnabledModes(
                cognitive_test=False,
                behavioral_biometrics=False,
                self_report=False,
                voice_prosody=False,
                facial_expression=False,
            ),
        )
        risk = RiskScoringEngine().assess(
            AssessmentSignals(stress_level=9), context=OrderContext(leverage=12), policy=policy
        )
        assert risk.risk_score == 20

    def test_self_report_is_monotonic(self):
        engine = RiskScoringEngine()
        context = OrderContext(leverage=6)
        scores = [
            engine.assess(AssessmentSignals(stress_level=level, click_latency=150), context=context).risk_score
            for level in range(3, 10)
        ]
        assert scores == sorted(scores)

    def test_scores_stay_in_bounds(self):
        rng = random.Random(7)
        engine = RiskScoringEngine()
        for _ in range(50):
            signals = AssessmentSignals(
                mouse_movements=[rng.uniform(0, 500) for _ in range(10)],
                keystroke_timings=[rng.uniform(1, 400) for _ in range(6)],
                click_latency=rng.uniform(1, 600),
                cognitive_trials=make_trials([rng.uniform(200, 1500) for _ in range(5)], correct=rng.randint(0, 5)),
                stress_level=rng.randint(0, 10),
                voice_prosody_features=VoiceProsodyFeatures(pitch=rng.uniform(80, 300), energy=rng.random()),
            )
            context = OrderContext(
                leverage=rng.uniform(1, 20),
                recent_losses=rng.uniform(-20_000, 0),
                current_pnl=rng.uniform(-10_000, 1000),
                market_volatility=rng.uniform(0, 2),
            )
            risk = engine.assess(signals, context=context)
            assert 0 <= risk.risk_score <= 100
            assert 0.0 <= risk.confidence <= 1.0

    def test_deterministic(self, baseline, calm_signals):
        engine = RiskScoringEngine()
        assert engine.assess(calm_signals, baseline) == engine.assess(calm_signals, baseline)


# ── Summary scores ────────────────────────────────────────────


class TestSummaryScores:
    def test_fatigue_counts_in_summary_and_analyzer(self):
        tired = FaceMetrics(is_present=True, blink_rate=15, eye_aspect_ratio=0.12)
        assert facial_expression_score(tired) == pytest.approx(0.2)
        assert analyze_facial(AssessmentSignals(facial_metrics=tired)).flags["fatigue"]

    def test_open_eyes_score_nothing(self):
        alert = FaceMetrics(is_present=True, blink_rate=15, eye_aspect_ratio=0.18)
        assert facial_expression_score(alert) == 0.0
        assert not analyze_facial(AssessmentSignals(facial_metrics=alert)).flags["fatigue"]

    def test_absent_face(self):
        assert facial_expression_score(FaceMetrics.not_present()) == 0.0
        assert facial_expression_score(None) == 0.0
