"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from emotion_guard.config import Settings
from emotion_guard.facial.landmarks import LEFT_EYE, RIGHT_EYE, EyeIndices
from emotion_guard.gate.service import EmotionGuardService
from emotion_guard.models import AssessmentSignals, CognitiveTrial, Policy, UserBaseline
from emotion_guard.notifications.handlers import EventDispatcher, LogEventSink, RepositoryEventSink
from emotion_guard.policy import default_policy
from emotion_guard.storage.cache import TTLCache
from emotion_guard.storage.repository import (
    InMemoryAssessmentRepository,
    InMemoryAuditLogRepository,
    InMemoryBaselineRepository,
    InMemoryEventRepository,
    InMemoryPolicyRepository,
)


# ── Helpers ───────────────────────────────────────────────────


def make_trials(reaction_times: list[float], correct: int | None = None) -> list[CognitiveTrial]:
    """Trials with the given reaction times; the first *correct* are correct."""
    correct = len(reaction_times) if correct is None else correct
    return [
        CognitiveTrial(word="RED", color="blue", response="blue", reaction_time_ms=rt, correct=i < correct)
        for i, rt in enumerate(reaction_times)
    ]


def make_mesh(
    ear: float = 0.3,
    *,
    brow_offset: float = 0.0,
    lip_gap: float = 0.0,
    shift: float = 0.0,
) -> list[list[float]]:
    """A synthetic 468-point face mesh with a chosen eye aspect ratio.

    Both eyes are 0.1 wide, so lid distance is ``ear * 0.1``.  *shift*
    moves every eye point horizontally (gaze jumps).
    """
    points = [[0.5, 0.5] for _ in range(468)]
    lid = ear * 0.1

    def _eye(eye: EyeIndices, outer_x: float) -> None:
        outer_x += shift
        for i, (upper, lower) in enumerate(zip(eye.upper, eye.lower)):
            if lower == eye.outer:
                points[upper] = [outer_x, 0.4 - lid]
                continue
            x = outer_x + 0.02 * (i + 1)
            points[upper] = [x, 0.4 - lid / 2]
            points[lower] = [x, 0.4 + lid / 2]
        points[eye.outer] = [outer_x, 0.4]
        points[eye.inner] = [outer_x + 0.1, 0.4]

    _eye(LEFT_EYE, 0.3)
    _eye(RIGHT_EYE, 0.6)

    # Brows: inner points sit lower than outer points when furrowed.
    points[55] = [0.38, 0.3 + brow_offset]
    points[46] = [0.30, 0.3]
    points[285] = [0.62, 0.3 + brow_offset]
    points[276] = [0.70, 0.3]

    # Mouth: 0.1 wide, lips apart by *lip_gap*.
    points[61] = [0.45, 0.6]
    points[291] = [0.55, 0.6]
    points[13] = [0.5, 0.6]
    points[14] = [0.5, 0.6 + lip_gap]
    return points


# ── Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="",
        event_webhook_url="",
        face_watchdog_timeout_seconds=0.2,
        face_fallback_interval_seconds=0.02,
        face_fallback_presence_chance=0.0,
    )


@pytest.fixture
def baseline() -> UserBaseline:
    return UserBaseline(
        user_id="U001",
        reaction_time_ms=500.0,
        reaction_time_std_dev=50.0,
        accuracy=0.95,
        accuracy_std_dev=0.075,
        mouse_stability=0.9,
        mouse_stability_std_dev=0.15,
        keystroke_rhythm=0.8,
        keystroke_rhythm_std_dev=0.2,
        calibration_count=5,
    )


@pytest.fixture
def policy() -> Policy:
    return Policy(id="desk-standard", risk_threshold=65, cooldown_duration=30)


@pytest.fixture
def calm_signals() -> AssessmentSignals:
    return AssessmentSignals(
        mouse_movements=[100.0 + i for i in range(20)],
        keystroke_timings=[110.0, 130.0, 120.0, 125.0, 115.0],
        click_latency=150.0,
        cognitive_trials=make_trials([500.0] * 10),
        stress_level=2,
    )


@pytest.fixture
def assessment_repo() -> InMemoryAssessmentRepository:
    return InMemoryAssessmentRepository()


@pytest.fixture
def audit_repo() -> InMemoryAuditLogRepository:
    return InMemoryAuditLogRepository()


@pytest.fixture
def event_repo() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture
def cache() -> TTLCache:
    return TTLCache(ttl_seconds=300)


@pytest.fixture
def service(settings, baseline, policy, assessment_repo, audit_repo, event_repo, cache) -> EmotionGuardService:
    strict = Policy(id="desk-strict", risk_threshold=50, override_allowed=False)
    quiet = Policy(id="desk-quiet", supervisor_notification=False)
    return EmotionGuardService(
        baselines=InMemoryBaselineRepository([baseline]),
        policies=InMemoryPolicyRepository([policy, strict, quiet], default=default_policy(settings)),
        assessments=assessment_repo,
        audit_log=audit_repo,
        dispatcher=EventDispatcher(sinks=[LogEventSink(), RepositoryEventSink(event_repo)]),
        cache=cache,
        settings=settings,
    )
