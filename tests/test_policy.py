"""Tests for policy loading, updates and the policy store."""

from __future__ import annotations

import pytest

from emotion_guard.config import Settings
from emotion_guard.errors import PolicyConfigurationError
from emotion_guard.models import EnabledModes, Policy, StrictnessLevel
from emotion_guard.policy import apply_policy_update, default_policy, load_policy
from emotion_guard.scoring.profile import PROFILE_V1, register_scoring_profile
from emotion_guard.storage.repository import InMemoryPolicyRepository

LOW_CEILING = PROFILE_V1.model_copy(update={"version": "test-low-ceiling", "block_ceiling": 70})


class TestLoadPolicy:
    def test_valid(self):
        policy = load_policy({"id": "desk-a", "risk_threshold": 60, "cooldown_duration": 45})
        assert policy.risk_threshold == 60
        assert policy.enabled_modes.voice_prosody

    def test_accepts_policy_instance(self, policy):
        assert load_policy(policy) == policy

    @pytest.mark.parametrize(
        "changes",
        [
            {"risk_threshold": 80},
            {"risk_threshold": 95},
            {"cooldown_duration": 10},
            {"cooldown_duration": 121},
            {"data_retention_days": 100},
            {"version": 0},
            {"strictness_level": "reckless"},
        ],
    )
    def test_invalid(self, changes):
        with pytest.raises(PolicyConfigurationError):
            load_policy({"id": "desk-a", **changes})

    def test_default_policy_from_settings(self):
        settings = Settings(_env_file=None, default_policy_id="house", default_risk_threshold=55)
        policy = default_policy(settings)
        assert policy.id == "house"
        assert policy.risk_threshold == 55
        assert policy.strictness_level == StrictnessLevel.STANDARD


class TestPolicyUpdate:
    def test_bumps_version(self, policy):
        updated = apply_policy_update(policy, {"risk_threshold": 55})
        assert updated.risk_threshold == 55
        assert updated.version == policy.version + 1
        assert policy.risk_threshold == 65

    def test_partial_enabled_modes(self, policy):
        updated = apply_policy_update(policy, {"enabled_modes": {"voice_prosody": False}})
        assert updated.enabled_modes == EnabledModes(voice_prosody=False)

    def test_invalid_update_rejected(self, policy):
        with pytest.raises(PolicyConfigurationError):
            apply_policy_update(policy, {"risk_threshold": 85})

    @pytest.mark.parametrize("field", ["id", "version"])
    def test_protected_fields(self, policy, field):
        with pytest.raises(PolicyConfigurationError):
            apply_policy_update(policy, {field: "other" if field == "id" else 9})


@pytest.mark.asyncio
class TestPolicyRepository:
    async def test_default_is_available(self, settings):
        repo = InMemoryPolicyRepository(default=default_policy(settings))
        assert (await repo.get_default()).id == "default-standard"

    async def test_save_validates(self, settings):
        repo = InMemoryPolicyRepository(default=default_policy(settings))
        with pytest.raises(PolicyConfigurationError):
            await repo.save({"id": "bad", "risk_threshold": 90})
        assert await repo.get("bad") is None

    async def test_rejects_older_version(self, settings, policy):
        repo = InMemoryPolicyRepository([policy.model_copy(update={"version": 3})], default=default_policy(settings))
        with pytest.raises(PolicyConfigurationError):
            await repo.save(policy)


@pytest.mark.asyncio
class TestBlockCeiling:
    async def test_threshold_checked_against_profile(self):
        assert load_policy({"id": "desk-a", "risk_threshold": 75}).risk_threshold == 75
        assert load_policy({"id": "desk-a", "risk_threshold": 65}, LOW_CEILING).risk_threshold == 65
        with pytest.raises(PolicyConfigurationError) as exc_info:
            load_policy({"id": "desk-a", "risk_threshold": 75}, LOW_CEILING)
        assert "block ceiling (70)" in str(exc_info.value)

    async def test_update_checked_against_profile(self, policy):
        with pytest.raises(PolicyConfigurationError):
            apply_policy_update(policy, {"risk_threshold": 72}, LOW_CEILING)

    async def test_repository_uses_profile(self, settings):
        repo = InMemoryPolicyRepository(default=default_policy(settings), profile=LOW_CEILING)
        with pytest.raises(PolicyConfigurationError):
            await repo.save({"id": "wide", "risk_threshold": 75})
        with pytest.raises(PolicyConfigurationError):
            InMemoryPolicyRepository([Policy(id="wide", risk_threshold=75)], profile=LOW_CEILING)

    async def test_default_policy_uses_configured_profile(self):
        register_scoring_profile(LOW_CEILING)
        settings = Settings(_env_file=None, scoring_profile_version="test-low-ceiling", default_risk_threshold=75)
        with pytest.raises(PolicyConfigurationError):
            default_policy(settings)
