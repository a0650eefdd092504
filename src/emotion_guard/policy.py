"""Policy loading and updates.

Policy invariants are enforced here, at load time, so an invalid policy
never reaches an assessment.
"""

from __future__ import annotations

from typing import Any, Mapping

import structlog
from pydantic import ValidationError

from emotion_guard.config import Settings, get_settings
from emotion_guard.errors import PolicyConfigurationError
from emotion_guard.models import Policy, StrictnessLevel
from emotion_guard.scoring.profile import ScoringProfile, get_scoring_profile

logger = structlog.get_logger(__name__)


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'policy'}: {err['msg']}" for err in exc.errors()
    )


def check_block_ceiling(policy: Policy, profile: ScoringProfile) -> Policy:
    """Reject a threshold that would leave no room for ``hold`` under *profile*."""
    if policy.risk_threshold >= profile.block_ceiling:
        logger.error(
            "policy.threshold_above_ceiling",
            policy_id=policy.id,
            risk_threshold=policy.risk_threshold,
            block_ceiling=profile.block_ceiling,
            scoring_version=profile.version,
        )
        raise PolicyConfigurationError(
            f"Invalid policy: risk_threshold ({policy.risk_threshold}) must be below the "
            f"block ceiling ({profile.block_ceiling}) of scoring profile {profile.version!r}"
        )
    return policy


def load_policy(data: Mapping[str, Any] | Policy, profile: ScoringProfile | None = None) -> Policy:
    """Validate *data* into a :class:`Policy`.

    *profile* supplies the block ceiling the threshold must stay below;
    the default scoring profile is used when omitted.

    Raises
    ------
    PolicyConfigurationError
        If any invariant is violated (e.g. threshold at or above the
        block ceiling, cooldown outside 15-120 s).
    """
    if isinstance(data, Policy):
        data = data.model_dump()
    try:
        policy = Policy.model_validate(data)
    except ValidationError as exc:
        policy_id = data.get("id") if isinstance(data, Mapping) else None
        logger.error("policy.invalid", policy_id=policy_id, errors=_describe(exc))
        raise PolicyConfigurationError(f"Invalid policy: {_describe(exc)}") from exc
    return check_block_ceiling(policy, profile or get_scoring_profile())


def apply_policy_update(
    policy: Policy,
    changes: Mapping[str, Any],
    profile: ScoringProfile | None = None,
) -> Policy:
    """Return a new validated policy with *changes* applied and ``version`` bumped."""
    protected = {"id", "version"} & set(changes)
    if protected:
        raise PolicyConfigurationError(f"Cannot update {', '.join(sorted(protected))}")

    merged = policy.model_dump()
    for key, value in changes.items():
        if key == "enabled_modes" and isinstance(value, Mapping):
            merged["enabled_modes"] = {**merged["enabled_modes"], **value}
        else:
            merged[key] = value
    merged["version"] = policy.version + 1

    updated = load_policy(merged, profile)
    logger.info("policy.updated", policy_id=updated.id, version=updated.version, fields=sorted(changes))
    return updated


def default_policy(settings: Settings | None = None) -> Policy:
    """The fallback policy used when none is configured for a request."""
    settings = settings or get_settings()
    return load_policy(
        {
            "id": settings.default_policy_id,
            "name": "Default Standard Policy",
            "strictness_level": StrictnessLevel.STANDARD,
            "risk_threshold": settings.default_risk_threshold,
            "cooldown_duration": settings.default_cooldown_seconds,
        },
        get_scoring_profile(settings.scoring_profile_version),
    )
