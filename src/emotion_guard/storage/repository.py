"""Data-access layer — async repository contracts and in-memory stores.

The gate only depends on the :class:`typing.Protocol` shapes below;
persistence technology is the deployer's choice.  The in-memory
implementations back the CLI and the tests.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from emotion_guard.errors import AssessmentNotFoundError, PolicyConfigurationError
from emotion_guard.models import (
    Assessment,
    AuditLogEntry,
    Policy,
    RealTimeEvent,
    UserBaseline,
)
from emotion_guard.policy import check_block_ceiling, default_policy, load_policy
from emotion_guard.scoring.profile import ScoringProfile, get_scoring_profile


# ── Contracts ─────────────────────────────────────────────────


class BaselineRepository(Protocol):
    async def get(self, user_id: str) -> UserBaseline | None: ...

    async def upsert(self, baseline: UserBaseline) -> None: ...


class PolicyRepository(Protocol):
    async def get(self, policy_id: str) -> Policy | None: ...

    async def get_default(self) -> Policy: ...

    async def save(self, policy: Policy | Mapping[str, Any]) -> Policy: ...


class AssessmentRepository(Protocol):
    async def save(self, assessment: Assessment) -> None: ...

    async def get(self, assessment_id: str) -> Assessment | None: ...

    async def update(self, assessment_id: str, **changes: Any) -> Assessment: ...

    async def list_for_user(self, user_id: str, limit: int = 50) -> Sequence[Assessment]: ...


class AuditLogRepository(Protocol):
    async def save(self, entry: AuditLogEntry) -> None: ...

    async def list_for_assessment(self, assessment_id: str) -> Sequence[AuditLogEntry]: ...


class EventRepository(Protocol):
    async def save(self, event: RealTimeEvent) -> None: ...

    async def list_unprocessed(self, limit: int = 100) -> Sequence[RealTimeEvent]: ...

    async def mark_processed(self, event_id: str) -> bool: ...


# ── In-memory implementations ────────────────────────────────


class InMemoryBaselineRepository:
    """Baselines keyed by user id."""

    def __init__(self, baselines: Sequence[UserBaseline] = ()) -> None:
        self._rows: dict[str, UserBaseline] = {b.user_id: b for b in baselines}

    async def get(self, user_id: str) -> UserBaseline | None:
        return self._rows.get(user_id)

    async def upsert(self, baseline: UserBaseline) -> None:
        self._rows[baseline.user_id] = baseline


class InMemoryPolicyRepository:
    """Policies keyed by id; writes are validated as at load time.

    Every stored threshold is checked against *profile*'s block ceiling
    (the default scoring profile when omitted).
    """

    def __init__(
        self,
        policies: Sequence[Policy] = (),
        *,
        default: Policy | None = None,
        profile: ScoringProfile | None = None,
    ) -> None:
        self._profile = profile or get_scoring_profile()
        self._default = check_block_ceiling(default or default_policy(), self._profile)
        self._rows: dict[str, Policy] = {self._default.id: self._default}
        for policy in policies:
            self._rows[policy.id] = check_block_ceiling(policy, self._profile)

    async def get(self, policy_id: str) -> Policy | None:
        return self._rows.get(policy_id)

    async def get_default(self) -> Policy:
        return self._rows[self._default.id]

    async def save(self, policy: Policy | Mapping[str, Any]) -> Policy:
        """Validate and store *policy*.

        Raises
        ------
        PolicyConfigurationError
            If the policy violates an invariant, or is older than the
            stored version.
        """
        validated = load_policy(policy, self._profile)
        current = self._rows.get(validated.id)
        if current is not None and validated.version < current.version:
            raise PolicyConfigurationError(
                f"Policy {validated.id!r} version {validated.version} is older than stored "
                f"version {current.version}"
            )
        self._rows[validated.id] = validated
        return validated


class InMemoryAssessmentRepository:
    def __init__(self) -> None:
        self._rows: dict[str, Assessment] = {}

    async def save(self, assessment: Assessment) -> None:
        self._rows[assessment.id] = assessment

    async def get(self, assessment_id: str) -> Assessment | None:
        return self._rows.get(assessment_id)

    async def update(self, assessment_id: str, **changes: Any) -> Assessment:
        current = self._rows.get(assessment_id)
        if current is None:
            raise AssessmentNotFoundError(assessment_id)
        updated = current.model_copy(update=changes)
        self._rows[assessment_id] = updated
        return updated

    async def list_for_user(self, user_id: str, limit: int = 50) -> Sequence[Assessment]:
        rows = [a for a in self._rows.values() if a.user_id == user_id]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows[:limit]


class InMemoryAuditLogRepository:
    def __init__(self) -> None:
        self._rows: list[AuditLogEntry] = []

    async def save(self, entry: AuditLogEntry) -> None:
        self._rows.append(entry)

    async def list_for_assessment(self, assessment_id: str) -> Sequence[AuditLogEntry]:
        return [e for e in self._rows if e.assessment_id == assessment_id]

    @property
    def entries(self) -> list[AuditLogEntry]:
        return list(self._rows)


class InMemoryEventRepository:
    def __init__(self) -> None:
        self._rows: dict[str, RealTimeEvent] = {}

    async def save(self, event: RealTimeEvent) -> None:
        self._rows[event.id] = event

    async def list_unprocessed(self, limit: int = 100) -> Sequence[RealTimeEvent]:
        rows = [e for e in self._rows.values() if not e.processed]
        rows.sort(key=lambda e: e.created_at)
        return rows[:limit]

    async def mark_processed(self, event_id: str) -> bool:
        event = self._rows.get(event_id)
        if event is None:
            return False
        self._rows[event_id] = event.model_copy(update={"processed": True})
        return True

    @property
    def events(self) -> list[RealTimeEvent]:
        return list(self._rows.values())
