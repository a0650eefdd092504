"""Pre-trade gate orchestrator — ties scoring, storage and events together.

This module provides :class:`EmotionGuardService`, the entry point callers
use before placing a trade.  It coordinates:

1. Loading the user's baseline and the governing policy (concurrently,
   through the injected TTL cache)
2. Running the risk scoring engine and rendering the verdict
3. Persisting the assessment
4. Writing the audit entry and emitting the ``verdict_rendered`` event in
   the background, without delaying the verdict
5. Follow-up actions: facial/self-report updates, cooldowns, journal
   entries, overrides and trade outcomes
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from emotion_guard.config import Settings, get_settings
from emotion_guard.errors import (
    AssessmentNotFoundError,
    OverrideNotAllowedError,
    PolicyConfigurationError,
    SignalValidationError,
)
from emotion_guard.models import (
    Assessment,
    AssessmentResult,
    AssessmentSignals,
    AuditLogEntry,
    FaceMetrics,
    OrderContext,
    Policy,
    RealTimeEvent,
    TradeOutcome,
    UserBaseline,
)
from emotion_guard.notifications.handlers import EventDispatcher, create_dispatcher
from emotion_guard.policy import apply_policy_update, check_block_ceiling, default_policy
from emotion_guard.scoring.baseline import calibrate_baseline
from emotion_guard.scoring.engine import RiskScoringEngine
from emotion_guard.scoring.profile import get_scoring_profile
from emotion_guard.scoring.summary import facial_expression_score, summarize
from emotion_guard.scoring.verdict import (
    cooldown_for,
    determine_verdict,
    reason_tags,
    recommended_action,
)
from emotion_guard.storage.cache import TTLCache
from emotion_guard.storage.repository import (
    AssessmentRepository,
    AuditLogRepository,
    BaselineRepository,
    InMemoryAssessmentRepository,
    InMemoryAuditLogRepository,
    InMemoryBaselineRepository,
    InMemoryEventRepository,
    InMemoryPolicyRepository,
    PolicyRepository,
)

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_DEFAULT_POLICY_KEY = ("policy", None)


def _coerce(model: type[M], value: M | Mapping[str, Any], what: str) -> M:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise SignalValidationError.from_validation_error(exc, what=what) from exc


class EmotionGuardService:
    """Orchestrator for pre-trade stress assessments.

    Parameters
    ----------
    baselines : BaselineRepository
        Load and update personalised baselines.
    policies : PolicyRepository
        Load and store gating policies.
    assessments : AssessmentRepository
        Persist assessments and their follow-up actions.
    audit_log : AuditLogRepository
        Append-only audit trail.  Write failures are logged, never raised.
    dispatcher : EventDispatcher | None
        Real-time event fan-out (defaults to log only).
    cache : TTLCache | None
        Read-through cache for baselines and policies.
    engine : RiskScoringEngine | None
        Defaults to the profile named by ``scoring_profile_version``.
        Every policy is checked against this profile's block ceiling;
        an incompatible one raises :class:`PolicyConfigurationError`.
    """

    def __init__(
        self,
        *,
        baselines: BaselineRepository,
        policies: PolicyRepository,
        assessments: AssessmentRepository,
        audit_log: AuditLogRepository,
        dispatcher: EventDispatcher | None = None,
        cache: TTLCache | None = None,
        engine: RiskScoringEngine | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._baselines = baselines
        self._policies = policies
        self._assessments = assessments
        self._audit_log = audit_log
        self._dispatcher = dispatcher or EventDispatcher()
        self._cache = cache if cache is not None else TTLCache(settings.cache_ttl_seconds)
        self._engine = engine or RiskScoringEngine(get_scoring_profile(settings.scoring_profile_version))
        check_block_ceiling(default_policy(settings), self._engine.profile)
        self._settings = settings
        self._background: set[asyncio.Task] = set()

    @property
    def engine(self) -> RiskScoringEngine:
        return self._engine

    # ── Lookups ───────────────────────────────────────────────

    async def _get_baseline(self, user_id: str) -> UserBaseline | None:
        key = ("baseline", user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        baseline = await self._baselines.get(user_id)
        if baseline is not None:
            self._cache.set(key, baseline)
        return baseline

    async def _get_policy(self, policy_id: str | None, *, fallback_to_default: bool = False) -> Policy:
        key = ("policy", policy_id) if policy_id else _DEFAULT_POLICY_KEY
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        if policy_id:
            policy = await self._policies.get(policy_id)
            if policy is None:
                if not fallback_to_default:
                    raise PolicyConfigurationError(f"Unknown policy {policy_id!r}")
                logger.warning("gate.policy_missing", policy_id=policy_id)
                return await self._get_policy(None)
        else:
            policy = await self._policies.get_default()
        check_block_ceiling(policy, self._engine.profile)
        self._cache.set(key, policy)
        return policy

    async def _require(self, assessment_id: str) -> Assessment:
        assessment = await self._assessments.get(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)
        return assessment

    # ── Side effects ──────────────────────────────────────────

    async def _write_audit(self, entry: AuditLogEntry) -> None:
        try:
            await self._audit_log.save(entry)
        except Exception as exc:
            logger.error(
                "gate.audit_write_failed",
                action=entry.action,
                assessment_id=entry.assessment_id,
                error=str(exc),
            )

    async def _emit(self, event: RealTimeEvent) -> None:
        try:
            await self._dispatcher.dispatch(event)
        except Exception as exc:
            logger.error("gate.event_emit_failed", event_type=event.event_type, error=str(exc))

    def _in_background(self, *coros: Any) -> asyncio.Task:
        task = asyncio.create_task(self._gather(*coros))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @staticmethod
    async def _gather(*coros: Any) -> None:
        await asyncio.gather(*coros)

    async def flush(self) -> None:
        """Wait for pending background side effects (shutdown / tests)."""
        while self._background:
            await asyncio.gather(*list(self._background))

    # ── Assessment ────────────────────────────────────────────

    def _result(self, assessment: Assessment, policy: Policy) -> AssessmentResult:
        return AssessmentResult(
            assessment_id=assessment.id,
            risk_score=assessment.risk.risk_score,
            verdict=assessment.verdict,
            reason_tags=assessment.reason_tags,
            confidence=assessment.risk.confidence,
            recommended_action=recommended_action(assessment.verdict),
            cooldown_duration=cooldown_for(assessment.verdict, policy),
            scoring_version=assessment.risk.scoring_version,
        )

    async def check_before_trade(
        self,
        user_id: str,
        order_context: OrderContext | Mapping[str, Any],
        signals: AssessmentSignals | Mapping[str, Any],
        policy_id: str | None = None,
    ) -> AssessmentResult:
        """Assess the trader and render a go / hold / block verdict.

        Raises
        ------
        SignalValidationError
            If *order_context* or *signals* is malformed.
        PolicyConfigurationError
            If *policy_id* names no known policy.
        """
        order_context = _coerce(OrderContext, order_context, "order context")
        signals = _coerce(AssessmentSignals, signals, "assessment signals")

        baseline, policy = await asyncio.gather(
            self._get_baseline(user_id),
            self._get_policy(policy_id),
        )

        risk = self._engine.assess(signals, baseline, order_context, policy)
        verdict = determine_verdict(risk.risk_score, policy, self._engine.profile)
        tags = reason_tags(risk)

        assessment = Assessment(
            user_id=user_id,
            policy_id=policy.id,
            order_context=order_context,
            signals=signals,
            risk=risk,
            verdict=verdict,
            reason_tags=tags,
            **summarize(signals),
        )
        await self._assessments.save(assessment)

        self._in_background(
            self._write_audit(
                AuditLogEntry(
                    user_id=user_id,
                    assessment_id=assessment.id,
                    action="assessment_completed",
                    details={
                        "risk_score": risk.risk_score,
                        "verdict": verdict.value,
                        "reason_tags": tags,
                        "policy_version": policy.version,
                        "scoring_version": risk.scoring_version,
                        "order_context": order_context.model_dump(mode="json"),
                    },
                )
            ),
            self._emit(
                RealTimeEvent(
                    event_type="verdict_rendered",
                    user_id=user_id,
                    assessment_id=assessment.id,
                    data={"verdict": verdict.value, "risk_score": risk.risk_score, "reason_tags": tags},
                )
            ),
        )

        logger.info(
            "gate.verdict_rendered",
            user_id=user_id,
            assessment_id=assessment.id,
            verdict=verdict.value,
            risk_score=risk.risk_score,
            policy_id=policy.id,
        )
        return self._result(assessment, policy)

    async def update_facial_metrics(
        self,
        assessment_id: str,
        metrics: FaceMetrics | Mapping[str, Any] | None = None,
        stress_level: int | None = None,
    ) -> AssessmentResult:
        """Attach late facial metrics and/or self-report, then re-score.

        The verdict is recomputed from scratch; it never transitions from
        the previous one.
        """
        assessment = await self._require(assessment_id)

        updates: dict[str, Any] = {}
        if metrics is not None:
            metrics = _coerce(FaceMetrics, metrics, "facial metrics")
            updates["facial_metrics"] = metrics
        if stress_level is not None:
            updates["stress_level"] = stress_level
        signals = _coerce(
            AssessmentSignals,
            {**assessment.signals.model_dump(), **updates},
            "assessment signals",
        )

        baseline, policy = await asyncio.gather(
            self._get_baseline(assessment.user_id),
            self._policy_for(assessment),
        )
        risk = self._engine.assess(signals, baseline, assessment.order_context, policy)
        verdict = determine_verdict(risk.risk_score, policy, self._engine.profile)

        changes: dict[str, Any] = {
            "signals": signals,
            "risk": risk,
            "verdict": verdict,
            "reason_tags": reason_tags(risk),
        }
        if metrics is not None:
            changes["facial_expression_score"] = facial_expression_score(metrics)
        updated = await self._assessments.update(assessment_id, **changes)

        self._in_background(
            self._write_audit(
                AuditLogEntry(
                    user_id=assessment.user_id,
                    assessment_id=assessment_id,
                    action="facial_metrics_updated",
                    details={
                        "facial_metrics": metrics.model_dump(mode="json") if metrics is not None else None,
                        "facial_expression_score": changes.get("facial_expression_score"),
                        "stress_level": stress_level,
                        "risk_score": risk.risk_score,
                        "verdict": verdict.value,
                    },
                )
            )
        )
        logger.info(
            "gate.assessment_rescored",
            assessment_id=assessment_id,
            previous_score=assessment.risk_score,
            risk_score=risk.risk_score,
            verdict=verdict.value,
        )
        return self._result(updated, policy)

    async def _policy_for(self, assessment: Assessment) -> Policy:
        return await self._get_policy(assessment.policy_id, fallback_to_default=True)

    # ── Follow-up actions ─────────────────────────────────────

    async def record_cooldown_completion(self, assessment_id: str, duration_ms: int) -> None:
        await self._require(assessment_id)
        await self._assessments.update(
            assessment_id, cooldown_completed=True, cooldown_duration_ms=duration_ms
        )
        await self._write_audit(
            AuditLogEntry(
                assessment_id=assessment_id,
                action="cooldown_completed",
                details={"duration_ms": duration_ms},
            )
        )

    async def record_journal_entry(
        self,
        assessment_id: str,
        trigger: str,
        plan: str,
        entry: str | None = None,
    ) -> None:
        await self._require(assessment_id)
        await self._assessments.update(
            assessment_id, journal_trigger=trigger, journal_plan=plan, journal_entry=entry
        )
        await self._write_audit(
            AuditLogEntry(
                assessment_id=assessment_id,
                action="journal_entry_saved",
                details={"trigger": trigger, "plan": plan, "entry": entry},
            )
        )

    async def record_override(self, assessment_id: str, reason: str, user_id: str) -> None:
        """Proceed against the verdict, if the governing policy allows it.

        Raises
        ------
        OverrideNotAllowedError
            If the policy forbids overrides.
        """
        assessment = await self._require(assessment_id)
        policy = await self._policy_for(assessment)
        if not policy.override_allowed:
            logger.warning("gate.override_denied", assessment_id=assessment_id, policy_id=policy.id)
            raise OverrideNotAllowedError(f"Policy {policy.id!r} does not allow overrides")

        await self._assessments.update(
            assessment_id,
            override_used=True,
            override_reason=reason,
            supervisor_notified=policy.supervisor_notification,
        )
        details = {
            "reason": reason,
            "original_verdict": assessment.verdict.value,
            "risk_score": assessment.risk_score,
        }
        await asyncio.gather(
            self._write_audit(
                AuditLogEntry(
                    user_id=user_id,
                    assessment_id=assessment_id,
                    action="override_used",
                    details=details,
                )
            ),
            self._emit(
                RealTimeEvent(
                    event_type="override_used",
                    user_id=user_id,
                    assessment_id=assessment_id,
                    data=details,
                )
            ),
        )

    async def record_trade_outcome(
        self,
        assessment_id: str,
        outcome: TradeOutcome | Mapping[str, Any],
    ) -> None:
        outcome = _coerce(TradeOutcome, outcome, "trade outcome")
        await self._require(assessment_id)
        await self._assessments.update(
            assessment_id, trade_executed=outcome.executed, trade_outcome=outcome
        )

    # ── Baselines & policies ──────────────────────────────────

    async def calibrate(
        self,
        user_id: str,
        signals: AssessmentSignals | Mapping[str, Any],
    ) -> UserBaseline:
        """Fold a calibration session into the user's baseline."""
        signals = _coerce(AssessmentSignals, signals, "calibration signals")
        current = await self._baselines.get(user_id)
        updated = calibrate_baseline(
            current, signals, self._settings.baseline_ewma_alpha, user_id=user_id
        )
        await self._baselines.upsert(updated)
        self._cache.invalidate(("baseline", user_id))
        return updated

    async def update_policy(self, policy_id: str, changes: Mapping[str, Any]) -> Policy:
        """Apply *changes* to a stored policy, bumping its version.

        Raises
        ------
        PolicyConfigurationError
            If the policy is unknown or the result is invalid.
        """
        current = await self._policies.get(policy_id)
        if current is None:
            raise PolicyConfigurationError(f"Unknown policy {policy_id!r}")
        saved = await self._policies.save(apply_policy_update(current, changes, self._engine.profile))
        self._cache.invalidate(("policy", policy_id))
        self._cache.invalidate(_DEFAULT_POLICY_KEY)
        return saved


def build_in_memory_service(settings: Settings | None = None) -> EmotionGuardService:
    """Wire an :class:`EmotionGuardService` over in-memory stores."""
    settings = settings or get_settings()
    events = InMemoryEventRepository()
    dispatcher = create_dispatcher(settings, events)
    return EmotionGuardService(
        baselines=InMemoryBaselineRepository(),
        policies=InMemoryPolicyRepository(
            default=default_policy(settings),
            profile=get_scoring_profile(settings.scoring_profile_version),
        ),
        assessments=InMemoryAssessmentRepository(),
        audit_log=InMemoryAuditLogRepository(),
        dispatcher=dispatcher,
        settings=settings,
    )
