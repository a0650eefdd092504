"""Command-line entrypoint — run one-off assessments and validate policies."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from emotion_guard.analysis.external import ExternalAnalyzer
from emotion_guard.analysis.service import AIScoringService
from emotion_guard.config import Settings, get_settings
from emotion_guard.errors import EmotionGuardError, PolicyConfigurationError, SignalValidationError
from emotion_guard.gate.service import EmotionGuardService
from emotion_guard.logger import setup_logging
from emotion_guard.models import AssessmentSignals, OrderContext, UserBaseline
from emotion_guard.notifications.handlers import create_dispatcher
from emotion_guard.policy import default_policy, load_policy
from emotion_guard.scoring.profile import get_scoring_profile
from emotion_guard.storage.repository import (
    InMemoryAssessmentRepository,
    InMemoryAuditLogRepository,
    InMemoryBaselineRepository,
    InMemoryEventRepository,
    InMemoryPolicyRepository,
)


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _read_payload(path: str) -> dict[str, Any]:
    """Load an assessment payload; the top level and each section must be objects."""
    payload = _read_json(path)
    if not isinstance(payload, dict):
        raise SignalValidationError(
            f"Invalid assessment payload: expected a JSON object, got {type(payload).__name__}"
        )
    for key in ("order_context", "signals", "baseline", "policy"):
        value = payload.get(key)
        if value is not None and not isinstance(value, dict):
            raise SignalValidationError(
                f"Invalid assessment payload: {key} must be a JSON object, got {type(value).__name__}"
            )
    return payload


async def _assess(payload: dict[str, Any], settings: Settings, *, with_ai: bool) -> dict[str, Any]:
    """Run one assessment over in-memory stores seeded from *payload*.

    Payload keys: ``user_id``, ``order_context``, ``signals`` and the
    optional ``baseline`` and ``policy``.
    """
    user_id = payload.get("user_id", "cli-user")

    baselines = InMemoryBaselineRepository()
    if payload.get("baseline"):
        await baselines.upsert(UserBaseline.model_validate({"user_id": user_id, **payload["baseline"]}))

    policies = InMemoryPolicyRepository(
        default=default_policy(settings),
        profile=get_scoring_profile(settings.scoring_profile_version),
    )
    policy_id = None
    if payload.get("policy"):
        policy_id = (await policies.save(payload["policy"])).id

    service = EmotionGuardService(
        baselines=baselines,
        policies=policies,
        assessments=InMemoryAssessmentRepository(),
        audit_log=InMemoryAuditLogRepository(),
        dispatcher=create_dispatcher(settings, InMemoryEventRepository()),
        settings=settings,
    )
    result = await service.check_before_trade(
        user_id,
        payload.get("order_context", {}),
        payload.get("signals", {}),
        policy_id=policy_id,
    )
    await service.flush()
    output: dict[str, Any] = {"assessment": result.model_dump(mode="json")}

    if with_ai:
        ai = AIScoringService(ExternalAnalyzer.from_settings(settings))
        outcome = await ai.analyze(
            AssessmentSignals.model_validate(payload.get("signals", {})),
            await baselines.get(user_id),
            OrderContext.model_validate(payload.get("order_context", {})),
        )
        output["ai_analysis"] = outcome.model_dump(mode="json")

    return output


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="emotion-guard",
        description="Pre-trade stress risk gate.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── assess ────────────────────────────────────────────────
    assess_parser = sub.add_parser("assess", help="Assess one JSON payload and print the verdict.")
    assess_parser.add_argument("payload", help="Path to a JSON payload file.")
    assess_parser.add_argument("--ai", action="store_true", help="Also run AI-assisted analysis.")

    # ── check-policy ──────────────────────────────────────────
    policy_parser = sub.add_parser("check-policy", help="Validate a policy JSON file.")
    policy_parser.add_argument("policy", help="Path to a policy JSON file.")

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    if args.command == "assess":
        try:
            output = asyncio.run(_assess(_read_payload(args.payload), settings, with_ai=args.ai))
        except (EmotionGuardError, ValidationError, OSError, json.JSONDecodeError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            sys.exit(2)
        print(json.dumps(output, indent=2))
    elif args.command == "check-policy":
        try:
            policy = load_policy(
                _read_json(args.policy),
                get_scoring_profile(settings.scoring_profile_version),
            )
        except PolicyConfigurationError as exc:
            print(str(exc), file=sys.stderr)
            sys.exit(1)
        except (OSError, json.JSONDecodeError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            sys.exit(1)
        print(f"Policy {policy.id!r} OK (version {policy.version}, threshold {policy.risk_threshold})")
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
