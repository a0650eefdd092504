"""Exception hierarchy for the gate.

Only configuration and request-shape problems are errors.  Missing signals,
missing baselines and unreachable external analyzers are handled in-band
and never raise.
"""

from __future__ import annotations

from pydantic import ValidationError


class EmotionGuardError(Exception):
    """Base class for all gate errors."""


class PolicyConfigurationError(EmotionGuardError):
    """A policy or scoring profile is invalid.  Raised at load time."""


class SignalValidationError(EmotionGuardError):
    """An assessment request payload is malformed."""

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_validation_error(cls, exc: ValidationError, *, what: str) -> SignalValidationError:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        return cls(
            f"Invalid {what}: {', '.join(fields) or 'payload'}",
            errors=[{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
        )


class AssessmentNotFoundError(EmotionGuardError):
    """No assessment exists with the requested id."""


class OverrideNotAllowedError(EmotionGuardError):
    """The governing policy does not permit overriding a verdict."""


class ExternalAnalysisError(EmotionGuardError):
    """The external AI analyzer failed or replied with an unusable shape.

    Always caught by the analysis service, which degrades to the local
    heuristic.
    """
