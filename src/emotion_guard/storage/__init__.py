"""Storage contracts, in-memory stores and the injected TTL cache."""

from emotion_guard.storage.cache import TTLCache
from emotion_guard.storage.repository import (
    AssessmentRepository,
    AuditLogRepository,
    BaselineRepository,
    EventRepository,
    InMemoryAssessmentRepository,
    InMemoryAuditLogRepository,
    InMemoryBaselineRepository,
    InMemoryEventRepository,
    InMemoryPolicyRepository,
    PolicyRepository,
)

__all__ = [
    "AssessmentRepository",
    "AuditLogRepository",
    "BaselineRepository",
    "EventRepository",
    "InMemoryAssessmentRepository",
    "InMemoryAuditLogRepository",
    "InMemoryBaselineRepository",
    "InMemoryEventRepository",
    "InMemoryPolicyRepository",
    "PolicyRepository",
    "TTLCache",
]
