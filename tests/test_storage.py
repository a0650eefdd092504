"""Tests for the TTL cache and in-memory repositories."""

from __future__ import annotations

import pytest

from emotion_guard.errors import AssessmentNotFoundError
from emotion_guard.models import Assessment, OrderContext, RealTimeEvent
from emotion_guard.storage.cache import TTLCache
from emotion_guard.storage.repository import InMemoryAssessmentRepository, InMemoryEventRepository


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ── TTL cache ─────────────────────────────────────────────────


class TestTTLCache:
    def test_get_and_expire(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", 1)
        assert cache.get("k") == 1
        clock.now = 9.9
        assert "k" in cache
        clock.now = 10.0
        assert cache.get("k") is None
        assert "k" not in cache

    def test_default(self):
        cache = TTLCache()
        assert cache.get("missing", "fallback") == "fallback"

    def test_invalidate(self):
        cache = TTLCache()
        cache.set(("baseline", "U1"), "x")
        assert cache.invalidate(("baseline", "U1"))
        assert not cache.invalidate(("baseline", "U1"))

    def test_len_counts_live_entries(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=5, clock=clock)
        cache.set("a", 1)
        clock.now = 3.0
        cache.set("b", 2)
        assert len(cache) == 2
        clock.now = 6.0
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=0)


# ── Repositories ──────────────────────────────────────────────


@pytest.mark.asyncio
class TestRepositories:
    async def test_assessment_update(self):
        repo = InMemoryAssessmentRepository()
        assessment = Assessment(user_id="U1", policy_id="p", order_context=OrderContext())
        await repo.save(assessment)
        updated = await repo.update(assessment.id, cooldown_completed=True)
        assert updated.cooldown_completed
        assert (await repo.get(assessment.id)).cooldown_completed

    async def test_assessment_update_missing(self):
        with pytest.raises(AssessmentNotFoundError):
            await InMemoryAssessmentRepository().update("nope", cooldown_completed=True)

    async def test_list_for_user(self):
        repo = InMemoryAssessmentRepository()
        for user in ("U1", "U1", "U2"):
            await repo.save(Assessment(user_id=user, policy_id="p", order_context=OrderContext()))
        assert len(await repo.list_for_user("U1")) == 2
        assert len(await repo.list_for_user("U1", limit=1)) == 1

    async def test_events_processing(self):
        repo = InMemoryEventRepository()
        event = RealTimeEvent(event_type="verdict_rendered")
        await repo.save(event)
        assert [e.id for e in await repo.list_unprocessed()] == [event.id]
        assert await repo.mark_processed(event.id)
        assert await repo.list_unprocessed() == []
        assert not await repo.mark_processed("unknown")
