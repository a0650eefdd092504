"""Real-time event sinks — log, webhook and repository delivery.

Architecture
~~~~~~~~~~~~
* **EventSink** — abstract base for delivery channels.
* **LogEventSink / WebhookEventSink / RepositoryEventSink** — concrete sinks.
* **EventDispatcher** — fan-out with error-isolation and results.
* **create_dispatcher()** — factory that wires sinks from settings.

Adding a new sink
~~~~~~~~~~~~~~~~~
1. Subclass ``EventSink``.
2. Implement ``async emit(event) -> bool``.
3. Register via ``dispatcher.add_sink(...)`` or add to the factory.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

if TYPE_CHECKING:
    from emotion_guard.config import Settings
    from emotion_guard.models import RealTimeEvent
    from emotion_guard.storage.repository import EventRepository

logger = structlog.get_logger(__name__)


# ── Dispatch result ───────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome summary for a single ``dispatch()`` call."""

    event_id: str | None
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return len(self.failed) == 0


# ── Abstract sink ─────────────────────────────────────────────


class EventSink(ABC):
    """Contract for event delivery channels.

    Subclasses must implement :meth:`emit`.  They may override
    :meth:`should_handle` to filter by event type.
    """

    name: str = "base"

    @abstractmethod
    async def emit(self, event: RealTimeEvent) -> bool:
        """Deliver an event.  Return ``True`` on success."""

    def should_handle(self, event: RealTimeEvent) -> bool:  # noqa: ARG002
        return True


# ── Concrete sinks ───────────────────────────────────────────


class LogEventSink(EventSink):
    """Write events to the structured log (always enabled)."""

    name = "log"

    async def emit(self, event: RealTimeEvent) -> bool:
        logger.info(
            "event.log",
            event_type=event.event_type,
            user_id=event.user_id,
            assessment_id=event.assessment_id,
            data=event.data,
        )
        return True


class WebhookEventSink(EventSink):
    """POST event JSON to an external webhook URL."""

    name = "webhook"

    def __init__(self, url: str, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    async def emit(self, event: RealTimeEvent) -> bool:
        payload = event.model_dump(mode="json")
        try:
            if self._client is not None:
                resp = await self._client.post(self._url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=payload)
            resp.raise_for_status()
            logger.info("event.webhook_sent", url=self._url, event_id=event.id)
            return True
        except httpx.HTTPError as exc:
            logger.error("event.webhook_failed", url=self._url, error=str(exc))
            return False


class RepositoryEventSink(EventSink):
    """Persist events for later consumers (dashboards, supervisors)."""

    name = "repository"

    def __init__(self, repo: EventRepository) -> None:
        self._repo = repo

    async def emit(self, event: RealTimeEvent) -> bool:
        await self._repo.save(event)
        return True


# ── Dispatcher ────────────────────────────────────────────────


class EventDispatcher:
    """Fan-out events to registered sinks with error isolation.

    Each sink is invoked independently; a failure in one channel never
    blocks delivery to the others.
    """

    def __init__(self, *, sinks: list[EventSink] | None = None) -> None:
        self._sinks: list[EventSink] = sinks if sinks is not None else [LogEventSink()]

    # ── Sink management ───────────────────────────────────────

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, name: str) -> bool:
        """Remove the first sink matching *name*.  Return ``True`` if found."""
        for i, s in enumerate(self._sinks):
            if s.name == name:
                self._sinks.pop(i)
                return True
        return False

    @property
    def sink_names(self) -> list[str]:
        return [s.name for s in self._sinks]

    # ── Dispatch ──────────────────────────────────────────────

    async def dispatch(self, event: RealTimeEvent) -> DispatchResult:
        """Send *event* to every sink, collecting per-sink outcomes.

        A sink that raises is caught, logged, and marked as failed so
        remaining sinks still execute.
        """
        sent: list[str] = []
        failed: list[str] = []

        for sink in self._sinks:
            if not sink.should_handle(event):
                continue
            try:
                ok = await sink.emit(event)
                (sent if ok else failed).append(sink.name)
            except Exception:
                logger.exception("event.sink_error", sink=sink.name, event_id=event.id)
                failed.append(sink.name)

        result = DispatchResult(event_id=event.id, sent=sent, failed=failed)
        if result.failed:
            logger.warning("event.partial_failure", event_id=event.id, failed=result.failed)
        return result


# ── Factory ───────────────────────────────────────────────────


def create_dispatcher(settings: Settings, event_repo: EventRepository | None = None) -> EventDispatcher:
    """Build an :class:`EventDispatcher` wired from application settings.

    * **LogEventSink** is always registered.
    * **RepositoryEventSink** is added when *event_repo* is given.
    * **WebhookEventSink** is added when ``settings.event_webhook_url`` is set.
    """
    dispatcher = EventDispatcher()
    if event_repo is not None:
        dispatcher.add_sink(RepositoryEventSink(event_repo))
    if settings.event_webhook_url:
        dispatcher.add_sink(WebhookEventSink(settings.event_webhook_url))
    return dispatcher
