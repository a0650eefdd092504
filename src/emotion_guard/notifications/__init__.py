"""Notification sub-package — real-time event delivery."""

from emotion_guard.notifications.handlers import (
    DispatchResult,
    EventDispatcher,
    EventSink,
    create_dispatcher,
)

__all__ = ["DispatchResult", "EventDispatcher", "EventSink", "create_dispatcher"]
