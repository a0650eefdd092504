"""Pre-trade gate service."""

from emotion_guard.gate.service import EmotionGuardService, build_in_memory_service

__all__ = ["EmotionGuardService", "build_in_memory_service"]
