"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """All runtime configuration for the emotion-guard gate.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  Every variable lives in the flat
    ``EMOTION_GUARD_`` namespace (stripped automatically by
    *pydantic-settings*).
    """

    model_config = SettingsConfigDict(
        env_prefix="EMOTION_GUARD_",
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # ── External AI analyzer ──────────────────────────────────
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    ai_analysis_url: str = "https://api.openai.com/v1/chat/completions"
    ai_request_timeout: float = 10.0

    # ── Policy defaults ───────────────────────────────────────
    default_policy_id: str = "default-standard"
    default_risk_threshold: int = 65
    default_cooldown_seconds: int = 30

    # ── Scoring ───────────────────────────────────────────────
    scoring_profile_version: str = "v1"
    baseline_ewma_alpha: float = 0.3  # Calibration smoothing factor

    # ── Caching ───────────────────────────────────────────────
    cache_ttl_seconds: float = 300.0

    # ── Facial tracking ───────────────────────────────────────
    face_watchdog_timeout_seconds: float = 5.0  # Stalled input → degraded stream
    face_fallback_interval_seconds: float = 0.5
    face_fallback_presence_chance: float = 0.05
    blink_window_seconds: float = 60.0  # Blink-rate window
    blink_history_seconds: float = 120.0  # Retained blink history

    # ── Events ────────────────────────────────────────────────
    event_webhook_url: str = ""


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
