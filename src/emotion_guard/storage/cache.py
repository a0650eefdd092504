"""Injected TTL cache for read-mostly lookups (baselines, policies)."""

from __future__ import annotations

import time
from typing import Callable, Generic, Hashable, TypeVar

V = TypeVar("V")

_MISSING = object()


class TTLCache(Generic[V]):
    """Small in-process cache with per-entry expiry.

    Owned by whoever constructs it and passed in explicitly; writers
    call :meth:`invalidate` after changing the underlying record.

    Parameters
    ----------
    ttl_seconds : float
        Lifetime of an entry from the moment it is set.
    clock : Callable[[], float]
        Monotonic clock in seconds.
    """

    def __init__(self, ttl_seconds: float = 300.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable, default: V | None = None) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> bool:
        """Drop *key*.  Return ``True`` if it was cached."""
        return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING  # type: ignore[arg-type]

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
