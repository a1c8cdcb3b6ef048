"""In-memory response cache with TTL expiry and stale fallback copies."""

import hashlib
import json
import threading
import time
from collections.abc import Callable
from typing import Any

from cachetools import TLRUCache, TTLCache

from copilot_api.config import get_settings


def make_key(prefix: str, data: Any) -> str:
    """Build a cache key from a prefix and a JSON-serialisable payload."""
    digest = hashlib.sha256(
        json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return f"{prefix}:{digest}"


def _entry_expiry(_key: str, value: tuple[str, float], now: float) -> float:
    return now + value[1]


class ResponseCache:
    """Thread-safe generation cache.

    Fresh entries expire after their own TTL. Every ``set`` also refreshes a
    long-lived fallback copy that outlives the fresh entry, so a result can
    still be served (as a degraded response) when the provider is down.
    """

    def __init__(
        self,
        max_entries: int | None = None,
        fallback_ttl: int | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_entries: Maximum entries per tier. Defaults to config value.
            fallback_ttl: Lifetime of fallback copies in seconds. Defaults to config value.
            timer: Clock used for expiry (tests inject a fake one).
        """
        settings = get_settings()
        self._max_entries = max_entries or settings.ai_cache_max_entries
        self._fallback_ttl = fallback_ttl or settings.ai_fallback_ttl
        self._fresh: TLRUCache[str, tuple[str, float]] = TLRUCache(
            maxsize=self._max_entries, ttu=_entry_expiry, timer=timer
        )
        self._fallback: TTLCache[str, str] = TTLCache(
            maxsize=self._max_entries, ttl=self._fallback_ttl, timer=timer
        )
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        """Get a fresh value, or None if missing or expired."""
        with self._lock:
            entry = self._fresh.get(key)
            return entry[0] if entry is not None else None

    def set(self, key: str, value: str, ttl: float) -> None:
        """Store a fresh value and refresh its fallback copy."""
        with self._lock:
            self._fresh[key] = (value, float(ttl))
            self._fallback[key] = value

    def get_fallback(self, key: str) -> str | None:
        """Get the stale fallback copy for a key, if any."""
        with self._lock:
            return self._fallback.get(key)

    def delete(self, key: str) -> bool:
        """Delete both tiers for a key.

        Returns:
            True if anything was removed.
        """
        with self._lock:
            removed = self._fresh.pop(key, None) is not None
            removed = (self._fallback.pop(key, None) is not None) or removed
            return removed

    def count(self) -> int:
        """Number of fresh entries."""
        with self._lock:
            return len(self._fresh)

    def clear(self) -> None:
        with self._lock:
            self._fresh.clear()
            self._fallback.clear()

    def get_stats(self) -> dict:
        """Get statistics about the cache."""
        with self._lock:
            return {
                "fresh_entries": len(self._fresh),
                "fallback_entries": len(self._fallback),
                "max_entries": self._max_entries,
                "fallback_ttl_seconds": self._fallback_ttl,
            }


# Global cache instance
_response_cache: ResponseCache | None = None


def get_response_cache() -> ResponseCache:
    """Get the global response cache instance."""
    global _response_cache
    if _response_cache is None:
        _response_cache = ResponseCache()
    return _response_cache


def reset_response_cache() -> None:
    """Reset the global response cache (useful for testing)."""
    global _response_cache
    _response_cache = None
