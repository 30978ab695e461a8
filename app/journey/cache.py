"""In-memory progress cache with TTL support.

Keys follow `{domain}:{user_id}[:{sub_id}]`, e.g. `journey:{user}` or
`progress:{user}:{task}`. Entries expire lazily on read. The cache knows
nothing about write paths: anything that changes a user's meals, weigh-ins
or plan must call `invalidate_user` (or `invalidate_pattern`) itself.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from app.config import settings

logger = logging.getLogger(__name__)

CACHE_DOMAINS = ("journey", "progress")


def journey_key(user_id: str) -> str:
    return f"journey:{user_id}"


def progress_key(user_id: str, task_id: str) -> str:
    return f"progress:{user_id}:{task_id}"


def request_key(user_id: str, task_id: str, fingerprint: str) -> str:
    """Ad-hoc evaluation of a task with caller-supplied inputs. Never read by `progress_key` lookups."""
    return f"progress:{user_id}:{task_id}:{fingerprint}"


def user_prefixes(user_id: str) -> list[str]:
    """Every key prefix that can hold data derived from this user's activity."""
    return [f"{domain}:{user_id}" for domain in CACHE_DOMAINS]


class ProgressCache:
    """Thread-safe TTL memo in front of task evaluation."""

    def __init__(
        self,
        default_ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl_seconds is None:
            default_ttl_seconds = settings.journey_progress_cache_ttl_seconds
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._data: dict[str, Any] = {}
        self._expiry: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def _drop(self, key: str) -> None:
        self._data.pop(key, None)
        self._expiry.pop(key, None)

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when missing or expired."""
        with self._lock:
            expiry = self._expiry.get(key)
            if expiry is not None and expiry <= self._clock():
                self._drop(key)
                logger.debug("Cache entry expired: %s", key)
                return None
            value = self._data.get(key)
            if value is not None:
                logger.debug("Cache hit for key: %s", key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._data[key] = value
            if ttl > 0:
                self._expiry[key] = self._clock() + ttl
            else:
                self._expiry.pop(key, None)
            logger.debug("Cached key: %s (TTL: %ss)", key, ttl)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            existed = key in self._data
            self._drop(key)
            return existed

    def invalidate_pattern(self, prefix: str) -> int:
        """Drop every key starting with `prefix`. Returns how many were dropped."""
        with self._lock:
            matching = [k for k in self._data if k.startswith(prefix)]
            for key in matching:
                self._drop(key)
        if matching:
            logger.debug("Invalidated %d cache key(s) with prefix %s", len(matching), prefix)
        return len(matching)

    def invalidate_user(self, user_id: str) -> int:
        # Trailing separator/equality keeps user "ab" from matching user "abc".
        dropped = 0
        for prefix in user_prefixes(user_id):
            dropped += self.invalidate(prefix)
            dropped += self.invalidate_pattern(prefix + ":")
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._expiry.clear()


progress_cache = ProgressCache()
