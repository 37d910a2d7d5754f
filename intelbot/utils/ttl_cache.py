"""In-memory cache with read-time freshness windows.

Each outbound client owns one ``TTLCache``. Entries only remember when they
were stored; the caller supplies the freshness window on every read, so the
same key can be consulted with different tolerances by different operations.

Overflow handling is a FIFO trim: once the store grows past ``max_entries``
the ``trim_count`` earliest-inserted keys are dropped. Reads do not refresh
an entry's position.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached payload plus the clock reading taken when it was stored."""

    value: Any
    stored_at: float


class TTLCache:
    """Thread-safe keyed store with per-read expiry and FIFO trimming.

    Attributes:
        name: Owner label used in log events.
        max_entries: Size ceiling that triggers a trim on ``set``.
        trim_count: How many of the oldest entries a trim removes.
    """

    def __init__(
        self,
        *,
        name: str = "cache",
        max_entries: int = 100,
        trim_count: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if trim_count < 1:
            raise ValueError("trim_count must be >= 1")

        self.name = name
        self._max_entries = max_entries
        self._trim_count = trim_count
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"TTLCache(name={self.name!r}, max_entries={self._max_entries}, "
            f"size={len(self._store)}, hits={self._hits}, misses={self._misses}, "
            f"evictions={self._evictions})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._store

    def get(self, key: str, max_age: float) -> Any | None:
        """Return the value for ``key`` if it is at most ``max_age`` seconds old.

        A stale entry is removed from the store on the way out.

        Args:
            key: Cache key.
            max_age: Freshness window in seconds for this read.

        Returns:
            Cached value, or None when missing or stale.
        """

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                logger.debug(
                    "cache.miss",
                    extra={"cache": self.name, "cache_key": key[:16], "reason": "not_found"},
                )
                return None

            if self._clock() - entry.stored_at > max_age:
                self._evict_single(key)
                self._misses += 1
                logger.debug(
                    "cache.miss",
                    extra={"cache": self.name, "cache_key": key[:16], "reason": "expired"},
                )
                return None

            self._hits += 1
            logger.debug("cache.hit", extra={"cache": self.name, "cache_key": key[:16]})
            return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` stamped with the current clock, replacing any prior entry.

        Args:
            key: Cache key.
            value: Payload to store.
        """

        with self._lock:
            # Re-inserting moves the key to the end so trimming stays insertion-ordered
            self._store.pop(key, None)
            self._store[key] = CacheEntry(value=value, stored_at=self._clock())
            self._trim_if_over_capacity_locked()

            logger.debug(
                "cache.set",
                extra={"cache": self.name, "cache_key": key[:16], "size": len(self._store)},
            )

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._store.keys())

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | str]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "name": self.name,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if key in self._store:
            self._store.pop(key, None)
            self._evictions += 1

    def _trim_if_over_capacity_locked(self) -> None:
        if len(self._store) <= self._max_entries:
            return

        # The newest entry is never trimmed
        to_remove = min(
            max(self._trim_count, len(self._store) - self._max_entries),
            len(self._store) - 1,
        )
        for _ in range(to_remove):
            self._store.popitem(last=False)
            self._evictions += 1

        logger.debug(
            "cache.trimmed",
            extra={"cache": self.name, "removed": to_remove, "size": len(self._store)},
        )


def build_cache_key(endpoint: str, params: Mapping[str, Any] | None = None) -> str:
    """Build a deterministic cache key from an endpoint and its parameters.

    Parameters are serialized as sorted JSON so dict ordering never changes
    the key.

    Args:
        endpoint: Request path or method name.
        params: Query parameters or JSON-RPC params.

    Returns:
        Hex-encoded SHA-256 digest string.
    """

    serialized = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    hasher = sha256()
    hasher.update(endpoint.encode())
    hasher.update(b"?")
    hasher.update(serialized.encode())
    return hasher.hexdigest()
