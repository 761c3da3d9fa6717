"""
Response caching for inference calls.

Bounded, TTL-based cache keyed by model and canonicalized request payload.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached response and the cost recorded when it was produced."""
    key: str
    payload: Any
    cached_cost: float
    inserted_at: float


def make_cache_key(model_id: str, payload: Any) -> str:
    """Deterministic key for a (model, payload) pair.

    The payload is serialized as canonical JSON (sorted keys, compact
    separators) so logically identical requests collide regardless of
    field ordering.
    """
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{model_id}:{digest}"


class ResponseCache:
    """In-memory response cache with TTL expiry and insertion-order eviction.

    Expiry is lazy: an entry is checked on read and removed if stale. When
    full, the oldest inserted entry is evicted before a new one is stored.
    """

    def __init__(
        self,
        enabled: bool = True,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self.enabled = enabled
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "ResponseCache":
        """Build from a ``CacheConfig``."""
        return cls(
            enabled=config.enabled,
            ttl_seconds=config.ttl_seconds,
            max_entries=config.max_entries,
        )

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key``, or None."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.inserted_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return entry

    def set(self, key: str, payload: Any, cost: float) -> None:
        if not self.enabled:
            return
        with self._lock:
            # An overwrite counts as a fresh insertion
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                cached_cost=cost,
                inserted_at=self._clock(),
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Response cache cleared")

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "size": self.size(),
            "max_size": self.max_entries,
            "enabled": self.enabled,
        }
