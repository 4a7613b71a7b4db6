"""Process-wide TTL cache shared by in-flight requests."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)

EVICTION_FRACTION = 0.1


@dataclass(slots=True)
class _Entry:
    value: Any
    stored_at: float


class TTLCache:
    """Thread-safe mapping with lazy expiry and a size cap.

    Every mutation happens under one lock, so concurrent requests may read and
    populate the same cache. Expired entries are dropped when they are next
    looked up; when the cache grows past ``max_size`` the oldest ~10% of
    entries are evicted.
    """

    def __init__(
        self,
        name: str,
        *,
        ttl_s: float,
        max_size: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl_s = ttl_s
        self.max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.stored_at > self.ttl_s:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, stored_at=self._clock())
            if len(self._entries) > self.max_size:
                self._evict_oldest_locked()

    def _evict_oldest_locked(self) -> None:
        ordered = sorted(self._entries.items(), key=lambda item: item[1].stored_at)
        to_remove = max(1, int(len(ordered) * EVICTION_FRACTION))
        for key, _ in ordered[:to_remove]:
            del self._entries[key]
        logger.info("cache %s over capacity, evicted %s oldest entries", self.name, to_remove)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_s": self.ttl_s,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": (self._hits / lookups) if lookups else None,
            }


def route_cache_key(origin: str, destination: str) -> str:
    return f"route:{origin.strip().upper()}_{destination.strip().upper()}"


def weather_cache_key(lat: float, lon: float, when: datetime | str) -> str:
    # ~1.1km precision, one bucket per hour
    if isinstance(when, str):
        when = datetime.fromisoformat(when.replace("Z", "+00:00"))
    return f"weather:{lat:.2f}_{lon:.2f}_{when.strftime('%Y-%m-%dT%H')}"


def query_hash(query: str) -> str:
    normalized = (query or "").lower().strip()[:500]
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SharedCaches:
    intent: TTLCache
    route: TTLCache
    weather: TTLCache


def build_shared_caches(settings) -> SharedCaches:
    return SharedCaches(
        intent=TTLCache("intent", ttl_s=settings.intent_cache_ttl_s, max_size=settings.intent_cache_max_size),
        route=TTLCache("route", ttl_s=settings.route_cache_ttl_s, max_size=settings.route_cache_max_size),
        weather=TTLCache("weather", ttl_s=settings.weather_cache_ttl_s, max_size=settings.weather_cache_max_size),
    )
