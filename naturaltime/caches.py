"""Fixed-capacity memoization in front of the epoch resolver and event adapters."""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

__all__ = ["BoundedCache", "QueryCaches"]

LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedCache(Generic[K, V]):
    """Associative cache holding at most *capacity* entries.

    Eviction is first-in first-out: a hit does not refresh an entry, a miss
    that overflows drops the oldest insertion.
    """

    def __init__(self, capacity: int, name: str = "cache"):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.name = name
        self.store: "OrderedDict[K, V]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self.store)

    def __contains__(self, key: object) -> bool:
        return key in self.store

    def get(self, key: K) -> Optional[V]:
        if key in self.store:
            self.hits += 1
            return self.store[key]
        self.misses += 1
        return None

    def put(self, key: K, value: V) -> None:
        if key in self.store:
            self.store[key] = value
            return
        self.store[key] = value
        while len(self.store) > self.capacity:
            evicted, _ = self.store.popitem(last=False)
            LOGGER.debug(json.dumps({"event": "cache_evict", "cache": self.name, "key": repr(evicted)}))

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        if key in self.store:
            self.hits += 1
            return self.store[key]
        self.misses += 1
        value = compute()
        self.put(key, value)
        return value

    def clear(self) -> None:
        self.store.clear()


@dataclass
class QueryCaches:
    """Caches owned by one :class:`naturaltime.context.NaturalTime` session.

    ``solstices`` is keyed by Gregorian year, ``sun_events`` by
    ``(nadir, latitude, longitude)`` and ``mustaches`` by
    ``(utc_year, latitude)``.
    """

    solstices: BoundedCache[int, Any] = field(default_factory=lambda: BoundedCache(2, "solstices"))
    sun_events: BoundedCache[tuple, Any] = field(default_factory=lambda: BoundedCache(1, "sun_events"))
    mustaches: BoundedCache[tuple, Any] = field(default_factory=lambda: BoundedCache(1, "mustaches"))

    def clear(self) -> None:
        self.solstices.clear()
        self.sun_events.clear()
        self.mustaches.clear()
