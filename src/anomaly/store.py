"""
Bounded in-memory stores for anomalies and early warnings.

Items are indexed by id, with a min-heap on their timestamp so the oldest can
be evicted in O(log n) once the store grows past its capacity. Eviction is
permanent. Every mutation (insert, evict, refresh, status transition)
happens under the store's lock.
"""

import heapq
import itertools
import threading
from collections.abc import Callable, Hashable, Iterable
from datetime import datetime
from typing import Generic, TypeVar

import structlog

from .models import AnomalyDetection, EarlyWarning

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BoundedStore(Generic[T]):
    """Id-indexed collection with oldest-first eviction above `capacity`"""

    def __init__(
        self,
        capacity: int,
        timestamp_of: Callable[[T], datetime],
        key_of: Callable[[T], Hashable] | None = None,
        name: str = "store",
    ):
        if capacity < 1:
            raise ValueError(f"Store capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.name = name
        self._timestamp_of = timestamp_of
        self._key_of = key_of
        self._items: dict[str, T] = {}
        self._keys: dict[Hashable, str] = {}
        self._heap: list[tuple[datetime, int, str]] = []
        self._counter = itertools.count()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._items

    def get(self, item_id: str) -> T | None:
        with self._lock:
            return self._items.get(item_id)

    def has_key(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._keys

    def add_many(self, items: Iterable[T]) -> list[T]:
        """Insert items, then enforce capacity

        Returns one entry per item: the item itself, or the instance already
        stored under the same key, which is kept and the item dropped. A new
        item older than everything retained may be evicted straight away.
        """
        resident = []
        with self._lock:
            for item in items:
                if self._key_of is not None:
                    key = self._key_of(item)
                    existing_id = self._keys.get(key)
                    if existing_id is not None:
                        resident.append(self._items[existing_id])
                        continue
                    self._keys[key] = item.id
                self._items[item.id] = item
                heapq.heappush(self._heap, (self._timestamp_of(item), next(self._counter), item.id))
                resident.append(item)

            evicted = self._evict()

        if evicted:
            logger.debug("Evicted oldest entries", store=self.name, evicted=evicted)
        return resident

    def _evict(self) -> int:
        evicted = 0
        while len(self._items) > self.capacity:
            _, _, item_id = heapq.heappop(self._heap)
            item = self._items.pop(item_id)
            if self._key_of is not None:
                self._keys.pop(self._key_of(item), None)
            evicted += 1
        return evicted

    def update(self, item_id: str, mutate: Callable[[T], None]) -> bool:
        """Apply `mutate` to a stored item under the lock; False if unknown"""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return False
            mutate(item)
            return True

    def values(self) -> list[T]:
        with self._lock:
            return list(self._items.values())

    def select(self, predicate: Callable[[T], bool], newest_first: bool = True) -> list[T]:
        """Items matching predicate, sorted by timestamp"""
        with self._lock:
            matches = [item for item in self._items.values() if predicate(item)]
        return sorted(matches, key=self._timestamp_of, reverse=newest_first)


class AnomalyStore(BoundedStore[AnomalyDetection]):
    """Anomalies deduplicated on (metric, type, hour bucket)"""

    def __init__(self, capacity: int = 1000):
        super().__init__(
            capacity,
            timestamp_of=lambda a: a.detected_at,
            key_of=lambda a: a.dedup_key,
            name="anomalies",
        )


class WarningStore(BoundedStore[EarlyWarning]):
    def __init__(self, capacity: int = 500):
        super().__init__(capacity, timestamp_of=lambda w: w.created_at, name="warnings")

    def add_or_refresh(self, warnings: Iterable[EarlyWarning]) -> list[EarlyWarning]:
        """Store warnings, folding each into an open warning for the same (type, metric)

        Returns the stored warning for each input, refreshed or new.
        """
        resident = []
        with self._lock:
            open_warnings = {(w.type, w.metric): w for w in self._items.values() if w.is_open}
            fresh = []
            for warning in warnings:
                key = (warning.type, warning.metric)
                existing = open_warnings.get(key)
                if existing is None:
                    open_warnings[key] = warning
                    fresh.append(warning)
                    resident.append(warning)
                else:
                    existing.refresh_from(warning)
                    resident.append(existing)
            self.add_many(fresh)
        return resident


def deduplicate(anomalies: Iterable[AnomalyDetection]) -> list[AnomalyDetection]:
    """Keep the first anomaly per dedup key, in order"""
    seen = set()
    unique = []
    for anomaly in anomalies:
        key = anomaly.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(anomaly)
    return unique
