# tutor_availability/repositories/availability_cache.py
"""
In-process cache of resolved day availability.

Entries are keyed by (tutor_id, date, lesson duration) and expire after a TTL
measured on an injectable monotonic clock. Writers invalidate explicitly; the
TTL only bounds staleness when a change notification is missed.
"""

from collections import OrderedDict
from datetime import date
import logging
from threading import Lock
import time
from typing import Callable, Generic, Iterable, Optional, Tuple, TypeVar

from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

V = TypeVar("V")
CacheKey = Tuple[str, date, int]


class AvailabilityCache(Generic[V]):
    """Bounded TTL cache; a TTL of 0 disables caching."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = (
            settings.availability_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self.max_entries = (
            settings.availability_cache_max_entries if max_entries is None else max_entries
        )
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, Tuple[float, V]]" = OrderedDict()
        self._lock = Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0 and self.max_entries > 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, tutor_id: str, day: date, duration_minutes: int) -> Optional[V]:
        if not self.enabled:
            return None
        key = (tutor_id, day, duration_minutes)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] <= self._clock():
                del self._entries[key]
                entry = None
        prometheus_metrics.record_cache_lookup(hit=entry is not None)
        return entry[1] if entry is not None else None

    def set(self, tutor_id: str, day: date, duration_minutes: int, value: V) -> None:
        if not self.enabled:
            return
        key = (tutor_id, day, duration_minutes)
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, tutor_id: str, dates: Optional[Iterable[date]] = None) -> int:
        """
        Drop entries for a tutor, limited to ``dates`` when given.

        Returns:
            Number of entries dropped
        """
        wanted = set(dates) if dates is not None else None
        with self._lock:
            stale = [
                key
                for key in self._entries
                if key[0] == tutor_id and (wanted is None or key[1] in wanted)
            ]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Dropped %d cached day resolutions for %s", len(stale), tutor_id)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
