"""TTL cache for dashboard statistics."""
from __future__ import annotations

import threading
from datetime import date
from typing import Optional

from cachetools import TTLCache

from .schemas import DashboardStats


class StatsCache:
    """Dashboard statistics per UTC day.

    Entries expire after ``ttl`` seconds and are dropped wholesale by
    :meth:`invalidate` after every write the API performs.
    """

    def __init__(self, ttl: int, maxsize: int = 32) -> None:
        self._lock = threading.Lock()
        self._cache: TTLCache[str, DashboardStats] = TTLCache(maxsize=maxsize, ttl=ttl)

    @staticmethod
    def key(day: date) -> str:
        return f"dashboard-stats:{day.isoformat()}"

    def get(self, day: date) -> Optional[DashboardStats]:
        with self._lock:
            return self._cache.get(self.key(day))

    def put(self, day: date, stats: DashboardStats) -> None:
        with self._lock:
            self._cache[self.key(day)] = stats

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
