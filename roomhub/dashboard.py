"""Dashboard aggregation over store snapshots."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from .availability import AvailabilityEngine
from .models import BookingStatus
from .schemas import ActivityRead, BookingRead, DashboardStats
from .store import EntityStore
from .timeutils import day_bounds, utcnow


class DashboardAggregator:
    """Pure derivations for the dashboard; nothing here writes to the store.

    "Today" is the UTC day holding the reference instant, ``[00:00, next 00:00)``.
    """

    def __init__(self, store: EntityStore, engine: AvailabilityEngine, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.engine = engine
        self.clock = clock

    def _starting_today(self, reference: datetime) -> List[BookingRead]:
        day_start, day_end = day_bounds(reference)
        return [b for b in self.store.list_all_bookings() if day_start <= b.start_time < day_end]

    def todays_schedule(self, reference: Optional[datetime] = None) -> List[BookingRead]:
        reference = reference or self.clock()
        scheduled = [
            b
            for b in self._starting_today(reference)
            if b.status in (BookingStatus.CONFIRMED, BookingStatus.PENDING)
        ]
        return sorted(scheduled, key=lambda b: (b.start_time, b.id))

    def recent_activities(self, limit: int = 10) -> List[ActivityRead]:
        if limit <= 0:
            return []
        activities = self.store.list_recent_activities(limit)
        return sorted(activities, key=lambda a: (a.created_at, a.id), reverse=True)[:limit]

    def stats(self, reference: Optional[datetime] = None) -> DashboardStats:
        reference = reference or self.clock()
        rooms = self.engine.rooms_with_status(reference)
        confirmed_today = [b for b in self._starting_today(reference) if b.status == BookingStatus.CONFIRMED]
        pending = sum(1 for b in self.store.list_all_bookings() if b.status == BookingStatus.PENDING)
        return DashboardStats(
            available_rooms=sum(1 for room in rooms if room.is_available),
            total_rooms=len(rooms),
            booked_today=len(confirmed_today),
            pending_bookings=pending,
            revenue_today=sum(b.total_cost for b in confirmed_today),
        )
