"""Availability engine: booking conflicts and per-room occupancy."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from .errors import InvalidArgument, NotFound
from .models import BookingStatus
from .schemas import BookingRead, RoomRead, RoomStatus, RoomWithStatus
from .store import EntityStore
from .timeutils import day_bounds, overlaps, utcnow

__all__ = ["AvailabilityEngine", "overlaps", "validate_window"]


def validate_window(start: datetime, end: datetime) -> None:
    if end <= start:
        raise InvalidArgument("End time must be after start time")


class AvailabilityEngine:
    """Decides whether a window is free and what a room is doing right now.

    Only confirmed bookings occupy a room; pending and cancelled ones never
    block. Intervals are half-open, so back-to-back bookings are allowed.
    """

    def __init__(self, store: EntityStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    def _require_room(self, room_id: int) -> RoomRead:
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFound(f"Room {room_id} not found")
        return room

    def find_conflicts(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> List[BookingRead]:
        validate_window(start, end)
        self._require_room(room_id)
        return [
            booking
            for booking in self.store.list_bookings_by_room(room_id, start, end)
            if booking.status == BookingStatus.CONFIRMED
            and booking.id != exclude_booking_id
            and overlaps(start, end, booking.start_time, booking.end_time)
        ]

    def is_available(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        return not self.find_conflicts(room_id, start, end, exclude_booking_id)

    def room_status(self, room_id: int, reference: Optional[datetime] = None) -> RoomStatus:
        self._require_room(room_id)
        return self._status_for(room_id, reference or self.clock())

    def _status_for(self, room_id: int, now: datetime) -> RoomStatus:
        day_start, day_end = day_bounds(now)
        confirmed = [
            booking
            for booking in self.store.list_bookings_by_room(room_id, day_start, day_end)
            if booking.status == BookingStatus.CONFIRMED
        ]
        current = next((b for b in confirmed if b.start_time <= now < b.end_time), None)
        upcoming = sorted((b for b in confirmed if b.start_time > now), key=lambda b: b.start_time)
        return RoomStatus(
            room_id=room_id,
            is_available=current is None,
            current_booking=current,
            next_booking=upcoming[0] if upcoming else None,
        )

    def rooms_with_status(self, reference: Optional[datetime] = None) -> List[RoomWithStatus]:
        now = reference or self.clock()
        result = []
        for room in self.store.list_active_rooms():
            status = self._status_for(room.id, now)
            result.append(
                RoomWithStatus(
                    **room.model_dump(),
                    is_available=status.is_available,
                    current_booking=status.current_booking,
                    next_booking=status.next_booking,
                )
            )
        return result
