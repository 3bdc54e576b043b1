"""Entity store contract and the in-memory reference implementation."""
from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from .errors import Conflict, OverlapError
from .models import BookingStatus, RoomType
from .schemas import ActivityCreate, ActivityRead, BookingRead, RoomRead, UserRecord
from .timeutils import overlaps, utcnow


class RoomLocks:
    """Process-local lock per room, the serialization point for booking writes."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = {}

    def _lock_for(self, room_id: int) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(room_id, threading.RLock())

    @contextmanager
    def hold(self, *room_ids: int) -> Iterator[None]:
        # sorted acquisition keeps two-room amendments deadlock free
        locks = [self._lock_for(room_id) for room_id in sorted(set(room_ids))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


class EntityStore(ABC):
    """Persistence capability consumed by the engine and the managers.

    Getters return ``None`` for unknown ids. ``create_booking`` and
    ``update_booking`` raise :class:`OverlapError` instead of persisting a
    confirmed booking that overlaps another confirmed booking of the room.
    """

    def __init__(self) -> None:
        self._room_locks = RoomLocks()

    def room_lock(self, *room_ids: int):
        """Hold the write lock of every given room for a check-then-act sequence."""
        return self._room_locks.hold(*room_ids)

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[UserRecord]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def create_user(self, data: Mapping[str, Any]) -> UserRecord: ...

    @abstractmethod
    def list_users(self) -> List[UserRecord]: ...

    # Rooms
    @abstractmethod
    def get_room(self, room_id: int) -> Optional[RoomRead]: ...

    @abstractmethod
    def list_rooms(self, include_inactive: bool = False) -> List[RoomRead]: ...

    def list_active_rooms(self) -> List[RoomRead]:
        return self.list_rooms(include_inactive=False)

    @abstractmethod
    def create_room(self, data: Mapping[str, Any]) -> RoomRead: ...

    @abstractmethod
    def update_room(self, room_id: int, patch: Mapping[str, Any]) -> Optional[RoomRead]: ...

    @abstractmethod
    def delete_room(self, room_id: int) -> bool: ...

    # Bookings
    @abstractmethod
    def get_booking(self, booking_id: int) -> Optional[BookingRead]: ...

    @abstractmethod
    def list_bookings_by_room(
        self,
        room_id: int,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
    ) -> List[BookingRead]: ...

    @abstractmethod
    def list_bookings_by_user(self, user_id: int) -> List[BookingRead]: ...

    @abstractmethod
    def list_all_bookings(self) -> List[BookingRead]: ...

    @abstractmethod
    def create_booking(self, data: Mapping[str, Any]) -> BookingRead: ...

    @abstractmethod
    def update_booking(self, booking_id: int, patch: Mapping[str, Any]) -> Optional[BookingRead]: ...

    @abstractmethod
    def delete_booking(self, booking_id: int) -> bool: ...

    # Activities
    @abstractmethod
    def append_activity(self, entry: ActivityCreate) -> ActivityRead: ...

    @abstractmethod
    def list_recent_activities(self, limit: int = 10) -> List[ActivityRead]: ...


SAMPLE_ROOMS: List[Dict[str, Any]] = [
    {
        "name": "Conference Room A",
        "capacity": 12,
        "type": RoomType.CONFERENCE,
        "amenities": ["Projector", "Whiteboard", "WiFi"],
        "hourly_rate": 5000,
        "description": "Large conference room with modern amenities",
    },
    {
        "name": "Meeting Room B",
        "capacity": 6,
        "type": RoomType.MEETING,
        "amenities": ["Video Conf", "Screen"],
        "hourly_rate": 3000,
        "description": "Cozy meeting room perfect for small teams",
    },
    {
        "name": "Event Space C",
        "capacity": 50,
        "type": RoomType.EVENT,
        "amenities": ["Sound System", "Stage", "Catering"],
        "hourly_rate": 15000,
        "description": "Large event space for presentations and gatherings",
    },
    {
        "name": "Huddle Room D",
        "capacity": 4,
        "type": RoomType.HUDDLE,
        "amenities": ["Monitor", "Cozy"],
        "hourly_rate": 2000,
        "description": "Small huddle room for quick meetings",
    },
]


class InMemoryStore(EntityStore):
    """Dict-backed store keyed by incrementing integer ids."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        super().__init__()
        self._clock = clock
        self._lock = threading.RLock()
        self._users: Dict[int, UserRecord] = {}
        self._rooms: Dict[int, RoomRead] = {}
        self._bookings: Dict[int, BookingRead] = {}
        self._activities: Dict[int, ActivityRead] = {}
        self._user_ids = itertools.count(1)
        self._room_ids = itertools.count(1)
        self._booking_ids = itertools.count(1)
        self._activity_ids = itertools.count(1)

    def seed(self) -> None:
        for room in SAMPLE_ROOMS:
            self.create_room(room)

    # Users
    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            return next((u.model_copy() for u in self._users.values() if u.username == username), None)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            return next((u.model_copy() for u in self._users.values() if u.email == email), None)

    def create_user(self, data: Mapping[str, Any]) -> UserRecord:
        with self._lock:
            if any(u.username == data["username"] or u.email == data["email"] for u in self._users.values()):
                raise Conflict("Username or email already exists")
            user = UserRecord(id=next(self._user_ids), created_at=self._clock(), **data)
            self._users[user.id] = user
            return user.model_copy()

    def list_users(self) -> List[UserRecord]:
        with self._lock:
            return [u.model_copy() for u in sorted(self._users.values(), key=lambda u: u.id)]

    # Rooms
    def get_room(self, room_id: int) -> Optional[RoomRead]:
        with self._lock:
            room = self._rooms.get(room_id)
            return room.model_copy(deep=True) if room else None

    def list_rooms(self, include_inactive: bool = False) -> List[RoomRead]:
        with self._lock:
            rooms = sorted(self._rooms.values(), key=lambda r: r.id)
            return [r.model_copy(deep=True) for r in rooms if include_inactive or r.is_active]

    def create_room(self, data: Mapping[str, Any]) -> RoomRead:
        with self._lock:
            room = RoomRead(id=next(self._room_ids), created_at=self._clock(), **data)
            self._rooms[room.id] = room
            return room.model_copy(deep=True)

    def update_room(self, room_id: int, patch: Mapping[str, Any]) -> Optional[RoomRead]:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return None
            updated = RoomRead.model_validate({**room.model_dump(), **patch})
            self._rooms[room_id] = updated
            return updated.model_copy(deep=True)

    def delete_room(self, room_id: int) -> bool:
        with self._lock:
            if self._rooms.pop(room_id, None) is None:
                return False
            for booking_id in [b.id for b in self._bookings.values() if b.room_id == room_id]:
                del self._bookings[booking_id]
            return True

    # Bookings
    def get_booking(self, booking_id: int) -> Optional[BookingRead]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return booking.model_copy() if booking else None

    def list_bookings_by_room(
        self,
        room_id: int,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
    ) -> List[BookingRead]:
        with self._lock:
            bookings = [b for b in self._bookings.values() if b.room_id == room_id]
        if range_start is not None and range_end is not None:
            bookings = [b for b in bookings if overlaps(b.start_time, b.end_time, range_start, range_end)]
        return [b.model_copy() for b in sorted(bookings, key=lambda b: (b.start_time, b.id))]

    def list_bookings_by_user(self, user_id: int) -> List[BookingRead]:
        with self._lock:
            bookings = [b for b in self._bookings.values() if b.user_id == user_id]
        return [b.model_copy() for b in sorted(bookings, key=lambda b: (b.start_time, b.id))]

    def list_all_bookings(self) -> List[BookingRead]:
        with self._lock:
            bookings = list(self._bookings.values())
        return [b.model_copy() for b in sorted(bookings, key=lambda b: (b.start_time, b.id))]

    def _guard_overlap(self, candidate: BookingRead) -> None:
        if candidate.status != BookingStatus.CONFIRMED:
            return
        clashing = tuple(
            b.id
            for b in self._bookings.values()
            if b.id != candidate.id
            and b.room_id == candidate.room_id
            and b.status == BookingStatus.CONFIRMED
            and overlaps(candidate.start_time, candidate.end_time, b.start_time, b.end_time)
        )
        if clashing:
            raise OverlapError(candidate.room_id, clashing)

    def create_booking(self, data: Mapping[str, Any]) -> BookingRead:
        with self._lock:
            booking = BookingRead(id=next(self._booking_ids), created_at=self._clock(), **data)
            self._guard_overlap(booking)
            self._bookings[booking.id] = booking
            return booking.model_copy()

    def update_booking(self, booking_id: int, patch: Mapping[str, Any]) -> Optional[BookingRead]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            updated = BookingRead.model_validate({**booking.model_dump(), **patch})
            self._guard_overlap(updated)
            self._bookings[booking_id] = updated
            return updated.model_copy()

    def delete_booking(self, booking_id: int) -> bool:
        with self._lock:
            return self._bookings.pop(booking_id, None) is not None

    # Activities
    def append_activity(self, entry: ActivityCreate) -> ActivityRead:
        with self._lock:
            activity = ActivityRead(id=next(self._activity_ids), created_at=self._clock(), **entry.model_dump())
            self._activities[activity.id] = activity
            return activity.model_copy(deep=True)

    def list_recent_activities(self, limit: int = 10) -> List[ActivityRead]:
        with self._lock:
            activities = sorted(self._activities.values(), key=lambda a: (a.created_at, a.id), reverse=True)
            return [a.model_copy(deep=True) for a in activities[:limit]]
