"""SQLAlchemy-backed entity store."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from circuitbreaker import CircuitBreaker, CircuitBreakerError
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session, sessionmaker

from . import models
from .errors import Conflict, OverlapError, StorageUnavailable
from .models import BookingStatus
from .schemas import ActivityCreate, ActivityRead, BookingRead, RoomRead, UserRecord
from .store import SAMPLE_ROOMS, EntityStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _activity_from_row(row: models.Activity) -> ActivityRead:
    return ActivityRead(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        description=row.description,
        metadata=dict(row.details or {}),
        created_at=row.created_at,
    )


class SqlStore(EntityStore):
    """Each public call runs in its own transaction.

    Operational errors and pool timeouts surface as :class:`StorageUnavailable`;
    after ``failure_threshold`` of those in a row the breaker opens and calls
    fail fast until ``recovery_timeout`` seconds have passed.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        failure_threshold: int = 5,
        recovery_timeout: int = 30,
    ) -> None:
        super().__init__()
        self._session_factory = session_factory
        self._breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=StorageUnavailable,
            name="roomhub_storage",
        )

    def _run(self, work: Callable[[Session], T]) -> T:
        try:
            return self._breaker.call(self._transact, work)
        except CircuitBreakerError as exc:
            raise StorageUnavailable("Storage temporarily unavailable, retry later") from exc

    def _transact(self, work: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except sa_exc.IntegrityError as exc:
            session.rollback()
            raise Conflict("Write violates a uniqueness constraint") from exc
        except (sa_exc.OperationalError, sa_exc.TimeoutError, sa_exc.InterfaceError) as exc:
            session.rollback()
            logger.warning("Storage failure: %s", exc)
            raise StorageUnavailable("Storage unavailable") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def seed(self) -> None:
        if not self.list_rooms(include_inactive=True):
            for room in SAMPLE_ROOMS:
                self.create_room(room)

    # Users
    def get_user(self, user_id: int) -> Optional[UserRecord]:
        def work(db: Session) -> Optional[UserRecord]:
            user = db.get(models.User, user_id)
            return UserRecord.model_validate(user) if user else None

        return self._run(work)

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        def work(db: Session) -> Optional[UserRecord]:
            user = db.query(models.User).filter(models.User.username == username).first()
            return UserRecord.model_validate(user) if user else None

        return self._run(work)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        def work(db: Session) -> Optional[UserRecord]:
            user = db.query(models.User).filter(models.User.email == email).first()
            return UserRecord.model_validate(user) if user else None

        return self._run(work)

    def create_user(self, data: Mapping[str, Any]) -> UserRecord:
        def work(db: Session) -> UserRecord:
            user = models.User(**data)
            db.add(user)
            db.flush()
            return UserRecord.model_validate(user)

        return self._run(work)

    def list_users(self) -> List[UserRecord]:
        def work(db: Session) -> List[UserRecord]:
            return [UserRecord.model_validate(u) for u in db.query(models.User).order_by(models.User.id).all()]

        return self._run(work)

    # Rooms
    def get_room(self, room_id: int) -> Optional[RoomRead]:
        def work(db: Session) -> Optional[RoomRead]:
            room = db.get(models.Room, room_id)
            return RoomRead.model_validate(room) if room else None

        return self._run(work)

    def list_rooms(self, include_inactive: bool = False) -> List[RoomRead]:
        def work(db: Session) -> List[RoomRead]:
            query = db.query(models.Room)
            if not include_inactive:
                query = query.filter(models.Room.is_active.is_(True))
            return [RoomRead.model_validate(r) for r in query.order_by(models.Room.id).all()]

        return self._run(work)

    def create_room(self, data: Mapping[str, Any]) -> RoomRead:
        def work(db: Session) -> RoomRead:
            room = models.Room(**data)
            db.add(room)
            db.flush()
            return RoomRead.model_validate(room)

        return self._run(work)

    def update_room(self, room_id: int, patch: Mapping[str, Any]) -> Optional[RoomRead]:
        def work(db: Session) -> Optional[RoomRead]:
            room = db.get(models.Room, room_id)
            if room is None:
                return None
            for key, value in patch.items():
                setattr(room, key, value)
            db.flush()
            return RoomRead.model_validate(room)

        return self._run(work)

    def delete_room(self, room_id: int) -> bool:
        def work(db: Session) -> bool:
            room = db.get(models.Room, room_id)
            if room is None:
                return False
            db.query(models.Booking).filter(models.Booking.room_id == room_id).delete()
            db.delete(room)
            return True

        return self._run(work)

    # Bookings
    def get_booking(self, booking_id: int) -> Optional[BookingRead]:
        def work(db: Session) -> Optional[BookingRead]:
            booking = db.get(models.Booking, booking_id)
            return BookingRead.model_validate(booking) if booking else None

        return self._run(work)

    def list_bookings_by_room(
        self,
        room_id: int,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
    ) -> List[BookingRead]:
        def work(db: Session) -> List[BookingRead]:
            query = db.query(models.Booking).filter(models.Booking.room_id == room_id)
            if range_start is not None and range_end is not None:
                query = query.filter(models.Booking.start_time < range_end, models.Booking.end_time > range_start)
            rows = query.order_by(models.Booking.start_time, models.Booking.id).all()
            return [BookingRead.model_validate(b) for b in rows]

        return self._run(work)

    def list_bookings_by_user(self, user_id: int) -> List[BookingRead]:
        def work(db: Session) -> List[BookingRead]:
            rows = (
                db.query(models.Booking)
                .filter(models.Booking.user_id == user_id)
                .order_by(models.Booking.start_time, models.Booking.id)
                .all()
            )
            return [BookingRead.model_validate(b) for b in rows]

        return self._run(work)

    def list_all_bookings(self) -> List[BookingRead]:
        def work(db: Session) -> List[BookingRead]:
            rows = db.query(models.Booking).order_by(models.Booking.start_time, models.Booking.id).all()
            return [BookingRead.model_validate(b) for b in rows]

        return self._run(work)

    @staticmethod
    def _guard_overlap(db: Session, booking: models.Booking) -> None:
        if booking.status != BookingStatus.CONFIRMED:
            return
        # row lock on the room where the backend supports it (ignored by SQLite)
        db.query(models.Room.id).filter(models.Room.id == booking.room_id).with_for_update().first()
        query = db.query(models.Booking.id).filter(
            models.Booking.room_id == booking.room_id,
            models.Booking.status == BookingStatus.CONFIRMED,
            models.Booking.start_time < booking.end_time,
            models.Booking.end_time > booking.start_time,
        )
        if booking.id is not None:
            query = query.filter(models.Booking.id != booking.id)
        clashing = tuple(row.id for row in query.all())
        if clashing:
            raise OverlapError(booking.room_id, clashing)

    def create_booking(self, data: Mapping[str, Any]) -> BookingRead:
        def work(db: Session) -> BookingRead:
            booking = models.Booking(**data)
            with db.no_autoflush:
                self._guard_overlap(db, booking)
            db.add(booking)
            db.flush()
            return BookingRead.model_validate(booking)

        return self._run(work)

    def update_booking(self, booking_id: int, patch: Mapping[str, Any]) -> Optional[BookingRead]:
        def work(db: Session) -> Optional[BookingRead]:
            booking = db.get(models.Booking, booking_id)
            if booking is None:
                return None
            with db.no_autoflush:
                for key, value in patch.items():
                    setattr(booking, key, value)
                self._guard_overlap(db, booking)
            db.flush()
            return BookingRead.model_validate(booking)

        return self._run(work)

    def delete_booking(self, booking_id: int) -> bool:
        def work(db: Session) -> bool:
            booking = db.get(models.Booking, booking_id)
            if booking is None:
                return False
            db.delete(booking)
            return True

        return self._run(work)

    # Activities
    def append_activity(self, entry: ActivityCreate) -> ActivityRead:
        def work(db: Session) -> ActivityRead:
            row = models.Activity(
                user_id=entry.user_id,
                type=entry.type,
                description=entry.description,
                details=dict(entry.metadata),
            )
            db.add(row)
            db.flush()
            return _activity_from_row(row)

        return self._run(work)

    def list_recent_activities(self, limit: int = 10) -> List[ActivityRead]:
        def work(db: Session) -> List[ActivityRead]:
            rows = (
                db.query(models.Activity)
                .order_by(models.Activity.created_at.desc(), models.Activity.id.desc())
                .limit(limit)
                .all()
            )
            return [_activity_from_row(row) for row in rows]

        return self._run(work)
