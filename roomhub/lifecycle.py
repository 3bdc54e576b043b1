"""Booking lifecycle: create, amend, confirm and cancel bookings.

Allowed transitions::

    pending   -> confirmed | cancelled
    confirmed -> confirmed (amend) | cancelled
    cancelled    terminal

Cost and initial status are decided here and nowhere else. Every successful
write is followed by an activity record and a broadcast; both are best effort
and never undo the write.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from .availability import AvailabilityEngine, validate_window
from .errors import Conflict, InvalidArgument, InvalidState, NotFound, OverlapError, PermissionDenied
from .models import BookingStatus
from .notifications import ChannelRegistry, DeletedPayload, Event
from .schemas import (
    ActivityCreate,
    BookingCreate,
    BookingDetail,
    BookingRead,
    BookingUpdate,
    ConflictPayload,
    Principal,
    RoomRead,
    UserRead,
)
from .store import EntityStore
from .users import public
from .timeutils import utcnow

logger = logging.getLogger(__name__)

HOUR = timedelta(hours=1)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
}

# fields a patch may not clear
_REQUIRED_FIELDS = ("room_id", "title", "start_time", "end_time", "is_recurring")


def compute_cost(start: datetime, end: datetime, hourly_rate: int) -> int:
    """Whole hours, partial hours rounded up, times the room rate."""
    return math.ceil((end - start) / HOUR) * hourly_rate


def validate_recurrence(
    is_recurring: bool,
    recurring_type: Optional[str],
    recurring_end_date: Optional[datetime],
    start_time: datetime,
) -> None:
    if is_recurring and recurring_type is None:
        raise InvalidArgument("Recurring bookings need a recurring_type")
    if not is_recurring and (recurring_type is not None or recurring_end_date is not None):
        raise InvalidArgument("recurring_type and recurring_end_date require is_recurring")
    if recurring_end_date is not None and recurring_end_date < start_time:
        raise InvalidArgument("recurring_end_date must not precede start_time")


class BookingManager:
    def __init__(
        self,
        store: EntityStore,
        engine: AvailabilityEngine,
        registry: ChannelRegistry,
        auto_confirm: bool = True,
        cancellation_policy: str = "soft",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.engine = engine
        self.registry = registry
        self.auto_confirm = auto_confirm
        self.cancellation_policy = cancellation_policy
        self.clock = clock

    # ----- queries -----
    def get(self, principal: Principal, booking_id: int) -> BookingDetail:
        booking = self._require_booking(booking_id)
        self._ensure_can_modify(principal, booking, action="view")
        return self.describe(booking)

    def list(self, principal: Principal, user_id: Optional[int] = None) -> List[BookingDetail]:
        """Admins see everything (optionally one user's); everyone else only their own."""
        if principal.is_admin:
            bookings = self.store.list_all_bookings() if user_id is None else self.store.list_bookings_by_user(user_id)
        else:
            if user_id is not None and user_id != principal.id:
                raise PermissionDenied("Not allowed to list another user's bookings")
            bookings = self.store.list_bookings_by_user(principal.id)
        return self.describe_many(bookings)

    def check_availability(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        return self.engine.is_available(room_id, start, end, exclude_booking_id)

    # ----- transitions -----
    def create(self, principal: Principal, booking_in: BookingCreate) -> BookingRead:
        validate_window(booking_in.start_time, booking_in.end_time)
        validate_recurrence(
            booking_in.is_recurring,
            booking_in.recurring_type,
            booking_in.recurring_end_date,
            booking_in.start_time,
        )
        owner_id = self._resolve_owner(principal, booking_in.user_id)
        room = self._active_room(booking_in.room_id)
        status = BookingStatus.CONFIRMED if self.auto_confirm else BookingStatus.PENDING
        record = booking_in.model_dump(exclude={"user_id"})
        record.update(
            user_id=owner_id,
            status=status,
            total_cost=compute_cost(booking_in.start_time, booking_in.end_time, room.hourly_rate),
        )

        with self.store.room_lock(room.id):
            self._ensure_free(room.id, booking_in.start_time, booking_in.end_time)
            booking = self._write(
                lambda: self.store.create_booking(record),
                room.id,
                booking_in.start_time,
                booking_in.end_time,
            )

        logger.info("Booking %s created on room %s (%s)", booking.id, room.id, booking.status.value)
        self._record(
            booking.user_id,
            "booking_created",
            f'Booking "{booking.title}" was created',
            {"booking_id": booking.id, "room_id": booking.room_id},
        )
        self._publish_booking("booking_created", booking)
        return booking

    def update(self, principal: Principal, booking_id: int, patch: BookingUpdate) -> BookingRead:
        booking = self._require_booking(booking_id)
        self._ensure_can_modify(principal, booking, action="edit")
        if booking.status == BookingStatus.CANCELLED:
            raise InvalidState("Cannot edit a cancelled booking")

        changes: Dict[str, Any] = {
            key: value
            for key, value in patch.model_dump(exclude_unset=True).items()
            if value is not None or key not in _REQUIRED_FIELDS
        }
        if changes.get("is_recurring") is False:
            changes.setdefault("recurring_type", None)
            changes.setdefault("recurring_end_date", None)
        merged = booking.model_copy(update=changes)
        validate_window(merged.start_time, merged.end_time)
        validate_recurrence(merged.is_recurring, merged.recurring_type, merged.recurring_end_date, merged.start_time)

        window_changed = (merged.room_id, merged.start_time, merged.end_time) != (
            booking.room_id,
            booking.start_time,
            booking.end_time,
        )
        if window_changed:
            room = self._active_room(merged.room_id)
            changes["total_cost"] = compute_cost(merged.start_time, merged.end_time, room.hourly_rate)

        with self.store.room_lock(booking.room_id, merged.room_id):
            if window_changed:
                self._ensure_free(merged.room_id, merged.start_time, merged.end_time, booking_id=booking.id)
            updated = self._write(
                lambda: self.store.update_booking(booking.id, changes),
                merged.room_id,
                merged.start_time,
                merged.end_time,
                booking_id=booking.id,
            )
        if updated is None:
            raise NotFound(f"Booking {booking_id} not found")

        logger.info("Booking %s updated by user %s", updated.id, principal.id)
        self._record(
            principal.id,
            "booking_updated",
            f'Booking "{updated.title}" was updated',
            {"booking_id": updated.id, "room_id": updated.room_id},
        )
        self._publish_booking("booking_updated", updated)
        return updated

    def confirm(self, principal: Principal, booking_id: int) -> BookingRead:
        """Admin approval of a pending booking; re-checks the window and re-prices it."""
        if not principal.is_admin:
            raise PermissionDenied("Only admins can confirm bookings")
        booking = self._require_booking(booking_id)
        if booking.status != BookingStatus.PENDING:
            raise InvalidState(f"Only pending bookings can be confirmed (status is {booking.status.value})")
        room = self._active_room(booking.room_id)
        changes = {
            "status": BookingStatus.CONFIRMED,
            "total_cost": compute_cost(booking.start_time, booking.end_time, room.hourly_rate),
        }

        with self.store.room_lock(room.id):
            self._ensure_free(room.id, booking.start_time, booking.end_time, booking_id=booking.id)
            updated = self._write(
                lambda: self.store.update_booking(booking.id, changes),
                room.id,
                booking.start_time,
                booking.end_time,
                booking_id=booking.id,
            )
        if updated is None:
            raise NotFound(f"Booking {booking_id} not found")

        logger.info("Booking %s confirmed by admin %s", updated.id, principal.id)
        self._record(
            principal.id,
            "booking_confirmed",
            f'Booking "{updated.title}" was confirmed',
            {"booking_id": updated.id, "room_id": updated.room_id},
        )
        self._publish_booking("booking_updated", updated)
        return updated

    def cancel(self, principal: Principal, booking_id: int) -> BookingRead:
        booking = self._require_booking(booking_id)
        self._ensure_can_modify(principal, booking, action="cancel")
        if not ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidState("Booking is already cancelled")
        if booking.start_time <= self.clock():
            raise InvalidState("Cannot cancel a booking that has started")

        if self.cancellation_policy == "delete":
            if not self.store.delete_booking(booking.id):
                raise NotFound(f"Booking {booking_id} not found")
            cancelled = booking.model_copy(update={"status": BookingStatus.CANCELLED})
        else:
            cancelled = self.store.update_booking(booking.id, {"status": BookingStatus.CANCELLED})
            if cancelled is None:
                raise NotFound(f"Booking {booking_id} not found")

        logger.info("Booking %s cancelled by user %s (%s)", booking.id, principal.id, self.cancellation_policy)
        self._record(
            principal.id,
            "booking_cancelled",
            f'Booking "{booking.title}" was cancelled',
            {"booking_id": booking.id, "room_id": booking.room_id},
        )
        self._publish(Event(type="booking_deleted", data=DeletedPayload(id=booking.id, status=BookingStatus.CANCELLED)))
        return cancelled

    # ----- helpers -----
    def _require_booking(self, booking_id: int) -> BookingRead:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")
        return booking

    def _active_room(self, room_id: int) -> RoomRead:
        room = self.store.get_room(room_id)
        if room is None or not room.is_active:
            raise NotFound("Room not found or inactive")
        return room

    def _resolve_owner(self, principal: Principal, user_id: Optional[int]) -> int:
        if user_id is None or user_id == principal.id:
            return principal.id
        if not principal.is_admin:
            raise PermissionDenied("Only admins can book on behalf of another user")
        if self.store.get_user(user_id) is None:
            raise NotFound(f"User {user_id} not found")
        return user_id

    @staticmethod
    def _ensure_can_modify(principal: Principal, booking: BookingRead, action: str) -> None:
        if booking.user_id != principal.id and not principal.is_admin:
            raise PermissionDenied(f"Not allowed to {action} this booking")

    def _ensure_free(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        booking_id: Optional[int] = None,
    ) -> None:
        conflicts = self.engine.find_conflicts(room_id, start, end, exclude_booking_id=booking_id)
        if conflicts:
            ids = tuple(b.id for b in conflicts)
            self._report_conflict(room_id, start, end, ids, booking_id)
            raise Conflict("Room is not available for the selected time", ids)

    def _write(
        self,
        write: Callable[[], Optional[BookingRead]],
        room_id: int,
        start: datetime,
        end: datetime,
        booking_id: Optional[int] = None,
    ) -> Optional[BookingRead]:
        # the store re-checks overlap at write time; translate its refusal
        try:
            return write()
        except OverlapError as exc:
            self._report_conflict(room_id, start, end, exc.conflicting_ids, booking_id)
            raise Conflict("Room is not available for the selected time", exc.conflicting_ids) from exc

    def _report_conflict(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        conflicting_ids: Sequence[int],
        booking_id: Optional[int],
    ) -> None:
        logger.info("Conflict on room %s for %s - %s with bookings %s", room_id, start, end, list(conflicting_ids))
        payload = ConflictPayload(
            room_id=room_id,
            start_time=start,
            end_time=end,
            booking_id=booking_id,
            conflicting_booking_ids=sorted(conflicting_ids),
        )
        self._publish(Event(type="conflict_detected", data=payload))

    def _record(self, user_id: Optional[int], kind: str, description: str, metadata: Dict[str, Any]) -> None:
        try:
            self.store.append_activity(
                ActivityCreate(user_id=user_id, type=kind, description=description, metadata=metadata)
            )
        except Exception:
            logger.exception("Failed to record %s activity", kind)

    def _publish(self, event: Event) -> None:
        try:
            self.registry.broadcast(event)
        except Exception:
            logger.exception("Failed to broadcast %s", event.type)

    def _publish_booking(self, kind: str, booking: BookingRead) -> None:
        try:
            data = self.describe(booking)
        except Exception:
            logger.exception("Failed to load details for booking %s", booking.id)
            data = booking
        self._publish(Event(type=kind, data=data))

    def describe(self, booking: BookingRead) -> BookingDetail:
        return self.describe_many([booking])[0]

    def describe_many(self, bookings: List[BookingRead]) -> List[BookingDetail]:
        rooms: Dict[int, Optional[RoomRead]] = {}
        users: Dict[int, Optional[UserRead]] = {}
        result = []
        for booking in bookings:
            if booking.room_id not in rooms:
                rooms[booking.room_id] = self.store.get_room(booking.room_id)
            if booking.user_id not in users:
                user = self.store.get_user(booking.user_id)
                users[booking.user_id] = public(user) if user else None
            result.append(
                BookingDetail(**booking.model_dump(), room=rooms[booking.room_id], user=users[booking.user_id])
            )
        return result
