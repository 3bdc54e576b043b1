"""Room administration with activity logging and broadcast."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .errors import InvalidArgument, NotFound, PermissionDenied
from .notifications import ChannelRegistry, DeletedPayload, Event
from .schemas import ActivityCreate, Principal, RoomCreate, RoomRead, RoomUpdate
from .store import EntityStore

logger = logging.getLogger(__name__)


def validate_room_fields(fields: Mapping[str, Any]) -> None:
    if "capacity" in fields and (fields["capacity"] is None or fields["capacity"] <= 0):
        raise InvalidArgument("Capacity must be positive")
    if "hourly_rate" in fields and (fields["hourly_rate"] is None or fields["hourly_rate"] <= 0):
        raise InvalidArgument("Hourly rate must be positive")


class RoomManager:
    def __init__(self, store: EntityStore, registry: ChannelRegistry, delete_policy: str = "deactivate") -> None:
        self.store = store
        self.registry = registry
        self.delete_policy = delete_policy

    def list_rooms(self, include_inactive: bool = False) -> List[RoomRead]:
        return self.store.list_rooms(include_inactive=include_inactive)

    def get_room(self, room_id: int) -> RoomRead:
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFound("Room not found")
        return room

    def create_room(self, principal: Principal, room_in: RoomCreate) -> RoomRead:
        self._require_admin(principal)
        data = room_in.model_dump()
        validate_room_fields(data)
        room = self.store.create_room(data)
        logger.info("Room %s (%s) created", room.id, room.name)
        self._after_write(principal, "room_created", f'Room "{room.name}" was created', room.id, room)
        return room

    def update_room(self, principal: Principal, room_id: int, room_update: RoomUpdate) -> RoomRead:
        self._require_admin(principal)
        patch = room_update.model_dump(exclude_unset=True)
        validate_room_fields(patch)
        if patch.get("name", "") is None or patch.get("type", "") is None:
            raise InvalidArgument("Name and type cannot be cleared")
        room = self.store.update_room(room_id, patch)
        if room is None:
            raise NotFound("Room not found")
        self._after_write(principal, "room_updated", f'Room "{room.name}" was updated', room.id, room)
        return room

    def delete_room(self, principal: Principal, room_id: int) -> Optional[RoomRead]:
        """Delete a room, or deactivate it while bookings still reference it.

        Returns the deactivated room, or ``None`` when the row was removed.
        """
        self._require_admin(principal)
        room = self.get_room(room_id)
        if self.delete_policy == "deactivate" and self.store.list_bookings_by_room(room_id):
            deactivated = self.store.update_room(room_id, {"is_active": False})
            if deactivated is None:
                raise NotFound("Room not found")
            self._after_write(principal, "room_deleted", f'Room "{room.name}" was deactivated', room_id, DeletedPayload(id=room_id))
            return deactivated
        if not self.store.delete_room(room_id):
            raise NotFound("Room not found")
        self._after_write(principal, "room_deleted", f'Room "{room.name}" was deleted', room_id, DeletedPayload(id=room_id))
        return None

    @staticmethod
    def _require_admin(principal: Principal) -> None:
        if not principal.is_admin:
            raise PermissionDenied("Insufficient permissions")

    def _after_write(self, principal: Principal, kind: str, description: str, room_id: int, data: Any) -> None:
        metadata: Dict[str, Any] = {"room_id": room_id}
        try:
            self.store.append_activity(
                ActivityCreate(user_id=principal.id, type=kind, description=description, metadata=metadata)
            )
        except Exception:
            logger.exception("Failed to record %s activity", kind)
        try:
            self.registry.broadcast(Event(type=kind, data=data))
        except Exception:
            logger.exception("Failed to broadcast %s", kind)
