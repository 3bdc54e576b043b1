"""Unit tests for room administration and the user directory."""
import json

import pytest

from roomhub.errors import Conflict, InvalidArgument, NotFound, PermissionDenied
from roomhub.models import BookingStatus, RoleEnum
from roomhub.rooms import RoomManager
from roomhub.schemas import RoomCreate, RoomUpdate, UserCreate


class TestRoomManager:
    def test_create_broadcasts_and_records(self, services, admin, channel):
        room = services.rooms.create_room(
            admin, RoomCreate(name="Huddle", capacity=4, type="huddle", amenities=["Monitor"], hourly_rate=2000)
        )

        event = json.loads(channel.messages[-1])
        assert event["type"] == "room_created"
        assert event["data"]["name"] == "Huddle"
        assert services.store.list_recent_activities(1)[0].metadata == {"room_id": room.id}

    def test_requires_admin(self, services, member, room):
        with pytest.raises(PermissionDenied):
            services.rooms.update_room(member, room.id, RoomUpdate(capacity=3))
        with pytest.raises(PermissionDenied):
            services.rooms.delete_room(member, room.id)

    def test_validation(self, services, admin, room):
        with pytest.raises(InvalidArgument):
            services.rooms.create_room(admin, RoomCreate(name="Bad", capacity=0, type="meeting", hourly_rate=1))
        with pytest.raises(InvalidArgument):
            services.rooms.update_room(admin, room.id, RoomUpdate(hourly_rate=-5))
        with pytest.raises(NotFound):
            services.rooms.update_room(admin, 999, RoomUpdate(capacity=3))

    def test_delete_without_bookings_removes_room(self, services, admin, room, channel):
        assert services.rooms.delete_room(admin, room.id) is None
        assert services.store.get_room(room.id) is None
        assert json.loads(channel.messages[-1]) == {"type": "room_deleted", "data": {"id": room.id, "status": None}}

    def test_delete_with_bookings_deactivates(self, services, admin, room, store, clock):
        store.create_booking(
            {
                "room_id": room.id,
                "user_id": admin.id,
                "title": "History",
                "start_time": clock.now,
                "end_time": clock.now.replace(hour=23),
                "status": BookingStatus.CONFIRMED,
                "total_cost": 0,
            }
        )

        deactivated = services.rooms.delete_room(admin, room.id)

        assert deactivated.is_active is False
        assert services.rooms.list_rooms() == []
        assert [r.id for r in services.rooms.list_rooms(include_inactive=True)] == [room.id]

    def test_delete_policy_always_deletes(self, services, admin, room, store, clock):
        store.create_booking(
            {
                "room_id": room.id,
                "user_id": admin.id,
                "title": "History",
                "start_time": clock.now,
                "end_time": clock.now.replace(hour=23),
                "status": BookingStatus.CONFIRMED,
                "total_cost": 0,
            }
        )
        manager = RoomManager(store, services.registry, delete_policy="delete")

        assert manager.delete_room(admin, room.id) is None
        assert store.get_room(room.id) is None


class TestUserDirectory:
    def test_first_user_may_be_admin(self, admin):
        assert admin.role == RoleEnum.ADMIN

    def test_later_self_registration_is_downgraded(self, services, admin):
        user = services.users.register(
            UserCreate(name="Eve", username="eve", email="eve@example.com", password="Passw0rd!", role=RoleEnum.ADMIN)
        )

        assert user.role == RoleEnum.USER

    def test_duplicate_email(self, services, admin):
        with pytest.raises(Conflict):
            services.users.register(
                UserCreate(name="Copy", username="copy", email="admin@example.com", password="Passw0rd!")
            )

    def test_authenticate(self, services, admin):
        assert services.users.authenticate("admin", "Passw0rd!").id == admin.id
        assert services.users.authenticate("admin", "wrong-password") is None
        assert services.users.authenticate("ghost", "Passw0rd!") is None

    def test_password_is_hashed(self, services, admin, store):
        assert store.get_user(admin.id).hashed_password != "Passw0rd!"
