from datetime import datetime, timedelta

import pytest

from roomhub.availability import AvailabilityEngine
from roomhub.config import get_settings
from roomhub.dependencies import ServiceContainer, build_services
from roomhub.models import RoleEnum
from roomhub.schemas import Principal, RoomCreate, UserCreate
from roomhub.store import InMemoryStore

NOW = datetime(2024, 5, 6, 8, 0)


class FixedClock:
    """Settable clock shared by the store and the managers."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingChannel:
    def __init__(self) -> None:
        self.messages = []
        self.is_open = True

    def deliver(self, message: str) -> None:
        self.messages.append(message)

    def close(self) -> None:
        self.is_open = False


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture()
def engine(store, clock) -> AvailabilityEngine:
    return AvailabilityEngine(store, clock=clock)


@pytest.fixture()
def services(store, clock) -> ServiceContainer:
    return build_services(get_settings(), store=store, clock=clock)


@pytest.fixture()
def channel(services) -> RecordingChannel:
    recording = RecordingChannel()
    services.registry.add(recording)
    return recording


@pytest.fixture()
def admin(services) -> Principal:
    user = services.users.register(
        UserCreate(name="Admin", username="admin", email="admin@example.com", password="Passw0rd!", role=RoleEnum.ADMIN)
    )
    return Principal(id=user.id, role=user.role)


@pytest.fixture()
def member(services, admin) -> Principal:
    user = services.users.register(
        UserCreate(name="Member", username="member", email="member@example.com", password="Passw0rd!")
    )
    return Principal(id=user.id, role=user.role)


@pytest.fixture()
def room(services, admin):
    return services.rooms.create_room(
        admin,
        RoomCreate(name="Conference Room A", capacity=12, type="conference", hourly_rate=5000),
    )
