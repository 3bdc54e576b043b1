"""Service wiring and reusable FastAPI dependencies."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from .auth import decode_token
from .availability import AvailabilityEngine
from .cache import StatsCache
from .config import Settings
from .dashboard import DashboardAggregator
from .lifecycle import BookingManager
from .notifications import ChannelRegistry
from .rooms import RoomManager
from .schemas import Principal
from .store import EntityStore, InMemoryStore
from .timeutils import utcnow
from .users import UserDirectory

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")
optional_oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login", auto_error=False)


@dataclass
class ServiceContainer:
    store: EntityStore
    registry: ChannelRegistry
    engine: AvailabilityEngine
    bookings: BookingManager
    rooms: RoomManager
    users: UserDirectory
    dashboard: DashboardAggregator
    stats_cache: StatsCache


def build_store(settings: Settings) -> EntityStore:
    if settings.store_backend == "memory":
        store = InMemoryStore()
        if settings.seed_sample_rooms:
            store.seed()
        return store

    from .database import SessionLocal
    from .sql_store import SqlStore

    return SqlStore(
        SessionLocal,
        failure_threshold=settings.storage_failure_threshold,
        recovery_timeout=settings.storage_recovery_timeout,
    )


def build_services(
    settings: Settings,
    store: Optional[EntityStore] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ServiceContainer:
    store = store or build_store(settings)
    registry = ChannelRegistry()
    engine = AvailabilityEngine(store, clock=clock)
    return ServiceContainer(
        store=store,
        registry=registry,
        engine=engine,
        bookings=BookingManager(
            store,
            engine,
            registry,
            auto_confirm=settings.auto_confirm,
            cancellation_policy=settings.cancellation_policy,
            clock=clock,
        ),
        rooms=RoomManager(store, registry, delete_policy=settings.room_delete_policy),
        users=UserDirectory(store),
        dashboard=DashboardAggregator(store, engine, clock=clock),
        stats_cache=StatsCache(ttl=settings.dashboard_cache_ttl),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def _principal_from_token(token: str, services: ServiceContainer) -> Principal:
    payload = decode_token(token)
    username: str | None = payload.get("sub")
    if username is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject in token")
    user = services.store.get_user_by_username(username)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return Principal(id=user.id, role=user.role)


def get_current_principal(
    token: str = Depends(oauth_scheme),
    services: ServiceContainer = Depends(get_services),
) -> Principal:
    return _principal_from_token(token, services)


def get_optional_principal(
    token: Optional[str] = Depends(optional_oauth_scheme),
    services: ServiceContainer = Depends(get_services),
) -> Optional[Principal]:
    if token is None:
        return None
    return _principal_from_token(token, services)
