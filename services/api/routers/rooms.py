from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from roomhub.dependencies import ServiceContainer, get_current_principal, get_services
from roomhub.rate_limit import limiter
from roomhub.schemas import Principal, RoomCreate, RoomRead, RoomStatus, RoomUpdate, RoomWithStatus
from roomhub.timeutils import to_naive_utc

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("", response_model=List[RoomWithStatus])
@limiter.limit("60/minute")
def list_rooms(
    request: Request,
    date: Optional[datetime] = Query(default=None, description="Instant to evaluate occupancy at (UTC)"),
    services: ServiceContainer = Depends(get_services),
) -> List[RoomWithStatus]:
    """Active rooms with their occupancy at ``date`` (default: now)."""
    return services.engine.rooms_with_status(to_naive_utc(date) if date else None)


@router.get("/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(request: Request, room_id: int, services: ServiceContainer = Depends(get_services)) -> RoomRead:
    return services.rooms.get_room(room_id)


@router.get("/{room_id}/status", response_model=RoomStatus)
@limiter.limit("60/minute")
def room_status(
    request: Request,
    room_id: int,
    at: Optional[datetime] = None,
    services: ServiceContainer = Depends(get_services),
) -> RoomStatus:
    return services.engine.room_status(room_id, to_naive_utc(at) if at else None)


@router.post("", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_room(
    request: Request,
    room_in: RoomCreate,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> RoomRead:
    room = services.rooms.create_room(principal, room_in)
    services.stats_cache.invalidate()
    return room


@router.put("/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> RoomRead:
    room = services.rooms.update_room(principal, room_id, room_update)
    services.stats_cache.invalidate()
    return room


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: int,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> Response:
    services.rooms.delete_room(principal, room_id)
    services.stats_cache.invalidate()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
