from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response, status

from roomhub.dependencies import ServiceContainer, get_current_principal, get_services
from roomhub.rate_limit import limiter
from roomhub.schemas import (
    AvailabilityQuery,
    AvailabilityResponse,
    BookingCreate,
    BookingDetail,
    BookingUpdate,
    Principal,
)
from roomhub.timeutils import to_naive_utc

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=List[BookingDetail])
@limiter.limit("60/minute")
def list_bookings(
    request: Request,
    user_id: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> List[BookingDetail]:
    return services.bookings.list(principal, user_id)


@router.get("/availability", response_model=AvailabilityResponse)
@limiter.limit("60/minute")
def availability(
    request: Request,
    room_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: Optional[int] = None,
    services: ServiceContainer = Depends(get_services),
) -> AvailabilityResponse:
    start, end = to_naive_utc(start_time), to_naive_utc(end_time)
    available = services.bookings.check_availability(room_id, start, end, exclude_booking_id)
    return AvailabilityResponse(room_id=room_id, start_time=start, end_time=end, available=available)


@router.get("/{booking_id}", response_model=BookingDetail)
@limiter.limit("60/minute")
def get_booking(
    request: Request,
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> BookingDetail:
    return services.bookings.get(principal, booking_id)


@router.post("", response_model=BookingDetail, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> BookingDetail:
    booking = services.bookings.create(principal, booking_in)
    services.stats_cache.invalidate()
    return services.bookings.describe(booking)


@router.put("/{booking_id}", response_model=BookingDetail)
@limiter.limit("20/minute")
def update_booking(
    request: Request,
    booking_id: int,
    patch: BookingUpdate,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> BookingDetail:
    booking = services.bookings.update(principal, booking_id, patch)
    services.stats_cache.invalidate()
    return services.bookings.describe(booking)


@router.post("/{booking_id}/confirm", response_model=BookingDetail)
@limiter.limit("20/minute")
def confirm_booking(
    request: Request,
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> BookingDetail:
    booking = services.bookings.confirm(principal, booking_id)
    services.stats_cache.invalidate()
    return services.bookings.describe(booking)


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def cancel_booking(
    request: Request,
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> Response:
    services.bookings.cancel(principal, booking_id)
    services.stats_cache.invalidate()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{booking_id}/check-availability", response_model=AvailabilityResponse)
@limiter.limit("60/minute")
def check_availability(
    request: Request,
    booking_id: int,
    query: AvailabilityQuery,
    services: ServiceContainer = Depends(get_services),
) -> AvailabilityResponse:
    """Would ``booking_id`` fit in the proposed window, ignoring its own slot."""
    available = services.bookings.check_availability(query.room_id, query.start_time, query.end_time, booking_id)
    return AvailabilityResponse(
        room_id=query.room_id,
        start_time=query.start_time,
        end_time=query.end_time,
        available=available,
    )
