from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from roomhub.config import get_settings
from roomhub.dependencies import ServiceContainer, get_current_principal, get_services
from roomhub.rate_limit import limiter
from roomhub.schemas import ActivityRead, BookingDetail, DashboardStats, Principal
from roomhub.timeutils import to_naive_utc

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
@limiter.limit("60/minute")
def stats(
    request: Request,
    date: Optional[datetime] = None,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> DashboardStats:
    # explicit instants are computed fresh; only "now" is served from the cache
    if date is not None:
        return services.dashboard.stats(to_naive_utc(date))
    today = services.dashboard.clock().date()
    cached = services.stats_cache.get(today)
    if cached is not None:
        return cached
    result = services.dashboard.stats()
    services.stats_cache.put(today, result)
    return result


@router.get("/todays-bookings", response_model=List[BookingDetail])
@limiter.limit("60/minute")
def todays_bookings(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> List[BookingDetail]:
    return services.bookings.describe_many(services.dashboard.todays_schedule())


@router.get("/recent-activities", response_model=List[ActivityRead])
@limiter.limit("60/minute")
def recent_activities(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=0, le=100),
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> List[ActivityRead]:
    if limit is None:
        limit = get_settings().recent_activity_limit
    return services.dashboard.recent_activities(limit)
