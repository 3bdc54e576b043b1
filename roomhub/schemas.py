"""Pydantic schemas: store records, request payloads and API responses."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import BookingStatus, RecurringType, RoleEnum, RoomType
from .timeutils import to_naive_utc


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class Principal(BaseModel):
    """Authenticated caller handed to the core by the auth layer."""

    id: int
    role: RoleEnum

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.ADMIN


# ----- Users -----
class UserBase(BaseModel):
    name: str = Field(..., max_length=100)
    username: str = Field(..., max_length=50)
    email: EmailStr
    role: RoleEnum = RoleEnum.USER


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)


class UserRead(UserBase):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserRecord(UserRead):
    hashed_password: str


# ----- Rooms -----
class RoomBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    capacity: int
    type: RoomType
    amenities: List[str] = Field(default_factory=list)
    hourly_rate: int
    image_url: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    capacity: Optional[int] = None
    type: Optional[RoomType] = None
    amenities: Optional[List[str]] = None
    hourly_rate: Optional[int] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class RoomRead(RoomBase):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ----- Bookings -----
class _BookingTimes(BaseModel):
    @field_validator("start_time", "end_time", "recurring_end_date", mode="after", check_fields=False)
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value) if value is not None else None


class BookingCreate(_BookingTimes):
    room_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    is_recurring: bool = False
    recurring_type: Optional[RecurringType] = None
    recurring_end_date: Optional[datetime] = None
    # admins may book on behalf of another user
    user_id: Optional[int] = None


class BookingUpdate(_BookingTimes):
    room_id: Optional[int] = None
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    recurring_type: Optional[RecurringType] = None
    recurring_end_date: Optional[datetime] = None


class BookingRead(BaseModel):
    id: int
    room_id: int
    user_id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    is_recurring: bool = False
    recurring_type: Optional[RecurringType] = None
    recurring_end_date: Optional[datetime] = None
    total_cost: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingDetail(BookingRead):
    room: Optional[RoomRead] = None
    user: Optional[UserRead] = None


class AvailabilityQuery(_BookingTimes):
    room_id: int
    start_time: datetime
    end_time: datetime


class AvailabilityResponse(BaseModel):
    room_id: int
    start_time: datetime
    end_time: datetime
    available: bool


# ----- Activities -----
class ActivityCreate(BaseModel):
    user_id: Optional[int] = None
    type: str
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ActivityRead(ActivityCreate):
    id: int
    created_at: datetime


# ----- Derived views -----
class RoomStatus(BaseModel):
    room_id: int
    is_available: bool
    current_booking: Optional[BookingRead] = None
    next_booking: Optional[BookingRead] = None


class RoomWithStatus(RoomRead):
    is_available: bool
    current_booking: Optional[BookingRead] = None
    next_booking: Optional[BookingRead] = None


class DashboardStats(BaseModel):
    available_rooms: int
    total_rooms: int
    booked_today: int
    pending_bookings: int
    revenue_today: int


class ConflictPayload(BaseModel):
    room_id: int
    start_time: datetime
    end_time: datetime
    booking_id: Optional[int] = None
    conflicting_booking_ids: List[int] = Field(default_factory=list)
