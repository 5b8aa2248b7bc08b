"""
Pydantic schemas for slot bookings and availability.
"""

from datetime import date, datetime, time
from typing import Literal, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from arts_booking.core.clock import as_utc

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class TimeWindow(BaseModel):
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalise_to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_order(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class BookingCreate(TimeWindow):
    org_id: str = Field(..., min_length=1, max_length=64)
    resource_id: str = Field(..., min_length=1, max_length=64)
    artist_name: str = Field(..., min_length=1, max_length=255)
    artist_email: EmailStr
    goal_text: Optional[str] = Field(None, max_length=5000)
    consent_recording: bool = False
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    resource_type: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = Field(None, max_length=5000)


class BookingReschedule(TimeWindow):
    notes: Optional[str] = Field(None, max_length=5000)


class BookingStatusAction(BaseModel):
    action: Literal["confirm", "cancel"]


class BookingResponse(BaseModel):
    id: UUID
    organization_id: str
    resource_id: str
    resource_type: Optional[str]
    user_id: Optional[str]
    title: str
    description: Optional[str]
    start_time: datetime
    end_time: datetime
    status: str
    capacity: int
    current_participants: int
    available_spots: int
    price: float
    currency: str
    location: Optional[str]
    notes: Optional[str]
    artist_name: Optional[str]
    artist_email: Optional[str]
    goal_text: Optional[str]
    consent_recording: bool
    is_group_booking: bool
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime

    model_config = {"from_attributes": True}


class ConflictingBooking(BaseModel):
    id: UUID
    start_time: datetime
    end_time: datetime
    status: str

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    resource_id: str
    start_time: datetime
    end_time: datetime
    available: bool
    reason: Optional[str] = None
    host: Optional[str] = None
    conflicting_bookings: list[ConflictingBooking] = Field(default_factory=list)


class AvailabilityWindowRule(BaseModel):
    """Weekly opening hours of one host, in the rules' timezone."""

    by: Literal["host"] = "host"
    host: str = Field(..., min_length=1, max_length=255)
    days: list[str] = Field(..., min_length=1)
    start: time
    end: time

    @field_validator("days")
    @classmethod
    def _normalise_days(cls, value: list[str]) -> list[str]:
        days = [day.strip().capitalize() for day in value]
        unknown = [day for day in days if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"unknown weekday(s): {', '.join(unknown)}")
        return days

    @model_validator(mode="after")
    def _check_order(self):
        if self.end <= self.start:
            raise ValueError("window end must be after window start")
        return self


class BlackoutRule(BaseModel):
    """A closed day, or an inclusive range of closed days."""

    day: Optional[date] = Field(None, alias="date")
    span: Optional[tuple[date, date]] = Field(None, alias="range")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_shape(self):
        if (self.day is None) == (self.span is None):
            raise ValueError("a blackout needs exactly one of date or range")
        if self.span is not None and self.span[1] < self.span[0]:
            raise ValueError("blackout range ends before it starts")
        return self

    def covers(self, day: date) -> bool:
        if self.day is not None:
            return self.day == day
        return self.span[0] <= day <= self.span[1]


class AvailabilityRules(BaseModel):
    """Shape of resources.availability_rules. Unset values fall back to settings."""

    timezone: Optional[str] = None
    slot_minutes: Optional[int] = Field(None, ge=5, le=1440)
    buffer_before: int = Field(0, ge=0, le=1440)
    buffer_after: int = Field(0, ge=0, le=1440)
    max_per_day_per_host: Optional[int] = Field(None, ge=1)
    windows: list[AvailabilityWindowRule] = Field(default_factory=list)
    blackouts: list[BlackoutRule] = Field(default_factory=list)
    pooling: Literal["round_robin", "least_loaded"] = "round_robin"

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"unknown timezone: {value}")
        return value


class AvailableSlot(BaseModel):
    start: datetime
    end: datetime
    host: str

    model_config = {"from_attributes": True}


class AvailableSlotsResponse(BaseModel):
    resource_id: str
    timezone: str
    slot_minutes: int
    slots: list[AvailableSlot] = Field(default_factory=list)

    model_config = {"from_attributes": True}
