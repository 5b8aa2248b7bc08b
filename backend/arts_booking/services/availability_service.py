"""
Slot availability.

OVERLAP RULE
============

Ranges are half-open [start, end). Two ranges conflict when

    existing.start < candidate.end AND existing.end > candidate.start

so a booking ending at 11:00 and one starting at 11:00 do not conflict.

Only `confirmed` bookings block a slot. Pending requests and cancelled or
completed bookings are ignored.

The check is advisory on its own: two requests can both pass it before
either inserts. Callers that write after checking take the resource slot
lock first (see strategy_factory), and on PostgreSQL the exclusion
constraint from migration 001 is the final safety net.

SLOT LISTINGS
=============

generate_available_slots turns a resource's availability_rules (weekly host
windows, slot length, buffers, a per-host daily cap, blackout days) into
concrete open slots, using the same overlap rule against confirmed bookings.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from pydantic import ValidationError as RulesError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.clock import as_utc, utcnow
from arts_booking.core.config import get_settings
from arts_booking.core.exceptions import NotFoundError, ValidationError
from arts_booking.core.logging import get_logger
from arts_booking.core.metrics import record_availability_check, record_slots_offered
from arts_booking.models.booking import Booking
from arts_booking.models.resource import Resource
from arts_booking.schemas.booking import WEEKDAYS, AvailabilityRules, AvailabilityWindowRule

logger = get_logger(__name__)
settings = get_settings()

SLOT_TAKEN_REASON = "Time slot is already booked"
RESOURCE_UNAVAILABLE_REASON = "Resource is not available for booking"


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        start, end = as_utc(self.start), as_utc(self.end)
        if start is None or end is None:
            raise ValidationError("start and end are required")
        if end <= start:
            raise ValidationError(
                "end must be after start",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and self.end > other.start

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


@dataclass
class AvailabilityResult:
    available: bool
    reason: Optional[str] = None
    conflicting_bookings: list[Booking] = field(default_factory=list)
    host: Optional[str] = None


async def find_conflicts(
    db: AsyncSession,
    resource_id: str,
    candidate: TimeRange,
    exclude_booking_id: Optional[UUID] = None,
) -> list[Booking]:
    """Confirmed bookings on the resource overlapping the candidate range."""
    query = select(Booking).where(
        Booking.resource_id == resource_id,
        Booking.status == "confirmed",
        Booking.start_time < candidate.end,
        Booking.end_time > candidate.start,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    result = await db.execute(query.order_by(Booking.start_time.asc()))
    return list(result.scalars().all())


async def is_available(
    db: AsyncSession,
    resource_id: str,
    candidate: TimeRange,
    exclude_booking_id: Optional[UUID] = None,
) -> AvailabilityResult:
    """
    Decide whether `candidate` is free on `resource_id`.

    exclude_booking_id lets a booking be re-checked against everything but
    itself (confirming a pending booking, rescheduling).
    """
    resource = await db.get(Resource, resource_id)
    if resource is not None and not (resource.is_active and resource.is_bookable):
        record_availability_check(False)
        return AvailabilityResult(available=False, reason=RESOURCE_UNAVAILABLE_REASON)

    conflicts = await find_conflicts(db, resource_id, candidate, exclude_booking_id)
    if conflicts:
        logger.info(
            "slot_unavailable",
            resource_id=resource_id,
            start=candidate.start.isoformat(),
            end=candidate.end.isoformat(),
            conflicts=[str(b.id) for b in conflicts],
        )
        record_availability_check(False)
        return AvailabilityResult(
            available=False,
            reason=SLOT_TAKEN_REASON,
            conflicting_bookings=conflicts,
        )

    record_availability_check(True)
    return AvailabilityResult(
        available=True,
        host=resource.default_host if resource is not None else None,
    )


@dataclass
class OpenSlot:
    start: datetime
    end: datetime
    host: str


@dataclass
class SlotListing:
    resource_id: str
    timezone: str
    slot_minutes: int
    slots: list[OpenSlot] = field(default_factory=list)


def _load_rules(resource: Resource) -> AvailabilityRules:
    try:
        rules = AvailabilityRules.model_validate(resource.availability_rules or {})
    except RulesError as e:
        raise ValidationError(
            "Resource availability rules are invalid",
            details={"errors": [err["msg"] for err in e.errors()]},
        )
    if not rules.windows:
        raise ValidationError("No availability windows configured for this resource")
    return rules


def _host_slots(
    window: AvailabilityWindowRule,
    day: date,
    tz: ZoneInfo,
    slot_minutes: int,
    blocked: list[TimeRange],
    limit: int,
    now: datetime,
) -> list[OpenSlot]:
    """Step through one window in slot_minutes increments, skipping blocked and past slots."""
    slots: list[OpenSlot] = []
    step = timedelta(minutes=slot_minutes)
    current = datetime.combine(day, window.start, tzinfo=tz)
    window_end = datetime.combine(day, window.end, tzinfo=tz)

    while current + step <= window_end and len(slots) < limit:
        candidate = TimeRange(current, current + step)
        if candidate.start > now and not any(candidate.overlaps(b) for b in blocked):
            slots.append(OpenSlot(start=candidate.start, end=candidate.end, host=window.host))
        current += step
    return slots


async def generate_available_slots(
    db: AsyncSession,
    resource_id: str,
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None,
) -> SlotListing:
    """
    Bookable slots on `resource_id` for every day in [start_date, end_date].

    Days and window times are read in the rules' timezone. A slot is offered
    when it lies inside a host window, the day is not blacked out, it starts
    in the future and it does not overlap a confirmed booking widened by
    buffer_before / buffer_after. Confirmed bookings count towards their
    host's max_per_day_per_host, and each window offers at most the
    remainder of that cap.

    Raises:
        NotFoundError: resource missing, inactive or not bookable
        ValidationError: bad date range, or rules missing or malformed
    """
    resource = await db.get(Resource, resource_id)
    if resource is None or not (resource.is_active and resource.is_bookable):
        raise NotFoundError("Resource not found or not bookable", details={"resource_id": resource_id})

    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")
    days = (end_date - start_date).days + 1
    if days > settings.AVAILABILITY_MAX_DAYS:
        raise ValidationError(
            f"Date range is limited to {settings.AVAILABILITY_MAX_DAYS} days",
            details={"requested_days": days},
        )

    rules = _load_rules(resource)
    timezone_name = rules.timezone or settings.DEFAULT_TIMEZONE
    tz = ZoneInfo(timezone_name)
    slot_minutes = rules.slot_minutes or settings.DEFAULT_SLOT_MINUTES
    daily_cap = rules.max_per_day_per_host or settings.DEFAULT_MAX_PER_DAY_PER_HOST
    before = timedelta(minutes=rules.buffer_before)
    after = timedelta(minutes=rules.buffer_after)
    now = now or utcnow()

    range_start = datetime.combine(start_date, time.min, tzinfo=tz)
    range_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz)
    result = await db.execute(
        select(Booking).where(
            Booking.resource_id == resource_id,
            Booking.status == "confirmed",
            Booking.start_time < as_utc(range_end + before),
            Booking.end_time > as_utc(range_start - after),
        )
    )
    bookings = list(result.scalars().all())

    blocked: list[TimeRange] = []
    booked_per_host_day: Counter = Counter()
    load_per_host: Counter = Counter()
    for booking in bookings:
        start, end = as_utc(booking.start_time), as_utc(booking.end_time)
        blocked.append(TimeRange(start - before, end + after))
        host = (booking.meta or {}).get("host") or resource.default_host
        if host:
            booked_per_host_day[(host, start.astimezone(tz).date())] += 1
            load_per_host[host] += 1

    slots: list[OpenSlot] = []
    for offset in range(days):
        day = start_date + timedelta(days=offset)
        if any(blackout.covers(day) for blackout in rules.blackouts):
            continue
        weekday = WEEKDAYS[day.weekday()]
        for window in rules.windows:
            if weekday not in window.days:
                continue
            remaining = daily_cap - booked_per_host_day[(window.host, day)]
            if remaining > 0:
                slots.extend(_host_slots(window, day, tz, slot_minutes, blocked, remaining, now))

    if rules.pooling == "least_loaded":
        slots.sort(key=lambda s: (s.start, load_per_host[s.host], s.host))
    else:
        slots.sort(key=lambda s: (s.start, s.host))

    record_slots_offered(len(slots))
    logger.info(
        "slots_generated",
        resource_id=resource_id,
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
        slots=len(slots),
        pooling=rules.pooling,
    )
    return SlotListing(resource_id=resource_id, timezone=timezone_name, slot_minutes=slot_minutes, slots=slots)
