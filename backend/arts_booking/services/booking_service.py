"""
Slot booking service: one artist/organizer reserving a resource for a time range.

CONCURRENCY STRATEGY: Lock, Check, Insert
=========================================

Problem:
  Two requests for the same studio slot both run the overlap query, both
  see a free slot, both insert. Result: double booking.

Solution:
  1. Take the per-resource slot lock (pg_advisory_xact_lock on PostgreSQL).
     Every writer for that resource now queues behind us until commit.
  2. Run the overlap check (availability_service.is_available).
  3. Insert the booking as `confirmed`.

  The exclusion constraint installed by migration 001 rejects any
  overlapping confirmed pair that still slips through (e.g. a writer that
  bypasses this service); the resulting IntegrityError is reported as a
  conflict.

Status transitions:
  pending -> confirmed | cancelled
  confirmed -> completed | cancelled
  cancelled, completed: terminal. Bookings are never deleted.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.clock import utcnow
from arts_booking.core.exceptions import ConflictError, NotFoundError, ValidationError
from arts_booking.core.logging import get_logger
from arts_booking.core.metrics import record_booking_attempt
from arts_booking.core.security import CurrentUser
from arts_booking.models.booking import Booking
from arts_booking.schemas.booking import BookingCreate, BookingReschedule
from arts_booking.services.availability_service import (
    RESOURCE_UNAVAILABLE_REASON,
    AvailabilityResult,
    TimeRange,
    is_available,
)
from arts_booking.services.interfaces import resource_lock_key
from arts_booking.services.strategy_factory import lock_slot

logger = get_logger(__name__)


def _raise_unavailable(result: AvailabilityResult, resource_id: str) -> None:
    if result.reason == RESOURCE_UNAVAILABLE_REASON:
        raise ValidationError(result.reason, details={"resource_id": resource_id})
    raise ConflictError(
        result.reason,
        details={"conflicting_bookings": [str(b.id) for b in result.conflicting_bookings]},
    )


async def create_booking(db: AsyncSession, booking_data: BookingCreate, user: CurrentUser) -> Booking:
    """Reserve a slot. Raises ConflictError if a confirmed booking overlaps it."""
    candidate = TimeRange(booking_data.start_time, booking_data.end_time)

    await lock_slot(db, resource_lock_key(booking_data.resource_id))
    availability = await is_available(db, booking_data.resource_id, candidate)
    if not availability.available:
        record_booking_attempt("conflict")
        logger.warning(
            "booking_conflict",
            resource_id=booking_data.resource_id,
            reason=availability.reason,
            user_id=user.user_id,
        )
        _raise_unavailable(availability, booking_data.resource_id)

    meta = {"host": availability.host} if availability.host else {}
    booking = Booking(
        organization_id=booking_data.org_id,
        resource_id=booking_data.resource_id,
        resource_type=booking_data.resource_type,
        user_id=user.user_id,
        title=booking_data.title or f"Session with {booking_data.artist_name}",
        description=booking_data.description,
        start_time=candidate.start,
        end_time=candidate.end,
        status="confirmed",
        capacity=1,
        current_participants=0,
        available_spots=1,
        notes=booking_data.notes,
        artist_name=booking_data.artist_name,
        artist_email=booking_data.artist_email,
        goal_text=booking_data.goal_text,
        consent_recording=booking_data.consent_recording,
        meta=meta,
    )
    db.add(booking)
    try:
        await db.flush()
    except IntegrityError as e:
        # Exclusion constraint caught a concurrent writer
        record_booking_attempt("conflict")
        logger.warning("booking_conflict_constraint", resource_id=booking_data.resource_id, error=str(e.orig))
        raise ConflictError("Time slot is already booked")

    record_booking_attempt("success")
    logger.info(
        "booking_created",
        booking_id=str(booking.id),
        resource_id=booking.resource_id,
        user_id=user.user_id,
        start=candidate.start.isoformat(),
        duration_minutes=candidate.duration_minutes,
    )
    return booking


async def get_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found", details={"booking_id": str(booking_id)})
    return booking


async def list_bookings(
    db: AsyncSession,
    organization_id: str,
    resource_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    status: Optional[str] = None,
) -> list[Booking]:
    """Bookings of an organization, ordered by start time. Uses ix_bookings_org_status_start."""
    query = select(Booking).where(Booking.organization_id == organization_id)

    if resource_id:
        query = query.where(Booking.resource_id == resource_id)
    if start_date:
        query = query.where(Booking.start_time >= start_date)
    if end_date:
        query = query.where(Booking.end_time <= end_date)
    if status:
        query = query.where(Booking.status == status)

    result = await db.execute(query.order_by(Booking.start_time.asc()))
    return list(result.scalars().all())


def _ensure_transition(booking: Booking, new_status: str) -> None:
    if not booking.can_transition_to(new_status):
        raise ValidationError(
            f"Cannot change booking status from {booking.status} to {new_status}",
            details={"booking_id": str(booking.id)},
        )


async def confirm_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    """pending -> confirmed, re-checking the slot against everything but this booking."""
    booking = await get_booking(db, booking_id)
    _ensure_transition(booking, "confirmed")

    await lock_slot(db, resource_lock_key(booking.resource_id))
    availability = await is_available(
        db,
        booking.resource_id,
        TimeRange(booking.start_time, booking.end_time),
        exclude_booking_id=booking.id,
    )
    if not availability.available:
        _raise_unavailable(availability, booking.resource_id)

    booking.status = "confirmed"
    await db.flush()
    logger.info("booking_confirmed", booking_id=str(booking.id))
    return booking


async def cancel_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    booking = await get_booking(db, booking_id)
    _ensure_transition(booking, "cancelled")
    booking.status = "cancelled"
    await db.flush()
    logger.info("booking_cancelled", booking_id=str(booking.id), resource_id=booking.resource_id)
    return booking


async def complete_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    booking = await get_booking(db, booking_id)
    _ensure_transition(booking, "completed")
    booking.status = "completed"
    await db.flush()
    logger.info("booking_completed", booking_id=str(booking.id))
    return booking


async def reschedule_booking(db: AsyncSession, booking_id: UUID, data: BookingReschedule) -> Booking:
    """Move a pending or confirmed booking to a new future slot on the same resource."""
    booking = await get_booking(db, booking_id)
    if booking.status in ("cancelled", "completed"):
        raise ValidationError("Cannot reschedule completed or cancelled booking")

    candidate = TimeRange(data.start_time, data.end_time)
    if candidate.start <= utcnow():
        raise ValidationError("New booking time must be in the future")

    await lock_slot(db, resource_lock_key(booking.resource_id))
    availability = await is_available(db, booking.resource_id, candidate, exclude_booking_id=booking.id)
    if not availability.available:
        _raise_unavailable(availability, booking.resource_id)

    previous = {
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
    }
    booking.start_time = candidate.start
    booking.end_time = candidate.end
    if data.notes:
        booking.notes = data.notes
    booking.meta = {
        **(booking.meta or {}),
        "rescheduled_at": utcnow().isoformat(),
        "rescheduled_from": previous,
    }
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError("Time slot is already booked")

    logger.info("booking_rescheduled", booking_id=str(booking.id), start=candidate.start.isoformat())
    return booking
