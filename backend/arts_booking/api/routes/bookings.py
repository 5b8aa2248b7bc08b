"""
Slot booking endpoints.

Errors raised by booking_service propagate to the BookingError handler in
main.py, which renders them as {"error": ...} with the matching status code.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.logging import get_logger
from arts_booking.core.security import CurrentUser, get_current_user
from arts_booking.db.session import get_db
from arts_booking.models.booking import Booking
from arts_booking.schemas.booking import BookingCreate, BookingReschedule, BookingResponse, BookingStatusAction
from arts_booking.services import booking_service, cache_service, notification_service

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


async def _refresh_listings(booking: Booking) -> None:
    # Open group booking listings filter on status and start time
    if booking.is_group_booking:
        await cache_service.invalidate_listing_cache()


@router.get("", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    organization_id: str = Query(..., min_length=1),
    resource_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """List an organization's bookings, optionally narrowed to a resource, date range or status."""
    return await booking_service.list_bookings(
        db,
        organization_id,
        resource_id=resource_id,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve a resource for a time slot.

    Returns 409 if a confirmed booking already overlaps the slot. Touching
    slots (one ends when the other starts) do not overlap.
    """
    booking = await booking_service.create_booking(db, booking_data, user)
    await db.commit()

    await notification_service.send_booking_confirmation(
        booking.artist_email,
        booking.artist_name,
        booking.title,
        booking.start_time,
        booking.end_time,
        host=(booking.meta or {}).get("host"),
    )
    return booking


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(booking_id: UUID, db: AsyncSession = Depends(get_db)):
    return await booking_service.get_booking(db, booking_id)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def update_booking_status_endpoint(
    booking_id: UUID,
    payload: BookingStatusAction,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Confirm a pending booking (re-checking the slot) or cancel it."""
    if payload.action == "confirm":
        booking = await booking_service.confirm_booking(db, booking_id)
    else:
        booking = await booking_service.cancel_booking(db, booking_id)
    await db.commit()
    await _refresh_listings(booking)
    logger.info("booking_status_changed", booking_id=str(booking_id), action=payload.action, user_id=user.user_id)
    return booking


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking_endpoint(
    booking_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.complete_booking(db, booking_id)
    await db.commit()
    await _refresh_listings(booking)
    return booking


@router.post("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking_endpoint(
    booking_id: UUID,
    payload: BookingReschedule,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Move a booking to a new future slot on the same resource."""
    booking = await booking_service.reschedule_booking(db, booking_id, payload)
    await db.commit()
    await _refresh_listings(booking)
    return booking
