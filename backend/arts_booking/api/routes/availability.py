"""
Read-only availability lookups for a resource.

    ?start_time=...&end_time=...   is this one range free?
    ?start_date=...&end_date=...   open slots from the resource's availability rules
"""

from datetime import date, datetime
from typing import Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.exceptions import ValidationError
from arts_booking.db.session import get_db
from arts_booking.schemas.booking import AvailabilityResponse, AvailableSlotsResponse, ConflictingBooking
from arts_booking.services.availability_service import TimeRange, generate_available_slots, is_available

router = APIRouter(prefix="/availability", tags=["Availability"])


@router.get("", response_model=Union[AvailableSlotsResponse, AvailabilityResponse])
async def check_availability_endpoint(
    resource_id: str = Query(..., min_length=1),
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    exclude_booking_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Whether a slot is free, or every open slot in a date range.
    Only confirmed bookings block. Not cached: the answer must reflect
    bookings made a moment ago.
    """
    if start_date is not None and end_date is not None:
        listing = await generate_available_slots(db, resource_id, start_date, end_date)
        return AvailableSlotsResponse.model_validate(listing)

    if start_time is None or end_time is None:
        raise ValidationError("Provide start_time and end_time, or start_date and end_date")

    slot = TimeRange(start_time, end_time)
    result = await is_available(db, resource_id, slot, exclude_booking_id=exclude_booking_id)
    return AvailabilityResponse(
        resource_id=resource_id,
        start_time=slot.start,
        end_time=slot.end,
        available=result.available,
        reason=result.reason,
        host=result.host,
        conflicting_bookings=[ConflictingBooking.model_validate(b) for b in result.conflicting_bookings],
    )
