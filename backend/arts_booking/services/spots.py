"""
Spot counter primitives shared by the capacity ledger and the waitlist.

Every change to `current_participants` / `available_spots` goes through
claim_spot() or release_spot(). Each is ONE conditional UPDATE:

    UPDATE bookings
       SET available_spots = available_spots - 1,
           current_participants = current_participants + 1
     WHERE id = :id AND available_spots > 0 AND current_participants < capacity
    RETURNING available_spots

No row returned means the change would break
0 <= current_participants <= capacity, and nothing was written. There is no
read-modify-write in Python, so concurrent joins and leaves cannot lose
updates.
"""

from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.clock import utcnow
from arts_booking.core.exceptions import NotFoundError
from arts_booking.models.booking import Booking
from arts_booking.models.participant import ACTIVE_PARTICIPANT_STATUSES, GroupBookingParticipant
from arts_booking.models.waitlist import ACTIVE_WAITLIST_STATUSES, WaitlistEntry


@dataclass
class ParticipantInfo:
    user_id: str
    name: str
    email: str
    phone: Optional[str] = None
    notes: Optional[str] = None
    metadata: dict = field(default_factory=dict)


async def load_group_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id, Booking.is_group_booking.is_(True))
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Group booking not found", details={"booking_id": str(booking_id)})
    return booking


async def claim_spot(db: AsyncSession, booking_id: UUID) -> Optional[int]:
    """Take one spot. Returns the remaining available_spots, or None if the booking is full."""
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.available_spots > 0,
            Booking.current_participants < Booking.capacity,
        )
        .values(
            available_spots=Booking.available_spots - 1,
            current_participants=Booking.current_participants + 1,
        )
        .returning(Booking.available_spots)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none()


async def release_spot(db: AsyncSession, booking_id: UUID) -> Optional[int]:
    """Give one spot back. Returns the new available_spots, or None if nobody holds a spot."""
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.current_participants > 0,
            Booking.available_spots < Booking.capacity,
        )
        .values(
            available_spots=Booking.available_spots + 1,
            current_participants=Booking.current_participants - 1,
        )
        .returning(Booking.available_spots)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none()


async def current_available_spots(db: AsyncSession, booking_id: UUID) -> int:
    result = await db.execute(select(Booking.available_spots).where(Booking.id == booking_id))
    return result.scalar_one()


async def find_active_participant(
    db: AsyncSession, booking_id: UUID, user_id: str
) -> Optional[GroupBookingParticipant]:
    result = await db.execute(
        select(GroupBookingParticipant).where(
            GroupBookingParticipant.booking_id == booking_id,
            GroupBookingParticipant.user_id == user_id,
            GroupBookingParticipant.status.in_(ACTIVE_PARTICIPANT_STATUSES),
        )
    )
    return result.scalar_one_or_none()


async def find_active_waitlist_entry(db: AsyncSession, booking_id: UUID, user_id: str) -> Optional[WaitlistEntry]:
    result = await db.execute(
        select(WaitlistEntry).where(
            WaitlistEntry.booking_id == booking_id,
            WaitlistEntry.user_id == user_id,
            WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
        )
    )
    return result.scalar_one_or_none()


async def add_confirmed_participant(
    db: AsyncSession, booking_id: UUID, info: ParticipantInfo
) -> GroupBookingParticipant:
    """Insert the participant row for a spot that has already been claimed."""
    now = utcnow()
    participant = GroupBookingParticipant(
        booking_id=booking_id,
        user_id=info.user_id,
        participant_name=info.name,
        participant_email=info.email,
        participant_phone=info.phone,
        status="confirmed",
        registered_at=now,
        confirmed_at=now,
        notes=info.notes,
        meta=info.metadata or {},
    )
    db.add(participant)
    await db.flush()
    return participant
