"""
Capacity ledger for group bookings: join and leave.

Invariant: current_participants + available_spots == capacity, and
0 <= current_participants <= capacity, after every call. Counter changes go
through spots.claim_spot / spots.release_spot only.

Both operations take the per-booking slot lock first, so a leave and the
waitlist promotion it triggers cannot interleave with another leave's
promotion for the same booking.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.clock import utcnow
from arts_booking.core.exceptions import BookingFullError, ConflictError, NotFoundError, ValidationError
from arts_booking.core.logging import get_logger
from arts_booking.models.booking import CLOSED_STATUSES
from arts_booking.services.interfaces import booking_lock_key
from arts_booking.services.spots import (
    ParticipantInfo,
    add_confirmed_participant,
    claim_spot,
    current_available_spots,
    find_active_participant,
    find_active_waitlist_entry,
    load_group_booking,
    release_spot,
)
from arts_booking.services.strategy_factory import lock_slot
from arts_booking.services.waitlist_service import enqueue, promote_next

logger = get_logger(__name__)


@dataclass
class JoinOutcome:
    status: str  # confirmed or waitlisted
    available_spots: int
    participant_id: Optional[UUID] = None
    waitlist_id: Optional[UUID] = None
    position: Optional[int] = None


@dataclass
class LeaveOutcome:
    available_spots: int
    left_waitlist: bool = False
    waitlist_position: Optional[int] = None
    promoted_user_id: Optional[str] = None
    promoted_participant_id: Optional[UUID] = None


async def join(
    db: AsyncSession,
    booking_id: UUID,
    participant: ParticipantInfo,
    via_invitation: bool = False,
    acting_user_id: Optional[str] = None,
) -> JoinOutcome:
    """
    Add a participant, or wait-list them when the booking is full.

    Raises:
        NotFoundError: not a group booking
        ValidationError: booking closed, or invite-only without an invitation
        ConflictError: user already registered or already waiting
        BookingFullError: full and waitlisting disabled
    """
    await lock_slot(db, booking_lock_key(booking_id))
    booking = await load_group_booking(db, booking_id)

    if booking.status in CLOSED_STATUSES:
        raise ValidationError("Group booking is not open for registration", details={"status": booking.status})

    organizer_acting = acting_user_id is not None and acting_user_id == booking.group_organizer_id
    if booking.group_booking_type == "invite_only" and not (via_invitation or organizer_acting):
        raise ValidationError("This group booking is invite-only")

    if await find_active_participant(db, booking.id, participant.user_id):
        raise ConflictError("User is already registered for this booking")

    waiting = await find_active_waitlist_entry(db, booking.id, participant.user_id)
    if waiting:
        raise ConflictError("User is already on the waitlist", details={"position": waiting.position})

    remaining = await claim_spot(db, booking.id)
    if remaining is not None:
        record = await add_confirmed_participant(db, booking.id, participant)
        logger.info(
            "participant_joined",
            booking_id=str(booking.id),
            user_id=participant.user_id,
            available_spots=remaining,
            via_invitation=via_invitation,
        )
        return JoinOutcome(status="confirmed", available_spots=remaining, participant_id=record.id)

    if not booking.waitlist_enabled:
        logger.info("participant_rejected_full", booking_id=str(booking.id), user_id=participant.user_id)
        raise BookingFullError("Group booking is full", details={"capacity": booking.capacity})

    entry = await enqueue(db, booking, participant)
    return JoinOutcome(
        status="waitlisted",
        available_spots=0,
        waitlist_id=entry.id,
        position=entry.position,
    )


async def leave(db: AsyncSession, booking_id: UUID, user_id: str) -> LeaveOutcome:
    """
    Cancel the user's participation and hand the spot to the waitlist.

    A user who is only on the waitlist is taken off it instead; counters do
    not move. Calling again after success raises NotFoundError. A cancelled
    or completed booking releases the spot but promotes nobody.
    """
    await lock_slot(db, booking_lock_key(booking_id))
    booking = await load_group_booking(db, booking_id)

    participant = await find_active_participant(db, booking.id, user_id)
    if participant is None:
        entry = await find_active_waitlist_entry(db, booking.id, user_id)
        if entry is None:
            raise NotFoundError("Participant not found", details={"user_id": user_id})
        entry.status = "cancelled"
        await db.flush()
        logger.info("waitlist_left", booking_id=str(booking.id), user_id=user_id, position=entry.position)
        return LeaveOutcome(
            available_spots=await current_available_spots(db, booking.id),
            left_waitlist=True,
        )

    participant.status = "cancelled"
    participant.cancelled_at = utcnow()
    await db.flush()

    remaining = await release_spot(db, booking.id)
    if remaining is None:
        raise ConflictError("Participant counters are out of balance", details={"booking_id": str(booking.id)})

    outcome = LeaveOutcome(available_spots=remaining)
    logger.info("participant_left", booking_id=str(booking.id), user_id=user_id, available_spots=remaining)

    if booking.waitlist_enabled and booking.status not in CLOSED_STATUSES:
        promotion = await promote_next(db, booking.id, trigger="leave")
        if promotion is not None:
            outcome.available_spots = promotion.available_spots
            outcome.waitlist_position = promotion.position
            outcome.promoted_user_id = promotion.user_id
            outcome.promoted_participant_id = promotion.participant_id

    return outcome
