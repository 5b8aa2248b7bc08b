"""
Waitlist manager for full group bookings.

ORDERING
========

Entries are numbered max(position) + 1 on arrival and promoted strictly in
position order: an entry can never be converted while a lower-positioned
entry is still `waiting` or `notified` and within its TTL.

EXPIRY
======

There is no background sweeper. An entry past `expires_at` is discovered
when a promotion walks over it; it is then marked `expired` and the walk
moves on to the next position.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.clock import utcnow
from arts_booking.core.config import get_settings
from arts_booking.core.exceptions import CapacityError, ConflictError, ExpiredError, NotFoundError, ValidationError
from arts_booking.core.logging import get_logger
from arts_booking.core.metrics import waitlist_expirations, waitlist_promotions
from arts_booking.models.booking import CLOSED_STATUSES, Booking
from arts_booking.models.waitlist import ACTIVE_WAITLIST_STATUSES, WaitlistEntry
from arts_booking.services.interfaces import booking_lock_key
from arts_booking.services.spots import (
    ParticipantInfo,
    add_confirmed_participant,
    claim_spot,
    load_group_booking,
)
from arts_booking.services.strategy_factory import lock_slot

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class PromotionOutcome:
    waitlist_id: UUID
    participant_id: UUID
    user_id: str
    position: int
    available_spots: int
    expired_ids: list[UUID] = field(default_factory=list)


async def enqueue(db: AsyncSession, booking: Booking, info: ParticipantInfo) -> WaitlistEntry:
    """Append to the booking's waitlist. Position is one past the highest ever allocated."""
    result = await db.execute(
        select(func.coalesce(func.max(WaitlistEntry.position), 0)).where(WaitlistEntry.booking_id == booking.id)
    )
    position = result.scalar_one() + 1

    entry = WaitlistEntry(
        booking_id=booking.id,
        user_id=info.user_id,
        participant_name=info.name,
        participant_email=info.email,
        participant_phone=info.phone,
        position=position,
        status="waiting",
        expires_at=utcnow() + timedelta(hours=settings.WAITLIST_ENTRY_TTL_HOURS),
        notes=info.notes,
        meta=info.metadata or {},
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError:
        # Another request took the same position
        raise ConflictError("Waitlist changed while joining, please retry")

    logger.info("waitlist_joined", booking_id=str(booking.id), user_id=info.user_id, position=position)
    return entry


async def _active_entries(db: AsyncSession, booking_id: UUID, before_position: Optional[int] = None) -> list[WaitlistEntry]:
    query = select(WaitlistEntry).where(
        WaitlistEntry.booking_id == booking_id,
        WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
    )
    if before_position is not None:
        query = query.where(WaitlistEntry.position < before_position)
    result = await db.execute(query.order_by(WaitlistEntry.position.asc()))
    return list(result.scalars().all())


async def _expire(db: AsyncSession, entry: WaitlistEntry) -> None:
    entry.status = "expired"
    await db.flush()
    waitlist_expirations.inc()
    logger.info("waitlist_entry_expired", booking_id=str(entry.booking_id), position=entry.position)


async def _convert(
    db: AsyncSession, booking_id: UUID, entry: WaitlistEntry, trigger: str, expired_ids: list[UUID]
) -> PromotionOutcome:
    remaining = await claim_spot(db, booking_id)
    if remaining is None:
        raise CapacityError("No spots available for promotion", details={"booking_id": str(booking_id)})

    participant = await add_confirmed_participant(
        db,
        booking_id,
        ParticipantInfo(
            user_id=entry.user_id,
            name=entry.participant_name,
            email=entry.participant_email,
            phone=entry.participant_phone,
            notes=entry.notes,
            metadata={"promoted_from_waitlist": True, "waitlist_position": entry.position},
        ),
    )
    entry.status = "converted"
    await db.flush()

    waitlist_promotions.labels(trigger=trigger).inc()
    logger.info(
        "waitlist_promoted",
        booking_id=str(booking_id),
        user_id=entry.user_id,
        position=entry.position,
        available_spots=remaining,
        trigger=trigger,
    )
    return PromotionOutcome(
        waitlist_id=entry.id,
        participant_id=participant.id,
        user_id=entry.user_id,
        position=entry.position,
        available_spots=remaining,
        expired_ids=expired_ids,
    )


async def promote_next(
    db: AsyncSession,
    booking_id: UUID,
    trigger: str = "leave",
    now: Optional[datetime] = None,
    expired_ids: Optional[list[UUID]] = None,
) -> Optional[PromotionOutcome]:
    """Convert the first still-valid entry in position order. Returns None if none is left."""
    now = now or utcnow()
    expired_ids = expired_ids if expired_ids is not None else []

    for entry in await _active_entries(db, booking_id):
        if entry.is_expired(now):
            await _expire(db, entry)
            expired_ids.append(entry.id)
            continue
        return await _convert(db, booking_id, entry, trigger, expired_ids)
    return None


async def promote(db: AsyncSession, booking_id: UUID, waitlist_id: UUID) -> PromotionOutcome:
    """
    Promote a specific waitlist entry.

    Raises:
        NotFoundError: booking or entry does not exist
        ValidationError: booking closed, or entry is no longer waiting
        ConflictError: a lower-positioned entry is still waiting
        CapacityError: no free spot
        ExpiredError: the entry and every entry after it had expired
    """
    await lock_slot(db, booking_lock_key(booking_id))
    booking = await load_group_booking(db, booking_id)
    if booking.status in CLOSED_STATUSES:
        raise ValidationError("Group booking is closed", details={"status": booking.status})

    result = await db.execute(
        select(WaitlistEntry).where(WaitlistEntry.id == waitlist_id, WaitlistEntry.booking_id == booking_id)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise NotFoundError("Waitlist entry not found", details={"waitlist_id": str(waitlist_id)})
    if not entry.is_active:
        raise ValidationError(f"Waitlist entry is already {entry.status}")

    now = utcnow()
    expired_ids: list[UUID] = []
    for earlier in await _active_entries(db, booking_id, before_position=entry.position):
        if earlier.is_expired(now):
            await _expire(db, earlier)
            expired_ids.append(earlier.id)
            continue
        raise ConflictError(
            "Earlier waitlist entries must be promoted first",
            details={"blocking_position": earlier.position, "requested_position": entry.position},
        )

    if not entry.is_expired(now):
        return await _convert(db, booking_id, entry, "manual", expired_ids)

    await _expire(db, entry)
    expired_ids.append(entry.id)
    outcome = await promote_next(db, booking_id, trigger="manual", now=now, expired_ids=expired_ids)
    if outcome is None:
        raise ExpiredError(
            "Waitlist entry has expired and no other entries are waiting",
            details={"expired": [str(i) for i in expired_ids]},
        )
    return outcome
