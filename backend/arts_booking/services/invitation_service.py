"""
Invitation workflow for invite-only group bookings.

    pending --accept--> accepted
            --decline-> declined
            --TTL-----> expired     (discovered lazily on respond)

Acceptance joins the invitee through the capacity ledger in the same
transaction. If the join fails the whole unit is rolled back, so the
invitation stays `pending` and no participant row exists.
"""

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.clock import utcnow
from arts_booking.core.config import get_settings
from arts_booking.core.exceptions import ExpiredError, NotFoundError, ValidationError
from arts_booking.core.logging import get_logger
from arts_booking.core.metrics import invitation_responses
from arts_booking.models.booking import CLOSED_STATUSES
from arts_booking.models.invitation import GroupBookingInvitation
from arts_booking.services.capacity_service import JoinOutcome, join
from arts_booking.services.interfaces import booking_lock_key
from arts_booking.services.spots import ParticipantInfo, load_group_booking
from arts_booking.services.strategy_factory import lock_slot

logger = get_logger(__name__)
settings = get_settings()

DECISIONS = ("accepted", "declined")


@dataclass
class InvitationOutcome:
    invitation_id: UUID
    booking_id: UUID
    status: str
    join: Optional[JoinOutcome] = None


def generate_token() -> str:
    return secrets.token_urlsafe(32)


async def send(
    db: AsyncSession,
    booking_id: UUID,
    inviter_id: str,
    email: str,
    name: Optional[str] = None,
    invitee_user_id: Optional[str] = None,
    message: Optional[str] = None,
) -> GroupBookingInvitation:
    """Create a pending invitation valid for INVITATION_TTL_DAYS."""
    booking = await load_group_booking(db, booking_id)
    if booking.status in CLOSED_STATUSES:
        raise ValidationError("Cannot invite to a cancelled or completed booking")

    now = utcnow()
    invitation = GroupBookingInvitation(
        booking_id=booking.id,
        invited_by_user_id=inviter_id,
        invited_user_id=invitee_user_id,
        invited_email=email,
        invited_name=name,
        invitation_token=generate_token(),
        status="pending",
        sent_at=now,
        expires_at=now + timedelta(days=settings.INVITATION_TTL_DAYS),
        message=message,
    )
    db.add(invitation)
    await db.flush()

    logger.info("invitation_sent", booking_id=str(booking.id), invitation_id=str(invitation.id), inviter_id=inviter_id)
    return invitation


async def get_pending_invitation(db: AsyncSession, token: str) -> GroupBookingInvitation:
    result = await db.execute(
        select(GroupBookingInvitation)
        .where(
            GroupBookingInvitation.invitation_token == token,
            GroupBookingInvitation.status == "pending",
        )
        .with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise NotFoundError("Invitation not found or expired")
    return invitation


async def respond(
    db: AsyncSession,
    token: str,
    decision: str,
    user_id: Optional[str] = None,
) -> InvitationOutcome:
    """
    Redeem an invitation token.

    Raises:
        NotFoundError: unknown token, or already accepted/declined/expired
        ExpiredError: past expires_at; the invitation has been marked expired
        ValidationError: decision is not accepted/declined
        plus anything capacity_service.join raises on acceptance
    """
    invitation = await get_pending_invitation(db, token)

    now = utcnow()
    if invitation.is_expired(now):
        invitation.status = "expired"
        await db.flush()
        invitation_responses.labels(decision="expired").inc()
        logger.info("invitation_expired", invitation_id=str(invitation.id))
        raise ExpiredError("Invitation has expired")

    if decision not in DECISIONS:
        raise ValidationError("Decision must be 'accepted' or 'declined'", details={"decision": decision})

    invitee_id = user_id or invitation.invited_user_id or invitation.invited_email
    join_outcome = None

    if decision == "accepted":
        await lock_slot(db, booking_lock_key(invitation.booking_id))
        join_outcome = await join(
            db,
            invitation.booking_id,
            ParticipantInfo(
                user_id=invitee_id,
                name=invitation.invited_name or invitation.invited_email,
                email=invitation.invited_email,
                metadata={"invitation_id": str(invitation.id)},
            ),
            via_invitation=True,
        )

    invitation.status = decision
    invitation.responded_at = now
    if user_id:
        invitation.invited_user_id = user_id
    await db.flush()

    invitation_responses.labels(decision=decision).inc()
    logger.info(
        "invitation_responded",
        invitation_id=str(invitation.id),
        booking_id=str(invitation.booking_id),
        decision=decision,
        participant_status=join_outcome.status if join_outcome else None,
    )
    return InvitationOutcome(
        invitation_id=invitation.id,
        booking_id=invitation.booking_id,
        status=decision,
        join=join_outcome,
    )
