"""
Group booking orchestrator.

Public entry point for everything that touches a group booking. Each
operation is one unit of work:

    service call(s) -> commit        -> OperationResult(success=True, data)
                    -> BookingError  -> rollback -> OperationResult(success=False)
                    -> ExpiredError  -> commit    -> OperationResult(success=False)
                    -> SQLAlchemyError -> rollback -> OperationResult(success=False, DATABASE_ERROR)

ExpiredError is the one failure that commits: the service has already
moved the invitation or waitlist entry to `expired` and that transition
must stick.

Nothing raises across this boundary. Routes map result.status_code
straight onto the HTTP response.

Side effects that run after the commit (listing cache invalidation,
emails) are best effort and never change the result.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.clock import utcnow
from arts_booking.core.exceptions import BackendError, BookingError, ExpiredError, ValidationError
from arts_booking.core.logging import get_logger
from arts_booking.core.metrics import record_group_operation
from arts_booking.core.security import CurrentUser
from arts_booking.models.booking import Booking
from arts_booking.models.invitation import GroupBookingInvitation
from arts_booking.models.participant import GroupBookingParticipant
from arts_booking.models.waitlist import WaitlistEntry
from arts_booking.schemas.group_booking import (
    GroupBookingCreate,
    GroupBookingDetails,
    GroupBookingSummary,
    InvitationCreated,
    InvitationResponse,
    ParticipantJoin,
    ParticipantResponse,
    WaitlistEntryResponse,
)
from arts_booking.services import (
    cache_service,
    capacity_service,
    invitation_service,
    notification_service,
    waitlist_service,
)
from arts_booking.services.availability_service import TimeRange
from arts_booking.services.spots import ParticipantInfo, load_group_booking

logger = get_logger(__name__)


@dataclass
class OperationResult:
    success: bool
    data: dict = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: int = 200
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, **self.data}
        payload = {"success": False, "error": self.error, "error_code": self.error_code}
        if self.details:
            payload["details"] = self.details
        return payload

    @classmethod
    def failure(cls, exc: BookingError) -> "OperationResult":
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.error_code.value,
            status_code=exc.status_code,
            details=exc.details,
        )


async def _execute(
    db: AsyncSession,
    operation: str,
    work: Callable[[], Awaitable[dict]],
    success_status: int = 200,
) -> OperationResult:
    """Run `work` as one transaction and fold every outcome into an OperationResult."""
    start = time.perf_counter()
    try:
        data = await work()
        await db.commit()
    except ExpiredError as e:
        await db.commit()
        record_group_operation(operation, e.error_code.value, time.perf_counter() - start)
        logger.info("group_operation_expired", operation=operation, error=e.message)
        return OperationResult.failure(e)
    except BookingError as e:
        await db.rollback()
        record_group_operation(operation, e.error_code.value, time.perf_counter() - start)
        logger.info("group_operation_rejected", operation=operation, error=e.message, error_code=e.error_code.value)
        return OperationResult.failure(e)
    except SQLAlchemyError as e:
        await db.rollback()
        error = BackendError("Database error while processing the group booking")
        record_group_operation(operation, error.error_code.value, time.perf_counter() - start)
        logger.error("group_operation_backend_error", operation=operation, error=str(e))
        return OperationResult.failure(error)

    record_group_operation(operation, "success", time.perf_counter() - start)
    return OperationResult(success=True, data=data, status_code=success_status)


def _summary(booking: Booking) -> dict:
    return GroupBookingSummary.model_validate(booking).model_dump(mode="json")


def _require_organizer(booking: Booking, user: CurrentUser, action: str) -> None:
    if booking.group_organizer_id != user.user_id:
        raise ValidationError(f"Only the group organizer can {action}", details={"booking_id": str(booking.id)})


async def create_group_booking(db: AsyncSession, data: GroupBookingCreate, user: CurrentUser) -> OperationResult:
    """Insert a pending group booking with every spot free. The caller becomes the organizer."""

    async def work() -> dict:
        if data.capacity < 1:
            raise ValidationError("Capacity must be at least 1")
        slot = TimeRange(data.start_time, data.end_time)

        booking = Booking(
            organization_id=data.organization_id,
            resource_id=data.resource_id,
            resource_type=data.resource_type,
            user_id=user.user_id,
            title=data.title,
            description=data.description,
            start_time=slot.start,
            end_time=slot.end,
            status="pending",
            capacity=data.capacity,
            current_participants=0,
            available_spots=data.capacity,
            price=data.price,
            currency=data.currency.upper(),
            location=data.location,
            is_group_booking=True,
            group_size=data.capacity,
            waitlist_enabled=data.waitlist_enabled,
            group_booking_type=data.group_booking_type,
            group_organizer_id=user.user_id,
            meta={},
        )
        db.add(booking)
        await db.flush()
        logger.info(
            "group_booking_created",
            booking_id=str(booking.id),
            resource_id=booking.resource_id,
            capacity=booking.capacity,
            organizer_id=user.user_id,
        )
        return {"booking_id": str(booking.id), "booking": _summary(booking)}

    result = await _execute(db, "create", work, success_status=201)
    if result.success:
        await cache_service.invalidate_listing_cache()
    return result


async def _load_details(db: AsyncSession, booking_id: UUID) -> dict:
    booking = await load_group_booking(db, booking_id)

    participants = await db.execute(
        select(GroupBookingParticipant)
        .where(GroupBookingParticipant.booking_id == booking.id)
        .order_by(GroupBookingParticipant.registered_at.asc())
    )
    waitlist = await db.execute(
        select(WaitlistEntry).where(WaitlistEntry.booking_id == booking.id).order_by(WaitlistEntry.position.asc())
    )
    invitations = await db.execute(
        select(GroupBookingInvitation)
        .where(GroupBookingInvitation.booking_id == booking.id)
        .order_by(GroupBookingInvitation.sent_at.asc())
    )

    details = GroupBookingDetails(
        **GroupBookingSummary.model_validate(booking).model_dump(),
        participants=[ParticipantResponse.model_validate(p) for p in participants.scalars().all()],
        waitlist=[WaitlistEntryResponse.model_validate(w) for w in waitlist.scalars().all()],
        invitations=[InvitationResponse.model_validate(i) for i in invitations.scalars().all()],
    )
    return details.model_dump(mode="json")


async def get_details(db: AsyncSession, booking_id: UUID) -> OperationResult:
    """Booking plus its participants, waitlist and invitations. Read only."""

    async def work() -> dict:
        return {"booking": await _load_details(db, booking_id)}

    return await _execute(db, "get_details", work)


async def list_available_group_bookings(
    db: AsyncSession, organization_id: str, limit: int = 20, offset: int = 0
) -> OperationResult:
    """
    Confirmed group bookings with free spots that have not started yet.

    Served from Redis when a listing for the same page is cached. Spot counts
    in a cached page may lag by up to REDIS_CACHE_TTL; joins always re-check.
    """
    cached = await cache_service.get_cached_listing(organization_id, limit, offset)
    if cached is not None:
        record_group_operation("list_available", "success", 0.0)
        return OperationResult(success=True, data={"bookings": cached, "cached": True})

    async def work() -> dict:
        result = await db.execute(
            select(Booking)
            .where(
                Booking.organization_id == organization_id,
                Booking.is_group_booking.is_(True),
                Booking.status == "confirmed",
                Booking.available_spots > 0,
                Booking.start_time > utcnow(),
            )
            .order_by(Booking.start_time.asc())
            .limit(limit)
            .offset(offset)
        )
        return {"bookings": [_summary(b) for b in result.scalars().all()], "cached": False}

    result = await _execute(db, "list_available", work)
    if result.success:
        await cache_service.set_cached_listing(organization_id, limit, offset, result.data["bookings"])
    return result


async def add_participant(
    db: AsyncSession, booking_id: UUID, user: CurrentUser, data: Optional[ParticipantJoin] = None
) -> OperationResult:
    """Join the caller. Confirmed when a spot is free, waitlisted when full and the waitlist is on."""
    data = data or ParticipantJoin()
    email = data.participant_email or user.email
    name = data.participant_name or user.name or email or user.user_id

    async def work() -> dict:
        if not email:
            raise ValidationError("participant_email is required when the token carries no email")
        outcome = await capacity_service.join(
            db,
            booking_id,
            ParticipantInfo(
                user_id=user.user_id,
                name=name,
                email=email,
                phone=data.participant_phone,
                notes=data.notes,
            ),
            acting_user_id=user.user_id,
        )
        booking = await load_group_booking(db, booking_id)
        return {
            "status": outcome.status,
            "available_spots": outcome.available_spots,
            "participant_id": str(outcome.participant_id) if outcome.participant_id else None,
            "waitlist_id": str(outcome.waitlist_id) if outcome.waitlist_id else None,
            "position": outcome.position,
            "title": booking.title,
        }

    result = await _execute(db, "add_participant", work, success_status=201)
    if result.success:
        if result.data["status"] == "confirmed":
            await cache_service.invalidate_listing_cache()
        await notification_service.send_participant_confirmation(
            email, name, result.data.pop("title"), result.data["status"], result.data["position"]
        )
    return result


async def remove_participant(
    db: AsyncSession, booking_id: UUID, user_id: str, acting_user: CurrentUser
) -> OperationResult:
    """Leave a booking. Participants remove themselves; the organizer may remove anyone."""

    async def work() -> dict:
        if user_id != acting_user.user_id:
            booking = await load_group_booking(db, booking_id)
            _require_organizer(booking, acting_user, "remove other participants")
        outcome = await capacity_service.leave(db, booking_id, user_id)
        return {
            "available_spots": outcome.available_spots,
            "left_waitlist": outcome.left_waitlist,
            "waitlist_position": outcome.waitlist_position,
            "promoted_user_id": outcome.promoted_user_id,
            "promoted_participant_id": str(outcome.promoted_participant_id) if outcome.promoted_participant_id else None,
        }

    result = await _execute(db, "remove_participant", work)
    if result.success and not result.data["left_waitlist"]:
        await cache_service.invalidate_listing_cache()
    return result


async def promote_waitlist_participant(
    db: AsyncSession, booking_id: UUID, waitlist_id: UUID, acting_user: CurrentUser
) -> OperationResult:
    """Organizer promotes a waitlist entry into a confirmed participant, in position order."""

    async def work() -> dict:
        booking = await load_group_booking(db, booking_id)
        _require_organizer(booking, acting_user, "promote waitlist entries")
        outcome = await waitlist_service.promote(db, booking_id, waitlist_id)
        return {
            "waitlist_id": str(outcome.waitlist_id),
            "participant_id": str(outcome.participant_id),
            "user_id": outcome.user_id,
            "position": outcome.position,
            "available_spots": outcome.available_spots,
            "expired_waitlist_ids": [str(i) for i in outcome.expired_ids],
        }

    result = await _execute(db, "promote_waitlist", work)
    if result.success:
        await cache_service.invalidate_listing_cache()
    return result


async def send_invitation(
    db: AsyncSession,
    booking_id: UUID,
    inviter: CurrentUser,
    email: str,
    name: Optional[str] = None,
    invitee_user_id: Optional[str] = None,
    message: Optional[str] = None,
) -> OperationResult:
    """Organizer invites someone by email. The token goes out by email and in the response."""

    async def work() -> dict:
        booking = await load_group_booking(db, booking_id)
        _require_organizer(booking, inviter, "send invitations")
        invitation = await invitation_service.send(
            db,
            booking_id,
            inviter.user_id,
            email,
            name=name,
            invitee_user_id=invitee_user_id,
            message=message,
        )
        return {
            "invitation": InvitationCreated.model_validate(invitation).model_dump(mode="json"),
            "title": booking.title,
        }

    result = await _execute(db, "send_invitation", work, success_status=201)
    if result.success:
        invitation = result.data["invitation"]
        await notification_service.send_invitation(
            email, name, result.data.pop("title"), invitation["invitation_token"], message
        )
    return result


async def respond_to_invitation(
    db: AsyncSession, token: str, decision: str, user: Optional[CurrentUser] = None
) -> OperationResult:
    """Accept or decline. Acceptance and the resulting join commit together or not at all."""

    async def work() -> dict:
        outcome = await invitation_service.respond(db, token, decision, user_id=user.user_id if user else None)
        data: dict[str, Any] = {
            "invitation_id": str(outcome.invitation_id),
            "booking_id": str(outcome.booking_id),
            "status": outcome.status,
        }
        if outcome.join is not None:
            data["participant_status"] = outcome.join.status
            data["available_spots"] = outcome.join.available_spots
            data["position"] = outcome.join.position
        return data

    result = await _execute(db, "respond_invitation", work)
    if result.success and result.data.get("participant_status") == "confirmed":
        await cache_service.invalidate_listing_cache()
    return result
