"""
Group booking endpoints, one per orchestrator operation.

The orchestrator never raises; every handler turns its OperationResult into
a JSON response with result.status_code.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.security import CurrentUser, get_current_user
from arts_booking.db.session import get_db
from arts_booking.schemas.group_booking import (
    GroupBookingCreate,
    InvitationCreate,
    InvitationRespond,
    ParticipantJoin,
)
from arts_booking.services import group_booking_service
from arts_booking.services.group_booking_service import OperationResult

router = APIRouter(prefix="/group-bookings", tags=["Group Bookings"])


def _respond(result: OperationResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.to_dict())


@router.post("")
async def create_group_booking_endpoint(
    payload: GroupBookingCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a pending group booking. The caller becomes its organizer."""
    return _respond(await group_booking_service.create_group_booking(db, payload, user))


@router.get("")
async def list_available_group_bookings_endpoint(
    organization_id: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Confirmed, upcoming group bookings that still have free spots. Cached in Redis."""
    return _respond(await group_booking_service.list_available_group_bookings(db, organization_id, limit, offset))


@router.get("/{booking_id}")
async def get_group_booking_endpoint(booking_id: UUID, db: AsyncSession = Depends(get_db)):
    return _respond(await group_booking_service.get_details(db, booking_id))


@router.post("/{booking_id}/participants")
async def join_group_booking_endpoint(
    booking_id: UUID,
    payload: Optional[ParticipantJoin] = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Join as the authenticated user. Returns status confirmed or waitlisted."""
    return _respond(await group_booking_service.add_participant(db, booking_id, user, payload))


@router.delete("/{booking_id}/participants/{user_id}")
async def leave_group_booking_endpoint(
    booking_id: UUID,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave (user_id "me" or your own id), or remove someone else as the organizer."""
    target = user.user_id if user_id == "me" else user_id
    return _respond(await group_booking_service.remove_participant(db, booking_id, target, user))


@router.post("/{booking_id}/waitlist/{waitlist_id}/promote")
async def promote_waitlist_endpoint(
    booking_id: UUID,
    waitlist_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _respond(await group_booking_service.promote_waitlist_participant(db, booking_id, waitlist_id, user))


@router.post("/{booking_id}/invitations")
async def send_invitation_endpoint(
    booking_id: UUID,
    payload: InvitationCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _respond(
        await group_booking_service.send_invitation(
            db,
            booking_id,
            user,
            payload.invited_email,
            name=payload.invited_name,
            invitee_user_id=payload.invited_user_id,
            message=payload.message,
        )
    )


@router.post("/invitations/{token}/respond")
async def respond_to_invitation_endpoint(
    token: str,
    payload: InvitationRespond,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept or decline. Acceptance joins the booking in the same transaction."""
    return _respond(await group_booking_service.respond_to_invitation(db, token, payload.decision, user))
