"""
Pydantic schemas for group bookings, participants, waitlist and invitations.
"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from arts_booking.schemas.booking import TimeWindow


class GroupBookingCreate(TimeWindow):
    organization_id: str = Field(..., min_length=1, max_length=64)
    resource_id: str = Field(..., min_length=1, max_length=64)
    resource_type: str = Field("space", max_length=32)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    capacity: int = Field(..., ge=1, le=10000)
    group_booking_type: Literal["public", "private", "invite_only"] = "public"
    waitlist_enabled: bool = False
    price: float = Field(0, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    location: Optional[str] = Field(None, max_length=255)


class ParticipantJoin(BaseModel):
    """Join request. Identity comes from the bearer token; name/email default to its claims."""

    participant_name: Optional[str] = Field(None, max_length=255)
    participant_email: Optional[EmailStr] = None
    participant_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=2000)


class InvitationCreate(BaseModel):
    invited_email: EmailStr
    invited_name: Optional[str] = Field(None, max_length=255)
    invited_user_id: Optional[str] = Field(None, max_length=64)
    message: Optional[str] = Field(None, max_length=2000)


class InvitationRespond(BaseModel):
    decision: str = Field(..., description="accepted or declined")


class ParticipantResponse(BaseModel):
    id: UUID
    user_id: str
    participant_name: str
    participant_email: str
    participant_phone: Optional[str]
    status: str
    registered_at: datetime
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    notes: Optional[str]

    model_config = {"from_attributes": True}


class WaitlistEntryResponse(BaseModel):
    id: UUID
    user_id: str
    participant_name: str
    participant_email: str
    position: int
    status: str
    notified_at: Optional[datetime]
    expires_at: datetime

    model_config = {"from_attributes": True}


class InvitationResponse(BaseModel):
    id: UUID
    invited_by_user_id: str
    invited_user_id: Optional[str]
    invited_email: str
    invited_name: Optional[str]
    status: str
    sent_at: datetime
    responded_at: Optional[datetime]
    expires_at: datetime
    message: Optional[str]

    model_config = {"from_attributes": True}


class InvitationCreated(InvitationResponse):
    """Returned to the organizer who sent the invitation; nobody else sees the token."""

    invitation_token: str


class GroupBookingSummary(BaseModel):
    id: UUID
    organization_id: str
    resource_id: str
    title: str
    description: Optional[str]
    start_time: datetime
    end_time: datetime
    status: str
    capacity: int
    current_participants: int
    available_spots: int
    group_size: Optional[int]
    waitlist_enabled: bool
    group_booking_type: str
    group_organizer_id: Optional[str]
    price: float
    currency: str
    location: Optional[str]

    model_config = {"from_attributes": True}


class GroupBookingDetails(GroupBookingSummary):
    participants: list[ParticipantResponse] = Field(default_factory=list)
    waitlist: list[WaitlistEntryResponse] = Field(default_factory=list)
    invitations: list[InvitationResponse] = Field(default_factory=list)
