"""
Invitation to an invite-only group booking.

The token is single-use: it can only be redeemed while the invitation is
`pending` and before `expires_at`. accepted, declined and expired are
terminal.
"""

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from arts_booking.core.clock import as_utc, utcnow
from arts_booking.db.base import Base, TimestampMixin

INVITATION_STATUSES = ("pending", "accepted", "declined", "expired")


class GroupBookingInvitation(Base, TimestampMixin):
    __tablename__ = "group_booking_invitations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    invited_by_user_id = Column(String(64), nullable=False)
    invited_user_id = Column(String(64), nullable=True)
    invited_email = Column(String(255), nullable=False)
    invited_name = Column(String(255), nullable=True)
    invitation_token = Column(String(128), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default="pending")
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    message = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)

    booking = relationship("Booking", back_populates="invitations", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired')",
            name="check_invitation_status",
        ),
    )

    def is_expired(self, now) -> bool:
        return now > as_utc(self.expires_at)

    def __repr__(self) -> str:
        return f"<GroupBookingInvitation(booking={self.booking_id}, email={self.invited_email}, status={self.status})>"
