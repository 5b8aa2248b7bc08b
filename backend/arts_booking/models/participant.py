"""
Participant of a group booking.

A user may hold at most one active (non-cancelled) row per booking. Leaving
keeps the row as `cancelled`, so rejoining later inserts a fresh one; the
partial unique index below only covers active rows.
"""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text, Uuid, text, CheckConstraint
from sqlalchemy.orm import relationship

from arts_booking.core.clock import utcnow
from arts_booking.db.base import Base, TimestampMixin

PARTICIPANT_STATUSES = ("registered", "confirmed", "cancelled", "waitlisted", "no_show")
ACTIVE_PARTICIPANT_STATUSES = ("registered", "confirmed")


class GroupBookingParticipant(Base, TimestampMixin):
    __tablename__ = "group_booking_participants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    participant_name = Column(String(255), nullable=False)
    participant_email = Column(String(255), nullable=False)
    participant_phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="confirmed")

    registered_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)

    booking = relationship("Booking", back_populates="participants", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "status IN ('registered', 'confirmed', 'cancelled', 'waitlisted', 'no_show')",
            name="check_participant_status",
        ),
        Index(
            "uq_active_participant_per_booking",
            "booking_id",
            "user_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<GroupBookingParticipant(booking={self.booking_id}, user={self.user_id}, status={self.status})>"
