"""
Waitlist entry for a full group booking.

Positions are allocated as max(position) + 1 per booking and never reused,
so ordering by position is ordering by arrival.
"""

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from arts_booking.core.clock import as_utc
from arts_booking.db.base import Base, TimestampMixin

WAITLIST_STATUSES = ("waiting", "notified", "expired", "converted", "cancelled")
ACTIVE_WAITLIST_STATUSES = ("waiting", "notified")


class WaitlistEntry(Base, TimestampMixin):
    __tablename__ = "booking_waitlist"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    participant_name = Column(String(255), nullable=False)
    participant_email = Column(String(255), nullable=False)
    participant_phone = Column(String(50), nullable=True)
    position = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="waiting")
    notified_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)

    booking = relationship("Booking", back_populates="waitlist_entries", lazy="raise")

    __table_args__ = (
        UniqueConstraint("booking_id", "position", name="uq_waitlist_booking_position"),
        CheckConstraint("position > 0", name="check_waitlist_position_positive"),
        CheckConstraint(
            "status IN ('waiting', 'notified', 'expired', 'converted', 'cancelled')",
            name="check_waitlist_status",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_WAITLIST_STATUSES

    def is_expired(self, now) -> bool:
        return as_utc(self.expires_at) <= now

    def __repr__(self) -> str:
        return f"<WaitlistEntry(booking={self.booking_id}, user={self.user_id}, position={self.position}, status={self.status})>"
