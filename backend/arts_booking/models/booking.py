"""
Booking model: one reserved time slot on a resource, optionally open to a group.

Key design decisions:
- `current_participants` and `available_spots` are denormalized counters.
  They are only ever changed through conditional UPDATE statements
  (see capacity_service), and CHECK constraints keep
  current_participants + available_spots == capacity at the DB level.
- Bookings are never deleted; cancellation is a status transition.
- Composite index on (resource_id, start_time) serves the overlap query.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from arts_booking.db.base import Base, TimestampMixin

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
CLOSED_STATUSES = ("cancelled", "completed")
GROUP_BOOKING_TYPES = ("public", "private", "invite_only")

# Allowed status transitions; cancelled and completed are terminal
STATUS_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "cancelled": set(),
    "completed": set(),
}


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(String(64), nullable=False, index=True)
    resource_id = Column(String(64), nullable=False)
    resource_type = Column(String(32), nullable=True)
    user_id = Column(String(64), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default="pending")

    capacity = Column(Integer, nullable=False, default=1)
    current_participants = Column(Integer, nullable=False, default=0)
    available_spots = Column(Integer, nullable=False, default=1)

    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Artist intake fields for one-to-one slot bookings
    artist_name = Column(String(255), nullable=True)
    artist_email = Column(String(255), nullable=True)
    goal_text = Column(Text, nullable=True)
    consent_recording = Column(Boolean, nullable=False, default=False)

    is_group_booking = Column(Boolean, nullable=False, default=False)
    group_size = Column(Integer, nullable=True)
    waitlist_enabled = Column(Boolean, nullable=False, default=False)
    group_booking_type = Column(String(20), nullable=False, default="public")
    group_organizer_id = Column(String(64), nullable=True)

    meta = Column("metadata", JSON, nullable=False, default=dict)

    participants = relationship(
        "GroupBookingParticipant",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )
    waitlist_entries = relationship(
        "WaitlistEntry",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )
    invitations = relationship(
        "GroupBookingInvitation",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="check_booking_capacity_positive"),
        CheckConstraint("current_participants >= 0", name="check_current_participants_non_negative"),
        CheckConstraint("available_spots >= 0", name="check_available_spots_non_negative"),
        CheckConstraint(
            "current_participants + available_spots = capacity",
            name="check_participant_counters_balance",
        ),
        CheckConstraint("end_time > start_time", name="check_booking_time_order"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "group_booking_type IN ('public', 'private', 'invite_only')",
            name="check_group_booking_type",
        ),
        # Overlap lookups: WHERE resource_id = ? AND start_time < ? AND end_time > ?
        Index("ix_bookings_resource_start", "resource_id", "start_time"),
        Index("ix_bookings_org_status_start", "organization_id", "status", "start_time"),
    )

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in STATUS_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, resource={self.resource_id}, status={self.status}, "
            f"spots={self.available_spots}/{self.capacity})>"
        )
