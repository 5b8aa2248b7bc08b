"""Initial schema: resources, bookings, group booking participants, waitlist, invitations.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Resources table
    op.create_table(
        "resources",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default=sa.text("'space'")),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_bookable", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index("ix_resources_organization_id", "resources", ["organization_id"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("resource_type", sa.String(32), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("available_spots", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("artist_name", sa.String(255), nullable=True),
        sa.Column("artist_email", sa.String(255), nullable=True),
        sa.Column("goal_text", sa.Text(), nullable=True),
        sa.Column("consent_recording", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_group_booking", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("group_size", sa.Integer(), nullable=True),
        sa.Column("waitlist_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("group_booking_type", sa.String(20), nullable=False, server_default=sa.text("'public'")),
        sa.Column("group_organizer_id", sa.String(64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
        sa.CheckConstraint("capacity >= 1", name="check_booking_capacity_positive"),
        sa.CheckConstraint("current_participants >= 0", name="check_current_participants_non_negative"),
        sa.CheckConstraint("available_spots >= 0", name="check_available_spots_non_negative"),
        # Counter invariant: the store rejects any write that unbalances the ledger
        sa.CheckConstraint(
            "current_participants + available_spots = capacity",
            name="check_participant_counters_balance",
        ),
        sa.CheckConstraint("end_time > start_time", name="check_booking_time_order"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "group_booking_type IN ('public', 'private', 'invite_only')",
            name="check_group_booking_type",
        ),
    )
    op.create_index("ix_bookings_organization_id", "bookings", ["organization_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    # Overlap query: WHERE resource_id = ? AND start_time < ? AND end_time > ?
    op.create_index("ix_bookings_resource_start", "bookings", ["resource_id", "start_time"])
    # Listings: WHERE organization_id = ? AND status = ? ORDER BY start_time
    op.create_index("ix_bookings_org_status_start", "bookings", ["organization_id", "status", "start_time"])

    if op.get_context().dialect.name == "postgresql":
        # NO DOUBLE BOOKING: two confirmed bookings on one resource may not
        # overlap. Half-open ranges, so touching slots are allowed.
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE bookings
            ADD CONSTRAINT excl_bookings_confirmed_overlap
            EXCLUDE USING gist (
                resource_id WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
            ) WHERE (status = 'confirmed')
            """
        )

    # Group booking participants
    op.create_table(
        "group_booking_participants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("booking_id", sa.Uuid(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("participant_name", sa.String(255), nullable=False),
        sa.Column("participant_email", sa.String(255), nullable=False),
        sa.Column("participant_phone", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('registered', 'confirmed', 'cancelled', 'waitlisted', 'no_show')",
            name="check_participant_status",
        ),
    )
    op.create_index("ix_group_booking_participants_booking_id", "group_booking_participants", ["booking_id"])
    op.create_index("ix_group_booking_participants_user_id", "group_booking_participants", ["user_id"])
    # One active row per user and booking; cancelled rows are kept as history
    op.create_index(
        "uq_active_participant_per_booking",
        "group_booking_participants",
        ["booking_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
        sqlite_where=sa.text("status <> 'cancelled'"),
    )

    # Waitlist
    op.create_table(
        "booking_waitlist",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("booking_id", sa.Uuid(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("participant_name", sa.String(255), nullable=False),
        sa.Column("participant_email", sa.String(255), nullable=False),
        sa.Column("participant_phone", sa.String(50), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'waiting'")),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "position", name="uq_waitlist_booking_position"),
        sa.CheckConstraint("position > 0", name="check_waitlist_position_positive"),
        sa.CheckConstraint(
            "status IN ('waiting', 'notified', 'expired', 'converted', 'cancelled')",
            name="check_waitlist_status",
        ),
    )
    op.create_index("ix_booking_waitlist_booking_id", "booking_waitlist", ["booking_id"])

    # Invitations
    op.create_table(
        "group_booking_invitations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("booking_id", sa.Uuid(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invited_by_user_id", sa.String(64), nullable=False),
        sa.Column("invited_user_id", sa.String(64), nullable=True),
        sa.Column("invited_email", sa.String(255), nullable=False),
        sa.Column("invited_name", sa.String(255), nullable=True),
        sa.Column("invitation_token", sa.String(128), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired')",
            name="check_invitation_status",
        ),
    )
    op.create_index("ix_group_booking_invitations_booking_id", "group_booking_invitations", ["booking_id"])
    op.create_index(
        "ix_group_booking_invitations_invitation_token",
        "group_booking_invitations",
        ["invitation_token"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_table("group_booking_invitations")
    op.drop_table("booking_waitlist")
    op.drop_table("group_booking_participants")
    op.drop_table("bookings")
    op.drop_table("resources")
