"""
Bookable resource (studio, equipment, person, workshop).

Resource ids are opaque strings owned by the wider platform; bookings may
reference a resource that has no row here, in which case only the overlap
check applies.
"""

from sqlalchemy import JSON, Boolean, Column, Integer, String

from arts_booking.db.base import Base, TimestampMixin


class Resource(Base, TimestampMixin):
    __tablename__ = "resources"

    id = Column(String(64), primary_key=True)
    organization_id = Column(String(64), nullable=False, index=True)
    type = Column(String(32), nullable=False, default="space")
    title = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    location = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_bookable = Column(Boolean, nullable=False, default=True)
    # May carry {"host": "..."} naming the default host for bookings on this resource
    meta = Column("metadata", JSON, nullable=False, default=dict)
    # Weekly host windows, slot length, buffers, caps and blackouts; see schemas.booking.AvailabilityRules
    availability_rules = Column(JSON, nullable=True)

    @property
    def default_host(self):
        return (self.meta or {}).get("host")

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, title={self.title}, active={self.is_active})>"
