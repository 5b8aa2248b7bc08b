from arts_booking.schemas.booking import (
    AvailabilityResponse,
    BookingCreate,
    BookingReschedule,
    BookingResponse,
    BookingStatusAction,
)
from arts_booking.schemas.group_booking import (
    GroupBookingCreate,
    GroupBookingDetails,
    GroupBookingSummary,
    InvitationCreate,
    InvitationRespond,
    ParticipantJoin,
)

__all__ = [
    "AvailabilityResponse", "BookingCreate", "BookingReschedule", "BookingResponse", "BookingStatusAction",
    "GroupBookingCreate", "GroupBookingDetails", "GroupBookingSummary",
    "InvitationCreate", "InvitationRespond", "ParticipantJoin",
]
