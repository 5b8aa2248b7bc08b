from arts_booking.models.resource import Resource
from arts_booking.models.booking import Booking
from arts_booking.models.participant import GroupBookingParticipant
from arts_booking.models.waitlist import WaitlistEntry
from arts_booking.models.invitation import GroupBookingInvitation

__all__ = [
    "Resource",
    "Booking",
    "GroupBookingParticipant",
    "WaitlistEntry",
    "GroupBookingInvitation",
]
