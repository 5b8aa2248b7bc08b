"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from arts_booking.api.routes import availability, bookings, group_bookings

api_router = APIRouter(prefix="/api")
api_router.include_router(bookings.router)
api_router.include_router(availability.router)
api_router.include_router(group_bookings.router)
