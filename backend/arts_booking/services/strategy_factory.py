"""
Slot lock strategy factory.
Configures which locking strategy guards check-then-write sequences.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.core.config import get_settings
from arts_booking.services.interfaces import AdvisorySlotLock, NullSlotLock, SlotLock

settings = get_settings()

_advisory = AdvisorySlotLock()
_null = NullSlotLock()


def get_slot_lock(db: AsyncSession) -> SlotLock:
    """
    Get the slot lock for this session.

    - SLOT_LOCK_STRATEGY=advisory on PostgreSQL: AdvisorySlotLock
    - anything else: NullSlotLock
    """
    if settings.SLOT_LOCK_STRATEGY != "advisory":
        return _null
    if db.get_bind().dialect.name != "postgresql":
        return _null
    return _advisory


async def lock_slot(db: AsyncSession, key: str) -> None:
    await get_slot_lock(db).acquire(db, key)
