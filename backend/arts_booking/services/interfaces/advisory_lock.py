"""
Slot lock implementations.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from arts_booking.services.interfaces.slot_lock import SlotLock
from arts_booking.core.logging import get_logger

logger = get_logger(__name__)


class AdvisorySlotLock(SlotLock):
    """
    PostgreSQL transaction-level advisory lock.

    hashtext() folds the key into the int4 lock space. Collisions only cause
    unrelated keys to wait for each other, never a missed lock.
    """

    async def acquire(self, db: AsyncSession, key: str) -> None:
        await db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
        logger.debug("slot_lock_acquired", key=key)


class NullSlotLock(SlotLock):
    """
    No locking. Used for databases without advisory locks (SQLite in tests)
    or when SLOT_LOCK_STRATEGY=none.
    """

    async def acquire(self, db: AsyncSession, key: str) -> None:
        pass
