"""
Slot lock strategy interface.

Serialises the read-check-write sequences that plain conditional UPDATEs
cannot cover on their own:
- availability check + insert for one resource (double booking)
- leave + waitlist promotion for one booking (two promotions racing for a spot)

Locks are transaction scoped: they are released when the caller's
transaction commits or rolls back.
"""

from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession


class SlotLock(ABC):
    """
    Implementations:
    - AdvisorySlotLock: PostgreSQL pg_advisory_xact_lock keyed by the lock name
    - NullSlotLock: no locking, relies on DB constraints only
    """

    @abstractmethod
    async def acquire(self, db: AsyncSession, key: str) -> None:
        """
        Block until the lock for `key` is held by the current transaction.

        Args:
            db: Session whose transaction owns the lock
            key: Lock name, e.g. "resource:studio-a" or "booking:<uuid>"
        """
        pass


def resource_lock_key(resource_id: str) -> str:
    return f"resource:{resource_id}"


def booking_lock_key(booking_id) -> str:
    return f"booking:{booking_id}"
