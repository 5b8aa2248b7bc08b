"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .slot_lock import SlotLock, booking_lock_key, resource_lock_key
from .advisory_lock import AdvisorySlotLock, NullSlotLock

__all__ = ['SlotLock', 'AdvisorySlotLock', 'NullSlotLock', 'booking_lock_key', 'resource_lock_key']
