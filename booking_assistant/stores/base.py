"""Abstract base class for booking stores.

Defines the interface for persisting validated bookings and reading
approval-flow progress.  Any document database backend implements this ABC.
"""

from abc import ABC, abstractmethod
from typing import Optional

from booking_assistant.models.booking import BookingRecord, FlowTracking, PersistedBooking

INITIAL_STATUS = "pending"

SAVE_FAILED_MESSAGE = "Failed to save booking details. Please try again later."


class BookingStoreError(Exception):
    """Raised when the backing store cannot complete an operation."""


class BookingStore(ABC):
    """Abstract document store for bookings.

    Subclasses must implement saving and loading bookings and listing
    flow-tracking documents for an owner.
    """

    @abstractmethod
    async def save_booking(self, record: BookingRecord) -> str:
        """Insert a new booking document.

        The stored document holds every field of ``record`` plus a
        server-assigned ``createdAt`` and ``status`` set to ``"pending"``.

        Returns:
            The generated document identifier.

        Raises:
            BookingStoreError: the write did not happen.
        """

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[PersistedBooking]:
        """Return a stored booking, or None if no such document exists."""

    @abstractmethod
    async def list_flow_tracking(self, owner_email: str) -> list[FlowTracking]:
        """Return flow-tracking documents whose ``owner`` is ``owner_email``.

        Raises:
            BookingStoreError: the query failed.
        """
