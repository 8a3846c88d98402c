"""In-process booking store for local development and tests."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from booking_assistant.models.booking import BookingRecord, FlowTracking, PersistedBooking

from .base import INITIAL_STATUS, BookingStore

logger = logging.getLogger(__name__)


class InMemoryBookingStore(BookingStore):
    """BookingStore that keeps documents in dicts.  Lost on restart."""

    def __init__(self) -> None:
        self.bookings: dict[str, dict[str, Any]] = {}
        self.flow_tracking: list[dict[str, Any]] = []

    async def save_booking(self, record: BookingRecord) -> str:
        booking_id = uuid.uuid4().hex[:20]
        self.bookings[booking_id] = {
            **record.model_dump(),
            "createdAt": datetime.now(timezone.utc),
            "status": INITIAL_STATUS,
        }
        logger.info("Booking saved with ID %s", booking_id)
        return booking_id

    async def get_booking(self, booking_id: str) -> Optional[PersistedBooking]:
        data = self.bookings.get(booking_id)
        if data is None:
            return None
        return PersistedBooking.model_validate({**data, "id": booking_id})

    async def list_flow_tracking(self, owner_email: str) -> list[FlowTracking]:
        return [
            FlowTracking.model_validate(doc)
            for doc in self.flow_tracking
            if doc.get("owner") == owner_email
        ]

    def add_flow_tracking(self, document: dict[str, Any]) -> None:
        """Seed a flow-tracking document (populated elsewhere in production)."""
        self.flow_tracking.append(dict(document))
