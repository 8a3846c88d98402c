"""Data models for the booking assistant."""

from .booking import (
    BOOKING_FIELDS,
    REQUIRED_FIELDS,
    BookingRecord,
    FlowTracking,
    GapReport,
    PersistedBooking,
    ValidityReport,
)

__all__ = [
    "BOOKING_FIELDS",
    "REQUIRED_FIELDS",
    "BookingRecord",
    "FlowTracking",
    "GapReport",
    "PersistedBooking",
    "ValidityReport",
]
