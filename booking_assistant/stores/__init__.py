"""Booking store abstractions and implementations."""

from .base import SAVE_FAILED_MESSAGE, BookingStore, BookingStoreError
from .memory import InMemoryBookingStore

__all__ = [
    "BookingStore",
    "BookingStoreError",
    "InMemoryBookingStore",
    "SAVE_FAILED_MESSAGE",
]
