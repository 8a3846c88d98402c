"""AI operations used by the booking pipeline."""

from .assess_request_validity import AssessRequestValidity
from .base import BookingFlow, FlowError
from .extract_booking_details import ExtractBookingDetails, ExtractionRequest
from .handle_missing_details import HandleMissingDetails

__all__ = [
    "AssessRequestValidity",
    "BookingFlow",
    "ExtractBookingDetails",
    "ExtractionRequest",
    "FlowError",
    "HandleMissingDetails",
]
