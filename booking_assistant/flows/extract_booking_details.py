"""Extract booking details from a free-text request."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from booking_assistant.flows.base import BookingFlow
from booking_assistant.flows.prompts import EXTRACTION_SYSTEM, EXTRACTION_TEMPLATE
from booking_assistant.models.booking import BookingRecord, describe_fields


class ExtractionRequest(BaseModel):
    request: str = Field(..., description="The room booking request in natural language.")


class ExtractBookingDetails(BookingFlow[ExtractionRequest, BookingRecord]):
    """``extractBookingDetails(request) -> BookingRecord``.

    The returned record always carries every declared field; anything the
    model left out takes the schema default.
    """

    name = "extractBookingDetails"
    input_model = ExtractionRequest
    output_model = BookingRecord
    system_prompt = EXTRACTION_SYSTEM
    prompt_template = EXTRACTION_TEMPLATE

    def prompt_variables(self, payload: ExtractionRequest) -> dict[str, Any]:
        return {
            "request": payload.request,
            "field_descriptions": describe_fields(BookingRecord),
        }

    async def extract(self, request: str) -> BookingRecord:
        return await self.run(ExtractionRequest(request=request))
