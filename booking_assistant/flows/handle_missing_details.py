"""Work out which required booking details are missing and ask for them."""

from __future__ import annotations

import logging
from typing import Any

from booking_assistant.flows.base import BookingFlow
from booking_assistant.flows.prompts import MISSING_DETAILS_SYSTEM, MISSING_DETAILS_TEMPLATE
from booking_assistant.models.booking import (
    REQUIRED_FIELDS,
    BookingRecord,
    GapReport,
    field_label,
    missing_required_fields,
    render_details,
)

log = logging.getLogger("booking_assistant.flows.missing_details")

FALLBACK_QUESTIONS = {
    "room": "Which room would you like to book?",
    "date": "On what date do you need the room?",
    "time": "What time slot do you need the room for?",
    "purpose": "What is the purpose of the booking?",
    "estimated_number_of_attendees": "How many people do you expect to attend?",
    "special_requirements": (
        "Do you have any special requirements, such as a projector or whiteboard?"
    ),
    "target_email": "Which email address should receive the booking confirmation?",
}


def fallback_question(field_name: str) -> str:
    return FALLBACK_QUESTIONS.get(
        field_name, f"Could you tell me the {field_label(field_name).lower()}?"
    )


def _questions_by_field(result: GapReport, missing: list[str]) -> list[str]:
    """One question per missing field, preferring the model's own wording.

    The model's questions are paired with the field names it listed; a
    field it did not ask about gets a templated question (English only).
    """
    by_field: dict[str, str] = {}
    if len(result.missing_details) == len(result.follow_up_questions):
        for name, question in zip(result.missing_details, result.follow_up_questions):
            if question and question.strip():
                by_field.setdefault(name.strip(), question.strip())

    templated = [name for name in missing if name not in by_field]
    if templated:
        log.info("Using templated questions for %s", templated)
    return [by_field.get(name) or fallback_question(name) for name in missing]


class HandleMissingDetails(BookingFlow[BookingRecord, GapReport]):
    """``handleMissingDetails(record) -> GapReport``.

    The model drafts the questions; completeness and the missing-field list
    always follow REQUIRED_FIELDS.  When the model's questions don't line up
    one-to-one with the missing fields, its question for each field it named
    is kept and the remaining fields get templated questions.
    """

    name = "handleMissingDetails"
    input_model = BookingRecord
    output_model = GapReport
    system_prompt = MISSING_DETAILS_SYSTEM
    prompt_template = MISSING_DETAILS_TEMPLATE

    def prompt_variables(self, payload: BookingRecord) -> dict[str, Any]:
        return {
            "current_details": render_details(payload),
            "required_fields": ", ".join(REQUIRED_FIELDS),
        }

    def postprocess(self, payload: BookingRecord, result: GapReport) -> GapReport:
        missing = missing_required_fields(payload.model_dump())

        if not missing:
            if not result.is_complete:
                log.info("Model reported gaps %s but all required fields are set",
                         result.missing_details)
            return GapReport(is_complete=True)

        questions = [q.strip() for q in result.follow_up_questions if q and q.strip()]
        if len(questions) != len(missing):
            questions = _questions_by_field(result, missing)

        return GapReport(
            missing_details=missing,
            follow_up_questions=questions,
            is_complete=False,
        )

    async def analyze(self, details: BookingRecord | dict[str, Any]) -> GapReport:
        return await self.run(details)
