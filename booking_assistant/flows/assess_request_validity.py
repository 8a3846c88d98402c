"""Check a completed booking request before it is submitted."""

from __future__ import annotations

import logging
import re
from typing import Any

from booking_assistant.flows.base import BookingFlow
from booking_assistant.flows.prompts import VALIDITY_SYSTEM, VALIDITY_TEMPLATE
from booking_assistant.models.booking import (
    BookingRecord,
    ValidityReport,
    field_label,
    is_blank,
    render_details,
)

log = logging.getLogger("booking_assistant.flows.validity")

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

GENERIC_REJECTION = "The booking request could not be validated."


def rule_errors(record: BookingRecord) -> list[str]:
    """Deterministic business-rule checks that don't need the model."""
    errors: list[str] = []

    attendees = record.estimated_number_of_attendees
    if attendees is None:
        errors.append("Number of attendees is missing.")
    elif attendees < 0:
        errors.append(f"Number of attendees cannot be negative (got {attendees}).")

    if is_blank(record.target_email):
        errors.append("Target email is missing.")

    for name in ("target_email", "cc_email", "requestorMail"):
        value = getattr(record, name)
        if not is_blank(value) and not _EMAIL_PATTERN.match(value.strip()):
            errors.append(f"{field_label(name)} '{value}' is not a valid email address.")

    return errors


class AssessRequestValidity(BookingFlow[BookingRecord, ValidityReport]):
    """``assessRequestValidity(record) -> ValidityReport``.

    The verdict passes only when both the local rules and the model accept
    the record.  An invalid verdict always carries at least one error.
    """

    name = "assessRequestValidity"
    input_model = BookingRecord
    output_model = ValidityReport
    system_prompt = VALIDITY_SYSTEM
    prompt_template = VALIDITY_TEMPLATE

    def prompt_variables(self, payload: BookingRecord) -> dict[str, Any]:
        return {"current_details": render_details(payload)}

    def postprocess(self, payload: BookingRecord, result: ValidityReport) -> ValidityReport:
        local = rule_errors(payload)
        is_valid = result.is_valid and not local

        if is_valid:
            return ValidityReport(is_valid=True, errors=[])

        errors = list(local)
        for message in result.errors:
            message = message.strip()
            if message and message not in errors:
                errors.append(message)
        if not errors:
            errors.append(GENERIC_REJECTION)

        log.info("Booking rejected with %d error(s)", len(errors))
        return ValidityReport(is_valid=False, errors=errors)

    async def assess(self, details: BookingRecord | dict[str, Any]) -> ValidityReport:
        return await self.run(details)
