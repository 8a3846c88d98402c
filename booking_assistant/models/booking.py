"""Pydantic models for booking records and the reports produced about them.

The field declarations on ``BookingRecord`` are the single source of truth
for the booking schema: prompt text (``describe_fields``), response parsing,
defaults and the completeness policy are all derived from them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingRecord(BaseModel):
    """Room booking details collected over a conversation."""

    room: str = Field(
        "", title="Room",
        description="The room requested for booking.",
    )
    date: str = Field(
        "", title="Date",
        description="The date for the booking (e.g., April 1, 2025).",
    )
    time: str = Field(
        "", title="Time",
        description="The time slot for the booking (e.g., 10:30 AM - 12:30 PM (GMT+7)).",
    )
    purpose: str = Field(
        "", title="Purpose",
        description="The purpose of the booking (e.g., Weekly AI workshop).",
    )
    estimated_number_of_attendees: Optional[int] = Field(
        None, title="Number of attendees",
        description="The estimated number of attendees (e.g., 20).",
    )
    special_requirements: str = Field(
        "", title="Special requirements",
        description=(
            "Any special requirements for the booking "
            "(e.g., Projector, whiteboard, and access to power outlets)."
        ),
    )
    target_email: str = Field(
        "", title="Target email",
        description="The target email to which the booking confirmation will be sent.",
    )
    cc_email: Optional[str] = Field(
        None, title="CC email",
        description="The CC email address for the booking confirmation (optional).",
    )
    requestorMail: str = Field(
        "", title="Requestor email",
        description="The email of the person requesting.",
    )
    requestorMSSV: str = Field(
        "", title="Requestor MSSV",
        description="The student ID (MSSV) of the person requesting.",
    )
    requestorRole: str = Field(
        "", title="Requestor role",
        description="The role of the person requesting (e.g., Head of department).",
    )
    requestorDept: str = Field(
        "", title="Requestor department",
        description="The department of the person requesting (e.g., Faculty of Science).",
    )
    CLB: str = Field(
        "", title="Club",
        description="The club or organization making the request (e.g., Edtech).",
    )
    requestorName: str = Field(
        "", title="Requestor name",
        description="The name of the person requesting.",
    )

    @field_validator(
        "room", "date", "time", "purpose", "special_requirements", "target_email",
        "requestorMail", "requestorMSSV", "requestorRole", "requestorDept",
        "CLB", "requestorName",
        mode="before",
    )
    @classmethod
    def _null_text_to_empty(cls, value: Any) -> Any:
        # Models answer null for text they could not find
        return "" if value is None else value


# Fields the gap analysis treats as required for completeness.
# cc_email and the requestor* fields are collected but not required.
REQUIRED_FIELDS: tuple[str, ...] = (
    "room",
    "date",
    "time",
    "purpose",
    "estimated_number_of_attendees",
    "special_requirements",
    "target_email",
)

BOOKING_FIELDS: tuple[str, ...] = tuple(BookingRecord.model_fields)


def booking_defaults() -> dict[str, Any]:
    """Declared defaults, produced by validating an empty object."""
    return BookingRecord.model_validate({}).model_dump()


def field_label(name: str) -> str:
    info = BookingRecord.model_fields[name]
    return info.title or name


def describe_fields(model: type[BaseModel] = BookingRecord) -> str:
    """Render ``- name: description`` lines for embedding in a prompt."""
    lines = []
    for name, info in model.model_fields.items():
        lines.append(f"- {name}: {info.description or info.title or name}")
    return "\n".join(lines)


def render_details(record: BookingRecord) -> str:
    """Render ``Title (name): value`` lines describing a record's current values."""
    lines = []
    for name, value in record.model_dump().items():
        shown = "" if value is None else value
        lines.append(f"{field_label(name)} ({name}): {shown}")
    return "\n".join(lines)


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after stripping."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_required_fields(details: dict[str, Any]) -> list[str]:
    """Required fields that are absent or blank, in schema order."""
    return [name for name in REQUIRED_FIELDS if is_blank(details.get(name))]


class GapReport(BaseModel):
    """Which required details are missing and how to ask for them."""

    model_config = ConfigDict(populate_by_name=True)

    missing_details: list[str] = Field(
        default_factory=list, alias="missingDetails",
        description="An array of missing details in the booking request.",
    )
    follow_up_questions: list[str] = Field(
        default_factory=list, alias="followUpQuestions",
        description="An array of follow-up questions to ask the user to gather missing details.",
    )
    is_complete: bool = Field(
        False, alias="isComplete",
        description="Whether all required details are present.",
    )


class ValidityReport(BaseModel):
    """Pass/fail verdict on a booking, independent of completeness."""

    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(
        ..., alias="isValid",
        description="Whether the booking request is valid and can be submitted.",
    )
    errors: list[str] = Field(
        default_factory=list,
        description="Human-readable reasons the request is invalid; empty when valid.",
    )


class PersistedBooking(BookingRecord):
    """A booking as stored in the ``bookings`` collection."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    status: str = "pending"


class FlowTracking(BaseModel):
    """Approval-flow progress document read from ``flowTracking``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    flow_id: Optional[str] = Field(None, alias="flowId")
    status: Optional[str] = None
    owner: Optional[str] = None
    timestamp: Any = None
    start_at: Any = Field(None, alias="startAt")
    step: Optional[int] = None
    details: Any = None
