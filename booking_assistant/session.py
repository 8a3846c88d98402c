"""Per-conversation booking session: drives the slot-filling pipeline.

Each chat conversation gets a BookingSession that:
  1. Holds the accumulated booking details and the chat transcript
  2. Tracks the conversation state
  3. On each user message: extracts fields, merges them into the running
     record, and asks the gap analyzer what is still missing
  4. On submit: runs the validity assessment and, if it passes, persists
     the booking

State machine::

    EMPTY ─message─▶ ACCUMULATING ─gap analysis─▶ COMPLETE | INCOMPLETE
                                                    │ (more messages loop back)
                                       review ──────▼
                                              REVIEWING ─submit─▶ SUBMITTED
                                                  ▲                 │ (terminal)
                                                  └──── REJECTED ◀──┘ invalid / save failed

    reset() returns to EMPTY from any state.

A session runs one action at a time; a second action issued while one is
outstanding raises SessionBusyError.  Nothing is retried automatically.
"""

from __future__ import annotations

import logging
import secrets
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field, ValidationError

from booking_assistant.accumulator import merge_booking_details
from booking_assistant.config import settings
from booking_assistant.flows.base import FlowError
from booking_assistant.models.booking import (
    BookingRecord,
    GapReport,
    ValidityReport,
    booking_defaults,
    field_label,
)
from booking_assistant.pipeline import BookingPipeline
from booking_assistant.pii import redact_pii
from booking_assistant.stores.base import SAVE_FAILED_MESSAGE, BookingStoreError

log = logging.getLogger("booking_assistant.session")

GREETING_MESSAGE = (
    "Hello! I'm your room booking assistant. How can I help you find and book "
    "a room today? Please describe what you're looking for."
)
THANKS_PREFIX = "Thanks for the information. "
NEED_MORE_PREFIX = "I still need a bit more information: "
REVIEW_PROMPT = (
    "I think I have all the details. Please review them below and confirm "
    "if everything looks correct."
)
PROCESSING_FAILED_MESSAGE = (
    "Sorry, I encountered an error. Could you try rephrasing or providing "
    "the details again?"
)
SUBMIT_FAILED_MESSAGE = (
    "Sorry, an error occurred while submitting your request. Please try again later."
)
SUCCESS_MESSAGE = (
    "Great! Your booking request has been submitted successfully. You should "
    "receive a confirmation via email shortly."
)


def rejection_message(errors: list[str]) -> str:
    reasons = ". ".join(e.rstrip(".") for e in errors)
    return (
        f"There are some issues with your request: {reasons}. "
        "Please correct them and try again."
    )


class ConversationState(str, Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"
    REVIEWING = "reviewing"
    REJECTED = "rejected"
    SUBMITTED = "submitted"


class SessionBusyError(Exception):
    """Another action is still running on this session."""


class SessionStateError(Exception):
    """The action is not allowed in the session's current state."""


class ChatMessage(BaseModel):
    sender: str  # "user" | "ai"
    text: str
    timestamp: float = Field(default_factory=time.time)


class ChatTurn(BaseModel):
    """Result of handling one user message."""

    message: str
    details: dict[str, Any]
    gap_report: Optional[GapReport] = None
    state: ConversationState
    error: Optional[str] = None


class SubmissionResult(BaseModel):
    """Result of a submit attempt.  ``booking_id`` is set only when persisted."""

    message: str
    validity: ValidityReport
    details: dict[str, Any]
    state: ConversationState
    booking_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.booking_id is not None


# ── Session registry ─────────────────────────────────────────────

_active_sessions: dict[str, "BookingSession"] = {}


def register_session(session: "BookingSession") -> str:
    """Register a session and return its unique ID.

    Idle sessions are pruned first, so the registry cannot grow without bound.
    """
    prune_idle_sessions()
    session_id = secrets.token_urlsafe(18)
    session._session_id = session_id
    session._started_at = time.time()
    session._last_activity = session._started_at
    _active_sessions[session_id] = session
    log.info("Session registered: %s", session_id)
    return session_id


def unregister_session(session_id: str) -> None:
    """Remove a session from the registry."""
    _active_sessions.pop(session_id, None)
    log.info("Session unregistered: %s", session_id)


def prune_idle_sessions(ttl: float | None = None, now: float | None = None) -> list[str]:
    """Unregister sessions with no activity for ``ttl`` seconds.  Returns their IDs.

    Busy sessions are never pruned.
    """
    ttl = settings.session_idle_ttl if ttl is None else ttl
    now = time.time() if now is None else now
    expired = [
        sid for sid, s in _active_sessions.items()
        if not s.is_busy and now - s.last_activity > ttl
    ]
    for sid in expired:
        unregister_session(sid)
    if expired:
        log.info("Pruned %d idle session(s)", len(expired))
    return expired


def get_active_sessions() -> dict[str, "BookingSession"]:
    """Return all active sessions."""
    return _active_sessions


def get_session(session_id: str) -> "BookingSession | None":
    """Look up a session by ID."""
    return _active_sessions.get(session_id)


class BookingSession:
    """One chat conversation's booking workflow.

    Typical lifecycle::

        session = BookingSession(pipeline)
        greeting = session.greeting()

        turn = await session.handle_message("Book the Eng Lab tomorrow ...")
        while not turn.gap_report or not turn.gap_report.is_complete:
            turn = await session.handle_message(next_user_text)

        details = session.start_review()
        # user edits details
        result = await session.submit(details)
        if not result.succeeded:
            ...  # show result.validity.errors, re-open the form
    """

    def __init__(self, pipeline: BookingPipeline, owner_email: str = "") -> None:
        self._pipeline = pipeline
        self.owner_email = owner_email

        # Registry metadata (set by register_session)
        self._session_id: str = ""
        self._started_at: float = 0.0
        self._last_activity: float = time.time()

        self._state = ConversationState.EMPTY
        self._details: dict[str, Any] = {}
        # Raw form values from the last rejected submit, shown again on review
        self._review_values: dict[str, Any] | None = None
        self._messages: list[ChatMessage] = []
        self._gap_report: GapReport | None = None
        self._validity: ValidityReport | None = None
        self._booking_id: str | None = None
        self._busy = False

    # ── Public API ────────────────────────────────────────────

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def pipeline(self) -> BookingPipeline:
        return self._pipeline

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def details(self) -> dict[str, Any]:
        return dict(self._details)

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def gap_report(self) -> GapReport | None:
        return self._gap_report

    @property
    def booking_id(self) -> str | None:
        return self._booking_id

    @property
    def last_activity(self) -> float:
        return self._last_activity

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def is_done(self) -> bool:
        return self._state == ConversationState.SUBMITTED

    def to_dict(self, detail: bool = False) -> dict[str, Any]:
        """Serialize session state for the API.

        With detail=False: summary suitable for listing.
        With detail=True: adds details, reports and the transcript.
        """
        d: dict[str, Any] = {
            "session_id": self._session_id,
            "state": self._state.value,
            "is_busy": self._busy,
            "started_at": self._started_at,
            "last_activity": self._last_activity,
            "booking_id": self._booking_id,
            "message_count": len(self._messages),
        }
        if detail:
            d["details"] = self.details
            d["gap_report"] = (
                self._gap_report.model_dump(by_alias=True) if self._gap_report else None
            )
            d["validity"] = (
                self._validity.model_dump(by_alias=True) if self._validity else None
            )
            d["messages"] = [m.model_dump() for m in self._messages]
        return d

    def greeting(self) -> str:
        """Post and return the opening bot message."""
        self._add_message("ai", GREETING_MESSAGE)
        return GREETING_MESSAGE

    async def handle_message(self, text: str) -> ChatTurn:
        """Process one user message: extract → merge → gap analysis.

        On an AI failure the fallback message is returned and the
        accumulated details are left exactly as they were.
        """
        if not text or not text.strip():
            raise ValueError("Message text is empty.")
        if self._state == ConversationState.SUBMITTED:
            raise SessionStateError(
                "This booking has already been submitted. Start over to make a new one."
            )

        with self._exclusive("handle_message"):
            self._add_message("user", text)

            try:
                extracted = await self._pipeline.extractor.extract(text)
                merged = merge_booking_details(self._details, extracted)
                gap = await self._pipeline.gap_analyzer.analyze(merged)
            except FlowError as e:
                log.error("Session %s: error processing user message: %s",
                          self._session_id, e)
                self._add_message("ai", PROCESSING_FAILED_MESSAGE)
                return ChatTurn(
                    message=PROCESSING_FAILED_MESSAGE,
                    details=self.details,
                    state=self._state,
                    error=PROCESSING_FAILED_MESSAGE,
                )

            self._details = merged
            self._review_values = None
            self._gap_report = gap
            self._transition(ConversationState.ACCUMULATING)
            if gap.is_complete:
                self._transition(ConversationState.COMPLETE)
                message = THANKS_PREFIX + REVIEW_PROMPT
            else:
                self._transition(ConversationState.INCOMPLETE)
                message = THANKS_PREFIX + NEED_MORE_PREFIX + " ".join(gap.follow_up_questions)

            self._add_message("ai", message)
            return ChatTurn(
                message=message,
                details=self.details,
                gap_report=gap,
                state=self._state,
            )

    def start_review(self) -> dict[str, Any]:
        """Open the editable form with the current details."""
        if self._busy:
            raise SessionBusyError("Please wait for the current request to finish.")
        if self._state in (ConversationState.EMPTY, ConversationState.SUBMITTED):
            raise SessionStateError(
                f"Nothing to review in state {self._state.value!r}."
            )
        self._transition(ConversationState.REVIEWING)
        if self._review_values is not None:
            return dict(self._review_values)
        return {**booking_defaults(), **self._details}

    async def submit(
        self, details: BookingRecord | dict[str, Any] | None = None,
    ) -> SubmissionResult:
        """Validate and persist the (possibly edited) booking.

        A success message is produced if and only if the store returned a
        booking id.  Rejections and storage failures leave the session in
        REVIEWING with the submitted values retained.  Values that fail
        schema validation are kept for the form only; the accumulated
        details hold validated values alone.
        """
        if self._state in (ConversationState.EMPTY, ConversationState.SUBMITTED):
            raise SessionStateError(
                f"Cannot submit in state {self._state.value!r}."
            )

        with self._exclusive("submit"):
            if details is None:
                values = {**booking_defaults(), **self._details}
            elif isinstance(details, BookingRecord):
                values = details.model_dump()
            else:
                values = {**booking_defaults(), **details}
            self._transition(ConversationState.REVIEWING)

            try:
                record = BookingRecord.model_validate(values)
            except ValidationError as e:
                self._review_values = values
                report = ValidityReport(is_valid=False, errors=_validation_messages(e))
                return self._reject(report, details=values)

            self._details = record.model_dump()
            self._review_values = None

            try:
                report = await self._pipeline.assessor.assess(record)
            except FlowError as e:
                log.error("Session %s: error submitting booking request: %s",
                          self._session_id, e)
                report = ValidityReport(is_valid=False, errors=[SUBMIT_FAILED_MESSAGE])
                self._validity = report
                self._add_message("ai", SUBMIT_FAILED_MESSAGE)
                return SubmissionResult(
                    message=SUBMIT_FAILED_MESSAGE,
                    validity=report,
                    details=self.details,
                    state=self._state,
                    error=SUBMIT_FAILED_MESSAGE,
                )

            if not report.is_valid:
                return self._reject(report)

            try:
                booking_id = await self._pipeline.store.save_booking(record)
            except Exception as e:
                if isinstance(e, BookingStoreError):
                    log.error("Session %s: booking not saved: %s", self._session_id, e)
                    reason = str(e) or SAVE_FAILED_MESSAGE
                else:
                    log.exception("Session %s: unexpected error saving booking",
                                  self._session_id)
                    reason = SAVE_FAILED_MESSAGE
                downgraded = ValidityReport(
                    is_valid=False, errors=[*report.errors, reason],
                )
                return self._reject(downgraded, error=reason)

            self._booking_id = booking_id
            self._validity = report
            self._transition(ConversationState.SUBMITTED)
            self._add_message("ai", SUCCESS_MESSAGE)
            log.info("Session %s: booking %s submitted by %s",
                     self._session_id, booking_id,
                     redact_pii(record.requestorMail or self.owner_email))
            return SubmissionResult(
                message=SUCCESS_MESSAGE,
                validity=report,
                details=self.details,
                state=self._state,
                booking_id=booking_id,
            )

    def reset(self) -> str:
        """Discard the conversation and start over.  Returns the new greeting."""
        if self._busy:
            raise SessionBusyError("Please wait for the current request to finish.")
        self._details = {}
        self._review_values = None
        self._messages = []
        self._gap_report = None
        self._validity = None
        self._booking_id = None
        self._transition(ConversationState.EMPTY)
        return self.greeting()

    # ── Internal ─────────────────────────────────────────────

    @contextmanager
    def _exclusive(self, action: str) -> Iterator[None]:
        if self._busy:
            raise SessionBusyError("Please wait for the current request to finish.")
        self._busy = True
        log.debug("Session %s: %s started", self._session_id, action)
        try:
            yield
        finally:
            self._busy = False

    def _transition(self, new_state: ConversationState) -> None:
        if new_state != self._state:
            log.info("Session %s: %s → %s",
                     self._session_id, self._state.value, new_state.value)
        self._state = new_state

    def _reject(
        self,
        report: ValidityReport,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> SubmissionResult:
        self._validity = report
        self._transition(ConversationState.REJECTED)
        message = rejection_message(report.errors)
        self._add_message("ai", message)
        self._transition(ConversationState.REVIEWING)
        return SubmissionResult(
            message=message,
            validity=report,
            details=dict(details) if details is not None else self.details,
            state=self._state,
            error=error,
        )

    def _add_message(self, sender: str, text: str) -> None:
        self._last_activity = time.time()
        self._messages.append(ChatMessage(sender=sender, text=text))


def _validation_messages(exc: ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = err.get("loc") or ()
        name = str(loc[0]) if loc else ""
        label = field_label(name) if name in BookingRecord.model_fields else name
        messages.append(f"{label}: {err.get('msg', 'invalid value')}")
    return messages
