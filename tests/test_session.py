"""Tests for BookingSession: the per-conversation booking workflow."""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from booking_assistant.flows.base import FlowError
from booking_assistant.models.booking import BOOKING_FIELDS, BookingRecord
from booking_assistant.session import (
    GREETING_MESSAGE,
    PROCESSING_FAILED_MESSAGE,
    SUBMIT_FAILED_MESSAGE,
    SUCCESS_MESSAGE,
    BookingSession,
    ConversationState,
    SessionBusyError,
    SessionStateError,
    get_active_sessions,
    get_session,
    prune_idle_sessions,
    redact_pii,
    register_session,
    rejection_message,
    unregister_session,
)
from booking_assistant.stores.base import SAVE_FAILED_MESSAGE, BookingStoreError

from conftest import ENG_LAB_REQUEST, eng_lab_record, fake_llm, stub_pipeline


async def _complete_session(store=None) -> BookingSession:
    session = BookingSession(stub_pipeline(store=store, extracted=[eng_lab_record()]))
    session.greeting()
    await session.handle_message(ENG_LAB_REQUEST)
    return session


class TestSessionInit:
    def test_initial_state(self):
        session = BookingSession(stub_pipeline())
        assert session.state == ConversationState.EMPTY
        assert session.details == {}
        assert session.is_done is False

    def test_greeting_posted(self):
        session = BookingSession(stub_pipeline())
        assert session.greeting() == GREETING_MESSAGE
        assert session.messages[0].sender == "ai"


class TestRegistry:
    def test_register_and_lookup(self):
        session = BookingSession(stub_pipeline())
        session_id = register_session(session)
        assert session.session_id == session_id
        assert get_session(session_id) is session
        unregister_session(session_id)
        assert get_session(session_id) is None

    def test_ids_are_unique(self):
        ids = {register_session(BookingSession(stub_pipeline())) for _ in range(5)}
        assert len(ids) == 5

    def test_idle_sessions_pruned_on_register(self):
        stale = BookingSession(stub_pipeline())
        stale_id = register_session(stale)
        stale._last_activity = time.time() - 10_000
        fresh_id = register_session(BookingSession(stub_pipeline()))
        assert get_session(stale_id) is None
        assert get_session(fresh_id) is not None

    def test_prune_respects_ttl_and_busy(self):
        idle = BookingSession(stub_pipeline())
        busy = BookingSession(stub_pipeline())
        recent = BookingSession(stub_pipeline())
        ids = [register_session(s) for s in (idle, busy, recent)]
        now = time.time()
        idle._last_activity = now - 120
        busy._last_activity = now - 120
        busy._busy = True

        expired = prune_idle_sessions(ttl=60, now=now)

        assert expired == [ids[0]]
        assert set(get_active_sessions()) == set(ids[1:])

    def test_messages_refresh_activity(self):
        session = BookingSession(stub_pipeline())
        session._last_activity = 0.0
        session.greeting()
        assert session.last_activity > 0.0


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_complete_request(self):
        session = await _complete_session()
        assert session.state == ConversationState.COMPLETE
        assert session.gap_report.is_complete
        assert session.details["room"] == "Eng Lab"
        assert set(session.details) == set(BOOKING_FIELDS)
        assert "review" in session.messages[-1].text

    @pytest.mark.asyncio
    async def test_incomplete_request_asks_questions(self):
        pipeline = stub_pipeline(extracted=[BookingRecord(room="A101")])
        session = BookingSession(pipeline)
        turn = await session.handle_message("Room A101")
        assert turn.state == ConversationState.INCOMPLETE
        assert "What is the date?" in turn.message
        assert turn.gap_report.missing_details[0] == "date"

    @pytest.mark.asyncio
    async def test_follow_up_keeps_earlier_values(self):
        pipeline = stub_pipeline(extracted=[
            eng_lab_record(),
            BookingRecord(requestorName="Alice", requestorMail="alice@x.com"),
        ])
        session = BookingSession(pipeline)
        await session.handle_message(ENG_LAB_REQUEST)
        turn = await session.handle_message("I'm Alice, alice@x.com")
        assert turn.state == ConversationState.COMPLETE
        assert turn.details["room"] == "Eng Lab"
        assert turn.details["estimated_number_of_attendees"] == 20
        assert turn.details["requestorName"] == "Alice"

    @pytest.mark.asyncio
    async def test_ai_failure_leaves_details_untouched(self):
        pipeline = stub_pipeline(extracted=[eng_lab_record()])
        session = BookingSession(pipeline)
        await session.handle_message(ENG_LAB_REQUEST)
        before = session.details

        pipeline.extractor.extract = AsyncMock(
            side_effect=FlowError("extractBookingDetails", "AI service call failed")
        )
        turn = await session.handle_message("change the room to B2")
        assert turn.message == PROCESSING_FAILED_MESSAGE
        assert turn.error == PROCESSING_FAILED_MESSAGE
        assert session.details == before
        assert session.state == ConversationState.COMPLETE

    @pytest.mark.asyncio
    async def test_gap_failure_does_not_commit_merge(self):
        pipeline = stub_pipeline(extracted=[BookingRecord(room="A101")])
        pipeline.gap_analyzer.analyze = AsyncMock(
            side_effect=FlowError("handleMissingDetails", "bad reply")
        )
        session = BookingSession(pipeline)
        turn = await session.handle_message("Room A101")
        assert turn.error is not None
        assert session.details == {}
        assert session.state == ConversationState.EMPTY

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self):
        session = BookingSession(stub_pipeline())
        with pytest.raises(ValueError):
            await session.handle_message("   ")

    @pytest.mark.asyncio
    async def test_concurrent_message_refused(self):
        gate = asyncio.Event()
        pipeline = stub_pipeline()

        async def slow_extract(text):
            await gate.wait()
            return BookingRecord(room="A101")

        pipeline.extractor.extract = AsyncMock(side_effect=slow_extract)
        session = BookingSession(pipeline)
        first = asyncio.create_task(session.handle_message("Room A101"))
        await asyncio.sleep(0)
        assert session.is_busy

        with pytest.raises(SessionBusyError):
            await session.handle_message("Room B2")
        with pytest.raises(SessionBusyError):
            session.reset()

        gate.set()
        await first
        assert not session.is_busy


class TestReview:
    def test_nothing_to_review_when_empty(self):
        session = BookingSession(stub_pipeline())
        with pytest.raises(SessionStateError):
            session.start_review()

    @pytest.mark.asyncio
    async def test_review_returns_full_form(self):
        session = await _complete_session()
        form = session.start_review()
        assert session.state == ConversationState.REVIEWING
        assert set(form) == set(BOOKING_FIELDS)
        assert form["target_email"] == "alice@x.com"


class TestSubmit:
    @pytest.mark.asyncio
    async def test_success_only_after_persist(self, memory_store):
        session = await _complete_session(memory_store)
        session.start_review()
        result = await session.submit()
        assert result.succeeded
        assert result.message == SUCCESS_MESSAGE
        assert session.state == ConversationState.SUBMITTED
        assert session.booking_id in memory_store.bookings
        assert memory_store.bookings[session.booking_id]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_edited_values_are_validated_and_saved(self, memory_store):
        session = await _complete_session(memory_store)
        form = session.start_review()
        form["room"] = "Main Hall"
        result = await session.submit(form)
        assert result.succeeded
        assert memory_store.bookings[result.booking_id]["room"] == "Main Hall"

    @pytest.mark.asyncio
    async def test_negative_attendees_returns_to_review(self, memory_store):
        from booking_assistant.flows import AssessRequestValidity

        session = await _complete_session(memory_store)
        session.pipeline.assessor = AssessRequestValidity(
            fake_llm({"isValid": True, "errors": []})
        )
        form = session.start_review()
        form["estimated_number_of_attendees"] = -5
        result = await session.submit(form)

        assert not result.succeeded
        assert result.validity.is_valid is False
        assert any("attendees" in e.lower() for e in result.validity.errors)
        assert session.state == ConversationState.REVIEWING
        assert session.details["estimated_number_of_attendees"] == -5
        assert memory_store.bookings == {}

    @pytest.mark.asyncio
    async def test_store_failure_downgrades_verdict(self, memory_store):
        session = await _complete_session(memory_store)
        memory_store.save_booking = AsyncMock(side_effect=BookingStoreError(SAVE_FAILED_MESSAGE))
        result = await session.submit()

        assert not result.succeeded
        assert result.validity.is_valid is False
        assert result.validity.errors[-1] == SAVE_FAILED_MESSAGE
        assert result.error == SAVE_FAILED_MESSAGE
        assert SUCCESS_MESSAGE not in [m.text for m in session.messages]
        assert session.state == ConversationState.REVIEWING
        assert memory_store.bookings == {}

    @pytest.mark.asyncio
    async def test_unexpected_store_error_uses_generic_reason(self):
        pipeline = stub_pipeline(extracted=[eng_lab_record()])
        pipeline.store.save_booking = AsyncMock(side_effect=OSError("disk full"))
        session = BookingSession(pipeline)
        await session.handle_message(ENG_LAB_REQUEST)
        result = await session.submit()
        assert result.validity.errors == [SAVE_FAILED_MESSAGE]

    @pytest.mark.asyncio
    async def test_assessor_failure(self):
        session = await _complete_session()
        session.pipeline.assessor.assess = AsyncMock(
            side_effect=FlowError("assessRequestValidity", "AI service call failed")
        )
        result = await session.submit()
        assert result.message == SUBMIT_FAILED_MESSAGE
        assert not result.succeeded
        assert session.state == ConversationState.REVIEWING

    @pytest.mark.asyncio
    async def test_unparseable_form_value_rejected(self):
        session = await _complete_session()
        form = session.start_review()
        form["estimated_number_of_attendees"] = "lots"
        result = await session.submit(form)
        assert result.validity.is_valid is False
        assert result.validity.errors[0].startswith("Number of attendees:")
        session.pipeline.assessor.assess.assert_not_called()

    @pytest.mark.asyncio
    async def test_unparseable_form_value_kept_out_of_details(self):
        from booking_assistant.flows import HandleMissingDetails

        pipeline = stub_pipeline(extracted=[eng_lab_record(), BookingRecord(room="Main Hall")])
        pipeline.gap_analyzer = HandleMissingDetails(
            fake_llm({"missingDetails": [], "followUpQuestions": [], "isComplete": True})
        )
        session = BookingSession(pipeline)
        await session.handle_message(ENG_LAB_REQUEST)
        form = session.start_review()
        form["estimated_number_of_attendees"] = "lots"
        result = await session.submit(form)

        assert result.details["estimated_number_of_attendees"] == "lots"
        assert session.details["estimated_number_of_attendees"] == 20
        assert session.start_review()["estimated_number_of_attendees"] == "lots"

        turn = await session.handle_message("Actually make it the Main Hall")
        assert turn.error is None
        assert turn.details["room"] == "Main Hall"
        assert turn.details["estimated_number_of_attendees"] == 20
        assert session.start_review()["room"] == "Main Hall"

    @pytest.mark.asyncio
    async def test_submit_stores_coerced_values(self, memory_store):
        session = await _complete_session(memory_store)
        form = session.start_review()
        form["estimated_number_of_attendees"] = "35"
        result = await session.submit(form)
        assert result.succeeded
        assert session.details["estimated_number_of_attendees"] == 35

    @pytest.mark.asyncio
    async def test_submitted_session_refuses_more_work(self):
        session = await _complete_session()
        await session.submit()
        with pytest.raises(SessionStateError):
            await session.handle_message("one more thing")
        with pytest.raises(SessionStateError):
            await session.submit()

    @pytest.mark.asyncio
    async def test_submit_requires_a_conversation(self):
        session = BookingSession(stub_pipeline())
        with pytest.raises(SessionStateError):
            await session.submit()


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_clears_everything(self):
        session = await _complete_session()
        await session.submit()
        greeting = session.reset()
        assert greeting == GREETING_MESSAGE
        assert session.state == ConversationState.EMPTY
        assert session.details == {}
        assert session.booking_id is None
        assert [m.text for m in session.messages] == [GREETING_MESSAGE]


class TestMessages:
    def test_rejection_message_lists_reasons(self):
        text = rejection_message(["Date is in the past.", "Room unknown"])
        assert "Date is in the past. Room unknown." in text

    def test_redact_pii(self):
        assert redact_pii("alice@x.com") == "ali***om"
        assert redact_pii("a@b") == "***"

    @pytest.mark.asyncio
    async def test_to_dict_detail(self):
        session = await _complete_session()
        data = session.to_dict(detail=True)
        assert data["state"] == "complete"
        assert data["gap_report"]["isComplete"] is True
        assert data["messages"][0]["sender"] == "ai"
