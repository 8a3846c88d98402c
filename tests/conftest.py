"""Shared fixtures: canned chat models and a stub booking pipeline."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.language_models import FakeListChatModel

from booking_assistant.models.booking import BookingRecord, GapReport, ValidityReport
from booking_assistant.pipeline import BookingPipeline
from booking_assistant.session import get_active_sessions
from booking_assistant.stores.memory import InMemoryBookingStore


ENG_LAB_REQUEST = (
    "Book the Eng Lab for tomorrow 2-4pm for a workshop, ~20 people, "
    "need a projector, send to alice@x.com"
)


def eng_lab_record(**overrides) -> BookingRecord:
    values = {
        "room": "Eng Lab",
        "date": "tomorrow",
        "time": "2-4pm",
        "purpose": "workshop",
        "estimated_number_of_attendees": 20,
        "special_requirements": "projector",
        "target_email": "alice@x.com",
    }
    values.update(overrides)
    return BookingRecord(**values)


def fake_llm(*replies) -> FakeListChatModel:
    """Chat model that answers with the given replies in order.

    Dicts are sent as JSON text; strings are sent verbatim.
    """
    return FakeListChatModel(
        responses=[r if isinstance(r, str) else json.dumps(r) for r in replies]
    )


def stub_pipeline(store=None, extracted=None) -> BookingPipeline:
    """Pipeline whose AI steps are AsyncMocks with deterministic behaviour.

    - extract returns the queued records in order (``extracted`` list)
    - analyze reports missing required fields using the local policy
    - assess accepts everything
    """
    from booking_assistant.models.booking import missing_required_fields

    extractor = MagicMock()
    extractor.extract = AsyncMock(side_effect=list(extracted or []))

    def _analyze(details):
        data = details.model_dump() if isinstance(details, BookingRecord) else details
        missing = missing_required_fields(data)
        return GapReport(
            missing_details=missing,
            follow_up_questions=[f"What is the {m}?" for m in missing],
            is_complete=not missing,
        )

    gap_analyzer = MagicMock()
    gap_analyzer.analyze = AsyncMock(side_effect=_analyze)

    assessor = MagicMock()
    assessor.assess = AsyncMock(return_value=ValidityReport(is_valid=True, errors=[]))

    return BookingPipeline(
        extractor=extractor,
        gap_analyzer=gap_analyzer,
        assessor=assessor,
        store=store if store is not None else InMemoryBookingStore(),
    )


@pytest.fixture
def memory_store():
    return InMemoryBookingStore()


@pytest.fixture(autouse=True)
def clear_session_registry():
    yield
    get_active_sessions().clear()
