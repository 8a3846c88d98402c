"""Process-wide pipeline dependencies, built once and shared by sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel

from booking_assistant.config import Settings, settings as default_settings
from booking_assistant.flows import (
    AssessRequestValidity,
    ExtractBookingDetails,
    HandleMissingDetails,
)
from booking_assistant.llm import build_chat_model
from booking_assistant.stores.base import BookingStore

log = logging.getLogger("booking_assistant.pipeline")


@dataclass
class BookingPipeline:
    """The four external-facing steps a booking conversation drives."""

    extractor: ExtractBookingDetails
    gap_analyzer: HandleMissingDetails
    assessor: AssessRequestValidity
    store: BookingStore

    @classmethod
    def from_llm(cls, llm: BaseChatModel, store: BookingStore) -> "BookingPipeline":
        return cls(
            extractor=ExtractBookingDetails(llm),
            gap_analyzer=HandleMissingDetails(llm),
            assessor=AssessRequestValidity(llm),
            store=store,
        )


def build_store(cfg: Settings | None = None) -> BookingStore:
    """Create the configured booking store."""
    cfg = cfg or default_settings
    if cfg.store_backend == "memory":
        from booking_assistant.stores.memory import InMemoryBookingStore

        log.warning("Using in-memory booking store")
        return InMemoryBookingStore()

    from booking_assistant.stores.firestore import FirestoreBookingStore

    return FirestoreBookingStore(
        project_id=cfg.firebase_project_id,
        service_account_path=cfg.google_service_account_json,
        bookings_collection=cfg.bookings_collection,
        flow_tracking_collection=cfg.flow_tracking_collection,
    )


def build_pipeline(
    cfg: Settings | None = None,
    llm: Optional[BaseChatModel] = None,
    store: Optional[BookingStore] = None,
) -> BookingPipeline:
    """Build the shared pipeline from configuration.

    ``llm`` and ``store`` override the configured ones.
    """
    cfg = cfg or default_settings
    return BookingPipeline.from_llm(
        llm if llm is not None else build_chat_model(cfg),
        store if store is not None else build_store(cfg),
    )
