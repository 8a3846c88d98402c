"""Firestore booking store.

Uses a Google Cloud service account when ``GOOGLE_SERVICE_ACCOUNT_JSON``
points at a key file, and application default credentials otherwise.
The Firestore client is synchronous, so calls run in the default thread
pool.
"""

from __future__ import annotations

import asyncio
import logging
import os
from functools import partial
from typing import Any, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2.service_account import Credentials

from booking_assistant.config import PLACEHOLDER_VALUES
from booking_assistant.models.booking import BookingRecord, FlowTracking, PersistedBooking

from .base import INITIAL_STATUS, SAVE_FAILED_MESSAGE, BookingStore, BookingStoreError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/datastore"]


class FirestoreBookingStore(BookingStore):
    """BookingStore backed by Cloud Firestore."""

    def __init__(
        self,
        project_id: str | None = None,
        service_account_path: str | None = None,
        client: Any = None,
        bookings_collection: str = "bookings",
        flow_tracking_collection: str = "flowTracking",
    ) -> None:
        if client is None:
            sa_path = service_account_path or os.environ.get(
                "GOOGLE_SERVICE_ACCOUNT_JSON", ""
            )
            credentials = None
            if sa_path in PLACEHOLDER_VALUES:
                logger.warning("Service account path is a placeholder; using default credentials")
                sa_path = ""
            if sa_path:
                credentials = Credentials.from_service_account_file(
                    sa_path, scopes=SCOPES
                )
            client = firestore.Client(
                project=project_id or None, credentials=credentials
            )
        self._client = client
        self._bookings = bookings_collection
        self._flow_tracking = flow_tracking_collection

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    # ------------------------------------------------------------------
    # BookingStore interface
    # ------------------------------------------------------------------

    async def save_booking(self, record: BookingRecord) -> str:
        """Add a document to the bookings collection.

        ``createdAt`` is the Firestore server timestamp sentinel, so the
        time is assigned by the database rather than this process.
        """
        data = {
            **record.model_dump(),
            "createdAt": firestore.SERVER_TIMESTAMP,
            "status": INITIAL_STATUS,
        }
        try:
            _, doc_ref = await self._run_in_executor(
                self._client.collection(self._bookings).add, data
            )
        except Exception as e:
            logger.exception("Error saving booking details to Firestore")
            raise BookingStoreError(SAVE_FAILED_MESSAGE) from e

        logger.info("Booking details saved to Firestore with ID %s", doc_ref.id)
        return doc_ref.id

    async def get_booking(self, booking_id: str) -> Optional[PersistedBooking]:
        try:
            snapshot = await self._run_in_executor(
                self._client.collection(self._bookings).document(booking_id).get
            )
        except Exception as e:
            logger.exception("Error loading booking %s", booking_id)
            raise BookingStoreError("Failed to load booking details.") from e

        if not snapshot.exists:
            return None
        return PersistedBooking.model_validate({**snapshot.to_dict(), "id": snapshot.id})

    async def list_flow_tracking(self, owner_email: str) -> list[FlowTracking]:
        def _fetch():
            query = self._client.collection(self._flow_tracking).where(
                filter=FieldFilter("owner", "==", owner_email)
            )
            return list(query.stream())

        try:
            snapshots = await self._run_in_executor(_fetch)
        except Exception as e:
            logger.exception("Error fetching flow tracking data")
            raise BookingStoreError("Failed to load flow tracking data.") from e

        return [FlowTracking.model_validate(s.to_dict()) for s in snapshots]
