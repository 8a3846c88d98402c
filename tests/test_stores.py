"""Tests for the booking stores (in-memory and Firestore with a mocked client)."""

from unittest.mock import MagicMock, patch

import pytest

from booking_assistant.models.booking import BookingRecord
from booking_assistant.pipeline import build_store
from booking_assistant.stores.base import SAVE_FAILED_MESSAGE, BookingStore, BookingStoreError
from booking_assistant.stores.memory import InMemoryBookingStore

from conftest import eng_lab_record


class TestBookingStoreABC:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            BookingStore()


class TestInMemoryBookingStore:
    @pytest.mark.asyncio
    async def test_save_and_get(self, memory_store):
        booking_id = await memory_store.save_booking(eng_lab_record())
        booking = await memory_store.get_booking(booking_id)
        assert booking.id == booking_id
        assert booking.room == "Eng Lab"
        assert booking.status == "pending"
        assert booking.created_at is not None

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, memory_store):
        ids = {await memory_store.save_booking(BookingRecord()) for _ in range(3)}
        assert len(ids) == 3

    @pytest.mark.asyncio
    async def test_unknown_booking(self, memory_store):
        assert await memory_store.get_booking("nope") is None

    @pytest.mark.asyncio
    async def test_flow_tracking_filtered_by_owner(self, memory_store):
        memory_store.add_flow_tracking({"flowId": "f1", "owner": "a@x.com", "step": 1})
        memory_store.add_flow_tracking({"flowId": "f2", "owner": "b@x.com", "step": 0})
        flows = await memory_store.list_flow_tracking("a@x.com")
        assert [f.flow_id for f in flows] == ["f1"]


class TestFirestoreBookingStore:
    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def store(self, client):
        from booking_assistant.stores.firestore import FirestoreBookingStore

        return FirestoreBookingStore(client=client)

    @pytest.mark.asyncio
    async def test_save_adds_document_with_server_timestamp(self, store, client):
        from google.cloud import firestore

        doc_ref = MagicMock()
        doc_ref.id = "abc123"
        client.collection.return_value.add.return_value = (None, doc_ref)

        booking_id = await store.save_booking(eng_lab_record())

        assert booking_id == "abc123"
        client.collection.assert_called_with("bookings")
        data = client.collection.return_value.add.call_args.args[0]
        assert data["room"] == "Eng Lab"
        assert data["status"] == "pending"
        assert data["createdAt"] is firestore.SERVER_TIMESTAMP

    @pytest.mark.asyncio
    async def test_save_failure_raises_store_error(self, store, client):
        client.collection.return_value.add.side_effect = RuntimeError("unavailable")
        with pytest.raises(BookingStoreError) as exc_info:
            await store.save_booking(eng_lab_record())
        assert str(exc_info.value) == SAVE_FAILED_MESSAGE

    @pytest.mark.asyncio
    async def test_get_booking(self, store, client):
        snapshot = MagicMock()
        snapshot.exists = True
        snapshot.id = "abc123"
        snapshot.to_dict.return_value = {"room": "Eng Lab", "status": "pending"}
        client.collection.return_value.document.return_value.get.return_value = snapshot

        booking = await store.get_booking("abc123")
        assert booking.id == "abc123"
        assert booking.room == "Eng Lab"

    @pytest.mark.asyncio
    async def test_get_missing_booking(self, store, client):
        snapshot = MagicMock()
        snapshot.exists = False
        client.collection.return_value.document.return_value.get.return_value = snapshot
        assert await store.get_booking("missing") is None

    @pytest.mark.asyncio
    async def test_list_flow_tracking(self, store, client):
        snap = MagicMock()
        snap.to_dict.return_value = {"flowId": "f1", "owner": "a@x.com", "step": 2}
        client.collection.return_value.where.return_value.stream.return_value = iter([snap])

        flows = await store.list_flow_tracking("a@x.com")

        client.collection.assert_called_with("flowTracking")
        field_filter = client.collection.return_value.where.call_args.kwargs["filter"]
        assert field_filter.value == "a@x.com"
        assert flows[0].step == 2

    @pytest.mark.asyncio
    async def test_list_flow_tracking_failure(self, store, client):
        client.collection.return_value.where.side_effect = RuntimeError("denied")
        with pytest.raises(BookingStoreError):
            await store.list_flow_tracking("a@x.com")

    def test_service_account_credentials_used(self):
        from booking_assistant.stores.firestore import FirestoreBookingStore

        with patch(
            "booking_assistant.stores.firestore.Credentials"
        ) as mock_creds, patch(
            "booking_assistant.stores.firestore.firestore.Client"
        ) as mock_client:
            FirestoreBookingStore(project_id="proj", service_account_path="/tmp/sa.json")
        mock_creds.from_service_account_file.assert_called_once()
        assert mock_client.call_args.kwargs["project"] == "proj"

    def test_placeholder_service_account_uses_default_credentials(self, monkeypatch):
        from booking_assistant.stores.firestore import FirestoreBookingStore

        monkeypatch.setenv("GOOGLE_SERVICE_ACCOUNT_JSON", "path/to/service-account.json")
        with patch(
            "booking_assistant.stores.firestore.Credentials"
        ) as mock_creds, patch(
            "booking_assistant.stores.firestore.firestore.Client"
        ) as mock_client:
            FirestoreBookingStore(project_id="proj")
            FirestoreBookingStore(
                project_id="proj", service_account_path="path/to/service-account.json",
            )
        mock_creds.from_service_account_file.assert_not_called()
        assert mock_client.call_args.kwargs["credentials"] is None


class TestBuildStore:
    def test_memory_backend(self):
        from booking_assistant.config import Settings

        cfg = Settings(store_backend="memory")
        assert isinstance(build_store(cfg), InMemoryBookingStore)

    def test_firestore_backend_with_placeholder_key_file(self):
        from booking_assistant.config import Settings
        from booking_assistant.stores.firestore import FirestoreBookingStore

        cfg = Settings(
            _env_file=None,
            store_backend="firestore",
            anthropic_api_key="sk-ant-real",
            firebase_project_id="proj",
            google_service_account_json="path/to/service-account.json",
        )
        assert any("placeholder" in w for w in cfg.validate_startup())
        with patch("booking_assistant.stores.firestore.firestore.Client") as mock_client:
            store = build_store(cfg)
        assert isinstance(store, FirestoreBookingStore)
        assert mock_client.call_args.kwargs["credentials"] is None
