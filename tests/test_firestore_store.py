"""
Tests for the Firestore adapter against a mocked client
"""

from unittest.mock import MagicMock, Mock

import pytest
from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

from infrastructure.store.base import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    Filter,
    OrderBy,
    QueryUnavailableError,
)
from infrastructure.store.firestore_store import FirestoreDocumentStore


def snapshot(document_id, data):
    snap = Mock(id=document_id, exists=True)
    snap.to_dict.return_value = dict(data)
    return snap


class TestFirestoreDocumentStore:
    """Test mapping between DocumentStore calls and the Firestore client"""

    def setup_method(self):
        self.client = MagicMock()
        self.collection = self.client.collection.return_value
        self.store = FirestoreDocumentStore(self.client)

    def test_create_maps_server_timestamp_and_drops_id(self):
        self.collection.add.return_value = (None, Mock(id="conv-1"))

        document_id = self.store.create("conversations", {"id": "ignored", "status": "pending",
                                                          "createdAt": SERVER_TIMESTAMP})

        assert document_id == "conv-1"
        written = self.collection.add.call_args.args[0]
        assert written == {"status": "pending", "createdAt": firestore.SERVER_TIMESTAMP}

    def test_get_missing_document(self):
        self.collection.document.return_value.get.return_value = Mock(exists=False)

        assert self.store.get("conversations", "missing") is None

    def test_get_includes_id(self):
        self.collection.document.return_value.get.return_value = snapshot("conv-1", {"status": "active"})

        assert self.store.get("conversations", "conv-1") == {"id": "conv-1", "status": "active"}

    def test_update_missing_document(self):
        self.collection.document.return_value.update.side_effect = gcp_exceptions.NotFound("gone")

        with pytest.raises(DocumentNotFoundError):
            self.store.update("conversations", "conv-1", {"status": "done"})

    def test_ordered_query_without_index(self):
        ordered = self.collection.where.return_value.order_by.return_value
        ordered.stream.side_effect = gcp_exceptions.FailedPrecondition("index required")

        with pytest.raises(QueryUnavailableError):
            self.store.query("messages", [Filter("conversationId", "conv-1")], OrderBy("sentAt"))

    def test_subscribe_reports_missing_index(self):
        ordered = self.collection.where.return_value.order_by.return_value
        ordered.limit.return_value.get.side_effect = gcp_exceptions.FailedPrecondition("index required")
        on_change, on_error = Mock(), Mock()

        unsubscribe = self.store.subscribe("messages", [Filter("conversationId", "conv-1")],
                                           OrderBy("sentAt"), on_change, on_error)

        assert isinstance(on_error.call_args.args[0], QueryUnavailableError)
        on_change.assert_not_called()
        ordered.on_snapshot.assert_not_called()
        unsubscribe()

    def test_subscribe_delivers_snapshots(self):
        filtered = self.collection.where.return_value
        on_change, on_error = Mock(), Mock()

        unsubscribe = self.store.subscribe("conversations", [Filter("assignedStaffId", None)],
                                           None, on_change, on_error)
        handler = filtered.on_snapshot.call_args.args[0]
        handler([snapshot("conv-1", {"status": "pending"})], [], None)

        on_change.assert_called_once_with([{"id": "conv-1", "status": "pending"}])
        on_error.assert_not_called()

        unsubscribe()
        unsubscribe()
        filtered.on_snapshot.return_value.unsubscribe.assert_called_once()
