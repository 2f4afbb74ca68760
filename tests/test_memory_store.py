"""
Tests for the in-memory document store
"""

from datetime import datetime
from unittest.mock import Mock

import pytest

from infrastructure.store import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    Filter,
    InMemoryDocumentStore,
    OrderBy,
    PreconditionFailedError,
    QueryUnavailableError,
    StoreError,
    sort_documents,
)


class TestDocuments:
    """Test CRUD operations"""

    def test_create_and_get(self, store):
        doc_id = store.create("conversations", {"status": "pending", "createdAt": SERVER_TIMESTAMP})
        document = store.get("conversations", doc_id)

        assert document["id"] == doc_id
        assert document["status"] == "pending"
        assert isinstance(document["createdAt"], datetime)

    def test_get_missing_returns_none(self, store):
        assert store.get("conversations", "nope") is None

    def test_update_missing_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.update("conversations", "nope", {"status": "done"})

    def test_returned_documents_are_copies(self, store):
        doc_id = store.create("conversations", {"tags": ["a"]})
        store.get("conversations", doc_id)["tags"].append("b")

        assert store.get("conversations", doc_id)["tags"] == ["a"]

    def test_delete(self, store):
        doc_id = store.create("conversations", {"status": "pending"})
        store.delete("conversations", doc_id)

        assert store.get("conversations", doc_id) is None
        with pytest.raises(DocumentNotFoundError):
            store.delete("conversations", doc_id)

    def test_conditional_update(self, store):
        doc_id = store.create("conversations", {"assignedStaffId": None})

        before = store.conditional_update("conversations", doc_id, {"assignedStaffId": None},
                                          {"assignedStaffId": "staff-a"})

        assert before["assignedStaffId"] is None
        assert store.get("conversations", doc_id)["assignedStaffId"] == "staff-a"

        with pytest.raises(PreconditionFailedError) as exc_info:
            store.conditional_update("conversations", doc_id, {"assignedStaffId": None},
                                     {"assignedStaffId": "staff-b"})
        assert exc_info.value.actual == "staff-a"
        assert isinstance(exc_info.value, StoreError)


class TestQueries:
    """Test filtered and ordered queries"""

    def test_filter_and_order(self, store):
        store.create("messages", {"conversationId": "c1", "text": "first", "sentAt": SERVER_TIMESTAMP})
        store.create("messages", {"conversationId": "c2", "text": "other", "sentAt": SERVER_TIMESTAMP})
        store.create("messages", {"conversationId": "c1", "text": "second", "sentAt": SERVER_TIMESTAMP})

        ascending = store.query("messages", [Filter("conversationId", "c1")], OrderBy("sentAt"))
        descending = store.query("messages", [Filter("conversationId", "c1")], OrderBy("sentAt", descending=True))

        assert [d["text"] for d in ascending] == ["first", "second"]
        assert [d["text"] for d in descending] == ["second", "first"]

    def test_null_equality_filter(self, store):
        store.create("conversations", {"assignedStaffId": None, "name": "open"})
        store.create("conversations", {"assignedStaffId": "staff-a", "name": "taken"})

        results = store.query("conversations", [Filter("assignedStaffId", None)])

        assert [d["name"] for d in results] == ["open"]

    def test_ordered_filtered_query_can_be_unavailable(self):
        store = InMemoryDocumentStore(supports_ordered_filters=False)

        with pytest.raises(QueryUnavailableError):
            store.query("messages", [Filter("conversationId", "c1")], OrderBy("sentAt"))
        assert store.query("messages", [Filter("conversationId", "c1")]) == []

    def test_sort_documents_puts_missing_field_last(self):
        documents = [{"id": "a"}, {"id": "b", "at": 2}, {"id": "c", "at": 1}]

        assert [d["id"] for d in sort_documents(documents, OrderBy("at"))] == ["c", "b", "a"]
        assert [d["id"] for d in sort_documents(documents, OrderBy("at", descending=True))] == ["b", "c", "a"]


class TestSubscriptions:
    """Test change notifications"""

    def test_initial_delivery_and_changes(self, store):
        on_change = Mock()
        store.subscribe("messages", [Filter("conversationId", "c1")], None, on_change, Mock())

        store.create("messages", {"conversationId": "c1", "text": "hello"})

        assert on_change.call_count == 2
        assert on_change.call_args_list[0].args[0] == []
        assert [d["text"] for d in on_change.call_args_list[1].args[0]] == ["hello"]

    def test_unrelated_write_does_not_notify(self, store):
        on_change = Mock()
        store.subscribe("messages", [Filter("conversationId", "c1")], None, on_change, Mock())

        store.create("messages", {"conversationId": "c2", "text": "elsewhere"})

        assert on_change.call_count == 1

    def test_unsubscribe_stops_delivery(self, store):
        on_change = Mock()
        unsubscribe = store.subscribe("messages", [], None, on_change, Mock())
        unsubscribe()

        store.create("messages", {"text": "late"})

        assert on_change.call_count == 1
        assert store.subscription_count("messages") == 0

    def test_unavailable_query_reports_error(self):
        store = InMemoryDocumentStore(supports_ordered_filters=False)
        on_change, on_error = Mock(), Mock()

        store.subscribe("messages", [Filter("conversationId", "c1")], OrderBy("sentAt"), on_change, on_error)

        on_change.assert_not_called()
        assert isinstance(on_error.call_args.args[0], QueryUnavailableError)

    def test_emit_error_terminates_subscriptions(self, store):
        on_error = Mock()
        store.subscribe("messages", [], None, Mock(), on_error)

        assert store.emit_error("messages", StoreError("connection dropped")) == 1
        assert store.subscription_count() == 0
        on_error.assert_called_once()

    def test_callback_failure_routed_to_error_callback(self, store):
        on_error = Mock()
        store.subscribe("messages", [], None, Mock(side_effect=RuntimeError("boom")), on_error)

        assert isinstance(on_error.call_args.args[0], RuntimeError)
