"""
In-memory document store with change notifications.

Used for local development, for the single-process Streamlit deployment and
by the test-suite. Subscriptions are notified synchronously, after the write
that changed their result set, on the writing thread.
"""

import copy
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from infrastructure.store.base import (
    SERVER_TIMESTAMP,
    ChangeCallback,
    DocumentNotFoundError,
    DocumentStore,
    ErrorCallback,
    Filter,
    OrderBy,
    PreconditionFailedError,
    QueryUnavailableError,
    Unsubscribe,
)
from utils.logging_config import get_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sort_documents(documents: List[Dict[str, Any]], order_by: Optional[OrderBy]) -> List[Dict[str, Any]]:
    """
    Stable sort on one field. Documents missing the field go last in both
    directions; equal values keep their incoming order.
    """
    if order_by is None:
        return list(documents)

    present = [doc for doc in documents if doc.get(order_by.field) is not None]
    missing = [doc for doc in documents if doc.get(order_by.field) is None]
    present.sort(key=lambda doc: doc[order_by.field], reverse=order_by.descending)
    return present + missing


@dataclass
class _Subscription:
    subscription_id: str
    collection: str
    filters: Sequence[Filter]
    order_by: Optional[OrderBy]
    on_change: ChangeCallback
    on_error: ErrorCallback
    last_delivered: Optional[List[Dict[str, Any]]] = None
    active: bool = True


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe dict-backed DocumentStore.

    Args:
        clock: Callable returning the "server" time used for SERVER_TIMESTAMP
        supports_ordered_filters: When False, queries combining filters with
            an order raise QueryUnavailableError, like a Firestore project
            without the composite index.
    """

    def __init__(self, clock: Callable[[], datetime] = None, supports_ordered_filters: bool = True):
        self.logger = get_logger(__name__)
        self._clock = clock or _utcnow
        self.supports_ordered_filters = supports_ordered_filters
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: Dict[str, _Subscription] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _resolve_timestamps(self, values: Dict[str, Any]) -> Dict[str, Any]:
        now = self._clock()
        return {
            key: (now if value is SERVER_TIMESTAMP else copy.deepcopy(value))
            for key, value in values.items()
        }

    def create(self, collection: str, document: Dict[str, Any]) -> str:
        document_id = uuid.uuid4().hex[:20]
        with self._lock:
            stored = self._resolve_timestamps(document)
            stored.pop("id", None)
            self._collections.setdefault(collection, {})[document_id] = stored
            pending = self._collect_notifications(collection)
        self._deliver(pending)
        self.logger.debug(f"Created {collection}/{document_id}")
        return document_id

    def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            stored = self._collections.get(collection, {}).get(document_id)
            if stored is None:
                return None
            return self._with_id(document_id, stored)

    def update(self, collection: str, document_id: str, patch: Dict[str, Any]) -> None:
        with self._lock:
            stored = self._collections.get(collection, {}).get(document_id)
            if stored is None:
                raise DocumentNotFoundError(collection, document_id)
            stored.update(self._resolve_timestamps(patch))
            pending = self._collect_notifications(collection)
        self._deliver(pending)

    def conditional_update(
        self,
        collection: str,
        document_id: str,
        expected: Dict[str, Any],
        patch: Dict[str, Any],
    ) -> Dict[str, Any]:
        with self._lock:
            stored = self._collections.get(collection, {}).get(document_id)
            if stored is None:
                raise DocumentNotFoundError(collection, document_id)
            for field_name, expected_value in expected.items():
                actual = stored.get(field_name)
                if actual != expected_value:
                    raise PreconditionFailedError(collection, document_id, field_name, actual)
            before = self._with_id(document_id, stored)
            stored.update(self._resolve_timestamps(patch))
            pending = self._collect_notifications(collection)
        self._deliver(pending)
        return before

    def delete(self, collection: str, document_id: str) -> None:
        with self._lock:
            documents = self._collections.get(collection, {})
            if document_id not in documents:
                raise DocumentNotFoundError(collection, document_id)
            del documents[document_id]
            pending = self._collect_notifications(collection)
        self._deliver(pending)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _with_id(document_id: str, stored: Dict[str, Any]) -> Dict[str, Any]:
        document = copy.deepcopy(stored)
        document["id"] = document_id
        return document

    def _check_query_supported(self, filters: Sequence[Filter], order_by: Optional[OrderBy]):
        if filters and order_by is not None and not self.supports_ordered_filters:
            raise QueryUnavailableError(
                "The query requires an index: filtered queries cannot be ordered by "
                f"'{order_by.field}'"
            )

    def _run_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
    ) -> List[Dict[str, Any]]:
        documents = [
            self._with_id(document_id, stored)
            for document_id, stored in self._collections.get(collection, {}).items()
            if all(f.matches(stored) for f in filters)
        ]
        return sort_documents(documents, order_by)

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> List[Dict[str, Any]]:
        self._check_query_supported(filters, order_by)
        with self._lock:
            return self._run_query(collection, filters, order_by)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        try:
            self._check_query_supported(filters, order_by)
        except QueryUnavailableError as e:
            on_error(e)
            return lambda: None

        subscription = _Subscription(
            subscription_id=uuid.uuid4().hex,
            collection=collection,
            filters=tuple(filters),
            order_by=order_by,
            on_change=on_change,
            on_error=on_error,
        )

        with self._lock:
            self._subscriptions[subscription.subscription_id] = subscription
            initial = self._run_query(collection, subscription.filters, order_by)
            subscription.last_delivered = initial

        self._deliver([(subscription, initial)])

        def unsubscribe():
            with self._lock:
                subscription.active = False
                self._subscriptions.pop(subscription.subscription_id, None)

        return unsubscribe

    def _collect_notifications(self, collection: str):
        """Snapshot result sets that changed; must be called with the lock held"""
        pending = []
        for subscription in list(self._subscriptions.values()):
            if subscription.collection != collection or not subscription.active:
                continue
            results = self._run_query(collection, subscription.filters, subscription.order_by)
            if results != subscription.last_delivered:
                subscription.last_delivered = results
                pending.append((subscription, results))
        return pending

    def _deliver(self, pending):
        for subscription, results in pending:
            if not subscription.active:
                continue
            try:
                subscription.on_change(copy.deepcopy(results))
            except Exception as e:
                self.logger.error(f"Subscription callback failed on {subscription.collection}: {e}")
                subscription.on_error(e)

    def emit_error(self, collection: str, error: Exception) -> int:
        """
        Terminate every live subscription on ``collection`` with ``error``,
        the way a dropped listener connection does. Returns how many
        subscriptions were terminated.
        """
        with self._lock:
            affected = [
                s for s in self._subscriptions.values()
                if s.collection == collection and s.active
            ]
            for subscription in affected:
                subscription.active = False
                self._subscriptions.pop(subscription.subscription_id, None)

        for subscription in affected:
            subscription.on_error(error)
        return len(affected)

    def subscription_count(self, collection: str = None) -> int:
        with self._lock:
            return sum(
                1 for s in self._subscriptions.values()
                if collection is None or s.collection == collection
            )
