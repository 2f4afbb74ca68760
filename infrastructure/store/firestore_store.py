"""
Firestore-backed DocumentStore using the Firebase Admin SDK.
"""

from typing import Any, Dict, List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1 import FieldFilter

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
    StoreError,
    Unsubscribe,
)
from utils.logging_config import get_logger


def initialize_firebase(credentials_path: str, project_id: str = ""):
    """Initialize Firebase Admin only once per process and return a Firestore client"""
    if not firebase_admin._apps:
        cred = credentials.Certificate(credentials_path)
        options = {"projectId": project_id} if project_id else None
        firebase_admin.initialize_app(cred, options)
        get_logger(__name__).info("Firebase Admin initialized")
    return firestore.client()


class FirestoreDocumentStore(DocumentStore):
    """
    DocumentStore over a Firestore client.

    Args:
        client: A ``google.cloud.firestore.Client`` (see ``initialize_firebase``)
    """

    def __init__(self, client):
        self.logger = get_logger(__name__)
        self.client = client

    @staticmethod
    def _to_firestore(values: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: (firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value)
            for key, value in values.items()
            if key != "id"
        }

    @staticmethod
    def _from_snapshot(snapshot) -> Dict[str, Any]:
        document = snapshot.to_dict() or {}
        document["id"] = snapshot.id
        return document

    def _build_query(self, collection: str, filters: Sequence[Filter], order_by: Optional[OrderBy]):
        query = self.client.collection(collection)
        for f in filters:
            query = query.where(filter=FieldFilter(f.field, f.op, f.value))
        if order_by is not None:
            direction = firestore.Query.DESCENDING if order_by.descending else firestore.Query.ASCENDING
            query = query.order_by(order_by.field, direction=direction)
        return query

    def create(self, collection: str, document: Dict[str, Any]) -> str:
        try:
            _, reference = self.client.collection(collection).add(self._to_firestore(document))
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Failed to create document in {collection}: {e}") from e
        return reference.id

    def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.client.collection(collection).document(document_id).get()
        if not snapshot.exists:
            return None
        return self._from_snapshot(snapshot)

    def update(self, collection: str, document_id: str, patch: Dict[str, Any]) -> None:
        reference = self.client.collection(collection).document(document_id)
        try:
            reference.update(self._to_firestore(patch))
        except gcp_exceptions.NotFound as e:
            raise DocumentNotFoundError(collection, document_id) from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Failed to update {collection}/{document_id}: {e}") from e

    def conditional_update(
        self,
        collection: str,
        document_id: str,
        expected: Dict[str, Any],
        patch: Dict[str, Any],
    ) -> Dict[str, Any]:
        reference = self.client.collection(collection).document(document_id)
        transaction = self.client.transaction()
        firestore_patch = self._to_firestore(patch)

        @firestore.transactional
        def apply(transaction):
            snapshot = reference.get(transaction=transaction)
            if not snapshot.exists:
                raise DocumentNotFoundError(collection, document_id)
            current = snapshot.to_dict() or {}
            for field_name, expected_value in expected.items():
                if current.get(field_name) != expected_value:
                    raise PreconditionFailedError(collection, document_id, field_name, current.get(field_name))
            transaction.update(reference, firestore_patch)
            return self._from_snapshot(snapshot)

        try:
            return apply(transaction)
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Conditional update of {collection}/{document_id} failed: {e}") from e

    def delete(self, collection: str, document_id: str) -> None:
        try:
            self.client.collection(collection).document(document_id).delete()
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Failed to delete {collection}/{document_id}: {e}") from e

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> List[Dict[str, Any]]:
        try:
            snapshots = self._build_query(collection, filters, order_by).stream()
            return [self._from_snapshot(snapshot) for snapshot in snapshots]
        except gcp_exceptions.FailedPrecondition as e:
            raise QueryUnavailableError(str(e)) from e

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        query = self._build_query(collection, filters, order_by)

        # Watch streams have no error callback; probe the query first so a
        # missing composite index is reported instead of silently closing.
        if filters and order_by is not None:
            try:
                query.limit(1).get()
            except gcp_exceptions.FailedPrecondition as e:
                on_error(QueryUnavailableError(str(e)))
                return lambda: None
            except gcp_exceptions.GoogleAPICallError as e:
                on_error(StoreError(str(e)))
                return lambda: None

        def handle_snapshot(snapshots, changes, read_time):
            try:
                on_change([self._from_snapshot(snapshot) for snapshot in snapshots])
            except Exception as e:
                self.logger.error(f"Snapshot callback failed on {collection}: {e}")
                on_error(e)

        watch = query.on_snapshot(handle_snapshot)
        closed = False

        def unsubscribe():
            nonlocal closed
            if not closed:
                closed = True
                watch.unsubscribe()

        return unsubscribe
