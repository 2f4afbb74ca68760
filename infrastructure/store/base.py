"""
Document store contract shared by the in-memory and Firestore backends.

The chat services only talk to this interface: collections of schemaless
documents, equality filters, a single sort field, and change subscriptions
that push the full current result set on every change.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when a document is written"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class StoreError(Exception):
    """Base error for document store failures"""
    pass


class DocumentNotFoundError(StoreError):
    """Raised when a document id does not exist in a collection"""

    def __init__(self, collection: str, document_id: str):
        super().__init__(f"Document {collection}/{document_id} not found")
        self.collection = collection
        self.document_id = document_id


class PreconditionFailedError(StoreError):
    """Raised when a conditional update's expected values no longer hold"""

    def __init__(self, collection: str, document_id: str, field_name: str, actual: Any):
        super().__init__(
            f"Precondition on {collection}/{document_id}.{field_name} failed (current value: {actual!r})"
        )
        self.collection = collection
        self.document_id = document_id
        self.field_name = field_name
        self.actual = actual


class QueryUnavailableError(StoreError):
    """Raised when a filtered query cannot also be ordered (e.g. missing composite index)"""
    pass


@dataclass(frozen=True)
class Filter:
    """Field filter; only equality is required by the chat services"""
    field: str
    value: Any
    op: str = "=="

    def matches(self, document: Dict[str, Any]) -> bool:
        actual = document.get(self.field)
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class OrderBy:
    """Sort order on a single field"""
    field: str
    descending: bool = False


ChangeCallback = Callable[[List[Dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class DocumentStore(ABC):
    """
    Abstract document store.

    Documents are returned as plain dicts with their id under the ``id`` key.
    Write failures raise StoreError subclasses; subscription failures are
    reported through the ``on_error`` callback.
    """

    @abstractmethod
    def create(self, collection: str, document: Dict[str, Any]) -> str:
        """Insert a document and return its generated id"""

    @abstractmethod
    def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document or None"""

    @abstractmethod
    def update(self, collection: str, document_id: str, patch: Dict[str, Any]) -> None:
        """Merge ``patch`` into an existing document"""

    @abstractmethod
    def conditional_update(
        self,
        collection: str,
        document_id: str,
        expected: Dict[str, Any],
        patch: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Atomically apply ``patch`` only if every field in ``expected`` still
        holds its expected value. Returns the document as it was before the
        write; raises PreconditionFailedError otherwise.
        """

    @abstractmethod
    def delete(self, collection: str, document_id: str) -> None:
        """Remove a document"""

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> List[Dict[str, Any]]:
        """Run a one-shot query"""

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy],
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """
        Listen to a query. ``on_change`` receives the full result set on
        subscription and after each change. Returns an idempotent
        unsubscribe callable.
        """
