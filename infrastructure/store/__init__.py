"""
Document store infrastructure - persistence and change notifications for conversations.
"""

from .base import (
    SERVER_TIMESTAMP,
    DocumentStore,
    DocumentNotFoundError,
    Filter,
    OrderBy,
    PreconditionFailedError,
    QueryUnavailableError,
    StoreError,
)
from .memory_store import InMemoryDocumentStore, sort_documents

__all__ = [
    'SERVER_TIMESTAMP',
    'DocumentStore',
    'DocumentNotFoundError',
    'Filter',
    'OrderBy',
    'PreconditionFailedError',
    'QueryUnavailableError',
    'StoreError',
    'InMemoryDocumentStore',
    'sort_documents',
    'get_document_store',
]

_document_store = None


def get_document_store() -> DocumentStore:
    """Get the global document store for the configured backend"""
    global _document_store
    if _document_store is None:
        from config.app_config import get_config
        config = get_config()
        if config.store.backend == "firestore":
            from .firestore_store import FirestoreDocumentStore, initialize_firebase
            client = initialize_firebase(config.store.firebase_credentials_path, config.store.project_id)
            _document_store = FirestoreDocumentStore(client)
        else:
            _document_store = InMemoryDocumentStore()
    return _document_store
