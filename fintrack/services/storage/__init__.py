"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Firestore is the production backend; the in-memory store backs tests and
local runs. Both implement the same interface.
"""

from fintrack.services.storage.interface import (
    VERSION_FIELD,
    AuditStorageInterface,
    BatchAction,
    BatchOperation,
    ConflictError,
    ConnectionError,
    DocumentStoreInterface,
    DuplicateError,
    Filter,
    NotFoundError,
    StorageError,
)
from fintrack.services.storage.memory import InMemoryDocumentStore
from fintrack.services.storage.audit import DocumentAuditStorage
from fintrack.services.storage.firestore import FirestoreClient, FirestoreDocumentStore

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BatchAction",
    "BatchOperation",
    "DocumentStoreInterface",
    "Filter",
    "VERSION_FIELD",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "DocumentAuditStorage",
    "FirestoreClient",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
]
