"""
Services package.

Only the storage layer is re-exported here; sharing, users and billing are
imported from their own packages since they depend on the audit logger,
which itself depends on storage.
"""

from fintrack.services.storage import (
    AuditStorageInterface,
    BatchOperation,
    ConflictError,
    ConnectionError,
    DocumentAuditStorage,
    DocumentStoreInterface,
    DuplicateError,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "BatchOperation",
    "ConflictError",
    "ConnectionError",
    "DocumentAuditStorage",
    "DocumentStoreInterface",
    "DuplicateError",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
]
