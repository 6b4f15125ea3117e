"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against Firestore in production
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Documents are plain dicts with camelCase keys; the models layer converts
them to and from pydantic models.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fintrack.models.audit import AuditEvent


# Field holding the compare-and-swap token on versioned documents
VERSION_FIELD = "version"

# Supported filter operators
FILTER_OPERATORS = ("==", ">=", "<", "<=", "array_contains")

Filter = tuple[str, str, Any]


class BatchAction(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


class BatchOperation(BaseModel):
    """
    One write inside an all-or-nothing batch.

    For UPDATE with expected_version set, the document's version must match
    and is bumped by one when the batch commits.
    """
    action: BatchAction
    collection: str
    document_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    expected_version: Optional[int] = None

    @classmethod
    def set(cls, collection: str, document_id: str, data: dict) -> "BatchOperation":
        return cls(
            action=BatchAction.SET,
            collection=collection,
            document_id=document_id,
            data=data,
        )

    @classmethod
    def update(
        cls,
        collection: str,
        document_id: str,
        data: dict,
        expected_version: Optional[int] = None,
    ) -> "BatchOperation":
        return cls(
            action=BatchAction.UPDATE,
            collection=collection,
            document_id=document_id,
            data=data,
            expected_version=expected_version,
        )

    @classmethod
    def delete(cls, collection: str, document_id: str) -> "BatchOperation":
        return cls(
            action=BatchAction.DELETE,
            collection=collection,
            document_id=document_id,
        )


class DocumentStoreInterface(ABC):
    """
    Abstract interface for document store operations.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        """
        Create a document.

        Args:
            collection: Collection name
            data: Document fields
            document_id: Use this id instead of generating one

        Returns:
            The document id

        Raises:
            DuplicateError: If document_id is given and already exists
        """
        pass

    @abstractmethod
    async def get_document(
        self,
        collection: str,
        document_id: str,
    ) -> Optional[dict[str, Any]]:
        """
        Retrieve a document by id.

        Returns:
            The document fields plus "id", or None if not found
        """
        pass

    @abstractmethod
    async def list_documents(
        self,
        collection: str,
        filters: Optional[list[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        List documents matching every filter.

        Args:
            collection: Collection name
            filters: (field, operator, value) triples, all of which must match
            order_by: Field to sort by
            descending: Sort direction
            limit: Maximum number of results

        Returns:
            Matching documents, each including "id"
        """
        pass

    @abstractmethod
    async def update_document(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Update some fields of a document.

        Args:
            collection: Collection name
            document_id: Document to update
            fields: Fields to overwrite
            expected_version: When given, the update only applies if the
                stored version equals it; the version is then bumped

        Returns:
            The document version after the update (0 for unversioned writes)

        Raises:
            NotFoundError: If the document doesn't exist
            ConflictError: If expected_version doesn't match
        """
        pass

    @abstractmethod
    async def delete_document(self, collection: str, document_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted, False if it didn't exist
        """
        pass

    @abstractmethod
    async def commit_batch(self, operations: list[BatchOperation]) -> None:
        """
        Apply several writes atomically: all of them or none.

        Raises:
            NotFoundError: If an update targets a missing document
            ConflictError: If a version check fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one account creation flow).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'shared_account', 'invite')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConflictError(StorageError):
    """The stored version differs from the one the caller read."""

    def __init__(self, collection: str, document_id: str, expected: int, actual: Optional[int]):
        self.collection = collection
        self.document_id = document_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{collection}/{document_id} is at version {actual}, expected {expected}"
        )


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
