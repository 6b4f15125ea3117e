"""
Audit Storage on the Document Store

Audit events go to their own collection, one document per event keyed by
event_id. Works on any DocumentStoreInterface implementation.
"""

from typing import Optional
from uuid import UUID

import structlog

from fintrack.models.audit import AuditEvent
from fintrack.services.storage.interface import (
    AuditStorageInterface,
    DocumentStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class DocumentAuditStorage(AuditStorageInterface):
    """
    Document store implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, store: DocumentStoreInterface, collection: str = "auditLog"):
        self._store = store
        self._collection = collection

    def _document_to_event(self, document: dict) -> Optional[AuditEvent]:
        data = {k: v for k, v in document.items() if k != "id"}
        try:
            return AuditEvent.model_validate(data)
        except ValueError as e:
            logger.warning("audit_document_unreadable", document_id=document.get("id"), error=str(e))
            return None

    def _to_events(self, documents: list[dict]) -> list[AuditEvent]:
        events = [self._document_to_event(d) for d in documents]
        return [e for e in events if e is not None]

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await self._store.create_document(
                self._collection,
                event.to_document(),
                document_id=str(event.event_id),
            )
            return True
        except StorageError as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", event_id=str(event.event_id), error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        documents = await self._store.list_documents(
            self._collection,
            filters=[("correlation_id", "==", str(correlation_id))],
        )
        events = self._to_events(documents)
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        documents = await self._store.list_documents(
            self._collection,
            filters=[
                ("entity_type", "==", entity_type),
                ("entity_id", "==", entity_id),
            ],
        )
        events = self._to_events(documents)
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        documents = await self._store.list_documents(
            self._collection,
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return self._to_events(documents)
