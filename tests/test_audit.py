"""Tests for the audit logger."""

import pytest

from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.models import AuditEventBuilder, AuditEventType
from fintrack.services.storage import DocumentAuditStorage, InMemoryDocumentStore
from fintrack.services.storage.interface import AuditStorageInterface


class FailingStorage(AuditStorageInterface):
    async def append_event(self, event):
        raise RuntimeError("audit collection unavailable")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_events_by_entity(self, entity_type, entity_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:
    """Local logging plus best-effort persistence."""

    @pytest.mark.asyncio
    async def test_persists_events(self):
        storage = DocumentAuditStorage(InMemoryDocumentStore())
        audit = AuditLogger(storage)

        assert await audit.log(AuditEventBuilder.member_left("acc-1", "bob")) is True

        events = await storage.get_events_by_entity("shared_account", "acc-1")
        assert [e.event_type for e in events] == [AuditEventType.MEMBER_LEFT]

    @pytest.mark.asyncio
    async def test_storage_failure_is_swallowed(self):
        """A broken audit store never breaks the operation being audited."""
        audit = AuditLogger(FailingStorage())

        assert await audit.log(AuditEventBuilder.member_left("acc-1", "bob")) is False

    @pytest.mark.asyncio
    async def test_without_storage(self):
        assert await AuditLogger().log(AuditEventBuilder.member_left("acc-1", "bob")) is True

    @pytest.mark.asyncio
    async def test_helpers_share_correlation(self):
        """Related events can be traced through one correlation id."""
        storage = DocumentAuditStorage(InMemoryDocumentStore())
        audit = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await audit.log_error("sync_failed", "boom", correlation_id=correlation_id)
        await audit.log_external_service_error("stripe", "timeout", correlation_id=correlation_id)

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.SYSTEM_ERROR,
            AuditEventType.EXTERNAL_SERVICE_ERROR,
        ]

    @pytest.mark.asyncio
    async def test_log_conflict(self):
        storage = DocumentAuditStorage(InMemoryDocumentStore())
        audit = AuditLogger(storage)

        await audit.log_conflict("shared_account", "acc-1", "bob", 3)

        events = await storage.get_events_by_entity("shared_account", "acc-1")
        assert events[0].event_type == AuditEventType.CONCURRENT_MODIFICATION

    @pytest.mark.asyncio
    async def test_history(self):
        """Entity history comes from storage, and is empty without it."""
        storage = DocumentAuditStorage(InMemoryDocumentStore())
        audit = AuditLogger(storage)
        await audit.log(AuditEventBuilder.member_left("acc-1", "bob"))

        assert audit.persistent is True
        assert [e.entity_id for e in await audit.history("shared_account", "acc-1")] == ["acc-1"]
        assert await AuditLogger().history("shared_account", "acc-1") == []
