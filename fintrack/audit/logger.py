"""
Audit Logger

DESIGN DECISION: Every state change goes through the audit logger.
Membership changes, invites, plan changes and refused analytics requests
all leave an event, locally as a structured log line and in the audit
collection when a storage backend is configured.

Persisting is best effort. A failing audit collection is reported in the
local log and the operation being audited carries on.

Events from one multi-step operation (an account created together with
its initial invites) share a correlation id, see create_correlation_id().
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from fintrack.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from fintrack.services.storage.interface import AuditStorageInterface


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


_LEVELS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


class AuditLogger:
    """
    Writes audit events to the local log and, optionally, to storage.

    Usage:
        audit = AuditLogger(DocumentAuditStorage(store))
        await audit.log(AuditEventBuilder.member_left(account_id, uid))
        events = await audit.history("shared_account", account_id)
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def persistent(self) -> bool:
        return self._storage is not None

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when a configured storage backend refused the
        write; the failure itself is never raised.
        """
        level = _LEVELS.get(event.severity, "info")
        getattr(self._logger, level)("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True

        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    async def history(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        """Stored events for one entity, oldest first. Empty without storage."""
        if self._storage is None:
            return []
        return await self._storage.get_events_by_entity(entity_type, entity_id)

    async def log_conflict(
        self,
        entity_type: str,
        entity_id: str,
        actor_id: Optional[str],
        expected_version: int,
    ) -> None:
        """A versioned write lost the race against another writer."""
        await self.log(
            AuditEventBuilder.concurrent_modification(
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                expected_version=expected_version,
            )
        )

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.system_error(
                error_type=error_type,
                error_message=error_message,
                details=details,
                correlation_id=correlation_id,
            )
        )

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Firestore or Stripe failed in a way the caller will see."""
        await self.log(
            AuditEventBuilder.external_service_error(
                service=service,
                error_message=error_message,
                correlation_id=correlation_id,
            )
        )


def create_correlation_id() -> UUID:
    """New id tying together the events of one multi-step operation."""
    return uuid4()
