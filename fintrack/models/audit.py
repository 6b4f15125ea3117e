"""
Audit Models for Fintrack

Every state change in sharing, plans and billing is logged for audit purposes.
This provides:
1. Complete traceability of membership changes
2. Debugging information when things go wrong
3. A record of who changed which plan and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from fintrack.models.base import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Shared accounts
    SHARED_ACCOUNT_CREATED = "shared_account_created"
    SHARED_ACCOUNT_UPDATED = "shared_account_updated"
    SHARED_ACCOUNT_DELETED = "shared_account_deleted"
    SHARED_ACCOUNTS_REORDERED = "shared_accounts_reordered"

    # Invites
    INVITE_SENT = "invite_sent"
    INVITE_FAILED = "invite_failed"
    INVITE_ACCEPTED = "invite_accepted"
    INVITE_REJECTED = "invite_rejected"
    INVITE_CANCELLED = "invite_cancelled"

    # Membership
    MEMBER_LEFT = "member_left"
    MEMBER_REMOVED = "member_removed"

    # Plans and billing
    PLAN_UPDATED = "plan_updated"
    PLAN_LIMITS_INITIALIZED = "plan_limits_initialized"
    PLAN_LIMITS_UPDATED = "plan_limits_updated"
    CHECKOUT_STARTED = "checkout_started"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"

    # Analytics
    ANALYTICS_ACCESS_DENIED = "analytics_access_denied"

    # System events
    CONCURRENT_MODIFICATION = "concurrent_modification"
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every state change creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'shared_account', 'invite', 'user')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    actor_id: Optional[str] = Field(
        default=None,
        description="User who triggered the event, if any"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., account creation and its invites)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """
        Convert to a document for the audit collection.

        Same fields as the log dict but the timestamp stays a datetime so
        the store can order by it.
        """
        document = self.to_log_dict()
        document["timestamp"] = self.timestamp
        return document


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.shared_account_created(account_id, owner_id, name, correlation_id)
        event = AuditEventBuilder.invite_accepted(invite_id, account_id, user_id)
    """

    @staticmethod
    def shared_account_created(
        account_id: str,
        owner_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SHARED_ACCOUNT_CREATED,
            entity_type="shared_account",
            entity_id=account_id,
            actor_id=owner_id,
            correlation_id=correlation_id,
            description=f"Shared account created: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def shared_account_updated(
        account_id: str,
        actor_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SHARED_ACCOUNT_UPDATED,
            entity_type="shared_account",
            entity_id=account_id,
            actor_id=actor_id,
            description=f"Shared account updated ({len(fields)} fields)",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def shared_account_deleted(
        account_id: str,
        actor_id: str,
        invites_removed: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SHARED_ACCOUNT_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="shared_account",
            entity_id=account_id,
            actor_id=actor_id,
            description=f"Shared account deleted with {invites_removed} invites",
            details={"invites_removed": invites_removed},
            is_user_action=True,
        )

    @staticmethod
    def shared_accounts_reordered(
        user_id: str,
        account_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SHARED_ACCOUNTS_REORDERED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"Shared accounts reordered ({len(account_ids)} accounts)",
            details={"account_ids": account_ids},
            is_user_action=True,
        )

    @staticmethod
    def invite_sent(
        invite_id: str,
        account_id: str,
        inviter_id: str,
        invited_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITE_SENT,
            entity_type="invite",
            entity_id=invite_id,
            actor_id=inviter_id,
            correlation_id=correlation_id,
            description="Invite sent to shared account",
            details={
                "shared_account_id": account_id,
                "invited_user_id": invited_user_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def invite_failed(
        account_id: str,
        inviter_id: str,
        invited_user_id: str,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="shared_account",
            entity_id=account_id,
            actor_id=inviter_id,
            correlation_id=correlation_id,
            description="Invite could not be sent",
            details={"invited_user_id": invited_user_id},
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def invite_accepted(
        invite_id: str,
        account_id: str,
        user_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITE_ACCEPTED,
            entity_type="invite",
            entity_id=invite_id,
            actor_id=user_id,
            description="Invite accepted",
            details={"shared_account_id": account_id},
            is_user_action=True,
        )

    @staticmethod
    def invite_rejected(
        invite_id: str,
        account_id: str,
        user_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITE_REJECTED,
            entity_type="invite",
            entity_id=invite_id,
            actor_id=user_id,
            description="Invite rejected",
            details={"shared_account_id": account_id},
            is_user_action=True,
        )

    @staticmethod
    def invite_cancelled(
        invite_id: str,
        account_id: str,
        user_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITE_CANCELLED,
            entity_type="invite",
            entity_id=invite_id,
            actor_id=user_id,
            description="Invite cancelled by inviter",
            details={"shared_account_id": account_id},
            is_user_action=True,
        )

    @staticmethod
    def member_left(account_id: str, user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_LEFT,
            entity_type="shared_account",
            entity_id=account_id,
            actor_id=user_id,
            description="Member left shared account",
            is_user_action=True,
        )

    @staticmethod
    def member_removed(
        account_id: str,
        member_user_id: str,
        owner_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            severity=AuditSeverity.WARNING,
            entity_type="shared_account",
            entity_id=account_id,
            actor_id=owner_id,
            description="Member removed by owner",
            details={"member_user_id": member_user_id},
            is_user_action=True,
        )

    @staticmethod
    def plan_updated(
        user_id: str,
        plan: str,
        interval: str,
        source: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_UPDATED,
            entity_type="user",
            entity_id=user_id,
            description=f"Plan updated to {plan} ({interval}) via {source}",
            details={"plan": plan, "interval": interval, "source": source},
        )

    @staticmethod
    def plan_limits_initialized(plans: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_LIMITS_INITIALIZED,
            entity_type="plan_limits",
            description="Default plan limits written",
            details={"plans": plans},
        )

    @staticmethod
    def plan_limits_updated(plan: str, limits: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_LIMITS_UPDATED,
            entity_type="plan_limits",
            entity_id=plan,
            description=f"Limits updated for plan {plan}",
            details={"limits": limits},
            is_user_action=True,
        )

    @staticmethod
    def checkout_started(user_id: str, plan: str, interval: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHECKOUT_STARTED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"Checkout started for {plan} ({interval})",
            details={"plan": plan, "interval": interval},
            is_user_action=True,
        )

    @staticmethod
    def subscription_cancelled(user_id: str, subscription_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_CANCELLED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description="Subscription set to cancel at period end",
            details={"subscription_id": subscription_id},
            is_user_action=True,
        )

    @staticmethod
    def analytics_access_denied(
        user_id: str,
        feature: str,
        plan: str,
        required_plan: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYTICS_ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"Analytics feature {feature} requires {required_plan}",
            details={
                "feature": feature,
                "plan": plan,
                "required_plan": required_plan,
            },
        )

    @staticmethod
    def concurrent_modification(
        entity_type: str,
        entity_id: str,
        actor_id: Optional[str],
        expected_version: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONCURRENT_MODIFICATION,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=f"Write rejected: {entity_type} changed since it was read",
            details={"expected_version": expected_version},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
