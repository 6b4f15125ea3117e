"""
Sharing Services Package

Shared accounts: capacity policy, membership and invite stores, and the
service that ties them together.
"""

from fintrack.services.sharing.errors import (
    AlreadyMember,
    CannotRemoveOwner,
    CapacityExceeded,
    ConfigurationMissing,
    Conflict,
    DuplicateInvite,
    InvalidOperation,
    InviteeQuotaExceeded,
    InviteNotPending,
    NotFound,
    OwnerCannotLeave,
    PermissionDenied,
    QuotaExceeded,
    SharedAccountError,
)
from fintrack.services.sharing.policy import (
    DEFAULT_PLAN_LIMITS,
    CapacityPolicy,
    PlanCapacity,
    PlanLimitsAdmin,
)
from fintrack.services.sharing.store import (
    InvalidTransitionError,
    InviteStore,
    SharedAccountStore,
)
from fintrack.services.sharing.service import SharedAccountService

__all__ = [
    # Errors
    "AlreadyMember",
    "CannotRemoveOwner",
    "CapacityExceeded",
    "ConfigurationMissing",
    "Conflict",
    "DuplicateInvite",
    "InvalidOperation",
    "InviteeQuotaExceeded",
    "InviteNotPending",
    "NotFound",
    "OwnerCannotLeave",
    "PermissionDenied",
    "QuotaExceeded",
    "SharedAccountError",
    # Policy
    "DEFAULT_PLAN_LIMITS",
    "CapacityPolicy",
    "PlanCapacity",
    "PlanLimitsAdmin",
    # Stores
    "InvalidTransitionError",
    "InviteStore",
    "SharedAccountStore",
    # Service
    "SharedAccountService",
]
