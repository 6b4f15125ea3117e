"""
Shared Account Errors

Every failure the sharing service reports is a SharedAccountError with a
human-readable message and a stable code that front ends can switch on.
None of them are retried automatically.
"""

from typing import Optional


class SharedAccountError(Exception):
    """Base exception for shared account operations."""

    code = "shared_account_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class PermissionDenied(SharedAccountError):
    """Actor lacks owner rights for the operation."""
    code = "permission_denied"


class QuotaExceeded(SharedAccountError):
    """The acting user already belongs to as many shared accounts as their plan allows."""
    code = "quota_exceeded"


class CapacityExceeded(SharedAccountError):
    """The account has reached its member limit."""
    code = "capacity_exceeded"


class InviteeQuotaExceeded(SharedAccountError):
    """The invited user's plan allows no more shared accounts."""
    code = "invitee_quota_exceeded"


class DuplicateInvite(SharedAccountError):
    """A pending invite for this account and user already exists."""
    code = "duplicate_invite"


class AlreadyMember(SharedAccountError):
    code = "already_member"


class InviteNotPending(SharedAccountError):
    """The invite was already accepted or rejected."""
    code = "invite_not_pending"


class OwnerCannotLeave(SharedAccountError):
    """The owner must delete the account instead of leaving it."""
    code = "owner_cannot_leave"


class CannotRemoveOwner(SharedAccountError):
    code = "cannot_remove_owner"


class InvalidOperation(SharedAccountError):
    code = "invalid_operation"


class NotFound(SharedAccountError):
    """Account, invite, user or membership missing."""
    code = "not_found"


class ConfigurationMissing(SharedAccountError):
    """
    Plan limits have not been initialised for a paying plan.

    Distinct from QuotaExceeded: the user is not at their limit, the
    limits simply don't exist yet.
    """
    code = "configuration_missing"


class Conflict(SharedAccountError):
    """The account changed since it was read; re-read and retry."""
    code = "conflict"
