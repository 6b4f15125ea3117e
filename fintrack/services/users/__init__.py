"""User directory package."""

from fintrack.services.users.directory import UserDirectory

__all__ = ["UserDirectory"]
