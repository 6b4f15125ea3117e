"""Configuration package."""

from fintrack.config.settings import (
    AppSettings,
    FirestoreSettings,
    Settings,
    StripeSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FirestoreSettings",
    "Settings",
    "StripeSettings",
    "get_settings",
    "validate_all_settings",
]
