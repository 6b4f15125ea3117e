"""
Configuration Management for Fintrack

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirestoreSettings(BaseSettings):
    """Firestore document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to the Firebase service account credentials JSON"
    )
    project_id: Optional[str] = Field(
        default=None,
        description="Google Cloud project ID (defaults to the one in the credentials)"
    )

    # Collection names
    shared_accounts_collection: str = Field(default="sharedAccounts")
    invites_collection: str = Field(default="sharedAccountInvites")
    users_collection: str = Field(default="users")
    transactions_collection: str = Field(default="transactions")
    accounts_collection: str = Field(default="accounts")
    sub_accounts_collection: str = Field(default="subAccounts")
    plan_limits_collection: str = Field(default="planLimits")
    audit_collection: str = Field(default="auditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class StripeSettings(BaseSettings):
    """Stripe billing configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STRIPE_",
        extra="ignore"
    )

    secret_key: str = Field(
        ...,
        description="Stripe secret API key"
    )
    webhook_secret: str = Field(
        ...,
        description="Signing secret of the webhook endpoint"
    )
    api_version: str = Field(
        default="2024-06-20",
        description="Pinned Stripe API version"
    )

    # Price IDs per plan and interval
    price_pro_monthly: Optional[str] = None
    price_pro_yearly: Optional[str] = None
    price_ultra_monthly: Optional[str] = None
    price_ultra_yearly: Optional[str] = None

    app_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used for checkout redirects"
    )

    def price_id(self, plan: str, interval: str) -> Optional[str]:
        """Look up the configured price for a plan/interval pair."""
        return getattr(self, f"price_{plan}_{interval}", None)


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Sharing limits
    max_members_ceiling: int = Field(
        default=10,
        ge=1,
        le=10,
        description="Ceiling on members per shared account, whatever the plan says (at most 10)"
    )

    # Analytics
    clamp_negative_balances: bool = Field(
        default=True,
        description="Floor reconstructed and projected balances at zero"
    )

    # User search
    min_search_pattern_length: int = Field(
        default=2,
        ge=1,
        description="Shortest pattern accepted by the user search"
    )
    max_search_results: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum users returned by the user search"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def stripe(self) -> StripeSettings:
        return StripeSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("firestore", "stripe", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
