"""Billing services package (Stripe subscriptions)."""

from fintrack.services.billing.errors import (
    BillingConfigurationError,
    BillingError,
    PaymentIncompleteError,
    WebhookVerificationError,
)
from fintrack.services.billing.stripe_service import (
    DEFAULT_PRICES,
    StripeBillingService,
    format_price,
)

__all__ = [
    "BillingConfigurationError",
    "BillingError",
    "PaymentIncompleteError",
    "WebhookVerificationError",
    "DEFAULT_PRICES",
    "StripeBillingService",
    "format_price",
]
