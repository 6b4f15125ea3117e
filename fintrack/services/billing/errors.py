"""Billing errors."""


class BillingError(Exception):
    """Base exception for billing operations."""
    pass


class BillingConfigurationError(BillingError):
    """A price or key needed for the operation is not configured."""
    pass


class WebhookVerificationError(BillingError):
    """Webhook payload failed signature verification."""
    pass


class PaymentIncompleteError(BillingError):
    """Checkout session exists but has not been paid."""

    def __init__(self, session_id: str, payment_status: str):
        self.session_id = session_id
        self.payment_status = payment_status
        super().__init__(f"Payment not completed for {session_id}: {payment_status}")
