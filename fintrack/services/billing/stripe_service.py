"""
Billing Service using Stripe

DESIGN DECISION: Stripe is the source of truth for payments, the user
document is the source of truth for the plan.
Every Stripe event that changes what a user paid for ends in one
UserDirectory.update_plan() call. The capacity policy and the analytics
gate read the plan from the user document, so the next check after a
payment sees the new tier.

This service handles:
1. Checkout sessions for paid plans
2. Verifying a completed checkout from the success redirect
3. Cancelling and switching subscriptions
4. Display prices
5. Webhook events

Payment processing itself stays with Stripe.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import stripe
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.audit import AuditLogger
from fintrack.config import StripeSettings
from fintrack.models import (
    AuditEventBuilder,
    CheckoutSession,
    PlanChange,
    PlanInterval,
    PlanTier,
    PriceDisplay,
    SubscriptionInfo,
    WebhookOutcome,
)
from fintrack.services.billing.errors import (
    BillingConfigurationError,
    BillingError,
    PaymentIncompleteError,
    WebhookVerificationError,
)
from fintrack.services.storage import NotFoundError
from fintrack.services.users import UserDirectory


logger = structlog.get_logger(__name__)


# Shown when a price can't be fetched from Stripe (amounts in cents)
DEFAULT_PRICES: dict[PlanTier, dict[PlanInterval, PriceDisplay]] = {
    PlanTier.FREE: {
        PlanInterval.MONTHLY: PriceDisplay(amount=0, formatted="€0"),
        PlanInterval.YEARLY: PriceDisplay(amount=0, formatted="€0"),
    },
    PlanTier.PRO: {
        PlanInterval.MONTHLY: PriceDisplay(amount=999, formatted="€9.99"),
        PlanInterval.YEARLY: PriceDisplay(amount=9999, formatted="€99.99"),
    },
    PlanTier.ULTRA: {
        PlanInterval.MONTHLY: PriceDisplay(amount=1999, formatted="€19.99"),
        PlanInterval.YEARLY: PriceDisplay(amount=20999, formatted="€209.99"),
    },
}

BILLABLE_PLANS = (PlanTier.PRO, PlanTier.ULTRA)

# Connection problems and rate limits are worth a second try; card or
# request errors are not
retry_transient = retry(
    retry=retry_if_exception_type((stripe.APIConnectionError, stripe.RateLimitError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def format_price(amount: int, currency: str) -> str:
    symbol = "€" if currency.lower() == "eur" else "$"
    return f"{symbol}{amount / 100:.2f}"


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


class StripeBillingService:
    """
    Subscription billing for paid plans.

    Usage:
        billing = StripeBillingService(settings.stripe, directory, audit_logger)
        session = await billing.create_checkout_session(uid, PlanTier.PRO, PlanInterval.MONTHLY)
        # redirect the user to session.url
    """

    def __init__(
        self,
        settings: StripeSettings,
        directory: UserDirectory,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings
        self._directory = directory
        self._audit_logger = audit_logger

        stripe.api_key = settings.secret_key
        stripe.api_version = settings.api_version

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    async def create_checkout_session(
        self,
        user_id: str,
        plan: PlanTier,
        interval: PlanInterval,
        email: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Start a subscription checkout.

        An existing subscription is cancelled first (best effort) and an
        existing Stripe customer is reused.

        Raises:
            BillingError: For the free plan or a Stripe failure
            BillingConfigurationError: If no price is configured
        """
        if plan not in BILLABLE_PLANS:
            raise BillingError(f"The {plan.value} plan does not require checkout")

        price_id = self._price_id(plan, interval)

        user = await self._directory.get_user(user_id)
        if user and user.stripe_subscription_id:
            await self._cancel_existing(user_id, user.stripe_subscription_id)

        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": (
                f"{self._settings.app_url}/dashboard"
                "?checkout=success&session_id={CHECKOUT_SESSION_ID}"
            ),
            "cancel_url": f"{self._settings.app_url}/dashboard/plan?checkout=cancel",
            "metadata": {
                "userId": user_id,
                "plan": plan.value,
                "interval": interval.value,
            },
        }
        if user and user.stripe_customer_id:
            params["customer"] = user.stripe_customer_id
        elif email:
            params["customer_email"] = email

        try:
            session = self._create_session(params)
        except stripe.StripeError as e:
            await self._external_error("create_checkout_session", e)
            raise BillingError(f"Unable to create checkout session: {e}")

        logger.info("checkout_started", user_id=user_id, plan=plan.value, interval=interval.value)
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.checkout_started(user_id, plan.value, interval.value)
            )

        return CheckoutSession(session_id=session["id"], url=session["url"])

    async def verify_session(self, session_id: str) -> PlanChange:
        """
        Confirm a completed checkout and apply the plan it paid for.

        Raises:
            PaymentIncompleteError: If the session is not paid
            BillingError: If the session lacks its metadata or Stripe fails
        """
        try:
            session = self._retrieve_session(session_id)
        except stripe.StripeError as e:
            await self._external_error("verify_session", e)
            raise BillingError(f"Unable to verify session: {e}")

        payment_status = session.get("payment_status")
        if payment_status != "paid":
            raise PaymentIncompleteError(session_id, str(payment_status))

        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id or not metadata.get("plan") or not metadata.get("interval"):
            raise BillingError(f"Checkout session {session_id} is missing its metadata")

        change = PlanChange(
            user_id=user_id,
            plan=self._parse_plan(metadata["plan"]),
            interval=self._parse_interval(metadata["interval"]),
            stripe_customer_id=_object_id(session.get("customer")),
            stripe_subscription_id=_object_id(session.get("subscription")),
        )
        await self._apply(change, source="checkout")
        return change

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    async def cancel_subscription(self, user_id: str, subscription_id: str) -> SubscriptionInfo:
        """
        Cancel at the end of the billing period.

        The plan stays as it is; the subscription.deleted webhook downgrades
        the user when the period is over.
        """
        try:
            subscription = self._modify_subscription(subscription_id, cancel_at_period_end=True)
        except stripe.StripeError as e:
            await self._external_error("cancel_subscription", e)
            raise BillingError(f"Unable to cancel subscription: {e}")

        logger.info("subscription_cancelled", user_id=user_id, subscription_id=subscription_id)
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.subscription_cancelled(user_id, subscription_id)
            )
        return self._to_info(subscription)

    async def subscription_info(self, subscription_id: str) -> SubscriptionInfo:
        try:
            subscription = self._retrieve_subscription(subscription_id)
        except stripe.StripeError as e:
            await self._external_error("subscription_info", e)
            raise BillingError(f"Unable to fetch subscription info: {e}")
        return self._to_info(subscription)

    async def update_subscription(
        self,
        user_id: str,
        subscription_id: str,
        plan: PlanTier,
        interval: PlanInterval,
    ) -> PlanChange:
        """
        Switch an active subscription to another plan or interval.

        The difference is invoiced immediately.

        Raises:
            BillingConfigurationError: If no price is configured
            BillingError: If Stripe fails
        """
        if plan not in BILLABLE_PLANS:
            raise BillingError(f"Cannot switch a subscription to the {plan.value} plan")
        price_id = self._price_id(plan, interval)

        try:
            current = self._retrieve_subscription(subscription_id)
            item_id = current["items"]["data"][0]["id"]
            updated = self._modify_subscription(
                subscription_id,
                items=[{"id": item_id, "price": price_id}],
                proration_behavior="always_invoice",
                metadata={
                    "userId": user_id,
                    "plan": plan.value,
                    "interval": interval.value,
                },
            )
        except stripe.StripeError as e:
            await self._external_error("update_subscription", e)
            raise BillingError(f"Unable to update subscription: {e}")

        change = PlanChange(
            user_id=user_id,
            plan=plan,
            interval=interval,
            stripe_customer_id=_object_id(updated.get("customer")),
            stripe_subscription_id=updated.get("id") or subscription_id,
        )
        await self._apply(change, source="subscription_update")
        return change

    async def list_prices(self) -> dict[PlanTier, dict[PlanInterval, PriceDisplay]]:
        """Display prices per plan and interval; defaults stand in for failed lookups."""
        prices = {
            plan: dict(by_interval) for plan, by_interval in DEFAULT_PRICES.items()
        }
        for plan in BILLABLE_PLANS:
            for interval in PlanInterval:
                price_id = self._settings.price_id(plan.value, interval.value)
                if not price_id:
                    continue
                try:
                    price = self._retrieve_price(price_id)
                except stripe.StripeError as e:
                    logger.warning(
                        "price_lookup_failed",
                        plan=plan.value,
                        interval=interval.value,
                        error=str(e),
                    )
                    continue
                amount = price.get("unit_amount") or 0
                currency = price.get("currency") or "eur"
                prices[plan][interval] = PriceDisplay(
                    amount=amount,
                    currency=currency,
                    formatted=format_price(amount, currency),
                )
        return prices

    # =========================================================================
    # WEBHOOKS
    # =========================================================================

    async def handle_webhook(self, payload: bytes, signature: str) -> WebhookOutcome:
        """
        Verify and process a Stripe webhook.

        Unknown event types and events without a userId are acknowledged
        and ignored.

        Raises:
            WebhookVerificationError: If the payload or signature is invalid
            NotFoundError: If the event names a user that doesn't exist
        """
        if not signature:
            raise WebhookVerificationError("Missing stripe-signature header")
        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self._settings.webhook_secret
            )
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("webhook_verification_failed", error=str(e))
            raise WebhookVerificationError(f"Invalid webhook: {e}")

        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type == "checkout.session.completed":
            change = self._change_from_checkout(obj)
        elif event_type == "customer.subscription.updated":
            change = self._change_from_subscription(obj)
        elif event_type == "customer.subscription.deleted":
            change = self._change_from_deletion(obj)
        else:
            logger.debug("webhook_ignored", event_type=event_type)
            return WebhookOutcome(event_type=event_type, handled=False)

        if change is None:
            logger.info("webhook_without_user", event_type=event_type)
            return WebhookOutcome(event_type=event_type, handled=False)

        try:
            await self._apply(change, source=f"webhook:{event_type}")
        except NotFoundError as e:
            # Caller answers non-2xx and Stripe redelivers the event
            logger.error("webhook_user_missing", event_type=event_type, user_id=change.user_id)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    "webhook_user_missing",
                    str(e),
                    details={"event_type": event_type, "user_id": change.user_id},
                )
            raise
        return WebhookOutcome(event_type=event_type, handled=True, plan_change=change)

    def _change_from_checkout(self, session: Any) -> Optional[PlanChange]:
        metadata = session.get("metadata") or {}
        if not (metadata.get("userId") and metadata.get("plan") and metadata.get("interval")):
            return None
        return PlanChange(
            user_id=metadata["userId"],
            plan=self._parse_plan(metadata["plan"]),
            interval=self._parse_interval(metadata["interval"]),
            stripe_customer_id=_object_id(session.get("customer")),
            stripe_subscription_id=_object_id(session.get("subscription")),
        )

    def _change_from_subscription(self, subscription: Any) -> Optional[PlanChange]:
        metadata = subscription.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id:
            return None

        items = (subscription.get("items") or {}).get("data") or []
        price = items[0].get("price") if items else None
        price = price or {}

        recurring = price.get("recurring") or {}
        interval = PlanInterval.YEARLY if recurring.get("interval") == "year" else PlanInterval.MONTHLY

        if metadata.get("plan"):
            plan = self._parse_plan(metadata["plan"])
        else:
            # No metadata: infer from the price nickname, pro when unsure
            nickname = (price.get("nickname") or "").lower()
            plan = PlanTier.ULTRA if "ultra" in nickname else PlanTier.PRO

        return PlanChange(
            user_id=user_id,
            plan=plan,
            interval=interval,
            stripe_customer_id=_object_id(subscription.get("customer")),
            stripe_subscription_id=subscription.get("id"),
        )

    def _change_from_deletion(self, subscription: Any) -> Optional[PlanChange]:
        metadata = subscription.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id:
            return None
        return PlanChange(
            user_id=user_id,
            plan=PlanTier.FREE,
            interval=PlanInterval.MONTHLY,
            stripe_customer_id=_object_id(subscription.get("customer")),
            stripe_subscription_id="",
        )

    # =========================================================================
    # STRIPE CALLS
    # =========================================================================

    @retry_transient
    def _create_session(self, params: dict) -> Any:
        return stripe.checkout.Session.create(**params)

    @retry_transient
    def _retrieve_session(self, session_id: str) -> Any:
        return stripe.checkout.Session.retrieve(session_id, expand=["subscription"])

    @retry_transient
    def _retrieve_subscription(self, subscription_id: str) -> Any:
        return stripe.Subscription.retrieve(subscription_id)

    @retry_transient
    def _modify_subscription(self, subscription_id: str, **params) -> Any:
        return stripe.Subscription.modify(subscription_id, **params)

    @retry_transient
    def _retrieve_price(self, price_id: str) -> Any:
        return stripe.Price.retrieve(price_id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _cancel_existing(self, user_id: str, subscription_id: str) -> None:
        """Cancel the user's current subscription; a failure does not block checkout."""
        try:
            stripe.Subscription.cancel(subscription_id)
            logger.info("existing_subscription_cancelled", user_id=user_id, subscription_id=subscription_id)
        except stripe.StripeError as e:
            logger.warning(
                "existing_subscription_cancel_failed",
                user_id=user_id,
                subscription_id=subscription_id,
                error=str(e),
            )

    async def _apply(self, change: PlanChange, source: str) -> None:
        await self._directory.update_plan(
            change.user_id,
            change.plan,
            change.interval,
            stripe_customer_id=change.stripe_customer_id,
            stripe_subscription_id=change.stripe_subscription_id,
            source=source,
        )

    async def _external_error(self, operation: str, error: Exception) -> None:
        logger.error("stripe_error", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_external_service_error(
                "stripe", f"{operation}: {error}"
            )

    def _price_id(self, plan: PlanTier, interval: PlanInterval) -> str:
        price_id = self._settings.price_id(plan.value, interval.value)
        if not price_id:
            raise BillingConfigurationError(
                f"Price ID not configured for {plan.value}/{interval.value}"
            )
        return price_id

    @staticmethod
    def _parse_plan(value: str) -> PlanTier:
        try:
            return PlanTier(value)
        except ValueError:
            raise BillingError(f"Unknown plan in billing metadata: {value}")

    @staticmethod
    def _parse_interval(value: str) -> PlanInterval:
        try:
            return PlanInterval(value)
        except ValueError:
            raise BillingError(f"Unknown interval in billing metadata: {value}")

    @staticmethod
    def _to_info(subscription: Any) -> SubscriptionInfo:
        return SubscriptionInfo(
            subscription_id=subscription.get("id", ""),
            status=subscription.get("status", ""),
            current_period_start=_timestamp(subscription.get("current_period_start")),
            current_period_end=_timestamp(subscription.get("current_period_end")),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            cancel_at=_timestamp(subscription.get("cancel_at")),
        )
