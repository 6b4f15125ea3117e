"""
Billing Models

What the billing service hands back to callers. Stripe objects never leave
the billing package.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fintrack.models.account import PlanInterval, PlanTier


class CheckoutSession(BaseModel):
    session_id: str
    url: str


class PlanChange(BaseModel):
    """A plan written to the user document after a billing event."""
    user_id: str
    plan: PlanTier
    interval: PlanInterval
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


class SubscriptionInfo(BaseModel):
    subscription_id: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    cancel_at: Optional[datetime] = None


class PriceDisplay(BaseModel):
    """A price as shown on the plan page (amount in minor units)."""
    amount: int = Field(default=0, ge=0)
    currency: str = Field(default="eur")
    formatted: str


class WebhookOutcome(BaseModel):
    event_type: str
    handled: bool
    plan_change: Optional[PlanChange] = None
