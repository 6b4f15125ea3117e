"""
Analytics Plan Gating

Each analytics series has a minimum plan. Tiers are ordered, so a series
gated at "pro" is also open to ultra and admin users.
"""

from fintrack.models import AnalyticsFeature, HistoryPeriod, PlanTier
from fintrack.services.sharing.errors import PermissionDenied


FEATURE_PLANS: dict[AnalyticsFeature, PlanTier] = {
    AnalyticsFeature.BALANCE_HISTORY_DAY: PlanTier.FREE,
    AnalyticsFeature.BALANCE_HISTORY_WEEK: PlanTier.FREE,
    AnalyticsFeature.BALANCE_HISTORY_MONTH: PlanTier.PRO,
    AnalyticsFeature.BALANCE_HISTORY_YEAR: PlanTier.PRO,
    AnalyticsFeature.BALANCE_HISTORY_ALL: PlanTier.ULTRA,
    AnalyticsFeature.CASH_FLOW: PlanTier.FREE,
    AnalyticsFeature.EXPENSE_CATEGORIES: PlanTier.FREE,
    AnalyticsFeature.FUND_ALLOCATION: PlanTier.FREE,
    AnalyticsFeature.BURN_RATE: PlanTier.PRO,
    AnalyticsFeature.SAVING_RATE: PlanTier.PRO,
    AnalyticsFeature.RECURRING_VS_VARIABLE: PlanTier.PRO,
    AnalyticsFeature.BUDGET_VS_ACTUAL: PlanTier.PRO,
    AnalyticsFeature.PERIOD_COMPARISON: PlanTier.PRO,
    AnalyticsFeature.BALANCE_PROJECTION: PlanTier.ULTRA,
    AnalyticsFeature.EXPENSE_WATERFALL: PlanTier.ULTRA,
    AnalyticsFeature.FINANCIAL_STABILITY: PlanTier.ULTRA,
    AnalyticsFeature.MONEY_FLOW: PlanTier.ULTRA,
    AnalyticsFeature.SPENDING_HEATMAP: PlanTier.ULTRA,
    AnalyticsFeature.CUMULATIVE_EXPENSES: PlanTier.ULTRA,
}

_HISTORY_FEATURES = {
    HistoryPeriod.DAY: AnalyticsFeature.BALANCE_HISTORY_DAY,
    HistoryPeriod.WEEK: AnalyticsFeature.BALANCE_HISTORY_WEEK,
    HistoryPeriod.MONTH: AnalyticsFeature.BALANCE_HISTORY_MONTH,
    HistoryPeriod.YEAR: AnalyticsFeature.BALANCE_HISTORY_YEAR,
    HistoryPeriod.ALL: AnalyticsFeature.BALANCE_HISTORY_ALL,
}


class FeatureLocked(PermissionDenied):
    """The caller's plan does not unlock this analytics series."""

    code = "feature_locked"

    def __init__(self, feature: AnalyticsFeature, plan: PlanTier):
        self.feature = feature
        self.plan = plan
        self.required_plan = required_plan(feature)
        super().__init__(
            f"{feature.value} requires the {self.required_plan.value} plan "
            f"(current plan: {plan.value})"
        )


def required_plan(feature: AnalyticsFeature) -> PlanTier:
    return FEATURE_PLANS[feature]


def can_access(plan: PlanTier, feature: AnalyticsFeature) -> bool:
    return plan.at_least(required_plan(feature))


def history_feature(period: HistoryPeriod) -> AnalyticsFeature:
    """The gated feature behind a balance history window."""
    return _HISTORY_FEATURES[period]
