"""
Analytics Result Models

Everything the analytics engine returns. Amounts stay Decimal end to end;
rates and scores are floats (percentages, 0-100).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from fintrack.models.account import PlanTier


class HistoryPeriod(str, Enum):
    """
    Lookback window for balance history.

    DAY   - last 24 hours, hourly points
    WEEK  - last 7 days, daily points
    MONTH - last 30 days, daily points
    YEAR  - last 12 months, monthly points
    ALL   - since the first transaction, granularity picked from the span
    """
    DAY = "daily"
    WEEK = "weekly"
    MONTH = "monthly"
    YEAR = "yearly"
    ALL = "all"


class FlowPeriod(str, Enum):
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    ALL = "all"


class AnalyticsFeature(str, Enum):
    """Every gated analytics series."""
    BALANCE_HISTORY_DAY = "balance_history_day"
    BALANCE_HISTORY_WEEK = "balance_history_week"
    BALANCE_HISTORY_MONTH = "balance_history_month"
    BALANCE_HISTORY_YEAR = "balance_history_year"
    BALANCE_HISTORY_ALL = "balance_history_all"
    CASH_FLOW = "cash_flow"
    EXPENSE_CATEGORIES = "expense_categories"
    FUND_ALLOCATION = "fund_allocation"
    BURN_RATE = "burn_rate"
    SAVING_RATE = "saving_rate"
    RECURRING_VS_VARIABLE = "recurring_vs_variable"
    BUDGET_VS_ACTUAL = "budget_vs_actual"
    PERIOD_COMPARISON = "period_comparison"
    BALANCE_PROJECTION = "balance_projection"
    EXPENSE_WATERFALL = "expense_waterfall"
    FINANCIAL_STABILITY = "financial_stability"
    MONEY_FLOW = "money_flow"
    SPENDING_HEATMAP = "spending_heatmap"
    CUMULATIVE_EXPENSES = "cumulative_expenses"


# =============================================================================
# BALANCE SERIES
# =============================================================================

class BalancePoint(BaseModel):
    """
    Balance sampled at one instant.

    balance is what gets displayed (floored at zero when clamping is on);
    raw_balance is the unclamped reconstruction.
    """
    at: datetime
    balance: Decimal
    raw_balance: Decimal


class BalanceSeries(BaseModel):
    period: HistoryPeriod
    anchor_balance: Decimal
    points: list[BalancePoint] = Field(default_factory=list)
    clamped: bool = Field(
        default=False,
        description="True when at least one point was floored at zero"
    )


class MonthlyBucket(BaseModel):
    year: int
    month: int
    label: str
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    raw_balance: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class ProjectedMonth(BaseModel):
    year: int
    month: int
    label: str
    balance: Decimal
    raw_balance: Decimal


class BalanceProjection(BaseModel):
    """Constant-rate forecast from the averaged monthly net."""
    starting_balance: Decimal
    average_monthly_income: Decimal
    average_monthly_expenses: Decimal
    months: list[ProjectedMonth] = Field(default_factory=list)

    @property
    def monthly_delta(self) -> Decimal:
        return self.average_monthly_income - self.average_monthly_expenses


class ExpensePoint(BaseModel):
    at: datetime
    total: Decimal


class ExpenseSeries(BaseModel):
    period: HistoryPeriod
    points: list[ExpensePoint] = Field(default_factory=list)


# =============================================================================
# AGGREGATIONS
# =============================================================================

class CategoryAmount(BaseModel):
    name: str
    amount: Decimal


class Totals(BaseModel):
    income: Decimal
    expenses: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class RecurringSplit(BaseModel):
    recurring: Decimal
    variable: Decimal


class BudgetLine(BaseModel):
    """Monthly average spend for a category against a suggested budget."""
    name: str
    budget: Decimal
    actual: Decimal


class PeriodDelta(BaseModel):
    current: Decimal
    previous: Decimal
    change_percent: float


class PeriodComparison(BaseModel):
    month_over_month: PeriodDelta
    year_over_year: PeriodDelta


class AccountFlow(BaseModel):
    name: str
    inflow: Decimal = Decimal("0")
    outflow: Decimal = Decimal("0")


class MoneyFlow(BaseModel):
    period: FlowPeriod
    top_income: list[CategoryAmount] = Field(default_factory=list)
    top_expenses: list[CategoryAmount] = Field(default_factory=list)
    account_flows: list[AccountFlow] = Field(default_factory=list)


class WaterfallStep(BaseModel):
    label: str
    value: Decimal


class StabilityComponent(BaseModel):
    name: str
    score: float = Field(ge=0.0, le=100.0)


class FinancialStability(BaseModel):
    overall: float = Field(ge=0.0, le=100.0)
    components: list[StabilityComponent] = Field(default_factory=list)


class HeatmapDay(BaseModel):
    day: date
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class AllocationSlice(BaseModel):
    name: str
    balance: Decimal
    color: str
    shared: bool = False


# =============================================================================
# DASHBOARD
# =============================================================================

class LockedFeature(BaseModel):
    feature: AnalyticsFeature
    required_plan: PlanTier


class DashboardReport(BaseModel):
    """
    Every analytics series the caller's plan unlocks.

    Locked series are None and listed in locked_features.
    """
    user_id: str
    plan: PlanTier
    generated_at: datetime
    anchor_balance: Decimal

    balance_history: Optional[BalanceSeries] = None
    cash_flow: Optional[list[MonthlyBucket]] = None
    expense_categories: Optional[list[CategoryAmount]] = None
    fund_allocation: Optional[list[AllocationSlice]] = None
    burn_rate: Optional[Decimal] = None
    saving_rate: Optional[float] = None
    recurring_vs_variable: Optional[RecurringSplit] = None
    budget_vs_actual: Optional[list[BudgetLine]] = None
    period_comparison: Optional[PeriodComparison] = None
    balance_projection: Optional[BalanceProjection] = None
    expense_waterfall: Optional[list[WaterfallStep]] = None
    financial_stability: Optional[FinancialStability] = None
    money_flow: Optional[MoneyFlow] = None
    spending_heatmap: Optional[list[HeatmapDay]] = None
    cumulative_expenses: Optional[ExpenseSeries] = None

    locked_features: list[LockedFeature] = Field(default_factory=list)
