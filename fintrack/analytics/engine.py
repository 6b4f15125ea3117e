"""
Analytics Engine

DESIGN DECISION: Every computation here is PURE.
The engine receives already-loaded transactions and balances and returns
result models. It never touches storage, so the same inputs always give
the same series (given the same "now").

Balances are never stored historically. The current balance is the anchor
and past balances are reconstructed by walking transactions backwards from
it: balance(t) = anchor - sum of deltas dated in (t, now].

Only income and expense move the total. Transfers move money between the
user's own accounts and partition_* entries move money into sub-accounts,
so both are neutral for the total.
"""

import calendar
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence

import structlog

from fintrack.models import (
    AccountFlow,
    AllocationSlice,
    BalancePoint,
    BalanceProjection,
    BalanceSeries,
    BudgetLine,
    CategoryAmount,
    ExpensePoint,
    ExpenseSeries,
    FinancialStability,
    FlowPeriod,
    HeatmapDay,
    HistoryPeriod,
    MoneyFlow,
    MonthlyBucket,
    PeriodComparison,
    PeriodDelta,
    PersonalAccount,
    ProjectedMonth,
    RecurringSplit,
    SharedAccount,
    StabilityComponent,
    SubAccount,
    Totals,
    Transaction,
    TransactionType,
    WaterfallStep,
    ensure_utc,
    utc_now,
)


logger = structlog.get_logger(__name__)


ZERO = Decimal("0")

UNCATEGORIZED = "Uncategorized"
OTHER_INCOME = "Other Income"
OTHER_EXPENSES = "Other Expenses"
UNKNOWN_ACCOUNT = "Unknown"

DEFAULT_ACCOUNT_COLOR = "#6B7280"
DEFAULT_SHARED_COLOR = "#8B5CF6"
SUB_ACCOUNT_ALPHA = "CC"

BUDGET_HEADROOM = Decimal("1.1")
BUDGET_TOP_CATEGORIES = 8
MONEY_FLOW_TOP_CATEGORIES = 5
STABILITY_TARGET_ACCOUNTS = 5
STABILITY_TARGET_MONTHS = 6

FLOW_PERIOD_MONTHS = {
    FlowPeriod.MONTH: 1,
    FlowPeriod.QUARTER: 3,
    FlowPeriod.YEAR: 12,
    FlowPeriod.ALL: None,
}


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def month_label(value: datetime) -> str:
    return value.strftime("%b %y")


def _percent_change(current: Decimal, previous: Decimal) -> float:
    if previous == 0:
        return 0.0
    return float((current - previous) / abs(previous) * 100)


def _clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


class AnalyticsEngine:
    """
    Reconstructs balances and aggregates transactions into chart series.

    Args:
        clamp_negative_balances: Floor displayed balances at zero. The raw
            reconstruction is always kept alongside.
        now: Clock override, mostly for tests.
    """

    def __init__(
        self,
        clamp_negative_balances: bool = True,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.clamp_negative_balances = clamp_negative_balances
        self._now = now or utc_now

    def now(self) -> datetime:
        return ensure_utc(self._now())

    # =========================================================================
    # BALANCE RECONSTRUCTION
    # =========================================================================

    def anchor_balance(
        self,
        accounts: Iterable[PersonalAccount],
        sub_accounts: Iterable[SubAccount] = (),
        shared_accounts: Iterable[SharedAccount] = (),
        include_shared: bool = True,
    ) -> Decimal:
        """Total current balance: accounts, their partitions, optionally shared accounts."""
        total = sum((a.current_balance for a in accounts), ZERO)
        total += sum((s.balance for s in sub_accounts), ZERO)
        if include_shared:
            total += sum((s.current_balance for s in shared_accounts), ZERO)
        return total

    def balance_at(
        self,
        anchor: Decimal,
        transactions: Iterable[Transaction],
        instant: datetime,
        now: Optional[datetime] = None,
    ) -> Decimal:
        """Unclamped balance at instant, reconstructed from the anchor."""
        now = now or self.now()
        instant = ensure_utc(instant)
        delta = sum(
            (
                t.signed_delta
                for t in transactions
                if not t.type.is_partition and instant < t.date <= now
            ),
            ZERO,
        )
        return anchor - delta

    def history_intervals(
        self,
        period: HistoryPeriod,
        first_transaction_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> list[datetime]:
        """Sample instants for a balance series, oldest first, ending at now."""
        now = now or self.now()

        if period == HistoryPeriod.DAY:
            return [now - timedelta(hours=i) for i in range(24, -1, -1)]
        if period == HistoryPeriod.WEEK:
            return [now - timedelta(days=i) for i in range(7, -1, -1)]
        if period == HistoryPeriod.MONTH:
            return [now - timedelta(days=i) for i in range(30, -1, -1)]
        if period == HistoryPeriod.YEAR:
            return [add_months(now, -i) for i in range(12, -1, -1)]

        # ALL: granularity follows the span since the first transaction
        if first_transaction_date is None:
            return [now]
        start = ensure_utc(first_transaction_date)
        days_diff = math.ceil((now - start) / timedelta(days=1))

        if days_diff <= 30:
            return [start + timedelta(days=i) for i in range(max(days_diff, 0) + 1)]
        if days_diff <= 365:
            weeks = math.ceil(days_diff / 7)
            return [start + timedelta(weeks=i) for i in range(weeks + 1)]

        intervals = []
        i = 0
        point = start
        while point <= now:
            intervals.append(point)
            i += 1
            point = add_months(start, i)
        return intervals

    def reconstruct_history(
        self,
        anchor: Decimal,
        transactions: Sequence[Transaction],
        period: HistoryPeriod,
    ) -> BalanceSeries:
        """
        Balance series for a lookback window.

        With no transactions the series is a single point at now carrying
        the anchor. Transactions dated after now are ignored.
        """
        now = self.now()

        if not transactions:
            return BalanceSeries(
                period=period,
                anchor_balance=anchor,
                points=[self._point(now, anchor)],
                clamped=anchor < 0 and self.clamp_negative_balances,
            )

        first = min(t.date for t in transactions)
        relevant = [t for t in transactions if not t.type.is_partition and t.date <= now]

        points = [
            self._point(instant, self.balance_at(anchor, relevant, instant, now=now))
            for instant in self.history_intervals(period, first, now=now)
        ]
        clamped = any(p.balance != p.raw_balance for p in points)
        if clamped:
            logger.debug("balance_history_clamped", period=period.value)

        return BalanceSeries(
            period=period,
            anchor_balance=anchor,
            points=points,
            clamped=clamped,
        )

    def _point(self, instant: datetime, raw: Decimal) -> BalancePoint:
        return BalancePoint(at=instant, balance=self._display(raw), raw_balance=raw)

    def _display(self, raw: Decimal) -> Decimal:
        if self.clamp_negative_balances and raw < 0:
            return ZERO
        return raw

    # =========================================================================
    # MONTHLY SERIES
    # =========================================================================

    def monthly_summary(
        self,
        transactions: Iterable[Transaction],
        anchor: Decimal = ZERO,
        months: int = 12,
    ) -> list[MonthlyBucket]:
        """
        Income and expenses per calendar month, oldest first, ending with
        the current month.

        Month-end balances are walked back from the anchor: the current
        month ends at the anchor and each earlier month ends at the next
        month's balance minus that month's net.
        """
        now = self.now()
        current_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        starts = [add_months(current_month, -i) for i in range(months - 1, -1, -1)]

        income: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
        expenses: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
        for t in transactions:
            key = (t.date.year, t.date.month)
            if t.type == TransactionType.INCOME:
                income[key] += t.amount
            elif t.type == TransactionType.EXPENSE:
                expenses[key] += t.amount

        keys = [(s.year, s.month) for s in starts]
        raw = [ZERO] * len(keys)
        if keys:
            raw[-1] = anchor
        for i in range(len(keys) - 2, -1, -1):
            following = keys[i + 1]
            raw[i] = raw[i + 1] - income[following] + expenses[following]

        return [
            MonthlyBucket(
                year=start.year,
                month=start.month,
                label=month_label(start),
                income=income[key],
                expenses=expenses[key],
                balance=self._display(raw[i]),
                raw_balance=raw[i],
            )
            for i, (start, key) in enumerate(zip(starts, keys))
        ]

    def project_balance(
        self,
        transactions: Iterable[Transaction],
        anchor: Decimal,
        months: int = 12,
    ) -> BalanceProjection:
        """Linear forecast using the average monthly income and expense."""
        buckets = self.monthly_summary(transactions, anchor)
        count = len(buckets) or 1
        average_income = sum((b.income for b in buckets), ZERO) / count
        average_expenses = sum((b.expenses for b in buckets), ZERO) / count
        delta = average_income - average_expenses

        now = self.now()
        running = anchor
        projected = []
        for i in range(months):
            running += delta
            month = add_months(now, i + 1)
            projected.append(
                ProjectedMonth(
                    year=month.year,
                    month=month.month,
                    label=month_label(month),
                    balance=self._display(running),
                    raw_balance=running,
                )
            )

        return BalanceProjection(
            starting_balance=anchor,
            average_monthly_income=average_income,
            average_monthly_expenses=average_expenses,
            months=projected,
        )

    def burn_rate(self, transactions: Iterable[Transaction]) -> Decimal:
        """Average monthly expenses over the summary window."""
        buckets = self.monthly_summary(transactions)
        if not buckets:
            return ZERO
        return sum((b.expenses for b in buckets), ZERO) / len(buckets)

    # =========================================================================
    # AGGREGATES
    # =========================================================================

    def totals(self, transactions: Iterable[Transaction]) -> Totals:
        income = ZERO
        expenses = ZERO
        for t in transactions:
            if t.type == TransactionType.INCOME:
                income += t.amount
            elif t.type == TransactionType.EXPENSE:
                expenses += t.amount
        return Totals(income=income, expenses=expenses)

    def saving_rate(self, transactions: Iterable[Transaction]) -> float:
        """Share of income not spent, in percent. Zero when there is no income."""
        totals = self.totals(transactions)
        if totals.income == 0:
            return 0.0
        return float(totals.net / totals.income * 100)

    def expenses_by_category(self, transactions: Iterable[Transaction]) -> list[CategoryAmount]:
        """Expense totals per category, largest first."""
        return self._by_category(transactions, TransactionType.EXPENSE, UNCATEGORIZED)

    def recurring_vs_variable(self, transactions: Iterable[Transaction]) -> RecurringSplit:
        recurring = ZERO
        variable = ZERO
        for t in transactions:
            if t.type != TransactionType.EXPENSE:
                continue
            if t.is_recurring:
                recurring += t.amount
            else:
                variable += t.amount
        return RecurringSplit(recurring=recurring, variable=variable)

    def budget_vs_actual(self, transactions: Iterable[Transaction]) -> list[BudgetLine]:
        """
        Monthly average spend per category with a suggested budget 10% above it.

        Only the biggest categories are returned.
        """
        lines = [
            BudgetLine(
                name=c.name,
                actual=c.amount / 12,
                budget=c.amount / 12 * BUDGET_HEADROOM,
            )
            for c in self.expenses_by_category(transactions)
        ]
        return lines[:BUDGET_TOP_CATEGORIES]

    def period_comparison(self, transactions: Iterable[Transaction]) -> PeriodComparison:
        """Net this month vs last month, and this calendar year vs last."""
        now = self.now()
        this_month = (now.year, now.month)
        previous = add_months(now.replace(day=1), -1)
        last_month = (previous.year, previous.month)

        month_net = defaultdict(lambda: ZERO)
        year_net = defaultdict(lambda: ZERO)
        for t in transactions:
            if t.type not in (TransactionType.INCOME, TransactionType.EXPENSE):
                continue
            delta = t.signed_delta
            month_net[(t.date.year, t.date.month)] += delta
            year_net[t.date.year] += delta

        return PeriodComparison(
            month_over_month=PeriodDelta(
                current=month_net[this_month],
                previous=month_net[last_month],
                change_percent=_percent_change(month_net[this_month], month_net[last_month]),
            ),
            year_over_year=PeriodDelta(
                current=year_net[now.year],
                previous=year_net[now.year - 1],
                change_percent=_percent_change(year_net[now.year], year_net[now.year - 1]),
            ),
        )

    def money_flow(
        self,
        transactions: Iterable[Transaction],
        accounts: Iterable[PersonalAccount],
        period: FlowPeriod = FlowPeriod.MONTH,
    ) -> MoneyFlow:
        """
        Where money came from and went to over the period.

        Top income and expense categories, plus transfer inflow and outflow
        per account.
        """
        now = self.now()
        span = FLOW_PERIOD_MONTHS[period]
        start = add_months(now, -span) if span is not None else None
        in_period = [t for t in transactions if start is None or t.date >= start]

        names = {a.id: a.name for a in accounts}
        flows: dict[str, AccountFlow] = {}

        def flow_for(account_id: Optional[str]) -> AccountFlow:
            name = names.get(account_id, UNKNOWN_ACCOUNT)
            if name not in flows:
                flows[name] = AccountFlow(name=name)
            return flows[name]

        for t in in_period:
            if t.type != TransactionType.TRANSFER:
                continue
            source = flow_for(t.account_id)
            source.outflow += t.amount
            if t.to_account_id:
                target = flow_for(t.to_account_id)
                target.inflow += t.amount

        income = self._by_category(in_period, TransactionType.INCOME, OTHER_INCOME)
        expenses = self._by_category(in_period, TransactionType.EXPENSE, OTHER_EXPENSES)

        return MoneyFlow(
            period=period,
            top_income=income[:MONEY_FLOW_TOP_CATEGORIES],
            top_expenses=expenses[:MONEY_FLOW_TOP_CATEGORIES],
            account_flows=list(flows.values()),
        )

    def expense_waterfall(
        self,
        transactions: Iterable[Transaction],
        accounts: Iterable[PersonalAccount],
    ) -> list[WaterfallStep]:
        """Initial balances, plus income, minus expenses, against current balances."""
        accounts = list(accounts)
        totals = self.totals(transactions)
        return [
            WaterfallStep(label="Initial", value=sum((a.initial_balance for a in accounts), ZERO)),
            WaterfallStep(label="Income", value=totals.income),
            WaterfallStep(label="Expenses", value=-totals.expenses),
            WaterfallStep(label="Current", value=sum((a.current_balance for a in accounts), ZERO)),
        ]

    def financial_stability(
        self,
        transactions: Sequence[Transaction],
        accounts: Sequence[PersonalAccount],
    ) -> FinancialStability:
        """
        Composite 0-100 score.

        Savings doubles the saving rate, diversification rewards up to five
        accounts, consistency rewards up to six active months in the summary
        window. Debt is not tracked and always scores 100.
        """
        savings = _clamp_score(self.saving_rate(transactions) * 2)
        diversification = _clamp_score(len(accounts) / STABILITY_TARGET_ACCOUNTS * 100)

        buckets = self.monthly_summary(transactions)
        active = sum(1 for b in buckets if b.income > 0 or b.expenses > 0)
        consistency = _clamp_score(active / STABILITY_TARGET_MONTHS * 100)

        components = [
            StabilityComponent(name="savings", score=savings),
            StabilityComponent(name="diversification", score=diversification),
            StabilityComponent(name="consistency", score=consistency),
            StabilityComponent(name="debt", score=100.0),
        ]
        overall = sum(c.score for c in components) / len(components)
        return FinancialStability(overall=overall, components=components)

    def spending_heatmap(
        self,
        transactions: Iterable[Transaction],
        days: int = 35,
    ) -> list[HeatmapDay]:
        """Daily income and expenses for the last `days` days (UTC dates), oldest first."""
        today = self.now().date()
        window = [today - timedelta(days=i) for i in range(days - 1, -1, -1)]
        cells: dict[date, HeatmapDay] = {d: HeatmapDay(day=d) for d in window}

        for t in transactions:
            cell = cells.get(t.date.date())
            if cell is None:
                continue
            if t.type == TransactionType.INCOME:
                cell.income += t.amount
            elif t.type == TransactionType.EXPENSE:
                cell.expenses += t.amount

        return [cells[d] for d in window]

    def cumulative_expenses(
        self,
        transactions: Sequence[Transaction],
        period: HistoryPeriod,
    ) -> ExpenseSeries:
        """Running total of expenses from the start of the window up to each point."""
        now = self.now()
        expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]
        if not expenses:
            return ExpenseSeries(period=period, points=[ExpensePoint(at=now, total=ZERO)])

        first = min(t.date for t in expenses)
        intervals = self.history_intervals(period, first, now=now)
        window_start = intervals[0]

        points = []
        for instant in intervals:
            upper = min(instant, now)
            total = sum(
                (t.amount for t in expenses if window_start <= t.date <= upper),
                ZERO,
            )
            points.append(ExpensePoint(at=instant, total=total))
        return ExpenseSeries(period=period, points=points)

    def fund_allocation(
        self,
        accounts: Iterable[PersonalAccount],
        sub_accounts: Iterable[SubAccount] = (),
        shared_accounts: Iterable[SharedAccount] = (),
        include_shared: bool = True,
    ) -> list[AllocationSlice]:
        """Where the money sits: accounts, their partitions and shared accounts."""
        accounts = list(accounts)
        by_id = {a.id: a for a in accounts}

        slices = [
            AllocationSlice(
                name=a.name,
                balance=a.current_balance,
                color=a.color or DEFAULT_ACCOUNT_COLOR,
            )
            for a in accounts
        ]

        for sub in sub_accounts:
            parent = by_id.get(sub.parent_account_id)
            parent_name = parent.name if parent else UNKNOWN_ACCOUNT
            base_color = parent.color if parent and parent.color else DEFAULT_ACCOUNT_COLOR
            slices.append(
                AllocationSlice(
                    name=f"{parent_name} - {sub.name}",
                    balance=sub.balance,
                    color=base_color + SUB_ACCOUNT_ALPHA,
                )
            )

        if include_shared:
            for shared in shared_accounts:
                slices.append(
                    AllocationSlice(
                        name=f"{shared.name} (Shared)",
                        balance=shared.current_balance,
                        color=shared.color or DEFAULT_SHARED_COLOR,
                        shared=True,
                    )
                )

        return slices

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _by_category(
        transactions: Iterable[Transaction],
        kind: TransactionType,
        default: str,
    ) -> list[CategoryAmount]:
        amounts: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for t in transactions:
            if t.type == kind:
                amounts[t.category or default] += t.amount
        ordered = sorted(amounts.items(), key=lambda item: item[1], reverse=True)
        return [CategoryAmount(name=name, amount=amount) for name, amount in ordered]
