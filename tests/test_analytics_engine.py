"""Tests for the pure analytics computations."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import FIXED_NOW
from fintrack.analytics import AnalyticsEngine, add_months, month_label
from fintrack.models import (
    FlowPeriod,
    HistoryPeriod,
    MemberRole,
    PersonalAccount,
    SharedAccount,
    SharedAccountMember,
    SubAccount,
    Transaction,
    TransactionType,
)


def tx(kind, amount, when, **fields) -> Transaction:
    return Transaction(type=kind, amount=Decimal(str(amount)), date=when, **fields)


def at(month, day, hour=9, year=2024) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    return AnalyticsEngine(now=lambda: FIXED_NOW)


@pytest.fixture
def ledger():
    """Two months of salary, rent, food and one uncategorised expense."""
    return [
        tx(TransactionType.INCOME, 1200, at(5, 1), category="Salary"),
        tx(TransactionType.EXPENSE, 300, at(5, 20), category="Rent", is_recurring=True),
        tx(TransactionType.INCOME, 1200, at(6, 1), category="Salary"),
        tx(TransactionType.EXPENSE, 200, at(6, 10), category="Food"),
        tx(TransactionType.EXPENSE, 100, at(6, 12)),
    ]


@pytest.fixture
def accounts():
    return [
        PersonalAccount(
            id="a1",
            name="Main",
            current_balance=Decimal("2500"),
            initial_balance=Decimal("1000"),
            color="#112233",
        ),
        PersonalAccount(id="a2", name="Savings", current_balance=Decimal("500")),
    ]


def shared_account(name="Household", balance="400") -> SharedAccount:
    return SharedAccount(
        id="s1",
        name=name,
        owner_id="alice",
        members=[SharedAccountMember(user_id="alice", role=MemberRole.OWNER)],
        current_balance=Decimal(balance),
    )


class TestMonthHelpers:
    """Calendar arithmetic."""

    def test_add_months_clamps_day(self):
        """Month-end dates land on the last day of shorter months."""
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
        assert add_months(datetime(2024, 3, 31), -1) == datetime(2024, 2, 29)
        assert add_months(datetime(2024, 11, 15), 3) == datetime(2025, 2, 15)

    def test_month_label(self):
        assert month_label(datetime(2024, 6, 1)) == "Jun 24"


class TestBalanceReconstruction:
    """Walking balances back from the current total."""

    def test_anchor_balance(self, engine, accounts):
        """Accounts, partitions and optionally shared accounts add up."""
        subs = [SubAccount(parent_account_id="a1", name="Vacation", balance=Decimal("100"))]
        shared = [shared_account()]

        assert engine.anchor_balance(accounts, subs, shared) == Decimal("3500")
        assert engine.anchor_balance(accounts, subs, shared, include_shared=False) == Decimal("3100")

    def test_history_walks_back_from_anchor(self, engine):
        """Earlier balances undo the later income and expense."""
        transactions = [
            tx(TransactionType.INCOME, 200, FIXED_NOW - timedelta(days=2, hours=12)),
            tx(TransactionType.EXPENSE, 500, FIXED_NOW - timedelta(days=1, hours=12)),
        ]

        series = engine.reconstruct_history(Decimal("1000"), transactions, HistoryPeriod.WEEK)

        balances = [p.balance for p in series.points]
        assert len(balances) == 8
        assert balances[:5] == [Decimal("1300")] * 5
        assert balances[5:] == [Decimal("1500"), Decimal("1000"), Decimal("1000")]
        assert series.points[-1].at == FIXED_NOW
        assert series.clamped is False

    def test_worked_example(self, engine):
        """Anchor 1000, income 500 two days ago, expense 200 yesterday."""
        transactions = [
            tx(TransactionType.EXPENSE, 200, FIXED_NOW - timedelta(days=1)),
            tx(TransactionType.INCOME, 500, FIXED_NOW - timedelta(days=2)),
        ]

        series = engine.reconstruct_history(Decimal("1000"), transactions, HistoryPeriod.WEEK)

        balances = [p.balance for p in series.points]
        assert balances[:5] == [Decimal("700")] * 5
        assert balances[5:] == [Decimal("1200"), Decimal("1000"), Decimal("1000")]

    def test_reconstruction_is_repeatable(self, engine, ledger):
        """The same anchor and transactions give the same series."""
        first = engine.reconstruct_history(Decimal("5000"), ledger, HistoryPeriod.ALL)
        second = engine.reconstruct_history(Decimal("5000"), ledger, HistoryPeriod.ALL)

        assert first == second
        assert len(ledger) == 5

    def test_points_lead_back_to_anchor(self, engine, ledger):
        """Each raw balance plus the later deltas adds up to the anchor."""
        anchor = Decimal("5000")
        series = engine.reconstruct_history(anchor, ledger, HistoryPeriod.ALL)

        for point in series.points:
            later = sum((t.signed_delta for t in ledger if point.at < t.date <= FIXED_NOW), Decimal("0"))
            assert point.raw_balance + later == anchor

        assert series.points[0].raw_balance == Decimal("4400")

    def test_neutral_transactions_are_ignored(self, engine):
        """Transfers and partition moves leave the total alone."""
        transactions = [
            tx(TransactionType.TRANSFER, 400, FIXED_NOW - timedelta(days=2), account_id="a1", to_account_id="a2"),
            tx(TransactionType.PARTITION_TRANSFER_TO, 50, FIXED_NOW - timedelta(days=2)),
        ]

        series = engine.reconstruct_history(Decimal("1000"), transactions, HistoryPeriod.WEEK)

        assert {p.balance for p in series.points} == {Decimal("1000")}

    def test_future_transactions_are_ignored(self, engine):
        """Entries dated after now do not shift the past."""
        transactions = [tx(TransactionType.INCOME, 300, FIXED_NOW + timedelta(days=1))]

        assert engine.balance_at(Decimal("1000"), transactions, FIXED_NOW - timedelta(days=3)) == Decimal("1000")

    def test_negative_balances_are_clamped(self, engine):
        """Displayed balances floor at zero while the raw value is kept."""
        transactions = [tx(TransactionType.INCOME, 500, FIXED_NOW - timedelta(days=1, hours=12))]

        series = engine.reconstruct_history(Decimal("100"), transactions, HistoryPeriod.WEEK)

        assert series.clamped is True
        assert series.points[0].balance == Decimal("0")
        assert series.points[0].raw_balance == Decimal("-400")

    def test_clamping_can_be_disabled(self):
        """Without clamping the raw value is displayed."""
        engine = AnalyticsEngine(clamp_negative_balances=False, now=lambda: FIXED_NOW)
        transactions = [tx(TransactionType.INCOME, 500, FIXED_NOW - timedelta(days=1, hours=12))]

        series = engine.reconstruct_history(Decimal("100"), transactions, HistoryPeriod.WEEK)

        assert series.points[0].balance == Decimal("-400")
        assert series.clamped is False

    def test_empty_history_is_single_point(self, engine):
        """No transactions gives one point at now carrying the anchor."""
        series = engine.reconstruct_history(Decimal("750"), [], HistoryPeriod.MONTH)

        assert len(series.points) == 1
        assert series.points[0].at == FIXED_NOW
        assert series.points[0].balance == Decimal("750")


class TestHistoryIntervals:
    """Sample instants per lookback window."""

    @pytest.mark.parametrize(
        "period, count",
        [
            (HistoryPeriod.DAY, 25),
            (HistoryPeriod.WEEK, 8),
            (HistoryPeriod.MONTH, 31),
            (HistoryPeriod.YEAR, 13),
        ],
    )
    def test_fixed_windows(self, engine, period, count):
        intervals = engine.history_intervals(period)
        assert len(intervals) == count
        assert intervals[-1] == FIXED_NOW
        assert intervals == sorted(intervals)

    def test_all_without_transactions(self, engine):
        assert engine.history_intervals(HistoryPeriod.ALL) == [FIXED_NOW]

    def test_all_picks_granularity_from_span(self, engine):
        """Daily up to a month, weekly up to a year, monthly beyond."""
        daily = engine.history_intervals(HistoryPeriod.ALL, FIXED_NOW - timedelta(days=10))
        weekly = engine.history_intervals(HistoryPeriod.ALL, FIXED_NOW - timedelta(days=100))
        monthly = engine.history_intervals(HistoryPeriod.ALL, datetime(2022, 6, 15, 12, tzinfo=timezone.utc))

        assert len(daily) == 11
        assert weekly[1] - weekly[0] == timedelta(weeks=1)
        assert len(weekly) == 16
        assert len(monthly) == 25
        assert monthly[-1] == FIXED_NOW


class TestMonthlySeries:
    """Cash flow, projection and burn rate."""

    def test_monthly_summary(self, engine, ledger):
        """Month-end balances are walked back from the anchor."""
        buckets = engine.monthly_summary(ledger, anchor=Decimal("5000"), months=3)

        assert [b.label for b in buckets] == ["Apr 24", "May 24", "Jun 24"]
        assert [b.income for b in buckets] == [Decimal("0"), Decimal("1200"), Decimal("1200")]
        assert [b.expenses for b in buckets] == [Decimal("0"), Decimal("300"), Decimal("300")]
        assert [b.balance for b in buckets] == [Decimal("3200"), Decimal("4100"), Decimal("5000")]
        assert buckets[-1].net == Decimal("900")

    def test_default_window_is_twelve_months(self, engine, ledger):
        buckets = engine.monthly_summary(ledger)
        assert len(buckets) == 12
        assert (buckets[0].year, buckets[0].month) == (2023, 7)

    def test_projection(self, engine, ledger):
        """The averaged monthly net is applied month after month."""
        projection = engine.project_balance(ledger, Decimal("5000"), months=3)

        assert projection.average_monthly_income == Decimal("200")
        assert projection.average_monthly_expenses == Decimal("50")
        assert projection.monthly_delta == Decimal("150")
        assert [m.balance for m in projection.months] == [
            Decimal("5150"),
            Decimal("5300"),
            Decimal("5450"),
        ]
        assert [m.label for m in projection.months] == ["Jul 24", "Aug 24", "Sep 24"]

    def test_burn_rate(self, engine, ledger):
        assert engine.burn_rate(ledger) == Decimal("50")
        assert engine.burn_rate([]) == Decimal("0")


class TestAggregates:
    """Totals, rates and category breakdowns."""

    def test_saving_rate(self, engine, ledger):
        assert engine.saving_rate(ledger) == pytest.approx(75.0)

    def test_saving_rate_without_income(self, engine):
        """No income means a zero rate, not a division error."""
        assert engine.saving_rate([tx(TransactionType.EXPENSE, 10, at(6, 1))]) == 0.0

    def test_expenses_by_category(self, engine, ledger):
        """Largest first; missing categories are grouped."""
        categories = engine.expenses_by_category(ledger)

        assert [(c.name, c.amount) for c in categories] == [
            ("Rent", Decimal("300")),
            ("Food", Decimal("200")),
            ("Uncategorized", Decimal("100")),
        ]

    def test_recurring_vs_variable(self, engine, ledger):
        split = engine.recurring_vs_variable(ledger)
        assert split.recurring == Decimal("300")
        assert split.variable == Decimal("300")

    def test_budget_vs_actual(self, engine, ledger):
        """Budgets sit ten percent above the monthly average."""
        lines = engine.budget_vs_actual(ledger)

        assert lines[0].name == "Rent"
        assert lines[0].actual == Decimal("25")
        assert lines[0].budget == Decimal("27.5")

    def test_budget_keeps_top_categories(self, engine):
        transactions = [
            tx(TransactionType.EXPENSE, 10 + i, at(6, 1), category=f"c{i}") for i in range(12)
        ]
        assert len(engine.budget_vs_actual(transactions)) == 8


class TestComparisons:
    """Month-over-month and year-over-year nets."""

    def test_period_comparison(self, engine, ledger):
        transactions = ledger + [tx(TransactionType.INCOME, 600, at(12, 10, year=2023))]

        comparison = engine.period_comparison(transactions)

        assert comparison.month_over_month.current == Decimal("900")
        assert comparison.month_over_month.previous == Decimal("900")
        assert comparison.month_over_month.change_percent == 0.0
        assert comparison.year_over_year.current == Decimal("1800")
        assert comparison.year_over_year.previous == Decimal("600")
        assert comparison.year_over_year.change_percent == pytest.approx(200.0)

    def test_january_compares_with_december(self):
        """The previous month of January is December of last year."""
        engine = AnalyticsEngine(now=lambda: datetime(2024, 1, 15, tzinfo=timezone.utc))
        transactions = [
            tx(TransactionType.INCOME, 100, at(1, 5)),
            tx(TransactionType.INCOME, 50, at(12, 5, year=2023)),
        ]

        comparison = engine.period_comparison(transactions)

        assert comparison.month_over_month.previous == Decimal("50")
        assert comparison.month_over_month.change_percent == pytest.approx(100.0)


class TestFlowsAndScores:
    """Money flow, waterfall, stability."""

    def test_money_flow(self, engine, ledger, accounts):
        """Transfers are tallied per account within the period."""
        transactions = ledger + [
            tx(TransactionType.TRANSFER, 100, at(6, 5), account_id="a1", to_account_id="a2"),
            tx(TransactionType.TRANSFER, 50, at(6, 6), account_id="a1", to_account_id="zz"),
            tx(TransactionType.TRANSFER, 999, at(1, 1), account_id="a1", to_account_id="a2"),
        ]

        flow = engine.money_flow(transactions, accounts, FlowPeriod.MONTH)

        flows = {f.name: (f.inflow, f.outflow) for f in flow.account_flows}
        assert flows == {
            "Main": (Decimal("0"), Decimal("150")),
            "Savings": (Decimal("100"), Decimal("0")),
            "Unknown": (Decimal("50"), Decimal("0")),
        }
        assert [c.name for c in flow.top_income] == ["Salary"]
        assert [c.name for c in flow.top_expenses] == ["Rent", "Food", "Other Expenses"]

    def test_money_flow_all_time(self, engine, ledger, accounts):
        transactions = ledger + [
            tx(TransactionType.TRANSFER, 999, at(1, 1), account_id="a1", to_account_id="a2"),
        ]

        flow = engine.money_flow(transactions, accounts, FlowPeriod.ALL)

        assert flow.top_income[0].amount == Decimal("2400")
        assert flow.account_flows[0].outflow == Decimal("999")

    def test_expense_waterfall(self, engine, ledger, accounts):
        steps = engine.expense_waterfall(ledger, accounts)

        assert [(s.label, s.value) for s in steps] == [
            ("Initial", Decimal("1000")),
            ("Income", Decimal("2400")),
            ("Expenses", Decimal("-600")),
            ("Current", Decimal("3000")),
        ]

    def test_financial_stability(self, engine, ledger, accounts):
        """Each component is bounded and debt is a constant."""
        stability = engine.financial_stability(ledger, accounts)

        scores = {c.name: c.score for c in stability.components}
        assert scores["savings"] == 100.0
        assert scores["diversification"] == pytest.approx(40.0)
        assert scores["consistency"] == pytest.approx(100 / 3)
        assert scores["debt"] == 100.0
        assert stability.overall == pytest.approx((100 + 40 + 100 / 3 + 100) / 4)


class TestDailySeries:
    """Heatmap and cumulative expenses."""

    def test_spending_heatmap(self, engine, ledger):
        days = engine.spending_heatmap(ledger)

        assert len(days) == 35
        assert days[-1].day == FIXED_NOW.date()
        assert days[0].day == FIXED_NOW.date() - timedelta(days=34)

        by_day = {d.day: d for d in days}
        assert by_day[at(6, 10).date()].expenses == Decimal("200")
        assert by_day[at(6, 1).date()].income == Decimal("1200")
        assert by_day[at(6, 1).date()].net == Decimal("1200")
        assert at(5, 1).date() not in by_day

    def test_cumulative_expenses(self, engine, ledger):
        """Totals run from the window start up to each point."""
        series = engine.cumulative_expenses(ledger, HistoryPeriod.WEEK)

        assert [p.total for p in series.points] == [
            Decimal("0"),
            Decimal("0"),
            Decimal("200"),
            Decimal("200"),
            Decimal("300"),
            Decimal("300"),
            Decimal("300"),
            Decimal("300"),
        ]

    def test_cumulative_without_expenses(self, engine):
        series = engine.cumulative_expenses([], HistoryPeriod.MONTH)
        assert [p.total for p in series.points] == [Decimal("0")]


class TestFundAllocation:
    """Where the money sits."""

    def test_slices(self, engine, accounts):
        subs = [
            SubAccount(parent_account_id="a1", name="Vacation", balance=Decimal("100")),
            SubAccount(parent_account_id="gone", name="Orphan", balance=Decimal("5")),
        ]

        slices = engine.fund_allocation(accounts, subs, [shared_account()])

        assert [(s.name, s.color) for s in slices] == [
            ("Main", "#112233"),
            ("Savings", "#6B7280"),
            ("Main - Vacation", "#112233CC"),
            ("Unknown - Orphan", "#6B7280CC"),
            ("Household (Shared)", "#8B5CF6"),
        ]
        assert slices[-1].shared is True

    def test_shared_can_be_left_out(self, engine, accounts):
        slices = engine.fund_allocation(accounts, shared_accounts=[shared_account()], include_shared=False)
        assert not any(s.shared for s in slices)
