"""Tests for plan gating and the analytics data-serving boundary."""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import FIXED_NOW
from fintrack.analytics import (
    AnalyticsEngine,
    AnalyticsService,
    FeatureLocked,
    can_access,
    history_feature,
    required_plan,
)
from fintrack.models import (
    AnalyticsFeature,
    AuditEventType,
    HistoryPeriod,
    MemberRole,
    PlanTier,
    SharedAccount,
    SharedAccountMember,
)
from fintrack.services.sharing import NotFound, PermissionDenied
from fintrack.services.sharing.store import SharedAccountStore


@pytest.fixture
def analytics(store, directory, audit_logger):
    engine = AnalyticsEngine(now=lambda: FIXED_NOW)
    return AnalyticsService(store, directory, engine=engine, audit_logger=audit_logger)


async def seed_ledger(store) -> SharedAccount:
    """Bob's own account and transactions, plus a household shared with alice."""
    await store.create_document(
        "accounts", {"userId": "bob", "name": "Main", "currentBalance": 1000.0}, document_id="acc-bob"
    )
    await store.create_document(
        "subAccounts",
        {"userId": "bob", "parentAccountId": "acc-bob", "name": "Vacation", "balance": 100.0},
    )
    household = await SharedAccountStore(store).create(
        SharedAccount(
            name="Household",
            owner_id="alice",
            members=[
                SharedAccountMember(user_id="alice", role=MemberRole.OWNER),
                SharedAccountMember(user_id="bob"),
            ],
            current_balance=Decimal("400"),
        )
    )

    await store.create_document(
        "transactions",
        {
            "type": "income",
            "amount": 300.0,
            "date": FIXED_NOW - timedelta(days=3),
            "userId": "bob",
            "accountId": "acc-bob",
            "category": "Salary",
        },
        document_id="t-1",
    )
    await store.create_document(
        "transactions",
        {
            "type": "expense",
            "amount": 50.0,
            "date": FIXED_NOW - timedelta(days=2),
            "userId": "bob",
            "sharedAccountId": household.id,
            "category": "Groceries",
        },
        document_id="t-2",
    )
    await store.create_document(
        "transactions",
        {
            "type": "expense",
            "amount": 20.0,
            "date": FIXED_NOW - timedelta(days=1),
            "userId": "alice",
            "sharedAccountId": household.id,
        },
        document_id="t-3",
    )
    return household


class TestGating:
    """Which plan unlocks which series."""

    def test_free_series(self):
        """Free users get the short history windows and the basics."""
        for feature in (
            AnalyticsFeature.BALANCE_HISTORY_DAY,
            AnalyticsFeature.BALANCE_HISTORY_WEEK,
            AnalyticsFeature.CASH_FLOW,
            AnalyticsFeature.EXPENSE_CATEGORIES,
            AnalyticsFeature.FUND_ALLOCATION,
        ):
            assert can_access(PlanTier.FREE, feature)

    def test_tier_ordering(self):
        """Higher tiers inherit everything below them."""
        assert not can_access(PlanTier.FREE, AnalyticsFeature.BURN_RATE)
        assert can_access(PlanTier.PRO, AnalyticsFeature.BURN_RATE)
        assert not can_access(PlanTier.PRO, AnalyticsFeature.MONEY_FLOW)
        assert can_access(PlanTier.ULTRA, AnalyticsFeature.MONEY_FLOW)
        assert all(can_access(PlanTier.ADMIN, f) for f in AnalyticsFeature)

    def test_history_windows(self):
        assert history_feature(HistoryPeriod.MONTH) == AnalyticsFeature.BALANCE_HISTORY_MONTH
        assert required_plan(history_feature(HistoryPeriod.YEAR)) == PlanTier.PRO
        assert required_plan(history_feature(HistoryPeriod.ALL)) == PlanTier.ULTRA


class TestGetFeature:
    """Single series requests."""

    @pytest.mark.asyncio
    async def test_locked_feature_raises_and_audits(self, seeded, analytics, audit_storage):
        """A free user asking for a pro series is refused."""
        with pytest.raises(FeatureLocked) as exc:
            await analytics.get_feature("dave", AnalyticsFeature.BURN_RATE)

        assert exc.value.required_plan == PlanTier.PRO
        assert exc.value.plan == PlanTier.FREE
        assert isinstance(exc.value, PermissionDenied)

        events = await audit_storage.get_events_by_entity("user", "dave")
        assert [e.event_type for e in events] == [AuditEventType.ANALYTICS_ACCESS_DENIED]

    @pytest.mark.asyncio
    async def test_unknown_user(self, analytics):
        with pytest.raises(NotFound):
            await analytics.get_feature("ghost", AnalyticsFeature.CASH_FLOW)

    @pytest.mark.asyncio
    async def test_unlocked_feature(self, seeded, store, analytics):
        """Unlocked series are computed from the stored ledger."""
        await seed_ledger(store)

        categories = await analytics.get_feature("bob", AnalyticsFeature.EXPENSE_CATEGORIES)

        assert [(c.name, c.amount) for c in categories] == [
            ("Groceries", Decimal("50")),
            ("Uncategorized", Decimal("20")),
        ]

    @pytest.mark.asyncio
    async def test_history_window_follows_feature(self, seeded, store, analytics):
        """The balance history feature picks its own window."""
        await seed_ledger(store)

        series = await analytics.get_feature("bob", AnalyticsFeature.BALANCE_HISTORY_DAY)

        assert series.period == HistoryPeriod.DAY
        assert len(series.points) == 25


class TestSnapshot:
    """Loading a user's ledger."""

    @pytest.mark.asyncio
    async def test_shared_accounts_included(self, seeded, store, analytics):
        """Shared balances and every member's shared transactions count."""
        household = await seed_ledger(store)

        snapshot = await analytics.load_snapshot("bob")

        assert snapshot.anchor == Decimal("1500")
        assert [a.id for a in snapshot.shared_accounts] == [household.id]
        assert [t.id for t in snapshot.transactions] == ["t-1", "t-2", "t-3"]
        assert [t.is_shared_account_transaction for t in snapshot.transactions] == [False, True, True]

    @pytest.mark.asyncio
    async def test_shared_accounts_excluded(self, seeded, store, analytics):
        """Without shared accounts the anchor and transactions agree."""
        await seed_ledger(store)

        snapshot = await analytics.load_snapshot("bob", include_shared=False)

        assert snapshot.anchor == Decimal("1100")
        assert snapshot.shared_accounts == []
        assert [t.id for t in snapshot.transactions] == ["t-1"]


class TestDashboard:
    """The all-in-one report."""

    @pytest.mark.asyncio
    async def test_free_dashboard(self, seeded, store, analytics):
        """Locked series are None and listed with the plan they need."""
        await seed_ledger(store)

        report = await analytics.dashboard("dave")

        assert report.plan == PlanTier.FREE
        assert report.balance_history is not None
        assert report.cash_flow is not None
        assert report.fund_allocation == []
        assert report.burn_rate is None
        assert report.money_flow is None

        locked = {lf.feature: lf.required_plan for lf in report.locked_features}
        assert locked[AnalyticsFeature.BURN_RATE] == PlanTier.PRO
        assert locked[AnalyticsFeature.MONEY_FLOW] == PlanTier.ULTRA
        assert AnalyticsFeature.CASH_FLOW not in locked

    @pytest.mark.asyncio
    async def test_locked_history_window(self, seeded, analytics):
        """A window above the plan leaves balance_history empty."""
        report = await analytics.dashboard("dave", period=HistoryPeriod.MONTH)
        assert report.balance_history is None

    @pytest.mark.asyncio
    async def test_ultra_dashboard(self, seeded, store, analytics):
        """Ultra unlocks every series."""
        await seed_ledger(store)

        report = await analytics.dashboard("alice", period=HistoryPeriod.ALL)

        assert report.locked_features == []
        assert report.balance_history.period == HistoryPeriod.ALL
        assert report.money_flow is not None
        assert report.financial_stability is not None
        assert len(report.spending_heatmap) == 35
        assert report.anchor_balance == Decimal("400")
        assert report.generated_at == FIXED_NOW
