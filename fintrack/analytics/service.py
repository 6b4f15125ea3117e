"""
Analytics Service

The data-serving boundary for analytics. Loads the caller's profile,
checks the plan gate, loads transactions and balances from the document
store and hands them to the engine.

DESIGN DECISION: The gate is enforced HERE, not in the UI.
A locked series is never computed for the caller; asking for one raises
FeatureLocked and leaves an audit entry.
"""

from decimal import Decimal
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, Field

from fintrack.analytics.engine import AnalyticsEngine
from fintrack.analytics.gating import (
    FeatureLocked,
    can_access,
    history_feature,
    required_plan,
)
from fintrack.audit import AuditLogger
from fintrack.models import (
    AnalyticsFeature,
    AuditEventBuilder,
    DashboardReport,
    FlowPeriod,
    HistoryPeriod,
    LockedFeature,
    PersonalAccount,
    SharedAccount,
    SubAccount,
    Transaction,
    UserProfile,
)
from fintrack.services.sharing.errors import NotFound
from fintrack.services.sharing.store import SharedAccountStore
from fintrack.services.storage import DocumentStoreInterface
from fintrack.services.users import UserDirectory


logger = structlog.get_logger(__name__)


# Series computed from the requested balance window rather than a fixed one
_HISTORY_FEATURES = frozenset(history_feature(p) for p in HistoryPeriod)


class LedgerSnapshot(BaseModel):
    """Everything the engine needs for one user, loaded once per request."""
    transactions: list[Transaction] = Field(default_factory=list)
    accounts: list[PersonalAccount] = Field(default_factory=list)
    sub_accounts: list[SubAccount] = Field(default_factory=list)
    shared_accounts: list[SharedAccount] = Field(default_factory=list)
    anchor: Decimal = Decimal("0")


class AnalyticsService:
    """
    Gated analytics for one user at a time.

    Usage:
        service = AnalyticsService(store, directory, engine=AnalyticsEngine())
        series = await service.get_feature(uid, AnalyticsFeature.CASH_FLOW)
        report = await service.dashboard(uid, period=HistoryPeriod.WEEK)
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        directory: UserDirectory,
        engine: Optional[AnalyticsEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        transactions_collection: str = "transactions",
        accounts_collection: str = "accounts",
        sub_accounts_collection: str = "subAccounts",
        shared_accounts_collection: str = "sharedAccounts",
    ):
        self._store = store
        self._directory = directory
        self._engine = engine or AnalyticsEngine()
        self._audit_logger = audit_logger
        self._shared_accounts = SharedAccountStore(store, shared_accounts_collection)
        self._transactions_collection = transactions_collection
        self._accounts_collection = accounts_collection
        self._sub_accounts_collection = sub_accounts_collection

    async def get_feature(
        self,
        user_id: str,
        feature: AnalyticsFeature,
        period: HistoryPeriod = HistoryPeriod.MONTH,
        flow_period: FlowPeriod = FlowPeriod.MONTH,
        include_shared: bool = True,
    ) -> Any:
        """
        Compute one analytics series.

        For the balance history features the window comes from the feature
        itself; `period` drives cumulative expenses.

        Raises:
            NotFound: If the user doesn't exist
            FeatureLocked: If the user's plan does not unlock the feature
        """
        user = await self._get_user(user_id)

        if not can_access(user.plan, feature):
            logger.info(
                "analytics_access_denied",
                user_id=user_id,
                feature=feature.value,
                plan=user.plan.value,
            )
            if self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.analytics_access_denied(
                        user_id,
                        feature.value,
                        user.plan.value,
                        required_plan(feature).value,
                    )
                )
            raise FeatureLocked(feature, user.plan)

        snapshot = await self.load_snapshot(user_id, include_shared)
        return self._compute(feature, snapshot, period, flow_period, include_shared)

    async def dashboard(
        self,
        user_id: str,
        period: HistoryPeriod = HistoryPeriod.WEEK,
        flow_period: FlowPeriod = FlowPeriod.MONTH,
        include_shared: bool = True,
    ) -> DashboardReport:
        """
        Every series the user's plan unlocks in one report.

        Locked series stay None and are listed in locked_features, so the
        UI can show what an upgrade would unlock.

        Raises:
            NotFound: If the user doesn't exist
        """
        user = await self._get_user(user_id)
        snapshot = await self.load_snapshot(user_id, include_shared)

        locked = [
            LockedFeature(feature=f, required_plan=required_plan(f))
            for f in AnalyticsFeature
            if not can_access(user.plan, f)
        ]

        values: dict[str, Any] = {}
        requested_history = history_feature(period)
        if can_access(user.plan, requested_history):
            values["balance_history"] = self._compute(
                requested_history, snapshot, period, flow_period, include_shared
            )

        for feature in AnalyticsFeature:
            if feature in _HISTORY_FEATURES or not can_access(user.plan, feature):
                continue
            values[feature.value] = self._compute(
                feature, snapshot, period, flow_period, include_shared
            )

        logger.debug(
            "dashboard_built",
            user_id=user_id,
            plan=user.plan.value,
            series=len(values),
            locked=len(locked),
        )

        return DashboardReport(
            user_id=user_id,
            plan=user.plan,
            generated_at=self._engine.now(),
            anchor_balance=snapshot.anchor,
            locked_features=locked,
            **values,
        )

    # =========================================================================
    # DATA LOADING
    # =========================================================================

    async def load_snapshot(self, user_id: str, include_shared: bool = True) -> LedgerSnapshot:
        """
        Load a user's ledger.

        Shared account transactions are only included (and the shared
        balances only counted in the anchor) when include_shared is set, so
        the anchor and the walked-back transactions always agree.
        """
        accounts = [
            PersonalAccount.from_document(d)
            for d in await self._store.list_documents(
                self._accounts_collection,
                filters=[("userId", "==", user_id)],
            )
        ]
        sub_accounts = [
            SubAccount.from_document(d)
            for d in await self._store.list_documents(
                self._sub_accounts_collection,
                filters=[("userId", "==", user_id)],
            )
        ]
        shared_accounts = (
            await self._shared_accounts.list_for_member(user_id) if include_shared else []
        )

        transactions: dict[str, Transaction] = {}
        for document in await self._store.list_documents(
            self._transactions_collection,
            filters=[("userId", "==", user_id)],
        ):
            transaction = Transaction.from_document(document)
            if transaction.shared_account_id and not include_shared:
                continue
            transactions[transaction.id] = transaction

        for account in shared_accounts:
            for document in await self._store.list_documents(
                self._transactions_collection,
                filters=[("sharedAccountId", "==", account.id)],
            ):
                transaction = Transaction.from_document(document)
                transactions[transaction.id] = transaction.model_copy(
                    update={"is_shared_account_transaction": True}
                )

        ordered = sorted(transactions.values(), key=lambda t: t.date)
        anchor = self._engine.anchor_balance(
            accounts, sub_accounts, shared_accounts, include_shared
        )

        return LedgerSnapshot(
            transactions=ordered,
            accounts=accounts,
            sub_accounts=sub_accounts,
            shared_accounts=shared_accounts,
            anchor=anchor,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _get_user(self, user_id: str) -> UserProfile:
        user = await self._directory.get_user(user_id)
        if user is None:
            raise NotFound(f"User not found: {user_id}")
        return user

    def _compute(
        self,
        feature: AnalyticsFeature,
        snapshot: LedgerSnapshot,
        period: HistoryPeriod,
        flow_period: FlowPeriod,
        include_shared: bool,
    ) -> Any:
        engine = self._engine
        txs = snapshot.transactions

        if feature in _HISTORY_FEATURES:
            return engine.reconstruct_history(snapshot.anchor, txs, _period_for(feature))

        handlers: dict[AnalyticsFeature, Callable[[], Any]] = {
            AnalyticsFeature.CASH_FLOW: lambda: engine.monthly_summary(txs, snapshot.anchor),
            AnalyticsFeature.EXPENSE_CATEGORIES: lambda: engine.expenses_by_category(txs),
            AnalyticsFeature.FUND_ALLOCATION: lambda: engine.fund_allocation(
                snapshot.accounts,
                snapshot.sub_accounts,
                snapshot.shared_accounts,
                include_shared,
            ),
            AnalyticsFeature.BURN_RATE: lambda: engine.burn_rate(txs),
            AnalyticsFeature.SAVING_RATE: lambda: engine.saving_rate(txs),
            AnalyticsFeature.RECURRING_VS_VARIABLE: lambda: engine.recurring_vs_variable(txs),
            AnalyticsFeature.BUDGET_VS_ACTUAL: lambda: engine.budget_vs_actual(txs),
            AnalyticsFeature.PERIOD_COMPARISON: lambda: engine.period_comparison(txs),
            AnalyticsFeature.BALANCE_PROJECTION: lambda: engine.project_balance(txs, snapshot.anchor),
            AnalyticsFeature.EXPENSE_WATERFALL: lambda: engine.expense_waterfall(txs, snapshot.accounts),
            AnalyticsFeature.FINANCIAL_STABILITY: lambda: engine.financial_stability(txs, snapshot.accounts),
            AnalyticsFeature.MONEY_FLOW: lambda: engine.money_flow(txs, snapshot.accounts, flow_period),
            AnalyticsFeature.SPENDING_HEATMAP: lambda: engine.spending_heatmap(txs),
            AnalyticsFeature.CUMULATIVE_EXPENSES: lambda: engine.cumulative_expenses(txs, period),
        }
        return handlers[feature]()


def _period_for(feature: AnalyticsFeature) -> HistoryPeriod:
    for period in HistoryPeriod:
        if history_feature(period) == feature:
            return period
    raise ValueError(f"Not a balance history feature: {feature.value}")
