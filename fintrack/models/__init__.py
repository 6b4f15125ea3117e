"""
Data Models Package

This package contains all Pydantic models used in Fintrack.
All data flowing through the system must conform to these schemas.
"""

from fintrack.models.base import CamelModel, DocumentModel, ensure_utc, to_storable, utc_now
from fintrack.models.account import (
    MAX_MEMBERS_CEILING,
    AccountType,
    InviteResult,
    InviteStatus,
    InviteTarget,
    MemberRole,
    PlanInterval,
    PlanLimits,
    PlanTier,
    SharedAccount,
    SharedAccountCreation,
    SharedAccountDraft,
    SharedAccountInvite,
    SharedAccountMember,
    UserProfile,
    UserRole,
)
from fintrack.models.ledger import (
    PersonalAccount,
    SubAccount,
    Transaction,
    TransactionType,
)
from fintrack.models.analytics import (
    AccountFlow,
    AllocationSlice,
    AnalyticsFeature,
    BalancePoint,
    BalanceProjection,
    BalanceSeries,
    BudgetLine,
    CategoryAmount,
    DashboardReport,
    ExpensePoint,
    ExpenseSeries,
    FinancialStability,
    FlowPeriod,
    HeatmapDay,
    HistoryPeriod,
    LockedFeature,
    MoneyFlow,
    MonthlyBucket,
    PeriodComparison,
    PeriodDelta,
    ProjectedMonth,
    RecurringSplit,
    StabilityComponent,
    Totals,
    WaterfallStep,
)
from fintrack.models.billing import (
    CheckoutSession,
    PlanChange,
    PriceDisplay,
    SubscriptionInfo,
    WebhookOutcome,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Base
    "CamelModel",
    "DocumentModel",
    "ensure_utc",
    "to_storable",
    "utc_now",
    # Shared account models
    "MAX_MEMBERS_CEILING",
    "AccountType",
    "InviteResult",
    "InviteStatus",
    "InviteTarget",
    "MemberRole",
    "PlanInterval",
    "PlanLimits",
    "PlanTier",
    "SharedAccount",
    "SharedAccountCreation",
    "SharedAccountDraft",
    "SharedAccountInvite",
    "SharedAccountMember",
    "UserProfile",
    "UserRole",
    # Ledger models
    "PersonalAccount",
    "SubAccount",
    "Transaction",
    "TransactionType",
    # Analytics models
    "AccountFlow",
    "AllocationSlice",
    "AnalyticsFeature",
    "BalancePoint",
    "BalanceProjection",
    "BalanceSeries",
    "BudgetLine",
    "CategoryAmount",
    "DashboardReport",
    "ExpensePoint",
    "ExpenseSeries",
    "FinancialStability",
    "FlowPeriod",
    "HeatmapDay",
    "HistoryPeriod",
    "LockedFeature",
    "MoneyFlow",
    "MonthlyBucket",
    "PeriodComparison",
    "PeriodDelta",
    "ProjectedMonth",
    "RecurringSplit",
    "StabilityComponent",
    "Totals",
    "WaterfallStep",
    # Billing models
    "CheckoutSession",
    "PlanChange",
    "PriceDisplay",
    "SubscriptionInfo",
    "WebhookOutcome",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
