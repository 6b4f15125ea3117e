"""
Analytics Package

Pure balance reconstruction and chart aggregations (engine), the plan gate
in front of them, and the service that loads a user's ledger.
"""

from fintrack.analytics.engine import AnalyticsEngine, add_months, month_label
from fintrack.analytics.gating import (
    FEATURE_PLANS,
    FeatureLocked,
    can_access,
    history_feature,
    required_plan,
)
from fintrack.analytics.service import AnalyticsService, LedgerSnapshot

__all__ = [
    # Engine
    "AnalyticsEngine",
    "add_months",
    "month_label",
    # Gating
    "FEATURE_PLANS",
    "FeatureLocked",
    "can_access",
    "history_feature",
    "required_plan",
    # Service
    "AnalyticsService",
    "LedgerSnapshot",
]
