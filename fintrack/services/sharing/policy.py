"""
Capacity Policy

Maps a plan tier to its numeric sharing limits, read from the plan limits
collection (one document per tier, id = tier value).

DESIGN DECISION: A missing limit reads as zero. Callers must tell a zero
limit on a paying plan (nobody initialised the limits) apart from a user
who really is at their quota, so require_limits_for() raises
ConfigurationMissing for the former and QuotaExceeded is left to the
service for the latter.

Limits are not cached: two reads without an admin update in between
always return the same answer, and an update is visible on the next call.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from fintrack.audit import AuditLogger
from fintrack.models import (
    MAX_MEMBERS_CEILING,
    AuditEventBuilder,
    PlanLimits,
    PlanTier,
    utc_now,
)
from fintrack.services.sharing.errors import ConfigurationMissing
from fintrack.services.storage import DocumentStoreInterface


logger = structlog.get_logger(__name__)


SHARED_ACCOUNTS_KEY = "sharedAccounts"
MAX_MEMBERS_KEY = "maxMembersPerSharedAccount"


# Written by PlanLimitsAdmin.initialize_defaults() for tiers with no document
DEFAULT_PLAN_LIMITS: dict[PlanTier, dict[str, int]] = {
    PlanTier.FREE: {
        "accounts": 3,
        "categories": 10,
        SHARED_ACCOUNTS_KEY: 0,
        MAX_MEMBERS_KEY: 0,
    },
    PlanTier.PRO: {
        "accounts": 10,
        "categories": 50,
        SHARED_ACCOUNTS_KEY: 3,
        MAX_MEMBERS_KEY: 5,
    },
    PlanTier.ULTRA: {
        "accounts": 50,
        "categories": 200,
        SHARED_ACCOUNTS_KEY: 10,
        MAX_MEMBERS_KEY: 10,
    },
    PlanTier.ADMIN: {
        "accounts": 1000,
        "categories": 1000,
        SHARED_ACCOUNTS_KEY: 50,
        MAX_MEMBERS_KEY: 10,
    },
}


class PlanCapacity(BaseModel):
    """The two limits sharing cares about."""

    shared_accounts: int = Field(default=0, ge=0)
    max_members_per_shared_account: int = Field(default=MAX_MEMBERS_CEILING, ge=0)


class CapacityPolicy:
    """Plan tier -> sharing limits."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        collection: str = "planLimits",
        max_members_ceiling: int = MAX_MEMBERS_CEILING,
    ):
        self._store = store
        self._collection = collection
        self._ceiling = min(max_members_ceiling, MAX_MEMBERS_CEILING)

    async def get_plan_limits(self, plan: PlanTier) -> Optional[PlanLimits]:
        """The stored limits document for a tier, if any."""
        document = await self._store.get_document(self._collection, plan.value)
        if document is None:
            return None
        document.setdefault("plan", plan.value)
        return PlanLimits.from_document(document)

    async def limits_for(self, plan: PlanTier) -> PlanCapacity:
        """
        Sharing limits for a tier.

        A missing document or key gives a zero shared account limit. The
        member limit falls back to the ceiling and never exceeds it.
        """
        stored = await self.get_plan_limits(plan)
        if stored is None:
            logger.warning("plan_limits_missing", plan=plan.value)
            return PlanCapacity(shared_accounts=0, max_members_per_shared_account=self._ceiling)

        if SHARED_ACCOUNTS_KEY not in stored.limits:
            logger.warning("plan_limit_key_missing", plan=plan.value, key=SHARED_ACCOUNTS_KEY)

        max_members = stored.max_members_per_shared_account
        if max_members is None:
            max_members = self._ceiling

        return PlanCapacity(
            shared_accounts=stored.shared_accounts,
            max_members_per_shared_account=min(max_members, self._ceiling),
        )

    async def require_limits_for(self, plan: PlanTier) -> PlanCapacity:
        """
        Like limits_for() but refuses an uninitialised paying plan.

        Raises:
            ConfigurationMissing: If a paying plan has a zero shared account limit
        """
        capacity = await self.limits_for(plan)
        if plan.is_paying and capacity.shared_accounts == 0:
            raise ConfigurationMissing(
                f"Shared account limits are not configured for the {plan.value} plan. "
                "An administrator must initialise plan limits."
            )
        return capacity


class PlanLimitsAdmin:
    """Administrative access to the plan limits collection."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        collection: str = "planLimits",
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._collection = collection
        self._audit_logger = audit_logger

    async def get_all_plan_limits(self) -> dict[PlanTier, PlanLimits]:
        documents = await self._store.list_documents(self._collection)
        result = {}
        for document in documents:
            try:
                plan = PlanTier(document.get("plan") or document["id"])
            except ValueError:
                logger.warning("unknown_plan_limits_document", document_id=document["id"])
                continue
            document["plan"] = plan.value
            result[plan] = PlanLimits.from_document(document)
        return result

    async def initialize_defaults(self) -> list[PlanTier]:
        """
        Write the default limits for every tier that has none.

        Existing documents are left alone, so running this twice is a no-op.

        Returns:
            The tiers that were written
        """
        existing = await self.get_all_plan_limits()
        written = []
        for plan, limits in DEFAULT_PLAN_LIMITS.items():
            if plan in existing:
                continue
            document = PlanLimits(plan=plan, limits=dict(limits)).to_document()
            await self._store.create_document(self._collection, document, document_id=plan.value)
            written.append(plan)

        if written:
            logger.info("plan_limits_initialized", plans=[p.value for p in written])
            if self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.plan_limits_initialized([p.value for p in written])
                )
        return written

    async def update_plan_limits(self, plan: PlanTier, limits: dict[str, int]) -> PlanLimits:
        """
        Merge new values into a tier's limits.

        Raises:
            ValueError: If any limit is negative
        """
        current = await self._store.get_document(self._collection, plan.value)
        merged = dict((current or {}).get("limits") or {})
        merged.update(limits)

        # Validates non-negative ints before anything is written
        updated = PlanLimits(plan=plan, limits=merged, updated_at=utc_now())
        document = updated.to_document()

        if current is None:
            await self._store.create_document(self._collection, document, document_id=plan.value)
        else:
            await self._store.update_document(self._collection, plan.value, document)

        logger.info("plan_limits_updated", plan=plan.value, limits=limits)
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.plan_limits_updated(plan.value, limits))

        updated.id = plan.value
        return updated
