"""
User Directory

Reads and writes user documents: profile lookups for the sharing service,
plan changes from billing, and the invite search.

DESIGN DECISION: Search is an indexed prefix query on the lower-cased
emailLower and nameLower fields, never a scan of the users collection.
The trade-off is prefix matching instead of substring matching: "ali"
finds "alice@x.com" but "ice" does not.
"""

from typing import Iterable, Optional

import structlog

from fintrack.audit import AuditLogger
from fintrack.models import (
    AuditEventBuilder,
    PlanInterval,
    PlanTier,
    UserProfile,
    utc_now,
)
from fintrack.services.storage import DocumentStoreInterface, NotFoundError


logger = structlog.get_logger(__name__)


# Upper bound for prefix range queries
PREFIX_SENTINEL = "\uf8ff"

# Free-plan users are dropped after the query, so fetch a wider window
SEARCH_OVERFETCH = 4


class UserDirectory:
    """Access to the users collection."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        collection: str = "users",
        audit_logger: Optional[AuditLogger] = None,
        min_pattern_length: int = 2,
        max_results: int = 5,
    ):
        self._store = store
        self._collection = collection
        self._audit_logger = audit_logger
        self._min_pattern_length = min_pattern_length
        self._max_results = max_results

    async def get_user(self, uid: str) -> Optional[UserProfile]:
        document = await self._store.get_document(self._collection, uid)
        if document is None:
            return None
        return UserProfile.from_document(document)

    async def require_user(self, uid: str) -> UserProfile:
        """
        Raises:
            NotFoundError: If the user doesn't exist
        """
        user = await self.get_user(uid)
        if user is None:
            raise NotFoundError(f"User not found: {uid}")
        return user

    async def save_user(self, user: UserProfile) -> UserProfile:
        """Create or overwrite a user document (search keys included)."""
        document = user.to_document()
        if user.id and await self._store.get_document(self._collection, user.id) is not None:
            await self._store.update_document(self._collection, user.id, document)
            return user
        uid = await self._store.create_document(self._collection, document, document_id=user.id)
        return user.model_copy(update={"id": uid})

    async def update_plan(
        self,
        uid: str,
        plan: PlanTier,
        interval: PlanInterval = PlanInterval.MONTHLY,
        stripe_customer_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        source: str = "admin",
    ) -> None:
        """
        Change a user's plan.

        The next capacity check for this user sees the new tier.

        Raises:
            NotFoundError: If the user doesn't exist
        """
        fields = {
            "plan": plan.value,
            "planInterval": interval.value,
            "updatedAt": utc_now(),
        }
        if stripe_customer_id is not None:
            fields["stripeCustomerId"] = stripe_customer_id
        if stripe_subscription_id is not None:
            fields["stripeSubscriptionId"] = stripe_subscription_id

        await self._store.update_document(self._collection, uid, fields)

        logger.info("plan_updated", user_id=uid, plan=plan.value, interval=interval.value, source=source)
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.plan_updated(uid, plan.value, interval.value, source)
            )

    async def find_by_email(self, email: str) -> Optional[UserProfile]:
        """
        Exact email lookup for invites.

        Users who have not opted in to discovery are reported as not found.
        """
        if not email or not email.strip():
            return None

        documents = await self._store.list_documents(
            self._collection,
            filters=[("emailLower", "==", email.strip().lower())],
            limit=1,
        )
        if not documents:
            return None

        user = UserProfile.from_document(documents[0])
        if not user.allow_shared_account_discovery:
            return None
        return user

    async def search(
        self,
        pattern: str,
        exclude_user_ids: Iterable[str] = (),
    ) -> list[UserProfile]:
        """
        Prefix search on email and name for the invite picker.

        Only discoverable users on a paid plan are returned, at most
        max_results of them, email matches first.
        """
        pattern = (pattern or "").strip().lower()
        if len(pattern) < self._min_pattern_length:
            return []

        excluded = set(exclude_user_ids)
        found: dict[str, UserProfile] = {}

        for field in ("emailLower", "nameLower"):
            documents = await self._store.list_documents(
                self._collection,
                filters=[
                    ("allowSharedAccountDiscovery", "==", True),
                    (field, ">=", pattern),
                    (field, "<", pattern + PREFIX_SENTINEL),
                ],
                order_by=field,
                limit=(self._max_results + len(excluded)) * SEARCH_OVERFETCH,
            )
            for document in documents:
                user = UserProfile.from_document(document)
                if user.id in excluded or user.id in found:
                    continue
                if user.plan == PlanTier.FREE:
                    continue
                found[user.id] = user

        results = list(found.values())[: self._max_results]
        logger.debug("user_search", pattern_length=len(pattern), results=len(results))
        return results
