"""
Application Wiring for Fintrack

This module ties together all the components: the document store, the
audit trail, the capacity policy, the user directory and the services
built on them.

DESIGN DECISION: Every service receives its collaborators.
Nothing reaches for a global client. The same services run against
Firestore in production and the in-memory store in tests and local
development; only this factory decides which.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from fintrack.analytics import AnalyticsEngine, AnalyticsService
from fintrack.audit import AuditLogger
from fintrack.config import FirestoreSettings, get_settings
from fintrack.services.billing import StripeBillingService
from fintrack.services.sharing import (
    CapacityPolicy,
    PlanLimitsAdmin,
    SharedAccountService,
)
from fintrack.services.storage import (
    DocumentAuditStorage,
    DocumentStoreInterface,
    FirestoreClient,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    StorageError,
)
from fintrack.services.users import UserDirectory


logger = structlog.get_logger(__name__)


class AppComponents(BaseModel):
    """Everything a front end needs, wired together."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    store: DocumentStoreInterface
    audit_logger: AuditLogger
    policy: CapacityPolicy
    plan_limits: PlanLimitsAdmin
    directory: UserDirectory
    sharing: SharedAccountService
    analytics: AnalyticsService
    billing: Optional[StripeBillingService] = None
    persistent: bool = False


def create_app_components(use_firestore: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_firestore: Whether to connect to Firestore. Set to False for
                       tests and local runs; the in-memory store is used.

    Falls back to the in-memory store (with a warning) when Firestore is
    not configured. Billing is None when Stripe is not configured.
    """
    settings = get_settings()

    store: Optional[DocumentStoreInterface] = None
    collections = _collection_settings()

    if use_firestore:
        try:
            collections = settings.firestore
            client = FirestoreClient()
            client.connect()
            store = FirestoreDocumentStore(client)
        except (ValidationError, StorageError) as e:
            logger.warning("firestore_not_configured", error=str(e))
            store = None

    persistent = store is not None
    if store is None:
        store = InMemoryDocumentStore()

    app_settings = settings.app
    audit_logger = AuditLogger(DocumentAuditStorage(store, collections.audit_collection))

    policy = CapacityPolicy(
        store,
        collections.plan_limits_collection,
        max_members_ceiling=app_settings.max_members_ceiling,
    )
    plan_limits = PlanLimitsAdmin(store, collections.plan_limits_collection, audit_logger)
    directory = UserDirectory(
        store,
        collections.users_collection,
        audit_logger=audit_logger,
        min_pattern_length=app_settings.min_search_pattern_length,
        max_results=app_settings.max_search_results,
    )
    sharing = SharedAccountService(
        store,
        policy,
        directory,
        audit_logger=audit_logger,
        accounts_collection=collections.shared_accounts_collection,
        invites_collection=collections.invites_collection,
        transactions_collection=collections.transactions_collection,
    )
    analytics = AnalyticsService(
        store,
        directory,
        engine=AnalyticsEngine(clamp_negative_balances=app_settings.clamp_negative_balances),
        audit_logger=audit_logger,
        transactions_collection=collections.transactions_collection,
        accounts_collection=collections.accounts_collection,
        sub_accounts_collection=collections.sub_accounts_collection,
        shared_accounts_collection=collections.shared_accounts_collection,
    )

    billing = None
    try:
        billing = StripeBillingService(settings.stripe, directory, audit_logger)
    except ValidationError as e:
        logger.warning("stripe_not_configured", error=str(e))

    logger.info(
        "app_components_created",
        persistent=persistent,
        billing=billing is not None,
    )

    return AppComponents(
        store=store,
        audit_logger=audit_logger,
        policy=policy,
        plan_limits=plan_limits,
        directory=directory,
        sharing=sharing,
        analytics=analytics,
        billing=billing,
        persistent=persistent,
    )


def _collection_settings() -> FirestoreSettings:
    """Default collection names, usable without Firestore credentials."""
    return FirestoreSettings.model_construct(credentials_path="")
