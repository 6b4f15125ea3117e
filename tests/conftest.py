"""
Shared fixtures.

Every service test runs against the in-memory document store; nothing
here talks to Firestore or Stripe.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from fintrack.audit import AuditLogger
from fintrack.models import PlanTier, SharedAccountDraft, UserProfile
from fintrack.services.sharing import (
    CapacityPolicy,
    PlanLimitsAdmin,
    SharedAccountService,
)
from fintrack.services.storage import DocumentAuditStorage, InMemoryDocumentStore
from fintrack.services.users import UserDirectory


FIXED_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_user(uid: str, plan: PlanTier = PlanTier.PRO, discoverable: bool = True) -> UserProfile:
    return UserProfile(
        id=uid,
        email=f"{uid}@example.com",
        name=uid.title(),
        plan=plan,
        allow_shared_account_discovery=discoverable,
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit_storage(store):
    return DocumentAuditStorage(store)


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def directory(store, audit_logger):
    return UserDirectory(store, audit_logger=audit_logger)


@pytest.fixture
def policy(store):
    return CapacityPolicy(store)


@pytest.fixture
def plan_admin(store, audit_logger):
    return PlanLimitsAdmin(store, audit_logger=audit_logger)


@pytest.fixture
def sharing(store, policy, directory, audit_logger):
    return SharedAccountService(store, policy, directory, audit_logger)


@pytest_asyncio.fixture
async def seeded(plan_admin, directory):
    """Default plan limits plus a handful of users on different plans."""
    await plan_admin.initialize_defaults()
    users = {
        "alice": make_user("alice", PlanTier.ULTRA),
        "bob": make_user("bob", PlanTier.PRO),
        "carol": make_user("carol", PlanTier.PRO),
        "dave": make_user("dave", PlanTier.FREE),
        "erin": make_user("erin", PlanTier.ULTRA, discoverable=False),
    }
    for user in users.values():
        await directory.save_user(user)
    return users


def draft(name: str = "Household") -> SharedAccountDraft:
    return SharedAccountDraft(name=name)
