"""
Tests for Fintrack models

Test strategy:
1. Unit tests for models and their invariants
2. Service tests against the in-memory document store
3. No real API calls in tests (Stripe is monkeypatched)
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from fintrack.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    InviteStatus,
    MemberRole,
    PlanLimits,
    PlanTier,
    SharedAccount,
    SharedAccountDraft,
    SharedAccountInvite,
    SharedAccountMember,
    Transaction,
    TransactionType,
    UserProfile,
)


def owner(uid: str = "alice") -> SharedAccountMember:
    return SharedAccountMember(user_id=uid, email=f"{uid}@example.com", role=MemberRole.OWNER)


def member(uid: str) -> SharedAccountMember:
    return SharedAccountMember(user_id=uid, email=f"{uid}@example.com")


class TestSharedAccountModels:
    """Tests for shared account invariants."""

    def test_member_ids_follow_members(self):
        """member_ids is derived from the member list."""
        account = SharedAccount(
            name="Household",
            owner_id="alice",
            members=[owner(), member("bob")],
        )
        assert account.member_ids == ["alice", "bob"]
        assert account.member_count == 2
        assert account.is_owner("alice")
        assert account.is_member("bob")
        assert account.get_member("carol") is None

    def test_exactly_one_owner(self):
        """Zero or two owners are rejected."""
        with pytest.raises(ValidationError):
            SharedAccount(name="x", owner_id="alice", members=[member("alice")])
        with pytest.raises(ValidationError):
            SharedAccount(name="x", owner_id="alice", members=[owner("alice"), owner("bob")])

    def test_owner_id_matches_owner_member(self):
        """owner_id must name the owner member."""
        with pytest.raises(ValidationError):
            SharedAccount(name="x", owner_id="bob", members=[owner("alice"), member("bob")])

    def test_no_duplicate_members(self):
        """A user appears at most once."""
        with pytest.raises(ValidationError):
            SharedAccount(name="x", owner_id="alice", members=[owner(), member("bob"), member("bob")])

    def test_member_ceiling(self):
        """More than ten members is never valid."""
        members = [owner()] + [member(f"m{i}") for i in range(10)]
        with pytest.raises(ValidationError):
            SharedAccount(name="x", owner_id="alice", members=members)

    def test_document_uses_camel_case(self):
        """Stored documents use the web client's field names."""
        account = SharedAccount(
            name="Household",
            owner_id="alice",
            members=[owner()],
            current_balance=Decimal("12.50"),
        )
        document = account.to_document()

        assert "id" not in document
        assert document["ownerId"] == "alice"
        assert document["memberIds"] == ["alice"]
        assert document["currentBalance"] == 12.5
        assert document["members"][0] == {
            "userId": "alice",
            "email": "alice@example.com",
            "role": "owner",
        }

    def test_document_round_trip(self):
        """from_document reads what to_document wrote."""
        account = SharedAccount(name="Household", owner_id="alice", members=[owner()])
        restored = SharedAccount.from_document({**account.to_document(), "id": "acc-1"})

        assert restored.id == "acc-1"
        assert restored.members == account.members
        assert restored.version == 1

    def test_draft_cleans_input(self):
        """Drafts strip names, upper-case currencies and drop blank optionals."""
        draft = SharedAccountDraft(name="  Trip  ", currency="eur", iban="  ")
        assert draft.name == "Trip"
        assert draft.currency == "EUR"
        assert draft.iban is None

    def test_draft_rejects_blank_name(self):
        """A name of only spaces is invalid."""
        with pytest.raises(ValidationError):
            SharedAccountDraft(name="   ")


class TestUserAndPlanModels:
    """Tests for users and plan limits."""

    def test_search_keys_are_lower_case(self):
        """emailLower and nameLower are filled on construction."""
        user = UserProfile(id="u1", email="Alice@Example.com", name="Alice Smith")
        assert user.email_lower == "alice@example.com"
        assert user.name_lower == "alice smith"
        assert user.to_document()["emailLower"] == "alice@example.com"

    def test_photo_url_alias(self):
        """The web client stores photoURL, not photoUrl."""
        user = UserProfile.from_document({"id": "u1", "photoURL": "https://x/y.png"})
        assert user.photo_url == "https://x/y.png"
        assert "photoURL" in user.to_document()

    def test_label_fallbacks(self):
        """label prefers name, then display name, then email."""
        assert UserProfile(name="Al").label == "Al"
        assert UserProfile(display_name="Ally").label == "Ally"
        assert UserProfile(email="a@x.com").label == "a@x.com"
        assert UserProfile().label == "Unknown User"

    def test_plan_ordering(self):
        """Tiers compare by rank."""
        assert PlanTier.ULTRA.at_least(PlanTier.PRO)
        assert PlanTier.ADMIN.at_least(PlanTier.ULTRA)
        assert not PlanTier.FREE.at_least(PlanTier.PRO)
        assert not PlanTier.FREE.is_paying
        assert PlanTier.PRO.is_paying

    def test_plan_limits_reject_negative(self):
        """Limits are non-negative."""
        with pytest.raises(ValidationError):
            PlanLimits(plan=PlanTier.PRO, limits={"sharedAccounts": -1})

    def test_plan_limits_accessors(self):
        """Missing keys read as zero shared accounts and no member limit."""
        limits = PlanLimits(plan=PlanTier.PRO, limits={"accounts": 10})
        assert limits.shared_accounts == 0
        assert limits.max_members_per_shared_account is None


class TestLedgerModels:
    """Tests for transactions."""

    def test_naive_dates_are_utc(self):
        """Naive datetimes are treated as UTC."""
        tx = Transaction(type=TransactionType.INCOME, amount=Decimal("10"), date=datetime(2024, 1, 1))
        assert tx.date.tzinfo == timezone.utc

    def test_aware_dates_are_converted(self):
        """Aware datetimes are converted to UTC."""
        cet = timezone(timedelta(hours=1))
        tx = Transaction(
            type=TransactionType.EXPENSE,
            amount=Decimal("10"),
            date=datetime(2024, 1, 1, 1, 0, tzinfo=cet),
        )
        assert tx.date == datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)

    def test_signed_delta(self):
        """Only income and expense move the total."""
        now = datetime.now(timezone.utc)
        assert Transaction(type=TransactionType.INCOME, amount=Decimal("5"), date=now).signed_delta == Decimal("5")
        assert Transaction(type=TransactionType.EXPENSE, amount=Decimal("5"), date=now).signed_delta == Decimal("-5")
        assert Transaction(type=TransactionType.TRANSFER, amount=Decimal("5"), date=now).signed_delta == 0
        assert TransactionType.PARTITION_TRANSFER_TO.is_partition
        assert not TransactionType.TRANSFER.is_partition

    def test_negative_amount_rejected(self):
        """Amounts are non-negative; direction comes from the type."""
        with pytest.raises(ValidationError):
            Transaction(type=TransactionType.EXPENSE, amount=Decimal("-1"), date=datetime.now(timezone.utc))


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SHARED_ACCOUNT_CREATED,
            description="Shared account created",
        )
        assert event.event_type == AuditEventType.SHARED_ACCOUNT_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.PLAN_UPDATED,
            description="Plan updated",
            details={"plan": "pro", "interval": "monthly"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "plan_updated"
        assert log_dict["details"]["plan"] == "pro"

    def test_audit_event_to_document(self):
        """Documents keep a datetime timestamp for ordering."""
        event = AuditEvent(
            event_type=AuditEventType.MEMBER_LEFT,
            description="Member left",
            is_user_action=True,
        )
        document = event.to_document()
        assert isinstance(document["timestamp"], datetime)
        assert document["event_type"] == "member_left"
        assert document["is_user_action"] is True

    def test_audit_event_builder_invite_sent(self):
        """Test AuditEventBuilder.invite_sent."""
        correlation_id = uuid4()

        event = AuditEventBuilder.invite_sent(
            "inv-1",
            "acc-1",
            "alice",
            "bob",
            correlation_id,
        )

        assert event.event_type == AuditEventType.INVITE_SENT
        assert event.entity_id == "inv-1"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_conflict(self):
        """Conflicts are warnings about the entity that moved on."""
        event = AuditEventBuilder.concurrent_modification("shared_account", "acc-1", "bob", 3)

        assert event.event_type == AuditEventType.CONCURRENT_MODIFICATION
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "acc-1"


class TestInviteStatus:
    """Tests for the invite status enum."""

    def test_status_values(self):
        """Stored status strings."""
        assert [s.value for s in InviteStatus] == ["pending", "accepted", "rejected"]

    def test_is_pending(self):
        """Only pending invites are actionable."""
        invite = SharedAccountInvite(
            shared_account_id="acc-1",
            shared_account_name="Household",
            inviter_user_id="alice",
            invited_user_id="bob",
        )
        assert invite.is_pending
        assert not invite.model_copy(update={"status": InviteStatus.ACCEPTED}).is_pending


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
