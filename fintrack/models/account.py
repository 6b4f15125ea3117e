"""
Shared Account Models

A shared account is a financial account with a single owner and a bounded
set of member users. Invites are proposals from the owner to a prospective
member, resolved by accept or reject.

These models are the schema of the shared accounts, invites, users and
plan limits collections. Validators hold the membership invariants so a
malformed account can never be built, let alone stored.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from fintrack.models.base import CamelModel, DocumentModel, utc_now


# Hard ceiling on members per shared account
MAX_MEMBERS_CEILING = 10


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class PlanTier(str, Enum):
    """
    Subscription level.

    Tiers are ordered: a feature gated at "pro" is open to ultra and admin.
    """
    FREE = "free"
    PRO = "pro"
    ULTRA = "ultra"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _PLAN_RANK[self]

    @property
    def is_paying(self) -> bool:
        return self is not PlanTier.FREE

    def at_least(self, other: "PlanTier") -> bool:
        return self.rank >= other.rank


_PLAN_RANK = {
    PlanTier.FREE: 0,
    PlanTier.PRO: 1,
    PlanTier.ULTRA: 2,
    PlanTier.ADMIN: 3,
}


class PlanInterval(str, Enum):
    """Billing interval."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AccountType(str, Enum):
    """Kind of financial account."""
    CHECKING = "checking"
    SAVINGS = "savings"
    INVESTMENT = "investment"
    WALLET = "wallet"
    CREDIT_CARD = "credit_card"
    OTHER = "other"


class MemberRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class InviteStatus(str, Enum):
    """
    Invite state.

    pending -> accepted (terminal)
    pending -> rejected (terminal)
    pending -> deleted (cancelled by the inviter, or cascaded by account deletion)
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# =============================================================================
# SHARED ACCOUNT
# =============================================================================

class SharedAccountMember(CamelModel):
    """One entry of a shared account's member list."""

    user_id: str = Field(..., min_length=1)
    email: str = Field(default="")
    role: MemberRole = Field(default=MemberRole.MEMBER)


class SharedAccountDraft(BaseModel):
    """
    Caller-supplied data for a new shared account.

    Ownership, members, order and timestamps are never taken from the
    caller; the service fills them in.
    """

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    type: AccountType = Field(default=AccountType.CHECKING)
    current_balance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Opening balance"
    )
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    color: Optional[str] = Field(default=None, max_length=20)
    icon: Optional[str] = Field(default=None, max_length=50)
    iban: Optional[str] = Field(default=None, max_length=34)
    bic: Optional[str] = Field(default=None, max_length=11)

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Account name cannot be blank")
        return v.strip()

    @field_validator('currency')
    @classmethod
    def currency_upper(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('iban', 'bic', 'color', 'icon')
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class SharedAccount(DocumentModel):
    """
    A financial account owned by one user and shared with members.

    INVARIANTS (checked on every construction):
    - exactly one member has role=owner
    - owner_id is that member's user_id
    - no user appears twice in members
    - member count never exceeds the hard ceiling
    """

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="")
    type: AccountType = Field(default=AccountType.CHECKING)
    current_balance: Decimal = Field(default=Decimal("0"))
    currency: str = Field(default="EUR")
    color: Optional[str] = None
    icon: Optional[str] = None
    iban: Optional[str] = None
    bic: Optional[str] = None
    archived: bool = False

    owner_id: str = Field(..., min_length=1)
    members: list[SharedAccountMember] = Field(default_factory=list)
    member_ids: list[str] = Field(
        default_factory=list,
        description="Denormalised user ids, kept in sync with members for indexed lookups"
    )

    order: Optional[int] = None
    version: int = Field(default=1, ge=1)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_members(self) -> 'SharedAccount':
        """Check the ownership and membership invariants."""
        owners = [m for m in self.members if m.role == MemberRole.OWNER]
        if len(owners) != 1:
            raise ValueError(
                f"A shared account must have exactly one owner (found {len(owners)})"
            )
        if owners[0].user_id != self.owner_id:
            raise ValueError("owner_id does not match the owner member")

        ids = [m.user_id for m in self.members]
        if len(ids) != len(set(ids)):
            raise ValueError("A user cannot appear twice in members")

        if len(ids) > MAX_MEMBERS_CEILING:
            raise ValueError(
                f"A shared account cannot have more than {MAX_MEMBERS_CEILING} members"
            )

        self.member_ids = ids
        return self

    def is_member(self, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.members)

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def get_member(self, user_id: str) -> Optional[SharedAccountMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    @property
    def member_count(self) -> int:
        return len(self.members)


class SharedAccountInvite(DocumentModel):
    """
    An invitation from the account owner to a prospective member.

    At most one pending invite may exist per (account, invited user).
    Status writes are checked against version, like member lists, so an
    accept and a reject racing on the same invite cannot both land.
    """

    shared_account_id: str = Field(..., min_length=1)
    shared_account_name: str = Field(..., min_length=1)

    inviter_user_id: str = Field(..., min_length=1)
    inviter_email: str = Field(default="")
    inviter_name: str = Field(default="")

    invited_user_id: str = Field(..., min_length=1)
    invited_email: str = Field(default="")

    status: InviteStatus = Field(default=InviteStatus.PENDING)
    version: int = Field(default=1, ge=1)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.status == InviteStatus.PENDING


# =============================================================================
# USERS AND PLANS
# =============================================================================

class UserProfile(DocumentModel):
    """
    A user document.

    email_lower and name_lower are maintained on every write so the
    directory can run indexed prefix queries instead of scanning users.
    """

    email: str = Field(default="")
    name: str = Field(default="")
    display_name: Optional[str] = None
    photo_url: str = Field(default="", alias="photoURL")
    role: UserRole = Field(default=UserRole.USER)

    plan: PlanTier = Field(default=PlanTier.FREE)
    plan_interval: PlanInterval = Field(default=PlanInterval.MONTHLY)
    stripe_customer_id: str = Field(default="")
    stripe_subscription_id: str = Field(default="")

    allow_shared_account_discovery: bool = Field(
        default=False,
        description="Whether other users may find this user when inviting"
    )

    email_lower: str = Field(default="")
    name_lower: str = Field(default="")

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def fill_search_keys(self) -> 'UserProfile':
        self.email_lower = self.email.strip().lower()
        self.name_lower = (self.name or self.display_name or "").strip().lower()
        return self

    @property
    def uid(self) -> Optional[str]:
        return self.id

    @property
    def label(self) -> str:
        """Name to show in messages."""
        return self.name or self.display_name or self.email or "Unknown User"


class PlanLimits(DocumentModel):
    """
    Numeric quotas for one plan tier.

    Stored one document per plan (document id = plan value). The limits
    mapping is open-ended; sharing only reads sharedAccounts and
    maxMembersPerSharedAccount.
    """

    plan: PlanTier
    limits: dict[str, int] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('limits')
    @classmethod
    def non_negative(cls, v: dict[str, int]) -> dict[str, int]:
        for key, value in v.items():
            if value < 0:
                raise ValueError(f"Limit {key} cannot be negative")
        return v

    @property
    def shared_accounts(self) -> int:
        return self.limits.get("sharedAccounts", 0)

    @property
    def max_members_per_shared_account(self) -> Optional[int]:
        return self.limits.get("maxMembersPerSharedAccount")


# =============================================================================
# OPERATION RESULTS
# =============================================================================

class InviteTarget(BaseModel):
    """A prospective member for the invite fan-out on creation."""

    user_id: str = Field(..., min_length=1)
    email: str = Field(default="")


class InviteResult(BaseModel):
    """Outcome of one invite sent during account creation."""

    target: InviteTarget
    ok: bool
    invite_id: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


class SharedAccountCreation(BaseModel):
    """
    Result of creating a shared account.

    The account exists even when some invites failed; failed targets can
    be re-invited individually.
    """

    created: SharedAccount
    invite_results: list[InviteResult] = Field(default_factory=list)

    @property
    def failed_invites(self) -> list[InviteResult]:
        return [r for r in self.invite_results if not r.ok]

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.invite_results if r.ok)
