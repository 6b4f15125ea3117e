"""
Shared Account Service

Orchestrates the capacity policy, the membership store and the invite
lifecycle to implement every shared account operation with its
preconditions.

DESIGN DECISION: Each operation is atomic from the caller's point of view.
- Operations touching one document write it once
- Accepting an invite (member append + invite status) and deleting an
  account (account + every invite) are single batches
- Member list writes are compare-and-swap on the account version; a
  concurrent edit surfaces as Conflict and nothing is written

The one exception is create(): the account is written first and the
initial invites are sent one by one afterwards. A failed invite never
undoes the account or the invites already sent; the caller gets a
per-target result and can re-invite the failures.

No retries happen here. Every precondition failure is a SharedAccountError
raised straight to the caller.
"""

from contextlib import asynccontextmanager
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog

from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.models import (
    AuditEvent,
    AuditEventBuilder,
    InviteResult,
    InviteStatus,
    InviteTarget,
    MemberRole,
    SharedAccount,
    SharedAccountCreation,
    SharedAccountDraft,
    SharedAccountInvite,
    SharedAccountMember,
    Transaction,
    UserProfile,
)
from fintrack.services.sharing.errors import (
    AlreadyMember,
    CannotRemoveOwner,
    CapacityExceeded,
    Conflict,
    DuplicateInvite,
    InvalidOperation,
    InviteeQuotaExceeded,
    InviteNotPending,
    NotFound,
    OwnerCannotLeave,
    PermissionDenied,
    QuotaExceeded,
    SharedAccountError,
)
from fintrack.services.sharing.policy import CapacityPolicy
from fintrack.services.sharing.store import InviteStore, SharedAccountStore
from fintrack.services.storage import (
    ConflictError,
    DocumentStoreInterface,
    NotFoundError,
    StorageError,
)
from fintrack.services.users import UserDirectory


logger = structlog.get_logger(__name__)


# Fields the owner may change after creation
EDITABLE_FIELDS = frozenset({
    "name",
    "description",
    "type",
    "color",
    "icon",
    "iban",
    "bic",
    "currency",
    "current_balance",
})


class SharedAccountService:
    """
    Shared account operations.

    Usage:
        service = SharedAccountService(store, policy, directory, audit_logger)
        result = await service.create(owner_id, draft, initial_members=targets)
        invite = await service.invite(result.created.id, owner_id, friend_id)
        await service.accept_invite(invite.id, acting_user_id=friend_id)
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        policy: CapacityPolicy,
        directory: UserDirectory,
        audit_logger: Optional[AuditLogger] = None,
        accounts_collection: str = "sharedAccounts",
        invites_collection: str = "sharedAccountInvites",
        transactions_collection: str = "transactions",
    ):
        self._store = store
        self._policy = policy
        self._directory = directory
        self._audit_logger = audit_logger
        self._accounts = SharedAccountStore(store, accounts_collection)
        self._invites = InviteStore(store, invites_collection)
        self._transactions_collection = transactions_collection

    # =========================================================================
    # CREATE AND INVITE
    # =========================================================================

    async def create(
        self,
        owner_id: str,
        draft: SharedAccountDraft,
        initial_members: Sequence[InviteTarget] = (),
    ) -> SharedAccountCreation:
        """
        Create a shared account owned by owner_id, then invite initial_members.

        Raises:
            NotFound: If the owner has no user document
            ConfigurationMissing: If the owner's paying plan has no limits
            QuotaExceeded: If the owner is at their shared account quota
        """
        owner = await self._require_user(owner_id)
        capacity = await self._policy.require_limits_for(owner.plan)

        count = await self._accounts.count_for_member(owner_id)
        if count >= capacity.shared_accounts:
            raise QuotaExceeded(
                f"Shared account limit reached ({count}/{capacity.shared_accounts}) "
                f"for the {owner.plan.value} plan"
            )

        account = SharedAccount(
            **draft.model_dump(),
            owner_id=owner_id,
            members=[SharedAccountMember(user_id=owner_id, email=owner.email, role=MemberRole.OWNER)],
        )
        created = await self._accounts.create(account)

        correlation_id = create_correlation_id()
        logger.info(
            "shared_account_created",
            account_id=created.id,
            owner_id=owner_id,
            initial_members=len(initial_members),
        )
        await self._audit(
            AuditEventBuilder.shared_account_created(created.id, owner_id, created.name, correlation_id)
        )

        results = []
        for target in initial_members:
            results.append(await self._send_initial_invite(created, owner_id, target, correlation_id))

        return SharedAccountCreation(created=created, invite_results=results)

    async def _send_initial_invite(
        self,
        account: SharedAccount,
        owner_id: str,
        target: InviteTarget,
        correlation_id: UUID,
    ) -> InviteResult:
        """One step of the best-effort fan-out; never raises."""
        try:
            invite = await self.invite(account.id, owner_id, target.user_id, correlation_id=correlation_id)
            return InviteResult(target=target, ok=True, invite_id=invite.id)
        except (SharedAccountError, StorageError) as e:
            error_code = getattr(e, "code", "storage_error")
            logger.warning(
                "initial_invite_failed",
                account_id=account.id,
                invited_user_id=target.user_id,
                error_code=error_code,
                error=str(e),
            )
            await self._audit(
                AuditEventBuilder.invite_failed(
                    account.id, owner_id, target.user_id, error_code, str(e), correlation_id
                )
            )
            return InviteResult(target=target, ok=False, error_code=error_code, error=str(e))

    async def invite(
        self,
        account_id: str,
        inviter_id: str,
        invited_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> SharedAccountInvite:
        """
        Invite a user to an account.

        Checks, in order: self-invite, account exists, inviter is owner,
        no pending duplicate, account below its member limit, invitee below
        their shared account quota, invitee not already a member.

        Raises:
            InvalidOperation, NotFound, PermissionDenied, DuplicateInvite,
            CapacityExceeded, InviteeQuotaExceeded, AlreadyMember
        """
        if inviter_id == invited_user_id:
            raise InvalidOperation("You cannot invite yourself")

        account = await self._get_account(account_id)

        if not account.is_owner(inviter_id):
            raise PermissionDenied("Only the owner can invite members")

        if await self._invites.find_pending(account_id, invited_user_id) is not None:
            raise DuplicateInvite("An invite is already pending for this user")

        max_members = await self._max_members(account)
        if account.member_count >= max_members:
            raise CapacityExceeded(
                f"Shared account has reached its member limit ({account.member_count}/{max_members})"
            )

        invitee = await self._require_user(invited_user_id)
        invitee_capacity = await self._policy.limits_for(invitee.plan)
        invitee_count = await self._accounts.count_for_member(invited_user_id)
        if invitee_count >= invitee_capacity.shared_accounts:
            raise InviteeQuotaExceeded(
                f"{invitee.label} has reached their shared accounts limit "
                f"({invitee_count}/{invitee_capacity.shared_accounts})"
            )

        if account.is_member(invited_user_id):
            raise AlreadyMember(f"{invitee.label} is already a member of this account")

        inviter = await self._require_user(inviter_id)
        invite = await self._invites.create(
            SharedAccountInvite(
                shared_account_id=account_id,
                shared_account_name=account.name,
                inviter_user_id=inviter_id,
                inviter_email=inviter.email,
                inviter_name=inviter.label,
                invited_user_id=invited_user_id,
                invited_email=invitee.email,
            )
        )

        logger.info("invite_sent", invite_id=invite.id, account_id=account_id, invited_user_id=invited_user_id)
        await self._audit(
            AuditEventBuilder.invite_sent(invite.id, account_id, inviter_id, invited_user_id, correlation_id)
        )
        return invite

    async def invite_by_email(
        self,
        account_id: str,
        inviter_id: str,
        email: str,
    ) -> SharedAccountInvite:
        """
        Invite the user registered under email.

        Raises:
            NotFound: If no discoverable user has that email
            (plus everything invite() raises)
        """
        user = await self._directory.find_by_email(email)
        if user is None:
            raise NotFound("No user found with that email, or they don't allow discovery")
        return await self.invite(account_id, inviter_id, user.id)

    # =========================================================================
    # INVITE RESOLUTION
    # =========================================================================

    async def accept_invite(
        self,
        invite_id: str,
        acting_user_id: Optional[str] = None,
    ) -> SharedAccount:
        """
        Accept an invite: mark it accepted and add the invitee as a member.

        When acting_user_id is given it must be the invitee, and their own
        shared account quota is checked before anything is written.

        Raises:
            NotFound, PermissionDenied, InviteNotPending, AlreadyMember,
            CapacityExceeded, QuotaExceeded, Conflict
        """
        invite = await self._get_invite(invite_id)
        self._check_invitee(invite, acting_user_id)

        if not invite.is_pending:
            raise InviteNotPending(f"Invite is already {invite.status.value}")

        account = await self._get_account(invite.shared_account_id)

        if account.is_member(invite.invited_user_id):
            raise AlreadyMember("Already a member of this shared account")

        max_members = await self._max_members(account)
        if account.member_count >= max_members:
            raise CapacityExceeded(
                f"Shared account has reached its member limit ({max_members})"
            )

        if acting_user_id is not None:
            user = await self._require_user(acting_user_id)
            capacity = await self._policy.limits_for(user.plan)
            count = await self._accounts.count_for_member(acting_user_id)
            if count >= capacity.shared_accounts:
                raise QuotaExceeded(
                    f"Shared account limit reached ({count}/{capacity.shared_accounts})"
                )

        member = SharedAccountMember(
            user_id=invite.invited_user_id,
            email=invite.invited_email,
            role=MemberRole.MEMBER,
        )
        updated = self._accounts.with_members(account, [*account.members, member])

        async with self._translate_conflict(invite.invited_user_id):
            await self._store.commit_batch([
                self._accounts.members_operation(updated, expected_version=account.version),
                self._invites.status_operation(invite, InviteStatus.ACCEPTED),
            ])

        logger.info("invite_accepted", invite_id=invite_id, account_id=account.id)
        await self._audit(AuditEventBuilder.invite_accepted(invite_id, account.id, invite.invited_user_id))
        return updated.model_copy(update={"version": account.version + 1})

    async def reject_invite(
        self,
        invite_id: str,
        acting_user_id: Optional[str] = None,
    ) -> SharedAccountInvite:
        """
        Reject an invite. Rejected is terminal.

        Raises:
            NotFound, PermissionDenied, InviteNotPending, Conflict
        """
        invite = await self._get_invite(invite_id)
        self._check_invitee(invite, acting_user_id)

        if not invite.is_pending:
            raise InviteNotPending(f"Invite is already {invite.status.value}")

        async with self._translate_conflict(invite.invited_user_id):
            rejected = await self._invites.set_status(invite, InviteStatus.REJECTED)

        logger.info("invite_rejected", invite_id=invite_id)
        await self._audit(
            AuditEventBuilder.invite_rejected(invite_id, invite.shared_account_id, invite.invited_user_id)
        )
        return rejected

    async def cancel_invite(self, invite_id: str, requesting_user_id: str) -> None:
        """
        Withdraw a pending invite. Only the inviter may do this.

        Raises:
            NotFound, PermissionDenied, InviteNotPending
        """
        invite = await self._get_invite(invite_id)

        if invite.inviter_user_id != requesting_user_id:
            raise PermissionDenied("Only the inviter can cancel this invite")
        if not invite.is_pending:
            raise InviteNotPending(f"Invite is already {invite.status.value}")

        await self._invites.delete(invite_id)

        logger.info("invite_cancelled", invite_id=invite_id)
        await self._audit(
            AuditEventBuilder.invite_cancelled(invite_id, invite.shared_account_id, requesting_user_id)
        )

    # =========================================================================
    # MEMBERSHIP CHANGES
    # =========================================================================

    async def leave(self, account_id: str, user_id: str) -> SharedAccount:
        """
        Remove yourself from an account.

        Raises:
            NotFound: If the account doesn't exist or user_id isn't a member
            OwnerCannotLeave: The owner must delete the account instead
            Conflict: If the account changed concurrently
        """
        account = await self._get_account(account_id)

        if account.is_owner(user_id):
            raise OwnerCannotLeave("Owner cannot leave. Delete the account instead.")
        if not account.is_member(user_id):
            raise NotFound("You are not a member of this shared account")

        updated = await self._write_members(
            account,
            [m for m in account.members if m.user_id != user_id],
            actor_id=user_id,
        )

        logger.info("member_left", account_id=account_id, user_id=user_id)
        await self._audit(AuditEventBuilder.member_left(account_id, user_id))
        return updated

    async def remove_member(
        self,
        account_id: str,
        member_user_id: str,
        requesting_user_id: str,
    ) -> SharedAccount:
        """
        Owner removes a member.

        Raises:
            NotFound, PermissionDenied, CannotRemoveOwner, Conflict
        """
        account = await self._get_account(account_id)

        if not account.is_owner(requesting_user_id):
            raise PermissionDenied("Only the owner can remove members")
        if member_user_id == account.owner_id:
            raise CannotRemoveOwner("Cannot remove the owner")
        if not account.is_member(member_user_id):
            raise NotFound("That user is not a member of this shared account")

        updated = await self._write_members(
            account,
            [m for m in account.members if m.user_id != member_user_id],
            actor_id=requesting_user_id,
        )

        logger.info("member_removed", account_id=account_id, member_user_id=member_user_id)
        await self._audit(AuditEventBuilder.member_removed(account_id, member_user_id, requesting_user_id))
        return updated

    async def delete(self, account_id: str, requesting_user_id: str) -> int:
        """
        Delete an account and every invite that references it, in one batch.

        Returns:
            Number of invites deleted with it

        Raises:
            NotFound, PermissionDenied
        """
        account = await self._get_account(account_id)

        if not account.is_owner(requesting_user_id):
            raise PermissionDenied("Only the owner can delete this shared account")

        invites = await self._invites.list_for_account(account_id)
        operations = [self._accounts.delete_operation(account_id)]
        operations.extend(self._invites.delete_operation(i.id) for i in invites)
        await self._store.commit_batch(operations)

        logger.info("shared_account_deleted", account_id=account_id, invites_removed=len(invites))
        await self._audit(AuditEventBuilder.shared_account_deleted(account_id, requesting_user_id, len(invites)))
        return len(invites)

    async def reorder(self, user_id: str, ordered_account_ids: Sequence[str]) -> dict[str, int]:
        """
        Store the display order of a user's accounts.

        Each account gets its position in ordered_account_ids. Ids of
        accounts the user doesn't belong to are skipped silently.

        Returns:
            The orders written, by account id
        """
        member_of = {a.id for a in await self._accounts.list_for_member(user_id)}
        orders = {
            account_id: index
            for index, account_id in enumerate(ordered_account_ids)
            if account_id in member_of
        }

        if orders:
            await self._store.commit_batch(self._accounts.order_operations(orders))
            await self._audit(AuditEventBuilder.shared_accounts_reordered(user_id, list(orders)))
        return orders

    async def update_details(
        self,
        account_id: str,
        requesting_user_id: str,
        changes: dict[str, Any],
    ) -> SharedAccount:
        """
        Owner edits descriptive fields.

        Raises:
            NotFound, PermissionDenied, InvalidOperation, Conflict
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidOperation(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        account = await self._get_account(account_id)
        if not account.is_owner(requesting_user_id):
            raise PermissionDenied("Only the owner can edit this shared account")

        if not changes:
            return account

        async with self._translate_conflict(requesting_user_id):
            try:
                updated = await self._accounts.update_details(account, changes)
            except ValueError as e:
                raise InvalidOperation(f"Invalid account details: {e}")

        await self._audit(
            AuditEventBuilder.shared_account_updated(account_id, requesting_user_id, sorted(changes))
        )
        return updated

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def list_accounts(self, user_id: str) -> list[SharedAccount]:
        """Accounts the user belongs to, in their display order."""
        return await self._accounts.list_for_member(user_id)

    async def pending_invites(self, user_id: str) -> list[SharedAccountInvite]:
        return await self._invites.list_pending_for_user(user_id)

    async def account_invites(
        self,
        account_id: str,
        requesting_user_id: str,
    ) -> list[SharedAccountInvite]:
        """Every invite of an account; members only."""
        account = await self._get_account(account_id)
        if not account.is_member(requesting_user_id):
            raise PermissionDenied("Only members can see this account's invites")
        return await self._invites.list_for_account(account_id)

    async def account_transactions(
        self,
        account_id: str,
        requesting_user_id: str,
    ) -> list[Transaction]:
        """Transactions recorded against a shared account, newest first; members only."""
        account = await self._get_account(account_id)
        if not account.is_member(requesting_user_id):
            raise PermissionDenied("Only members can see this account's transactions")

        documents = await self._store.list_documents(
            self._transactions_collection,
            filters=[("sharedAccountId", "==", account_id)],
        )
        transactions = [Transaction.from_document(d) for d in documents]
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _get_account(self, account_id: str) -> SharedAccount:
        try:
            return await self._accounts.get(account_id)
        except NotFoundError:
            raise NotFound("Shared account not found")

    async def _get_invite(self, invite_id: str) -> SharedAccountInvite:
        try:
            return await self._invites.get(invite_id)
        except NotFoundError:
            raise NotFound("Invite not found")

    async def _require_user(self, user_id: str) -> UserProfile:
        user = await self._directory.get_user(user_id)
        if user is None:
            raise NotFound(f"User not found: {user_id}")
        return user

    async def _max_members(self, account: SharedAccount) -> int:
        """Member limit of the owner's plan."""
        owner = await self._require_user(account.owner_id)
        capacity = await self._policy.limits_for(owner.plan)
        return capacity.max_members_per_shared_account

    @staticmethod
    def _check_invitee(invite: SharedAccountInvite, acting_user_id: Optional[str]) -> None:
        if acting_user_id is not None and acting_user_id != invite.invited_user_id:
            raise PermissionDenied("Only the invited user can answer this invite")

    async def _write_members(
        self,
        account: SharedAccount,
        members: list[SharedAccountMember],
        actor_id: str,
    ) -> SharedAccount:
        async with self._translate_conflict(actor_id):
            return await self._accounts.replace_members(account, members)

    @asynccontextmanager
    async def _translate_conflict(self, actor_id: Optional[str]):
        """Turn a storage version mismatch into Conflict, audited."""
        try:
            yield
        except ConflictError as e:
            entity_type = "invite" if e.collection == self._invites.collection else "shared_account"
            logger.warning(
                "write_conflict",
                entity_type=entity_type,
                document_id=e.document_id,
                expected_version=e.expected,
                actual_version=e.actual,
            )
            if self._audit_logger:
                await self._audit_logger.log_conflict(entity_type, e.document_id, actor_id, e.expected)
            if entity_type == "invite":
                raise Conflict("This invite was answered elsewhere. Reload and try again.")
            raise Conflict(
                "This shared account was changed by someone else. Reload and try again."
            )
        except NotFoundError:
            raise NotFound("Shared account or invite no longer exists")

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)
