"""
Membership Store and Invite Lifecycle

Thin typed wrappers over the document store for the shared accounts and
invites collections. No business rules live here beyond the ones the
models themselves enforce and the invite status machine.

Member list writes carry the version the caller read; a stale version
surfaces as ConflictError from the storage layer.
"""

from typing import Any, Optional

import structlog
from pydantic.alias_generators import to_camel

from fintrack.models import (
    InviteStatus,
    SharedAccount,
    SharedAccountInvite,
    SharedAccountMember,
    utc_now,
)
from fintrack.services.storage import (
    BatchOperation,
    DocumentStoreInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Allowed invite status transitions
INVITE_TRANSITIONS: dict[InviteStatus, set[InviteStatus]] = {
    InviteStatus.PENDING: {InviteStatus.ACCEPTED, InviteStatus.REJECTED},
    InviteStatus.ACCEPTED: set(),
    InviteStatus.REJECTED: set(),
}


def _display_order(account: SharedAccount) -> tuple:
    """Ordered accounts first by order, then the rest newest first."""
    if account.order is not None:
        return (0, account.order, -account.created_at.timestamp())
    return (1, 0, -account.created_at.timestamp())


class InvalidTransitionError(StorageError):
    """Invite status change not allowed by the state machine."""
    pass


class SharedAccountStore:
    """CRUD over the shared accounts collection."""

    def __init__(self, store: DocumentStoreInterface, collection: str = "sharedAccounts"):
        self._store = store
        self.collection = collection

    async def create(self, account: SharedAccount) -> SharedAccount:
        account_id = await self._store.create_document(self.collection, account.to_document())
        return account.model_copy(update={"id": account_id})

    async def find(self, account_id: str) -> Optional[SharedAccount]:
        document = await self._store.get_document(self.collection, account_id)
        if document is None:
            return None
        return SharedAccount.from_document(document)

    async def get(self, account_id: str) -> SharedAccount:
        """
        Raises:
            NotFoundError: If the account doesn't exist
        """
        account = await self.find(account_id)
        if account is None:
            raise NotFoundError(f"Shared account not found: {account_id}")
        return account

    async def list_for_member(self, user_id: str) -> list[SharedAccount]:
        """Accounts the user belongs to, in display order."""
        documents = await self._store.list_documents(
            self.collection,
            filters=[("memberIds", "array_contains", user_id)],
        )
        accounts = [SharedAccount.from_document(d) for d in documents]
        return sorted(accounts, key=_display_order)

    async def count_for_member(self, user_id: str) -> int:
        documents = await self._store.list_documents(
            self.collection,
            filters=[("memberIds", "array_contains", user_id)],
        )
        return len(documents)

    def with_members(
        self,
        account: SharedAccount,
        members: list[SharedAccountMember],
    ) -> SharedAccount:
        """
        Validated copy of the account with a new member list.

        Raises:
            ValueError: If the new list breaks a membership invariant
        """
        data = account.model_dump()
        data.update(members=[m.model_dump() for m in members], updated_at=utc_now())
        return SharedAccount.model_validate(data)

    def members_operation(self, updated: SharedAccount, expected_version: int) -> BatchOperation:
        """Batch write of a member list, checked against expected_version."""
        return BatchOperation.update(
            self.collection,
            updated.id,
            self._member_fields(updated),
            expected_version=expected_version,
        )

    async def replace_members(
        self,
        account: SharedAccount,
        members: list[SharedAccountMember],
    ) -> SharedAccount:
        """
        Write a new member list if nobody changed the account since it was read.

        Raises:
            ConflictError: If the stored version moved on
        """
        updated = self.with_members(account, members)
        new_version = await self._store.update_document(
            self.collection,
            account.id,
            self._member_fields(updated),
            expected_version=account.version,
        )
        return updated.model_copy(update={"version": new_version})

    async def update_details(
        self,
        account: SharedAccount,
        changes: dict[str, Any],
    ) -> SharedAccount:
        """
        Write descriptive fields (name, balance, colours...).

        Raises:
            ValueError: If the changes produce an invalid account
            ConflictError: If the stored version moved on
        """
        data = account.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        updated = SharedAccount.model_validate(data)

        document = updated.to_document()
        fields = {
            key: document[key]
            for key in {to_camel(name) for name in changes} | {"updatedAt"}
        }
        new_version = await self._store.update_document(
            self.collection,
            account.id,
            fields,
            expected_version=account.version,
        )
        return updated.model_copy(update={"version": new_version})

    def order_operations(self, orders: dict[str, int]) -> list[BatchOperation]:
        return [
            BatchOperation.update(self.collection, account_id, {"order": order})
            for account_id, order in orders.items()
        ]

    def delete_operation(self, account_id: str) -> BatchOperation:
        return BatchOperation.delete(self.collection, account_id)

    @staticmethod
    def _member_fields(account: SharedAccount) -> dict:
        document = account.to_document()
        return {
            "members": document["members"],
            "memberIds": document["memberIds"],
            "updatedAt": document["updatedAt"],
        }


class InviteStore:
    """CRUD over the invites collection plus the status machine."""

    def __init__(self, store: DocumentStoreInterface, collection: str = "sharedAccountInvites"):
        self._store = store
        self.collection = collection

    async def create(self, invite: SharedAccountInvite) -> SharedAccountInvite:
        invite_id = await self._store.create_document(self.collection, invite.to_document())
        return invite.model_copy(update={"id": invite_id})

    async def find(self, invite_id: str) -> Optional[SharedAccountInvite]:
        document = await self._store.get_document(self.collection, invite_id)
        if document is None:
            return None
        return SharedAccountInvite.from_document(document)

    async def get(self, invite_id: str) -> SharedAccountInvite:
        """
        Raises:
            NotFoundError: If the invite doesn't exist
        """
        invite = await self.find(invite_id)
        if invite is None:
            raise NotFoundError(f"Invite not found: {invite_id}")
        return invite

    async def find_pending(
        self,
        account_id: str,
        invited_user_id: str,
    ) -> Optional[SharedAccountInvite]:
        documents = await self._store.list_documents(
            self.collection,
            filters=[
                ("sharedAccountId", "==", account_id),
                ("invitedUserId", "==", invited_user_id),
                ("status", "==", InviteStatus.PENDING.value),
            ],
            limit=1,
        )
        if not documents:
            return None
        return SharedAccountInvite.from_document(documents[0])

    async def list_pending_for_user(self, user_id: str) -> list[SharedAccountInvite]:
        documents = await self._store.list_documents(
            self.collection,
            filters=[
                ("invitedUserId", "==", user_id),
                ("status", "==", InviteStatus.PENDING.value),
            ],
        )
        invites = [SharedAccountInvite.from_document(d) for d in documents]
        invites.sort(key=lambda i: i.created_at, reverse=True)
        return invites

    async def list_for_account(self, account_id: str) -> list[SharedAccountInvite]:
        documents = await self._store.list_documents(
            self.collection,
            filters=[("sharedAccountId", "==", account_id)],
        )
        invites = [SharedAccountInvite.from_document(d) for d in documents]
        invites.sort(key=lambda i: i.created_at, reverse=True)
        return invites

    def status_operation(
        self,
        invite: SharedAccountInvite,
        status: InviteStatus,
    ) -> BatchOperation:
        """
        Batch write of a status change, checked against the invite version.

        Raises:
            InvalidTransitionError: If the state machine forbids the change
        """
        if status not in INVITE_TRANSITIONS[invite.status]:
            raise InvalidTransitionError(
                f"Invite {invite.id} cannot go from {invite.status.value} to {status.value}"
            )
        return BatchOperation.update(
            self.collection,
            invite.id,
            {"status": status.value, "updatedAt": utc_now()},
            expected_version=invite.version,
        )

    async def set_status(
        self,
        invite: SharedAccountInvite,
        status: InviteStatus,
    ) -> SharedAccountInvite:
        """
        Raises:
            InvalidTransitionError: If the state machine forbids the change
            ConflictError: If the invite changed since it was read
        """
        operation = self.status_operation(invite, status)
        new_version = await self._store.update_document(
            self.collection,
            invite.id,
            operation.data,
            expected_version=invite.version,
        )
        return invite.model_copy(
            update={"status": status, "updated_at": operation.data["updatedAt"], "version": new_version}
        )

    async def delete(self, invite_id: str) -> bool:
        return await self._store.delete_document(self.collection, invite_id)

    def delete_operation(self, invite_id: str) -> BatchOperation:
        return BatchOperation.delete(self.collection, invite_id)
