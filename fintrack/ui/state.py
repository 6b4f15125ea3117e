"""
Shared Accounts View State

DESIGN DECISION: The shared accounts screen is a STATE MACHINE.
A single immutable state value and a pure update(state, action) reducer
replace a pile of independent flags. Any renderer can drive it: it does
no I/O and never calls the sharing service itself.

Every transition returns a new state via model_copy; the input state is
never mutated.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from fintrack.models import SharedAccount, SharedAccountInvite, UserProfile


# Patterns shorter than this don't trigger a search
MIN_SEARCH_LENGTH = 2


class ModalKind(str, Enum):
    CREATE = "create"
    INVITE = "invite"
    LEAVE = "leave"
    DELETE = "delete"
    REMOVE_MEMBER = "remove_member"
    MANAGE_MEMBERS = "manage_members"


class ToastType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Toast(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    type: ToastType = ToastType.INFO


class SharedAccountsViewState(BaseModel):
    """Everything the shared accounts screen renders from."""

    model_config = ConfigDict(frozen=True)

    loading: bool = True
    error: Optional[str] = None

    accounts: list[SharedAccount] = Field(default_factory=list)
    pending_invites: list[SharedAccountInvite] = Field(default_factory=list)
    max_shared_accounts: int = 0
    max_members_per_account: int = 0

    modal: Optional[ModalKind] = None
    selected_account_id: Optional[str] = None
    member_to_remove: Optional[str] = None
    view_only: bool = False

    search_query: str = ""
    search_results: list[UserProfile] = Field(default_factory=list)
    searching: bool = False

    toast: Optional[Toast] = None

    @property
    def can_create(self) -> bool:
        return len(self.accounts) < self.max_shared_accounts

    @property
    def selected_account(self) -> Optional[SharedAccount]:
        for account in self.accounts:
            if account.id == self.selected_account_id:
                return account
        return None


# =============================================================================
# ACTIONS
# =============================================================================

class LoadStarted(BaseModel):
    pass


class LoadFinished(BaseModel):
    accounts: list[SharedAccount] = Field(default_factory=list)
    pending_invites: list[SharedAccountInvite] = Field(default_factory=list)
    max_shared_accounts: int = 0
    max_members_per_account: int = 0


class LoadFailed(BaseModel):
    message: str


class ModalOpened(BaseModel):
    modal: ModalKind
    account_id: Optional[str] = None
    member_user_id: Optional[str] = None
    view_only: bool = False


class ModalClosed(BaseModel):
    pass


class SearchChanged(BaseModel):
    query: str


class SearchResultsReceived(BaseModel):
    """Results for `query`; dropped if the user has typed something else since."""
    query: str
    results: list[UserProfile] = Field(default_factory=list)


class ReorderDragEnded(BaseModel):
    from_index: int
    to_index: int


class ToastShown(BaseModel):
    message: str
    type: ToastType = ToastType.INFO


class ToastDismissed(BaseModel):
    pass


Action = Union[
    LoadStarted,
    LoadFinished,
    LoadFailed,
    ModalOpened,
    ModalClosed,
    SearchChanged,
    SearchResultsReceived,
    ReorderDragEnded,
    ToastShown,
    ToastDismissed,
]


# =============================================================================
# REDUCER
# =============================================================================

def update(state: SharedAccountsViewState, action: Action) -> SharedAccountsViewState:
    """
    Apply one action.

    Raises:
        TypeError: For an unknown action
    """
    if isinstance(action, LoadStarted):
        return state.model_copy(update={"loading": True, "error": None})

    if isinstance(action, LoadFinished):
        return state.model_copy(update={
            "loading": False,
            "error": None,
            "accounts": list(action.accounts),
            "pending_invites": list(action.pending_invites),
            "max_shared_accounts": action.max_shared_accounts,
            "max_members_per_account": action.max_members_per_account,
        })

    if isinstance(action, LoadFailed):
        return state.model_copy(update={
            "loading": False,
            "error": action.message,
            "toast": Toast(message=action.message, type=ToastType.ERROR),
        })

    if isinstance(action, ModalOpened):
        return state.model_copy(update={
            "modal": action.modal,
            "selected_account_id": action.account_id,
            "member_to_remove": action.member_user_id,
            "view_only": action.view_only,
            "search_query": "",
            "search_results": [],
            "searching": False,
        })

    if isinstance(action, ModalClosed):
        return state.model_copy(update={
            "modal": None,
            "selected_account_id": None,
            "member_to_remove": None,
            "view_only": False,
            "search_query": "",
            "search_results": [],
            "searching": False,
        })

    if isinstance(action, SearchChanged):
        query = action.query.strip()
        if len(query) < MIN_SEARCH_LENGTH:
            return state.model_copy(update={
                "search_query": action.query,
                "search_results": [],
                "searching": False,
            })
        return state.model_copy(update={"search_query": action.query, "searching": True})

    if isinstance(action, SearchResultsReceived):
        if action.query != state.search_query:
            return state
        return state.model_copy(update={
            "search_results": list(action.results),
            "searching": False,
        })

    if isinstance(action, ReorderDragEnded):
        return _reorder(state, action.from_index, action.to_index)

    if isinstance(action, ToastShown):
        return state.model_copy(update={
            "toast": Toast(message=action.message, type=action.type),
        })

    if isinstance(action, ToastDismissed):
        return state.model_copy(update={"toast": None})

    raise TypeError(f"Unknown action: {type(action).__name__}")


def order_of(state: SharedAccountsViewState) -> list[str]:
    """Account ids in display order, as passed to SharedAccountService.reorder()."""
    return [account.id for account in state.accounts]


def _reorder(
    state: SharedAccountsViewState,
    from_index: int,
    to_index: int,
) -> SharedAccountsViewState:
    size = len(state.accounts)
    if from_index == to_index or not (0 <= from_index < size and 0 <= to_index < size):
        return state

    accounts = list(state.accounts)
    moved = accounts.pop(from_index)
    accounts.insert(to_index, moved)
    accounts = [a.model_copy(update={"order": i}) for i, a in enumerate(accounts)]
    return state.model_copy(update={"accounts": accounts})
