"""Tests for the shared accounts screen reducer."""

import pytest

from conftest import make_user
from fintrack.models import MemberRole, SharedAccount, SharedAccountMember
from fintrack.ui import (
    LoadFailed,
    LoadFinished,
    LoadStarted,
    ModalClosed,
    ModalKind,
    ModalOpened,
    ReorderDragEnded,
    SearchChanged,
    SearchResultsReceived,
    SharedAccountsViewState,
    ToastDismissed,
    ToastShown,
    ToastType,
    order_of,
    update,
)


def account(account_id: str) -> SharedAccount:
    return SharedAccount(
        id=account_id,
        name=account_id.title(),
        owner_id="alice",
        members=[SharedAccountMember(user_id="alice", role=MemberRole.OWNER)],
    )


@pytest.fixture
def loaded():
    return update(
        SharedAccountsViewState(),
        LoadFinished(
            accounts=[account("a"), account("b"), account("c")],
            max_shared_accounts=3,
            max_members_per_account=5,
        ),
    )


class TestLoading:
    """Load lifecycle."""

    def test_initial_state(self):
        state = SharedAccountsViewState()
        assert state.loading is True
        assert state.modal is None

    def test_load_finished(self, loaded):
        """Loaded data replaces the spinner."""
        assert loaded.loading is False
        assert order_of(loaded) == ["a", "b", "c"]
        assert loaded.can_create is False

    def test_load_failed_shows_error_toast(self):
        state = update(SharedAccountsViewState(), LoadFailed(message="offline"))

        assert state.loading is False
        assert state.error == "offline"
        assert state.toast.type == ToastType.ERROR

    def test_reload_clears_error(self):
        state = update(SharedAccountsViewState(), LoadFailed(message="offline"))
        state = update(state, LoadStarted())

        assert state.loading is True
        assert state.error is None


class TestModals:
    """Opening and closing dialogs."""

    def test_open_selects_account(self, loaded):
        state = update(loaded, ModalOpened(modal=ModalKind.MANAGE_MEMBERS, account_id="b", view_only=True))

        assert state.modal == ModalKind.MANAGE_MEMBERS
        assert state.selected_account.id == "b"
        assert state.view_only is True

    def test_close_resets_selection_and_search(self, loaded):
        state = update(loaded, ModalOpened(modal=ModalKind.REMOVE_MEMBER, account_id="a", member_user_id="bob"))
        state = update(state, SearchChanged(query="bo"))
        state = update(state, ModalClosed())

        assert state.modal is None
        assert state.selected_account is None
        assert state.member_to_remove is None
        assert state.search_query == ""
        assert state.searching is False

    def test_input_state_is_untouched(self, loaded):
        """Transitions return new states."""
        update(loaded, ModalOpened(modal=ModalKind.CREATE))
        assert loaded.modal is None


class TestSearch:
    """Invite search as the user types."""

    def test_short_query_does_not_search(self, loaded):
        state = update(loaded, SearchChanged(query="b"))
        assert state.searching is False
        assert state.search_results == []

    def test_results_for_current_query(self, loaded):
        state = update(loaded, SearchChanged(query="bo"))
        assert state.searching is True

        state = update(state, SearchResultsReceived(query="bo", results=[make_user("bob")]))

        assert state.searching is False
        assert [u.id for u in state.search_results] == ["bob"]

    def test_stale_results_are_dropped(self, loaded):
        """Results for an older query never overwrite newer input."""
        state = update(loaded, SearchChanged(query="bo"))
        state = update(state, SearchChanged(query="bob"))

        stale = update(state, SearchResultsReceived(query="bo", results=[make_user("bob")]))

        assert stale is state
        assert stale.searching is True


class TestReorder:
    """Drag and drop ordering."""

    def test_move_down(self, loaded):
        state = update(loaded, ReorderDragEnded(from_index=0, to_index=2))

        assert order_of(state) == ["b", "c", "a"]
        assert [a.order for a in state.accounts] == [0, 1, 2]

    def test_noop_moves(self, loaded):
        """Same or out-of-range positions change nothing."""
        assert update(loaded, ReorderDragEnded(from_index=1, to_index=1)) is loaded
        assert update(loaded, ReorderDragEnded(from_index=0, to_index=5)) is loaded


class TestToasts:
    def test_show_and_dismiss(self, loaded):
        state = update(loaded, ToastShown(message="Invite sent", type=ToastType.SUCCESS))
        assert state.toast.message == "Invite sent"

        assert update(state, ToastDismissed()).toast is None

    def test_unknown_action(self, loaded):
        with pytest.raises(TypeError):
            update(loaded, object())
