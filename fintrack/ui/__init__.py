"""View state for the shared accounts screen."""

from fintrack.ui.state import (
    MIN_SEARCH_LENGTH,
    Action,
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
    Toast,
    ToastDismissed,
    ToastShown,
    ToastType,
    order_of,
    update,
)

__all__ = [
    "MIN_SEARCH_LENGTH",
    "Action",
    "LoadFailed",
    "LoadFinished",
    "LoadStarted",
    "ModalClosed",
    "ModalKind",
    "ModalOpened",
    "ReorderDragEnded",
    "SearchChanged",
    "SearchResultsReceived",
    "SharedAccountsViewState",
    "Toast",
    "ToastDismissed",
    "ToastShown",
    "ToastType",
    "order_of",
    "update",
]
