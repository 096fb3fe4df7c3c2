"""Propagate the signed-in user's id through the call stack using contextvars."""

from contextvars import ContextVar

_current_user_id: ContextVar[int | None] = ContextVar("current_user_id", default=None)


def peek_current_user_id() -> int | None:
    """Current user ID, or None for anonymous requests."""
    return _current_user_id.get()


def set_current_user_id(user_id: int) -> None:
    """
    Set current user ID in context.

    Called by auth middleware after validating the session.
    """
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """
    Clear user context.

    Called by auth middleware after request completes.
    Must be called in finally block to prevent context leakage.
    """
    _current_user_id.set(None)
