"""Propagate user identity and permissions through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)
_current_permissions: ContextVar[frozenset[str]] = ContextVar(
    "current_permissions", default=frozenset()
)


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set.
    This is fail-fast behavior - if you're in a code path that
    requires user context and it's not set, that's a bug.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped code outside of an authenticated request."
        )
    return user_id


def set_current_user_id(user_id: UUID) -> None:
    """
    Set current user ID in context.

    Called by auth middleware after validating session.
    """
    _current_user_id.set(user_id)


def get_current_permissions() -> frozenset[str]:
    """Capability strings granted to the current user (e.g. 'lead:update_own')."""
    return _current_permissions.get()


def set_current_permissions(permissions) -> None:
    _current_permissions.set(frozenset(permissions or ()))


def has_permission(*permissions: str) -> bool:
    """True if the current user holds any of the given capabilities."""
    granted = _current_permissions.get()
    return any(p in granted for p in permissions)


def clear_current_user_id() -> None:
    """
    Clear user context and permissions.

    Called by auth middleware after request completes.
    Must be called in finally block to prevent context leakage.
    """
    _current_user_id.set(None)
    _current_permissions.set(frozenset())


@contextmanager
def user_context(user_id: UUID, permissions=None):
    """
    Context manager for temporarily acting as a user.

    Useful for tests, bulk jobs, and admin operations on behalf of a user.

    Example:
        with user_context(owner_id, {"lead:update_own"}):
            result = forward.convert_lead_to_deal(lead_id, options, owner_id)
    """
    previous_user = _current_user_id.get()
    previous_permissions = _current_permissions.get()
    set_current_user_id(user_id)
    if permissions is not None:
        set_current_permissions(permissions)
    try:
        yield
    finally:
        _current_user_id.set(previous_user)
        _current_permissions.set(previous_permissions)
