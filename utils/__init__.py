"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, parse_iso, days_since, within_days
from utils.user_context import (
    get_current_user_id,
    set_current_user_id,
    clear_current_user_id,
    get_current_permissions,
    set_current_permissions,
    has_permission,
    user_context,
)
