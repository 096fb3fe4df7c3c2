"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, epoch_millis
from utils.user_context import (
    peek_current_user_id,
    set_current_user_id,
    clear_current_user_id,
)
