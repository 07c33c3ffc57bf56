"""CLI display and formatting utilities."""

from .formatters import (
    display_albums,
    display_profile,
    display_store_status,
    display_sync_result,
    display_username_check,
)

__all__ = [
    "display_albums",
    "display_profile",
    "display_store_status",
    "display_sync_result",
    "display_username_check",
]
