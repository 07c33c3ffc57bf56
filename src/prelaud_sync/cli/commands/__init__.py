"""CLI command modules."""

from .albums import albums
from .common import CliContext
from .profile import check_username_command, profile
from .sync import reset_command, status_command, sync_command

__all__ = [
    "CliContext",
    "albums",
    "check_username_command",
    "profile",
    "reset_command",
    "status_command",
    "sync_command",
]
