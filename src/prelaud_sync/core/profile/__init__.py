"""User profile management."""

from .debounce import UsernameCheckDebouncer
from .manager import ProfileManager
from .validation import (
    RESERVED_USERNAMES,
    validate_artist_name,
    validate_username,
)

__all__ = [
    "ProfileManager",
    "RESERVED_USERNAMES",
    "UsernameCheckDebouncer",
    "validate_artist_name",
    "validate_username",
]
