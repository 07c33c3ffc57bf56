"""Local persistence for the profile and album library."""

from .models import AlbumRecord, Base, ProfileRecord
from .service import LocalStore

__all__ = [
    "AlbumRecord",
    "Base",
    "LocalStore",
    "ProfileRecord",
]
