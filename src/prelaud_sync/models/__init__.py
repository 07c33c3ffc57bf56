"""Data models for the prelaud sync engine."""

from .models import (
    Album,
    EncodableAlbum,
    EncodableSong,
    ProfileStats,
    SharePermissions,
    Song,
    UserProfile,
    UsernameCheckResult,
    UsernameStatus,
    ValidationResult,
    ensure_utc,
    new_id,
    utc_now,
)

__all__ = [
    "Album",
    "EncodableAlbum",
    "EncodableSong",
    "ProfileStats",
    "SharePermissions",
    "Song",
    "UserProfile",
    "UsernameCheckResult",
    "UsernameStatus",
    "ValidationResult",
    "ensure_utc",
    "new_id",
    "utc_now",
]
