"""Core services: profile, sharing, library and startup sync."""

from .library import AlbumLibrary
from .profile import ProfileManager, UsernameCheckDebouncer
from .session import PrelaudSession
from .sharing import SharingCodec, mint_share_id
from .sync import SyncOrchestrator, SyncResult, SyncStage, SyncStatus

__all__ = [
    "AlbumLibrary",
    "PrelaudSession",
    "ProfileManager",
    "SharingCodec",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStage",
    "SyncStatus",
    "UsernameCheckDebouncer",
    "mint_share_id",
]
