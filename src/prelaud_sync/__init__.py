"""Prelaud sync engine.

Startup sync and identity reconciliation for the prelaud music sharing app:
decides between first-run setup and the main experience, keeps the artist
profile in step with the identity service and encodes albums for sharing.
"""

__version__ = "1.0.0"

from .config import Config
from .core import (
    AlbumLibrary,
    PrelaudSession,
    ProfileManager,
    SharingCodec,
    SyncOrchestrator,
)
from .database import LocalStore
from .models import Album, EncodableAlbum, SharePermissions, Song, UserProfile
from .services import IdentityServiceClient, RestIdentityClient

__all__ = [
    "Album",
    "AlbumLibrary",
    "Config",
    "EncodableAlbum",
    "IdentityServiceClient",
    "LocalStore",
    "PrelaudSession",
    "ProfileManager",
    "RestIdentityClient",
    "SharePermissions",
    "SharingCodec",
    "Song",
    "SyncOrchestrator",
    "UserProfile",
]
