"""Shared fixtures and fakes for the test suite."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

import pytest

from prelaud_sync.core.library import AlbumLibrary
from prelaud_sync.core.profile.manager import ProfileManager
from prelaud_sync.core.sharing.codec import SharingCodec
from prelaud_sync.core.sync.orchestrator import SyncOrchestrator
from prelaud_sync.database.service import LocalStore
from prelaud_sync.exceptions import UsernameTakenError
from prelaud_sync.models import Album, EncodableAlbum, Song, UserProfile
from prelaud_sync.services.identity_client import IdentityServiceClient

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeIdentityClient(IdentityServiceClient):
    """In-memory identity service that records every call.

    ``gates`` holds an asyncio.Event per method name; a call to a gated method
    waits until the event is set. ``errors`` holds an exception per method name
    that the call raises after passing its gate.
    """

    def __init__(self) -> None:
        self.healthy = True
        self.profiles: Dict[str, UserProfile] = {}
        self.taken: Set[str] = set()
        self.albums: Dict[str, List[EncodableAlbum]] = {}
        self.errors: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[Tuple[str, tuple]] = []

    def count(self, method: Optional[str] = None) -> int:
        """Number of calls, optionally for one method only."""
        if method is None:
            return len(self.calls)
        return sum(1 for name, _ in self.calls if name == method)

    def args_for(self, method: str) -> List[tuple]:
        """Arguments of every call to a method."""
        return [args for name, args in self.calls if name == method]

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        error = self.errors.get(method)
        if error is not None:
            raise error

    async def health_check(self) -> bool:
        await self._enter("health_check")
        return self.healthy

    async def is_username_available(self, candidate: str) -> bool:
        await self._enter("is_username_available", candidate)
        normalized = candidate.strip().lower()
        if normalized in self.taken:
            return False
        return all(p.normalized_username != normalized for p in self.profiles.values())

    async def fetch_profile(self, profile_id: str) -> Optional[UserProfile]:
        await self._enter("fetch_profile", profile_id)
        return self.profiles.get(profile_id)

    async def upsert_profile(self, profile: UserProfile) -> UserProfile:
        await self._enter("upsert_profile", profile)
        for existing in self.profiles.values():
            if (
                existing.id != profile.id
                and existing.normalized_username == profile.normalized_username
            ):
                raise UsernameTakenError(profile.username)
        stored = profile.model_copy(update={"profile_image": None})
        self.profiles[profile.id] = stored
        return stored

    async def fetch_albums(self, owner_id: str) -> List[EncodableAlbum]:
        await self._enter("fetch_albums", owner_id)
        return list(self.albums.get(owner_id, []))


def make_profile(**overrides) -> UserProfile:
    """Build a profile with sensible defaults."""
    data = {
        "id": "user-1",
        "username": "synthwave",
        "artist_name": "Synth Wave",
        "bio": "Night drives",
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME,
    }
    data.update(overrides)
    return UserProfile(**data)


def make_album(**overrides) -> Album:
    """Build an album with two songs."""
    data = {
        "id": "album-1",
        "title": "Neon Nights",
        "artist": "Synth Wave",
        "release_date": BASE_TIME,
        "songs": [
            Song(
                id="song-1",
                title="Intro",
                artist="Synth Wave",
                duration=95.0,
                audio_file_name="intro.m4a",
                song_id="s-1",
            ),
            Song(
                id="song-2",
                title="Overdrive",
                artist="Synth Wave",
                duration=241.5,
                is_explicit=True,
                audio_file_name="overdrive.m4a",
                song_id="s-2",
            ),
        ],
    }
    data.update(overrides)
    return Album(**data)


def later(minutes: int) -> datetime:
    """Timestamp some minutes after the base time."""
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
def store(tmp_path):
    """Create a local store in a temporary directory."""
    local_store = LocalStore(tmp_path / "library.db")
    yield local_store
    local_store.close()


@pytest.fixture
def client():
    """Create a fake identity service client."""
    return FakeIdentityClient()


@pytest.fixture
def manager(store, client):
    """Create a profile manager with short timeouts."""
    return ProfileManager(store, client, request_timeout=0.5, debounce_seconds=0.05)


@pytest.fixture
def codec(manager):
    """Create a codec reading the manager's current profile."""
    return SharingCodec(lambda: manager.current_profile)


@pytest.fixture
def library(store, codec):
    """Create an album library."""
    return AlbumLibrary(store, codec)


@pytest.fixture
def orchestrator(manager, client, library):
    """Create a sync orchestrator wired to the fakes."""
    return SyncOrchestrator(manager, client, library=library, request_timeout=0.5)


@pytest.fixture
def existing_profile(store, client):
    """A profile stored both locally and remotely."""
    profile = make_profile()
    store.save_profile(profile)
    client.profiles[profile.id] = profile
    return profile
