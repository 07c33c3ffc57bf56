"""Sharing codec: album <-> wire form, share tokens and sharing state.

This is the single place that decides what "shared" means:

- ``Album.is_shared`` is structural: the album carries an owner identity.
- ``is_shared_with_current_user`` is viewer-relative: the owner is someone other
  than the profile that is current *at call time*.

An album the user created and shared out is shared, but never shared with them.
"""

import json
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from ...exceptions import CorruptLocalStateError
from ...models import (
    Album,
    EncodableAlbum,
    EncodableSong,
    SharePermissions,
    Song,
    UserProfile,
    utc_now,
)

logger = logging.getLogger(__name__)

# Namespace for deterministic share tokens derived from album ids
SHARE_NAMESPACE = uuid.UUID("5b0e4c8e-2f6a-4a57-9c1d-7d0f3e1a9b42")

ProfileProvider = Callable[[], Optional[UserProfile]]


def mint_share_id(album_id: str) -> str:
    """Derive the share token for an album.

    The token is stable for a given album id, so sharing the same album again
    never fragments its identity.
    """
    digest = uuid.uuid5(SHARE_NAMESPACE, album_id).hex
    return f"share_{digest[:12]}"


class SharingCodec:
    """Converts albums to and from their wire/storage form."""

    def __init__(self, current_profile: Optional[ProfileProvider] = None) -> None:
        """Initialize the codec.

        Args:
            current_profile: Callable returning the current profile; read on every
                call, never cached
        """
        self._current_profile = current_profile or (lambda: None)

    @property
    def current_user_id(self) -> Optional[str]:
        """Id of the profile that is current right now."""
        profile = self._current_profile()
        return profile.id if profile else None

    def encode(
        self,
        album: Album,
        share_id: Optional[str] = None,
        stamp_owner: bool = True,
    ) -> EncodableAlbum:
        """Project an album into its wire form.

        Pure: the album passed in is not modified.

        Args:
            album: Album to encode
            share_id: Explicit share token; defaults to the album's own token or a
                token minted from the album id
            stamp_owner: Fill in the current profile as owner when the album has
                none. Local storage passes False so unshared albums stay unowned.

        Returns:
            EncodableAlbum without any image data
        """
        token = share_id or album.share_id or mint_share_id(album.id)

        owner_id = album.owner_id or None
        owner_username = album.owner_username
        if owner_id is None and stamp_owner:
            profile = self._current_profile()
            if profile is not None:
                owner_id = profile.id
                owner_username = profile.username

        return EncodableAlbum(
            id=album.id,
            title=album.title,
            artist=album.artist,
            release_date=album.release_date,
            songs=[self._encode_song(song) for song in album.songs],
            share_id=token,
            owner_id=owner_id,
            owner_username=owner_username,
            shared_at=album.shared_at,
            share_permissions=album.share_permissions,
        )

    @staticmethod
    def _encode_song(song: Song) -> EncodableSong:
        return EncodableSong(
            id=song.id,
            title=song.title,
            artist=song.artist,
            duration=song.duration,
            is_explicit=song.is_explicit,
            audio_file_name=song.audio_file_name,
            song_id=song.song_id,
        )

    def decode(self, encoded: EncodableAlbum) -> Album:
        """Rebuild an album from its wire form.

        Cover images come back as None; callers resolve them from local asset
        storage using the album id and each song's ``song_id``/``audio_file_name``.
        """
        return Album(
            id=encoded.id,
            title=encoded.title,
            artist=encoded.artist,
            release_date=encoded.release_date,
            songs=[
                Song(
                    id=song.id,
                    title=song.title,
                    artist=song.artist,
                    duration=song.duration,
                    cover_image=None,
                    audio_file_name=song.audio_file_name,
                    is_explicit=song.is_explicit,
                    song_id=song.song_id,
                )
                for song in encoded.songs
            ],
            cover_image=None,
            owner_id=encoded.owner_id or None,
            owner_username=encoded.owner_username or None,
            share_id=encoded.share_id,
            shared_at=encoded.shared_at,
            share_permissions=encoded.share_permissions,
        )

    def commit_share(
        self, album: Album, permissions: Optional[SharePermissions] = None
    ) -> Album:
        """Return a copy of the album with its share metadata committed.

        The first share time is kept when an album is shared again.
        """
        encoded = self.encode(album)
        update: Dict[str, Any] = {
            "share_id": encoded.share_id,
            "owner_id": encoded.owner_id,
            "owner_username": encoded.owner_username,
            "shared_at": album.shared_at or utc_now(),
        }
        if permissions is not None:
            update["share_permissions"] = permissions
        elif album.share_permissions is None:
            update["share_permissions"] = SharePermissions()

        logger.info("Committed share %s for album: %s", encoded.share_id, album.title)
        return album.model_copy(update=update)

    def is_shared_with_current_user(
        self, album: Album, current_user_id: Optional[str] = None
    ) -> bool:
        """Check whether the album was shared to the viewer by someone else.

        Args:
            album: Album to check
            current_user_id: Viewer id; defaults to the current profile's id
        """
        if not album.owner_id:
            return False
        viewer = current_user_id if current_user_id is not None else self.current_user_id
        return album.owner_id != viewer

    def to_json(self, encoded: EncodableAlbum) -> str:
        """Serialize the wire form."""
        return encoded.model_dump_json()

    def from_json(self, payload: str) -> EncodableAlbum:
        """Parse the wire form.

        Raises:
            CorruptLocalStateError: If the payload cannot be parsed
        """
        try:
            return EncodableAlbum.model_validate(json.loads(payload))
        except (json.JSONDecodeError, ValidationError) as e:
            raise CorruptLocalStateError(f"Unreadable album payload: {e}") from e
