"""In-memory album collection backed by the local store."""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from ..database.service import LocalStore
from ..exceptions import CorruptLocalStateError
from ..models import Album, EncodableAlbum, SharePermissions
from .sharing.codec import SharingCodec

logger = logging.getLogger(__name__)


def _always_current() -> bool:
    return True


class AlbumLibrary:
    """The current album list shown to the user.

    Albums are written through the store in their encodable form; cover art is
    stored next to them and resolved again on load.
    """

    def __init__(self, store: LocalStore, codec: SharingCodec) -> None:
        """Initialize the library.

        Args:
            store: Local store holding albums
            codec: Codec used to convert albums to their stored form
        """
        self.store = store
        self.codec = codec
        self._albums: List[Album] = []
        self._write_lock = asyncio.Lock()

    @property
    def albums(self) -> List[Album]:
        """Albums sorted by release date, newest first."""
        return list(self._albums)

    def get_album(self, album_id: str) -> Optional[Album]:
        """Find an album in memory by id."""
        for album in self._albums:
            if album.id == album_id:
                return album
        return None

    def shared_with_me(self) -> List[Album]:
        """Albums other users shared with the current user."""
        return [a for a in self._albums if self.codec.is_shared_with_current_user(a)]

    def _put(self, album: Album) -> None:
        self._albums = [a for a in self._albums if a.id != album.id]
        self._albums.append(album)
        self._albums.sort(key=lambda a: a.release_date, reverse=True)

    def _decode_with_cover(self, encoded: EncodableAlbum) -> Album:
        album = self.codec.decode(encoded)
        cover = self.store.load_cover_image(encoded.id)
        return album.model_copy(update={"cover_image": cover})

    async def reload(
        self, is_current: Callable[[], bool] = _always_current
    ) -> List[Album]:
        """Reload the album list from the store.

        Args:
            is_current: Returns False once the caller's run has been superseded;
                the albums read are then dropped instead of replacing the list

        Raises:
            CorruptLocalStateError: If the store cannot be read
        """
        async with self._write_lock:
            encoded = await asyncio.to_thread(self.store.load_albums)
            albums = []
            for item in encoded:
                albums.append(await asyncio.to_thread(self._decode_with_cover, item))

            if not is_current():
                logger.info("Dropping album reload of a superseded sync")
                return self.albums

            self._albums = sorted(albums, key=lambda a: a.release_date, reverse=True)

        logger.info("Loaded %d albums", len(self._albums))
        return self.albums

    async def add_album(
        self, album: Album, cover_image: Optional[bytes] = None
    ) -> Album:
        """Save a new album and add it to the list.

        Args:
            album: Album to add
            cover_image: Cover art; defaults to the album's own cover

        Returns:
            The album as stored, with its share token assigned
        """
        cover = cover_image if cover_image is not None else album.cover_image
        encoded = self.codec.encode(album, stamp_owner=False)

        async with self._write_lock:
            await asyncio.to_thread(self.store.save_album, encoded, cover)
            stored = self.codec.decode(encoded).model_copy(update={"cover_image": cover})
            self._put(stored)

        logger.info("Added album: %s", album.title)
        return stored

    async def update_album(self, album: Album) -> Album:
        """Replace an existing album.

        Raises:
            KeyError: If the album is not in the library
        """
        if self.get_album(album.id) is None:
            raise KeyError(album.id)

        encoded = self.codec.encode(album, stamp_owner=False)
        async with self._write_lock:
            await asyncio.to_thread(self.store.save_album, encoded, album.cover_image)
            cover = album.cover_image
            if cover is None:
                cover = await asyncio.to_thread(self.store.load_cover_image, album.id)
            stored = self.codec.decode(encoded).model_copy(update={"cover_image": cover})
            self._put(stored)

        return stored

    async def delete_album(self, album_id: str) -> bool:
        """Delete an album from the store and the list."""
        async with self._write_lock:
            removed = await asyncio.to_thread(self.store.delete_album, album_id)
            self._albums = [a for a in self._albums if a.id != album_id]
        return removed

    async def share_album(
        self, album_id: str, permissions: Optional[SharePermissions] = None
    ) -> Album:
        """Commit share metadata for an album and persist it.

        Returns:
            The shared album

        Raises:
            KeyError: If the album is not in the library
        """
        album = self.get_album(album_id)
        if album is None:
            raise KeyError(album_id)

        shared = self.codec.commit_share(album, permissions)
        async with self._write_lock:
            await asyncio.to_thread(
                self.store.save_album, self.codec.encode(shared, stamp_owner=False)
            )
            self._put(shared)

        return shared

    async def merge_remote(
        self,
        remote_albums: List[EncodableAlbum],
        is_current: Callable[[], bool] = _always_current,
    ) -> Tuple[int, int]:
        """Bring remote albums into the local store.

        Albums missing locally are added and albums that differ are replaced.
        Local albums the remote does not know about are kept.

        Args:
            remote_albums: Albums returned by the identity service
            is_current: Returns False once the caller's run has been superseded

        Returns:
            Tuple of (added, updated) counts
        """
        added = updated = 0

        async with self._write_lock:
            for remote in remote_albums:
                if not is_current():
                    logger.info("Stopping album merge for a superseded sync")
                    break

                try:
                    local = await asyncio.to_thread(self.store.get_album, remote.id)
                except CorruptLocalStateError as e:
                    logger.error("Cannot read local album %s: %s", remote.id, e)
                    local = None

                if local is None:
                    await asyncio.to_thread(self.store.save_album, remote)
                    added += 1
                elif local != remote:
                    await asyncio.to_thread(self.store.save_album, remote)
                    updated += 1

        if added or updated:
            logger.info("Merged remote albums: %d added, %d updated", added, updated)

        await self.reload(is_current)
        return added, updated

    async def clear(self) -> None:
        """Forget the in-memory list, waiting for any write in progress."""
        async with self._write_lock:
            self._albums = []
