"""Tests for the album library."""

import pytest

from conftest import BASE_TIME, later, make_album
from prelaud_sync.core.sharing.codec import mint_share_id
from prelaud_sync.models import SharePermissions


class TestAlbumLibrary:
    """Test AlbumLibrary operations."""

    @pytest.mark.asyncio
    async def test_add_album_writes_through_store(
        self, manager, library, store, existing_profile
    ):
        """New albums are stored with their cover and stay unowned."""
        await manager.load()

        stored = await library.add_album(make_album(), cover_image=b"cover")

        assert stored.share_id == mint_share_id("album-1")
        assert stored.owner_id is None
        assert stored.owner_username is None
        assert not stored.is_shared
        assert stored.cover_image == b"cover"
        saved = store.get_album("album-1")
        assert saved.share_id == stored.share_id
        assert saved.owner_id is None
        assert store.load_cover_image("album-1") == b"cover"

    @pytest.mark.asyncio
    async def test_albums_sorted_newest_first(self, library):
        """The list is ordered by release date, newest first."""
        await library.add_album(make_album(id="old", release_date=BASE_TIME))
        await library.add_album(make_album(id="new", release_date=later(60)))

        assert [a.id for a in library.albums] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_reload_resolves_covers(self, library, store):
        """Reloading brings back cover art from the store."""
        await library.add_album(make_album(cover_image=b"cover"))
        await library.clear()
        assert library.albums == []

        albums = await library.reload()

        assert len(albums) == 1
        assert albums[0].cover_image == b"cover"
        assert albums[0].songs[1].title == "Overdrive"

    @pytest.mark.asyncio
    async def test_update_album_keeps_cover(self, library, store):
        """Updating without new cover art keeps the stored cover."""
        added = await library.add_album(make_album(cover_image=b"cover"))

        updated = await library.update_album(
            added.model_copy(update={"title": "Renamed", "cover_image": None})
        )

        assert updated.title == "Renamed"
        assert updated.cover_image == b"cover"
        assert store.get_album(added.id).title == "Renamed"

    @pytest.mark.asyncio
    async def test_update_unknown_album(self, library):
        """Only albums in the library can be updated."""
        with pytest.raises(KeyError):
            await library.update_album(make_album(id="missing"))

    @pytest.mark.asyncio
    async def test_delete_album(self, library, store):
        """Deleted albums leave both the list and the store."""
        await library.add_album(make_album())

        assert await library.delete_album("album-1") is True
        assert library.albums == []
        assert store.get_album("album-1") is None

    @pytest.mark.asyncio
    async def test_share_album(self, manager, library, store, existing_profile):
        """Sharing commits metadata and persists it."""
        await manager.load()
        await library.add_album(make_album())

        shared = await library.share_album(
            "album-1", SharePermissions(can_download=True)
        )

        assert shared.shared_at is not None
        assert shared.share_permissions.can_download
        stored = store.get_album("album-1")
        assert stored.shared_at == shared.shared_at
        assert stored.share_permissions.can_download
        assert shared.owner_id == existing_profile.id
        assert stored.owner_id == existing_profile.id
        assert stored.owner_username == existing_profile.username

    @pytest.mark.asyncio
    async def test_share_unknown_album(self, library):
        """Sharing needs the album to be present."""
        with pytest.raises(KeyError):
            await library.share_album("missing")

    @pytest.mark.asyncio
    async def test_shared_with_me(self, manager, library, existing_profile):
        """Only albums owned by someone else count as shared with me."""
        await manager.load()
        await library.add_album(make_album(id="mine"))
        await library.add_album(
            make_album(id="theirs", owner_id="user-2", owner_username="friend")
        )

        assert [a.id for a in library.shared_with_me()] == ["theirs"]

    @pytest.mark.asyncio
    async def test_merge_remote_skipped_when_superseded(self, library, store):
        """A superseded merge writes nothing."""
        encoded = library.codec.encode(make_album())

        added, updated = await library.merge_remote([encoded], lambda: False)

        assert (added, updated) == (0, 0)
        assert store.load_albums() == []

    @pytest.mark.asyncio
    async def test_merge_remote_ignores_identical(self, library):
        """Albums equal to the local copy are left alone."""
        stored = await library.add_album(make_album())
        encoded = library.codec.encode(stored)

        assert await library.merge_remote([encoded]) == (0, 0)

    @pytest.mark.asyncio
    async def test_update_album_keeps_unowned(
        self, manager, library, store, existing_profile
    ):
        """Editing an unshared album does not make it owned."""
        await manager.load()
        added = await library.add_album(make_album())

        updated = await library.update_album(
            added.model_copy(update={"title": "Renamed"})
        )

        assert updated.owner_id is None
        assert store.get_album(added.id).owner_id is None

    @pytest.mark.asyncio
    async def test_reload_dropped_when_superseded(self, library):
        """A reload for a superseded run leaves the list alone."""
        await library.add_album(make_album())
        await library.clear()

        albums = await library.reload(lambda: False)

        assert albums == []
        assert library.albums == []
