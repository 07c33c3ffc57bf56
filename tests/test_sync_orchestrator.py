"""Tests for the startup sync orchestrator."""

import asyncio
import threading

import pytest

from conftest import BASE_TIME, later, make_album, make_profile
from prelaud_sync.core.profile.manager import ProfileManager
from prelaud_sync.core.sharing.codec import mint_share_id
from prelaud_sync.core.sync import (
    ProfileAction,
    SyncOrchestrator,
    SyncResult,
    SyncStage,
    SyncStatus,
)
from prelaud_sync.database.service import LocalStore
from prelaud_sync.exceptions import (
    IdentityServiceError,
    TransientNetworkError,
    UsernameTakenError,
)
from prelaud_sync.models import EncodableAlbum


def remote_album(album_id="album-1", **overrides) -> EncodableAlbum:
    """An album as held by the identity service."""
    data = {
        "id": album_id,
        "title": f"Remote {album_id}",
        "artist": "Synth Wave",
        "release_date": BASE_TIME,
        "songs": [],
        "share_id": mint_share_id(album_id),
        "owner_id": "user-1",
        "owner_username": "synthwave",
    }
    data.update(overrides)
    return EncodableAlbum(**data)


async def wait_for_call(client, method):
    """Yield to the loop until the fake client saw a call."""
    while client.count(method) == 0:
        await asyncio.sleep(0.005)


class TestSyncResult:
    """Test SyncResult dataclass."""

    def test_summary(self):
        """The summary reports stage, profile and album counts."""
        result = SyncResult(
            stage=SyncStage.SYNC_COMPLETE,
            profile=make_profile(),
            remote_verified=True,
            profile_action=ProfileAction.PULLED,
            albums_added=2,
        )

        summary = result.get_summary()

        assert summary["stage"] == "sync_complete"
        assert summary["profile"]["action"] == "pulled"
        assert summary["albums"] == {"added": 2, "updated": 0}
        assert summary["errors"] == 0

    def test_terminal_flags_exclusive(self):
        """A status is never both needs-setup and sync-complete."""
        for stage in SyncStage:
            status = SyncStatus(stage=stage)
            assert not (status.needs_setup and status.sync_complete)


class TestNewDevice:
    """Test startup without a local profile."""

    @pytest.mark.asyncio
    async def test_empty_store_needs_setup_without_network(
        self, orchestrator, client
    ):
        """A new device goes to setup and never touches the network."""
        result = await orchestrator.perform_startup_sync()

        assert result.needs_setup
        assert orchestrator.needs_setup
        assert not orchestrator.sync_complete
        assert orchestrator.status_message == "Setup required"
        assert client.count() == 0

    @pytest.mark.asyncio
    async def test_corrupt_store_treated_as_absent(self, tmp_path, client):
        """An unreadable store sends the user to setup instead of crashing."""
        path = tmp_path / "library.db"
        path.write_bytes(b"garbage" * 500)
        store = LocalStore(path)
        try:
            manager = ProfileManager(store, client)
            orchestrator = SyncOrchestrator(manager, client)

            result = await orchestrator.perform_startup_sync()

            assert result.needs_setup
            assert result.errors
            assert client.count() == 0
        finally:
            store.close()


class TestOffline:
    """Test startup when the identity service is unreachable."""

    @pytest.mark.asyncio
    async def test_timeout_completes_degraded(
        self, orchestrator, client, store, existing_profile
    ):
        """A hanging health probe is bounded and the app stays usable."""
        orchestrator.request_timeout = 0.05
        client.gates["health_check"] = asyncio.Event()

        result = await orchestrator.perform_startup_sync()

        assert result.sync_complete
        assert result.degraded
        assert orchestrator.is_degraded
        assert orchestrator.status_message == "Offline mode"
        assert store.load_profile() == existing_profile
        assert client.count("fetch_profile") == 0

    @pytest.mark.asyncio
    async def test_unhealthy_service_completes_degraded(
        self, orchestrator, client, existing_profile
    ):
        """An unhealthy answer is handled like being offline."""
        client.healthy = False

        result = await orchestrator.perform_startup_sync()

        assert result.sync_complete
        assert result.degraded
        assert result.profile == existing_profile

    @pytest.mark.asyncio
    async def test_offline_loads_local_albums(
        self, orchestrator, client, library, existing_profile
    ):
        """The library is available offline."""
        await library.add_album(make_album())
        await library.clear()
        client.healthy = False

        await orchestrator.perform_startup_sync()

        assert [a.id for a in library.albums] == ["album-1"]


class TestAtMostOneRun:
    """Test the single-flight contract."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_probe(
        self, orchestrator, client, existing_profile
    ):
        """Two concurrent callers trigger exactly one health probe."""
        first, second = await asyncio.gather(
            orchestrator.perform_startup_sync(),
            orchestrator.perform_startup_sync(),
        )

        assert first is second
        assert client.count("health_check") == 1

    @pytest.mark.asyncio
    async def test_repeat_call_is_idempotent(
        self, orchestrator, client, existing_profile
    ):
        """A completed sync is not run again."""
        first = await orchestrator.perform_startup_sync()
        calls = client.count()

        second = await orchestrator.perform_startup_sync()

        assert second is first
        assert client.count() == calls


class TestProfileReconciliation:
    """Test profile reconciliation against the identity service."""

    @pytest.mark.asyncio
    async def test_unchanged_profile(self, orchestrator, client, existing_profile):
        """Identical profiles need no writes."""
        result = await orchestrator.perform_startup_sync()

        assert result.sync_complete
        assert not result.degraded
        assert result.profile_action == ProfileAction.UNCHANGED
        assert client.count("upsert_profile") == 0
        assert orchestrator.status_message == "Sync complete"

    @pytest.mark.asyncio
    async def test_newer_remote_wins(self, orchestrator, client, store):
        """A newer remote profile replaces the local one."""
        store.save_profile(make_profile(profile_image=b"avatar"))
        client.profiles["user-1"] = make_profile(
            artist_name="Remote Name", updated_at=later(10)
        )

        result = await orchestrator.perform_startup_sync()

        stored = store.load_profile()
        assert result.profile_action == ProfileAction.PULLED
        assert stored.artist_name == "Remote Name"
        assert stored.profile_image == b"avatar"

    @pytest.mark.asyncio
    async def test_remote_wins_tie(self, orchestrator, client, store):
        """With equal timestamps the remote copy is authoritative."""
        store.save_profile(make_profile(artist_name="Local Name"))
        client.profiles["user-1"] = make_profile(artist_name="Remote Name")

        result = await orchestrator.perform_startup_sync()

        assert result.profile_action == ProfileAction.PULLED
        assert store.load_profile().artist_name == "Remote Name"

    @pytest.mark.asyncio
    async def test_newer_local_is_pushed(self, orchestrator, client, store):
        """Offline edits newer than the remote copy are pushed."""
        store.save_profile(make_profile(artist_name="Offline Edit", updated_at=later(30)))
        client.profiles["user-1"] = make_profile(updated_at=later(10))

        result = await orchestrator.perform_startup_sync()

        assert result.profile_action == ProfileAction.PUSHED
        assert client.profiles["user-1"].artist_name == "Offline Edit"
        assert store.load_profile().artist_name == "Offline Edit"

    @pytest.mark.asyncio
    async def test_missing_remote_profile_is_recreated(
        self, orchestrator, client, store
    ):
        """A profile lost on the service is recreated from the local copy."""
        store.save_profile(make_profile())
        statuses = []
        orchestrator.subscribe(lambda status: statuses.append(status.message))

        result = await orchestrator.perform_startup_sync()

        assert result.profile_action == ProfileAction.RECREATED
        assert "user-1" in client.profiles
        assert "Recreating user profile..." in statuses

    @pytest.mark.asyncio
    async def test_recreate_conflict_is_degraded(self, orchestrator, client, store):
        """A recreation blocked by a username conflict does not fail startup."""
        store.save_profile(make_profile())
        client.errors["upsert_profile"] = UsernameTakenError("synthwave")

        result = await orchestrator.perform_startup_sync()

        assert result.sync_complete
        assert result.degraded
        assert result.errors

    @pytest.mark.asyncio
    async def test_fetch_failure_is_degraded(
        self, orchestrator, client, store, existing_profile
    ):
        """Failing to fetch the remote profile keeps the local one."""
        client.errors["fetch_profile"] = TransientNetworkError("reset by peer")

        result = await orchestrator.perform_startup_sync()

        assert result.sync_complete
        assert result.degraded
        assert store.load_profile() == existing_profile


class TestAlbumReconciliation:
    """Test merging remote albums into the library."""

    @pytest.mark.asyncio
    async def test_remote_albums_added_and_updated(
        self, orchestrator, client, library, existing_profile
    ):
        """Missing albums are added, changed ones replaced, local-only kept."""
        local = await library.add_album(make_album(id="album-1", title="Old Title"))
        await library.add_album(make_album(id="local-only", title="Local Only"))
        client.albums["user-1"] = [
            remote_album("album-1", title="New Title", share_id=local.share_id),
            remote_album("album-2", release_date=later(60)),
        ]

        result = await orchestrator.perform_startup_sync()

        assert result.albums_added == 1
        assert result.albums_updated == 1
        titles = {a.id: a.title for a in library.albums}
        assert titles == {
            "album-1": "New Title",
            "album-2": "Remote album-2",
            "local-only": "Local Only",
        }
        assert library.albums[0].id == "album-2"

    @pytest.mark.asyncio
    async def test_album_failure_is_not_fatal(
        self, orchestrator, client, existing_profile
    ):
        """Album sync errors degrade the run but never fail it."""
        client.errors["fetch_albums"] = IdentityServiceError("boom", 500)

        result = await orchestrator.perform_startup_sync()

        assert result.sync_complete
        assert result.degraded
        assert result.profile_action == ProfileAction.UNCHANGED


class TestReset:
    """Test force_complete_reset."""

    @pytest.mark.asyncio
    async def test_reset_then_sync_needs_setup(
        self, orchestrator, client, store, library, existing_profile
    ):
        """After a successful clear the user is back at setup."""
        await library.add_album(make_album())
        await orchestrator.perform_startup_sync()
        assert orchestrator.sync_complete

        result = await orchestrator.force_complete_reset()

        assert result.needs_setup
        assert orchestrator.needs_setup
        assert (await orchestrator.perform_startup_sync()).needs_setup
        assert store.load_profile() is None
        assert store.load_albums() == []
        assert library.albums == []

    @pytest.mark.asyncio
    async def test_reset_mid_sync_discards_late_response(
        self, orchestrator, client, store
    ):
        """A remote profile arriving after a reset is not applied."""
        store.save_profile(make_profile())
        client.profiles["user-1"] = make_profile(
            artist_name="Late Remote", updated_at=later(10)
        )
        client.gates["fetch_profile"] = asyncio.Event()

        in_flight = asyncio.create_task(orchestrator.perform_startup_sync())
        await wait_for_call(client, "fetch_profile")

        reset_task = asyncio.create_task(orchestrator.force_complete_reset())
        await asyncio.sleep(0.05)
        client.gates["fetch_profile"].set()

        reset_result = await reset_task
        followed = await in_flight

        assert reset_result.needs_setup
        assert followed is reset_result
        assert store.load_profile() is None
        assert orchestrator.needs_setup

    @pytest.mark.asyncio
    async def test_reset_during_offline_reload_drops_albums(
        self, orchestrator, client, store, library, existing_profile, monkeypatch
    ):
        """Albums read by a superseded offline run do not come back after a reset."""
        await library.add_album(make_album(id="old"))
        await library.clear()
        client.healthy = False

        reading = threading.Event()
        release = threading.Event()
        load_albums = store.load_albums

        def slow_load_albums():
            reading.set()
            release.wait(timeout=5)
            return load_albums()

        monkeypatch.setattr(store, "load_albums", slow_load_albums)

        in_flight = asyncio.create_task(orchestrator.perform_startup_sync())
        assert await asyncio.to_thread(reading.wait, 5)

        reset_task = asyncio.create_task(orchestrator.force_complete_reset())
        await asyncio.sleep(0.05)
        release.set()

        reset_result = await reset_task
        followed = await in_flight

        assert reset_result.needs_setup
        assert followed is reset_result
        assert library.albums == []
        assert load_albums() == []

    @pytest.mark.asyncio
    async def test_reset_cancels_username_checks(
        self, orchestrator, manager, client
    ):
        """Pending username checks never fire after a reset."""
        manager.schedule_username_check("synthwave")

        await orchestrator.force_complete_reset()
        await asyncio.sleep(0.1)

        assert client.count("is_username_available") == 0

    @pytest.mark.asyncio
    async def test_reset_from_idle(self, orchestrator, client):
        """Reset is safe before any sync ran."""
        result = await orchestrator.force_complete_reset()

        assert result.needs_setup
        assert client.count() == 0


class TestSetupAndObservers:
    """Test completing setup and observing transitions."""

    @pytest.mark.asyncio
    async def test_complete_setup(self, orchestrator, client, store):
        """Creating the profile moves the app to the main experience."""
        await orchestrator.perform_startup_sync()
        assert orchestrator.needs_setup

        profile = await orchestrator.complete_setup("abc", "Artist")

        assert orchestrator.sync_complete
        assert not orchestrator.needs_setup
        assert orchestrator.last_result.profile == profile
        assert store.load_profile() == profile

    @pytest.mark.asyncio
    async def test_failed_setup_stays_in_setup(self, orchestrator, client):
        """A rejected username keeps the setup flow open."""
        client.taken.add("abc")
        await orchestrator.perform_startup_sync()

        with pytest.raises(UsernameTakenError):
            await orchestrator.complete_setup("abc", "Artist")

        assert orchestrator.needs_setup

    @pytest.mark.asyncio
    async def test_observers_see_each_transition(
        self, orchestrator, client, existing_profile
    ):
        """Observers receive snapshots in order and may fail safely."""
        seen = []
        orchestrator.subscribe(lambda status: seen.append(status.stage))
        orchestrator.subscribe(lambda status: 1 / 0)

        await orchestrator.perform_startup_sync()

        assert seen[0] == SyncStage.CHECKING_LOCAL
        assert SyncStage.VERIFYING_REMOTE in seen
        assert seen[-1] == SyncStage.SYNC_COMPLETE

    @pytest.mark.asyncio
    async def test_unsubscribe(self, orchestrator):
        """Unsubscribed observers are no longer called."""
        seen = []
        unsubscribe = orchestrator.subscribe(seen.append)
        unsubscribe()

        await orchestrator.perform_startup_sync()

        assert seen == []

    @pytest.mark.asyncio
    async def test_recreate_remote_profile(self, orchestrator, client, store):
        """The local profile can be pushed on demand."""
        assert await orchestrator.recreate_remote_profile() is False

        store.save_profile(make_profile())
        await orchestrator.profile_manager.load()

        assert await orchestrator.recreate_remote_profile() is True
        assert "user-1" in client.profiles

    @pytest.mark.asyncio
    async def test_unexpected_error_lands_in_terminal_state(
        self, orchestrator, client, existing_profile
    ):
        """Even a bug in a collaborator cannot leave the app spinning."""

        async def broken(owner_id):
            raise RuntimeError("unexpected")

        client.fetch_profile = broken

        result = await orchestrator.perform_startup_sync()

        assert result.sync_complete
        assert result.degraded
        assert not orchestrator.is_syncing
