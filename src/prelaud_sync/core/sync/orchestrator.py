"""Startup sync orchestrator.

Decides on launch whether the user goes to first-run setup or to the main
experience, and brings the local profile and album library in line with the
identity service:

1. Load the local profile (absent or unreadable -> needs setup, no network)
2. Probe the identity service (unreachable -> offline, degraded)
3. Reconcile the profile, last writer wins by modification time
4. Merge remote albums into the local library

A run always ends in ``needs_setup`` or ``sync_complete``. Each run carries the
epoch it started in; a reset bumps the epoch so the results of a superseded run
are dropped instead of overwriting fresh state.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from ...exceptions import (
    CorruptLocalStateError,
    IdentityServiceError,
    PrelaudError,
    ProfileNotFoundError,
    TransientNetworkError,
    UsernameTakenError,
)
from ...models import UserProfile
from ...services.identity_client import IdentityServiceClient
from ..library import AlbumLibrary
from ..profile.manager import ProfileManager
from .status import ProfileAction, SyncResult, SyncStage, SyncStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

StatusCallback = Callable[[SyncStatus], None]

MESSAGE_CHECKING_LOCAL = "Loading profile..."
MESSAGE_CHECKING_CONNECTION = "Checking connection..."
MESSAGE_OFFLINE = "Offline mode"
MESSAGE_VALIDATING = "Validating user..."
MESSAGE_RECREATING = "Recreating user profile..."
MESSAGE_SYNCING_ALBUMS = "Syncing albums..."
MESSAGE_COMPLETE = "Sync complete"
MESSAGE_SETUP_REQUIRED = "Setup required"
MESSAGE_RESETTING = "Resetting..."


class SyncOrchestrator:
    """Drives the startup state machine and exposes it to the presentation layer."""

    def __init__(
        self,
        profile_manager: ProfileManager,
        client: IdentityServiceClient,
        library: Optional[AlbumLibrary] = None,
        request_timeout: float = 30.0,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            profile_manager: Owner of the profile and its writes
            client: Identity service client
            library: Album library to reconcile; albums are skipped when None
            request_timeout: Upper bound in seconds for each remote call
        """
        self.profile_manager = profile_manager
        self.client = client
        self.library = library
        self.request_timeout = request_timeout

        self.stage = SyncStage.IDLE
        self.status_message = ""
        self.is_degraded = False
        self.last_error: Optional[str] = None

        self._epoch = 0
        self._task: Optional["asyncio.Task[SyncResult]"] = None
        self._result: Optional[SyncResult] = None
        self._observers: List[StatusCallback] = []

    # =========================================================================
    # Presentation contract
    # =========================================================================

    @property
    def needs_setup(self) -> bool:
        """Whether the setup flow should be shown."""
        return self.stage == SyncStage.NEEDS_SETUP

    @property
    def sync_complete(self) -> bool:
        """Whether the main experience should be shown."""
        return self.stage == SyncStage.SYNC_COMPLETE

    @property
    def is_syncing(self) -> bool:
        """Whether a run or reset is in progress."""
        return self.stage.is_busy

    @property
    def epoch(self) -> int:
        """Current run epoch."""
        return self._epoch

    @property
    def last_result(self) -> Optional[SyncResult]:
        """Result of the most recent completed run."""
        return self._result

    def status(self) -> SyncStatus:
        """Snapshot of the current state."""
        return SyncStatus(
            stage=self.stage,
            message=self.status_message,
            is_degraded=self.is_degraded,
            error=self.last_error,
        )

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register an observer for state transitions.

        Returns:
            Function that removes the observer again
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.status()
        for callback in list(self._observers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error("Error in sync status callback: %s", e)

    def _transition(self, epoch: int, stage: SyncStage, message: str) -> bool:
        """Move to a new stage if the run is still current."""
        if epoch != self._epoch:
            logger.debug("Ignoring transition to %s from stale run", stage.value)
            return False

        self.stage = stage
        self.status_message = message
        logger.info("Sync stage: %s (%s)", stage.value, message)
        self._notify()
        return True

    def _finish(
        self, epoch: int, result: SyncResult, stage: SyncStage, message: str
    ) -> None:
        result.stage = stage
        result.profile = self.profile_manager.current_profile

        if epoch != self._epoch:
            logger.info("Discarding result of superseded sync run (epoch %d)", epoch)
            return

        self._result = result
        self.is_degraded = result.degraded
        self.last_error = result.errors[-1] if result.errors else None
        self._transition(epoch, stage, message)

    # =========================================================================
    # Runs
    # =========================================================================

    async def perform_startup_sync(self) -> SyncResult:
        """Run the startup sync, or join the run already in flight.

        Once a run has completed its result is returned again without any new
        work. If a reset supersedes the run being awaited, the caller follows
        the new run instead.
        """
        while True:
            if self._task is None:
                self._task = asyncio.create_task(self._run(self._epoch))

            task = self._task
            result = await asyncio.shield(task)
            if task is self._task:
                return result

    async def force_complete_reset(self) -> SyncResult:
        """Wipe all local state and run startup sync from scratch.

        In-flight work from the previous run is not awaited; its late results
        are discarded by the epoch check.
        """
        self._epoch += 1
        self._result = None
        logger.warning("Complete reset requested (epoch %d)", self._epoch)

        self._task = asyncio.create_task(self._reset_and_sync(self._epoch))
        return await self.perform_startup_sync()

    async def _reset_and_sync(self, epoch: int) -> SyncResult:
        self.is_degraded = False
        self.last_error = None
        self._transition(epoch, SyncStage.RESETTING, MESSAGE_RESETTING)

        self.profile_manager.cancel_pending_checks()
        if self.library is not None:
            await self.library.clear()
        await self.profile_manager.reset(clear_store=True)

        self._transition(epoch, SyncStage.IDLE, "")
        return await self._run(epoch)

    async def _run(self, epoch: int) -> SyncResult:
        result = SyncResult()
        try:
            await self._sync(epoch, result)
        except Exception as e:
            # Whatever happens the user must not be stuck on a spinner
            result.degraded = True
            result.add_error(f"Unexpected sync failure: {e}")
            if self.profile_manager.is_profile_setup:
                self._finish(epoch, result, SyncStage.SYNC_COMPLETE, MESSAGE_COMPLETE)
            else:
                self._finish(
                    epoch, result, SyncStage.NEEDS_SETUP, MESSAGE_SETUP_REQUIRED
                )
        return result

    async def _sync(self, epoch: int, result: SyncResult) -> None:
        def is_current() -> bool:
            return epoch == self._epoch

        self._transition(epoch, SyncStage.CHECKING_LOCAL, MESSAGE_CHECKING_LOCAL)

        try:
            profile = await self.profile_manager.load()
        except CorruptLocalStateError as e:
            result.add_error(f"Local profile unreadable, treating as absent: {e}")
            profile = None

        if profile is None:
            self._finish(epoch, result, SyncStage.NEEDS_SETUP, MESSAGE_SETUP_REQUIRED)
            return

        self._transition(epoch, SyncStage.VERIFYING_REMOTE, MESSAGE_CHECKING_CONNECTION)
        if not await self._probe():
            result.degraded = True
            logger.warning("Identity service unreachable, continuing offline")
            if self.library is not None:
                await self._load_library(self.library, result, is_current)
            self._finish(epoch, result, SyncStage.SYNC_COMPLETE, MESSAGE_OFFLINE)
            return

        result.remote_verified = True
        self._transition(epoch, SyncStage.VERIFYING_REMOTE, MESSAGE_VALIDATING)
        await self._reconcile_profile(epoch, profile, result, is_current)
        if not is_current():
            return

        if self.library is not None:
            self._transition(
                epoch, SyncStage.VERIFYING_REMOTE, MESSAGE_SYNCING_ALBUMS
            )
            await self._reconcile_albums(self.library, profile, result, is_current)

        self._finish(epoch, result, SyncStage.SYNC_COMPLETE, MESSAGE_COMPLETE)

    async def _remote(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(
                f"Identity service did not answer within {self.request_timeout}s"
            ) from e

    async def _probe(self) -> bool:
        try:
            return await self._remote(self.client.health_check())
        except (TransientNetworkError, IdentityServiceError) as e:
            logger.warning("Health check failed: %s", e)
            return False

    async def _reconcile_profile(
        self,
        epoch: int,
        local: UserProfile,
        result: SyncResult,
        is_current: Callable[[], bool],
    ) -> None:
        try:
            remote = await self._remote(self.client.fetch_profile(local.id))
        except (TransientNetworkError, IdentityServiceError) as e:
            result.degraded = True
            result.add_error(f"Could not fetch remote profile: {e}")
            return

        if not is_current():
            return

        if remote is None:
            self._transition(epoch, SyncStage.VERIFYING_REMOTE, MESSAGE_RECREATING)
            if await self._push(result, "recreate"):
                result.profile_action = ProfileAction.RECREATED
            return

        if local.same_identity_fields(remote):
            result.profile_action = ProfileAction.UNCHANGED
            return

        # Last writer wins; the remote copy wins ties
        if local.modified_at > remote.modified_at:
            if await self._push(result, "push"):
                result.profile_action = ProfileAction.PUSHED
            return

        applied = await self.profile_manager.apply_remote_profile(remote, is_current)
        if applied is not None:
            result.profile_action = ProfileAction.PULLED

    async def _push(self, result: SyncResult, action: str) -> bool:
        try:
            await self.profile_manager.push_profile()
            return True
        except (TransientNetworkError, IdentityServiceError, UsernameTakenError) as e:
            result.degraded = True
            result.add_error(f"Could not {action} remote profile: {e}")
            return False

    async def _reconcile_albums(
        self,
        library: AlbumLibrary,
        profile: UserProfile,
        result: SyncResult,
        is_current: Callable[[], bool],
    ) -> None:
        try:
            remote_albums = await self._remote(self.client.fetch_albums(profile.id))
            added, updated = await library.merge_remote(remote_albums, is_current)
        except PrelaudError as e:
            result.degraded = True
            result.add_error(f"Album sync failed: {e}")
            await self._load_library(library, result, is_current)
            return

        result.albums_added = added
        result.albums_updated = updated

    async def _load_library(
        self,
        library: AlbumLibrary,
        result: SyncResult,
        is_current: Callable[[], bool],
    ) -> None:
        try:
            await library.reload(is_current)
        except CorruptLocalStateError as e:
            result.degraded = True
            result.add_error(f"Local albums unreadable: {e}")

    # =========================================================================
    # Setup
    # =========================================================================

    async def complete_setup(
        self,
        username: str,
        artist_name: str,
        bio: Optional[str] = None,
        profile_image: Optional[bytes] = None,
    ) -> UserProfile:
        """Create the profile from the setup flow and enter the main experience.

        Errors from profile creation propagate; the stage stays ``needs_setup``.
        """
        profile = await self.profile_manager.create_profile(
            username, artist_name, bio=bio, profile_image=profile_image
        )

        result = SyncResult(remote_verified=True, profile_action=ProfileAction.PUSHED)
        self._finish(self._epoch, result, SyncStage.SYNC_COMPLETE, MESSAGE_COMPLETE)
        return profile

    async def recreate_remote_profile(self) -> bool:
        """Push the local profile to the identity service again.

        Returns:
            True if the identity service accepted the profile
        """
        try:
            await self.profile_manager.push_profile()
            return True
        except (
            ProfileNotFoundError,
            TransientNetworkError,
            IdentityServiceError,
            UsernameTakenError,
        ) as e:
            logger.error("Failed to recreate remote profile: %s", e)
            return False
