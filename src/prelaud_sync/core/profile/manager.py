"""Profile manager: validation, availability checks and profile writes.

All writes to the profile, whether they come from the setup flow, a user edit or
startup reconciliation, go through a single asyncio lock owned by the manager.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ...database.service import LocalStore
from ...exceptions import (
    ConcurrentCreateRejectedError,
    IdentityServiceError,
    ProfileNotFoundError,
    ProfileValidationError,
    TransientNetworkError,
    UsernameTakenError,
)
from ...models import (
    ProfileStats,
    UserProfile,
    UsernameCheckResult,
    UsernameStatus,
    ValidationResult,
    utc_now,
)
from ...services.identity_client import IdentityServiceClient
from .debounce import ResultCallback, UsernameCheckDebouncer
from .validation import validate_artist_name, validate_username

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONNECTION_ERROR_MESSAGE = (
    "Cannot connect to server. Please check your internet connection and try again."
)
SERVER_ERROR_MESSAGE = "Unable to verify username right now. Please try again."
USERNAME_TAKEN_MESSAGE = "Username is already taken"


def _always_current() -> bool:
    return True


class ProfileManager:
    """Owns the in-memory profile and every write to it."""

    def __init__(
        self,
        store: LocalStore,
        client: IdentityServiceClient,
        request_timeout: float = 30.0,
        debounce_seconds: float = 0.8,
        on_username_result: Optional[ResultCallback] = None,
    ) -> None:
        """Initialize the profile manager.

        Args:
            store: Local store holding the persisted profile
            client: Identity service client
            request_timeout: Upper bound in seconds for each remote call
            debounce_seconds: Quiet period before a typed username is checked
            on_username_result: Optional callback for debounced check results
        """
        self.store = store
        self.client = client
        self.request_timeout = request_timeout

        self._profile: Optional[UserProfile] = None
        self._write_lock = asyncio.Lock()
        self._create_pending = False
        # Bumped on reset so in-flight creations cannot resurrect a profile
        self._epoch = 0

        self.debouncer = UsernameCheckDebouncer(
            self.check_username_availability,
            quiet_period=debounce_seconds,
            on_result=on_username_result,
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def current_profile(self) -> Optional[UserProfile]:
        """The profile currently in memory, if any."""
        return self._profile

    @property
    def is_profile_setup(self) -> bool:
        """Whether first-run setup has completed."""
        return self._profile is not None

    @property
    def is_creating(self) -> bool:
        """Whether a profile creation is in progress."""
        return self._create_pending

    @property
    def display_name(self) -> str:
        """Artist name, or a placeholder before setup."""
        if self._profile is None:
            return "Unknown Artist"
        return self._profile.artist_name

    def shareable_text(self) -> str:
        """Text used when sharing the profile with others."""
        if self._profile is None:
            return ""
        return (
            f"Check out @{self._profile.username} on prelaud - "
            f"{self._profile.artist_name}"
        )

    async def load(self) -> Optional[UserProfile]:
        """Load the persisted profile into memory.

        Raises:
            CorruptLocalStateError: If the store cannot be read
        """
        async with self._write_lock:
            profile = await asyncio.to_thread(self.store.load_profile)
            self._profile = profile

        if profile is None:
            logger.info("No local profile found")
        else:
            logger.info("Loaded local profile: @%s", profile.username)
        return profile

    async def get_profile_stats(self) -> ProfileStats:
        """Album and song counts for the profile screen."""
        stats = await asyncio.to_thread(self.store.get_statistics)
        return ProfileStats(
            album_count=stats["albums"],
            song_count=stats["songs"],
            member_since=self._profile.created_at if self._profile else None,
        )

    # =========================================================================
    # Validation and availability
    # =========================================================================

    def validate_username(self, username: str) -> ValidationResult:
        """Validate a username locally, without any network call."""
        return validate_username(username)

    def validate_artist_name(self, artist_name: str) -> ValidationResult:
        """Validate an artist name locally."""
        return validate_artist_name(artist_name)

    async def check_username_availability(self, candidate: str) -> UsernameCheckResult:
        """Check whether a username can be used by the current user.

        Never raises for network problems; they come back as a server error
        result so the setup screen can show them inline.
        """
        username = candidate.strip()

        local = validate_username(username)
        if not local.is_valid:
            return UsernameCheckResult(
                username=username,
                status=UsernameStatus.INVALID,
                error_message=local.error_message,
            )

        # Keeping your own name never conflicts with yourself
        if (
            self._profile is not None
            and self._profile.normalized_username == username.lower()
        ):
            return UsernameCheckResult(
                username=username, status=UsernameStatus.AVAILABLE
            )

        try:
            available = await self._remote(self.client.is_username_available(username))
        except TransientNetworkError as e:
            logger.warning("Username check for %s failed: %s", username, e)
            return UsernameCheckResult(
                username=username,
                status=UsernameStatus.SERVER_ERROR,
                error_message=CONNECTION_ERROR_MESSAGE,
            )
        except IdentityServiceError as e:
            logger.error("Identity service rejected username check: %s", e)
            return UsernameCheckResult(
                username=username,
                status=UsernameStatus.SERVER_ERROR,
                error_message=SERVER_ERROR_MESSAGE,
            )

        if available:
            return UsernameCheckResult(
                username=username, status=UsernameStatus.AVAILABLE
            )
        return UsernameCheckResult(
            username=username,
            status=UsernameStatus.TAKEN,
            error_message=USERNAME_TAKEN_MESSAGE,
        )

    def schedule_username_check(
        self, candidate: str
    ) -> "asyncio.Task[Optional[UsernameCheckResult]]":
        """Submit typed input to the debouncer."""
        return self.debouncer.submit(candidate)

    def cancel_pending_checks(self) -> None:
        """Drop any scheduled username check."""
        self.debouncer.cancel()

    async def _require_available(self, username: str) -> None:
        """Strict availability check used before writing a username."""
        result = await self.check_username_availability(username)
        if result.status == UsernameStatus.INVALID:
            raise ProfileValidationError("username", result.error_message or "")
        if result.status == UsernameStatus.TAKEN:
            raise UsernameTakenError(username)
        if result.status == UsernameStatus.SERVER_ERROR:
            raise TransientNetworkError(result.error_message or CONNECTION_ERROR_MESSAGE)

    async def _remote(self, call: Awaitable[T]) -> T:
        """Await a remote call under the request timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(
                f"Identity service did not answer within {self.request_timeout}s"
            ) from e

    # =========================================================================
    # Writes
    # =========================================================================

    async def create_profile(
        self,
        username: str,
        artist_name: str,
        bio: Optional[str] = None,
        profile_image: Optional[bytes] = None,
    ) -> UserProfile:
        """Create the user's profile remotely and locally.

        Args:
            username: Desired unique username
            artist_name: Display name
            bio: Optional biography
            profile_image: Optional avatar bytes, stored locally only

        Returns:
            The created profile

        Raises:
            ConcurrentCreateRejectedError: A profile exists or a creation is pending
            ProfileValidationError: A field fails local validation
            UsernameTakenError: The identity service already holds the username
            TransientNetworkError: The service could not be reached
        """
        if self._profile is not None:
            raise ConcurrentCreateRejectedError("A profile already exists")
        if self._create_pending:
            raise ConcurrentCreateRejectedError("Profile creation already in progress")

        self._create_pending = True
        epoch = self._epoch
        try:
            username = username.strip()
            artist_name = artist_name.strip()

            artist_check = validate_artist_name(artist_name)
            if not artist_check.is_valid:
                raise ProfileValidationError(
                    "artist_name", artist_check.error_message or ""
                )
            await self._require_available(username)

            profile = UserProfile(
                username=username,
                artist_name=artist_name,
                bio=(bio or "").strip() or None,
                profile_image=profile_image,
            )

            async with self._write_lock:
                if epoch != self._epoch:
                    raise ConcurrentCreateRejectedError(
                        "Profile creation was interrupted by a reset"
                    )
                if self._profile is not None:
                    raise ConcurrentCreateRejectedError("A profile already exists")

                await self._remote(self.client.upsert_profile(profile))
                await asyncio.to_thread(self.store.save_profile, profile)
                self._profile = profile
        finally:
            self._create_pending = False

        logger.info("Created profile: @%s (%s)", profile.username, profile.id)
        return profile

    async def update_profile(
        self,
        username: Optional[str] = None,
        artist_name: Optional[str] = None,
        bio: Optional[str] = None,
        profile_image: Optional[bytes] = None,
    ) -> UserProfile:
        """Apply a partial update to the current profile.

        A changed username goes through the full availability check. If the
        identity service cannot be reached the change is still saved locally and
        pushed by the next startup sync.

        Raises:
            ProfileNotFoundError: No profile is set up
            ProfileValidationError: A field fails local validation
            UsernameTakenError: The new username is already in use
            TransientNetworkError: The availability check could not complete
        """
        current = self._profile
        if current is None:
            raise ProfileNotFoundError("No profile to update")

        changes = {}

        if username is not None:
            username = username.strip()
            if username.lower() != current.normalized_username:
                await self._require_available(username)
            else:
                check = validate_username(username)
                if not check.is_valid:
                    raise ProfileValidationError("username", check.error_message or "")
            if username != current.username:
                changes["username"] = username

        if artist_name is not None:
            artist_name = artist_name.strip()
            check = validate_artist_name(artist_name)
            if not check.is_valid:
                raise ProfileValidationError("artist_name", check.error_message or "")
            if artist_name != current.artist_name:
                changes["artist_name"] = artist_name

        if bio is not None:
            new_bio = bio.strip() or None
            if new_bio != current.bio:
                changes["bio"] = new_bio

        if profile_image is not None and profile_image != current.profile_image:
            changes["profile_image"] = profile_image

        if not changes:
            logger.debug("Profile update without changes")
            return current

        async with self._write_lock:
            base = self._profile
            if base is None:
                raise ProfileNotFoundError("Profile was reset during update")

            changes["updated_at"] = utc_now()
            updated = base.model_copy(update=changes)

            try:
                await self._remote(self.client.upsert_profile(updated))
            except (TransientNetworkError, IdentityServiceError) as e:
                logger.warning(
                    "Profile update kept locally, will sync on next startup: %s", e
                )

            await asyncio.to_thread(self.store.save_profile, updated)
            self._profile = updated

        logger.info("Updated profile: %s", ", ".join(sorted(changes)))
        return updated

    async def apply_remote_profile(
        self,
        remote: UserProfile,
        is_current: Callable[[], bool] = _always_current,
    ) -> Optional[UserProfile]:
        """Replace the local profile with the remote copy.

        The local avatar is kept since the identity service does not hold images.

        Args:
            remote: Profile as returned by the identity service
            is_current: Returns False once the caller's run has been superseded

        Returns:
            The applied profile, or None if the write was skipped
        """
        async with self._write_lock:
            if not is_current():
                logger.info("Discarding remote profile from a superseded sync")
                return None

            base = self._profile
            update = {"profile_image": base.profile_image if base else None}
            merged = remote.model_copy(update=update)

            await asyncio.to_thread(self.store.save_profile, merged)
            self._profile = merged

        logger.info("Applied remote profile: @%s", merged.username)
        return merged

    async def push_profile(self) -> UserProfile:
        """Upsert the current local profile to the identity service.

        Raises:
            ProfileNotFoundError: No profile is set up
        """
        profile = self._profile
        if profile is None:
            raise ProfileNotFoundError("No profile to push")

        remote = await self._remote(self.client.upsert_profile(profile))
        logger.info("Pushed local profile to identity service: @%s", profile.username)
        return remote

    async def reset(self, clear_store: bool = True) -> None:
        """Forget the profile and cancel pending username checks.

        Args:
            clear_store: Also wipe the local store (profile and albums)
        """
        self._epoch += 1
        self.debouncer.reset()

        async with self._write_lock:
            if clear_store:
                await asyncio.to_thread(self.store.clear_all)
            self._profile = None

        logger.info("Profile state reset")
