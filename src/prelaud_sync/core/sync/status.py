"""Sync stages, observable status snapshots and run results."""

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, List, Optional

from ...models import UserProfile

logger = logging.getLogger(__name__)


class SyncStage(str, Enum):
    """Stages of the startup sync state machine."""

    IDLE = "idle"
    CHECKING_LOCAL = "checking_local"
    VERIFYING_REMOTE = "verifying_remote"
    NEEDS_SETUP = "needs_setup"
    SYNC_COMPLETE = "sync_complete"
    RESETTING = "resetting"

    @property
    def is_terminal(self) -> bool:
        """Whether a run ends in this stage."""
        return self in (SyncStage.NEEDS_SETUP, SyncStage.SYNC_COMPLETE)

    @property
    def is_busy(self) -> bool:
        """Whether work is in progress in this stage."""
        return self in (
            SyncStage.CHECKING_LOCAL,
            SyncStage.VERIFYING_REMOTE,
            SyncStage.RESETTING,
        )


class ProfileAction(str, Enum):
    """What reconciliation did with the profile."""

    NONE = "none"
    UNCHANGED = "unchanged"
    PULLED = "pulled"
    PUSHED = "pushed"
    RECREATED = "recreated"


@dataclass(frozen=True)
class SyncStatus:
    """Snapshot handed to observers on every transition."""

    stage: SyncStage
    message: str = ""
    is_degraded: bool = False
    error: Optional[str] = None

    @property
    def needs_setup(self) -> bool:
        """Show the setup flow."""
        return self.stage == SyncStage.NEEDS_SETUP

    @property
    def sync_complete(self) -> bool:
        """Show the main experience."""
        return self.stage == SyncStage.SYNC_COMPLETE

    @property
    def is_syncing(self) -> bool:
        """Show a progress indicator."""
        return self.stage.is_busy


@dataclass
class SyncResult:
    """Result of one startup sync run."""

    stage: SyncStage = SyncStage.IDLE
    profile: Optional[UserProfile] = None
    degraded: bool = False
    remote_verified: bool = False
    profile_action: ProfileAction = ProfileAction.NONE
    albums_added: int = 0
    albums_updated: int = 0
    errors: List[str] = dataclass_field(default_factory=list)

    @property
    def needs_setup(self) -> bool:
        """The run ended without a local profile."""
        return self.stage == SyncStage.NEEDS_SETUP

    @property
    def sync_complete(self) -> bool:
        """The run ended with a usable profile."""
        return self.stage == SyncStage.SYNC_COMPLETE

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        logger.error(error)

    def get_summary(self) -> dict[str, Any]:
        """Get summary of the sync run."""
        summary: dict[str, Any] = {
            "stage": self.stage.value,
            "degraded": self.degraded,
            "remote_verified": self.remote_verified,
            "errors": len(self.errors),
        }

        if self.profile is not None:
            summary["profile"] = {
                "id": self.profile.id,
                "username": self.profile.username,
                "action": self.profile_action.value,
            }

        if self.remote_verified:
            summary["albums"] = {
                "added": self.albums_added,
                "updated": self.albums_updated,
            }

        return summary
