"""Startup sync state machine."""

from .orchestrator import SyncOrchestrator
from .status import ProfileAction, SyncResult, SyncStage, SyncStatus

__all__ = [
    "ProfileAction",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStage",
    "SyncStatus",
]
