"""Service wiring for one running instance of the sync engine."""

import logging
from typing import Optional

from ..config import Config, get_config
from ..database.service import LocalStore
from ..services.identity_client import IdentityServiceClient, RestIdentityClient
from .library import AlbumLibrary
from .profile.manager import ProfileManager
from .sharing.codec import SharingCodec
from .sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class PrelaudSession:
    """Builds and owns exactly one instance of each service.

    Services are passed to each other explicitly; nothing is looked up through
    module level singletons.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[IdentityServiceClient] = None,
        store: Optional[LocalStore] = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Configuration; read from the environment when None
            client: Identity client; a REST client for ``config.api_url`` when None
            store: Local store; opened at ``config.database_path`` when None
        """
        self.config = config or get_config()

        self.store = store or LocalStore(self.config.database_path)
        self.client = client or RestIdentityClient(
            self.config.api_url,
            api_key=self.config.api_key,
            timeout=self.config.request_timeout,
        )

        self.profile_manager = ProfileManager(
            self.store,
            self.client,
            request_timeout=self.config.request_timeout,
            debounce_seconds=self.config.username_debounce_seconds,
        )
        self.codec = SharingCodec(lambda: self.profile_manager.current_profile)
        self.library = AlbumLibrary(self.store, self.codec)
        self.orchestrator = SyncOrchestrator(
            self.profile_manager,
            self.client,
            library=self.library,
            request_timeout=self.config.request_timeout,
        )

        logger.debug("Session ready (api=%s, db=%s)", self.config.api_url, self.store.db_path)

    def close(self) -> None:
        """Release the HTTP session and database connection."""
        self.profile_manager.cancel_pending_checks()
        close_client = getattr(self.client, "close", None)
        if callable(close_client):
            close_client()
        self.store.close()
