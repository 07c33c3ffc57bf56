"""Shared helpers for CLI commands."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ...config import Config, get_config
from ...core.session import PrelaudSession
from ...exceptions import CorruptLocalStateError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionFactory = Callable[[Config], PrelaudSession]


class CliContext:
    """Object passed to every command through ``click.Context.obj``."""

    def __init__(
        self,
        config: Optional[Config] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.config = config
        self.session_factory = session_factory or PrelaudSession

    def open_session(self) -> PrelaudSession:
        """Create a session for one command invocation."""
        if self.config is None:
            self.config = get_config()
        return self.session_factory(self.config)


def run_with_session(
    ctx_obj: CliContext, work: Callable[[PrelaudSession], Awaitable[T]]
) -> T:
    """Run an async unit of work against a fresh session and close it afterwards."""
    session = ctx_obj.open_session()
    try:
        return asyncio.run(work(session))
    finally:
        session.close()


async def load_local_profile(session: PrelaudSession) -> None:
    """Load the stored profile without touching the network."""
    try:
        await session.profile_manager.load()
    except CorruptLocalStateError as e:
        logger.error("Local profile unreadable: %s", e)
