"""Debounced username availability checks.

Every submission gets a generation number. A check only runs once its input has
been stable for the quiet period, and its result is only applied if no newer
submission arrived in the meantime.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ...models import UsernameCheckResult

logger = logging.getLogger(__name__)

UsernameCheck = Callable[[str], Awaitable[UsernameCheckResult]]
ResultCallback = Callable[[str, UsernameCheckResult], None]


class UsernameCheckDebouncer:
    """Runs the latest username check after a quiet period."""

    def __init__(
        self,
        check: UsernameCheck,
        quiet_period: float = 0.8,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        """Initialize the debouncer.

        Args:
            check: Coroutine function performing the actual check
            quiet_period: Seconds the input must stay unchanged before checking
            on_result: Optional callback receiving (username, result)
        """
        self._check = check
        self.quiet_period = quiet_period
        self.on_result = on_result

        self._generation = 0
        self._current_input: Optional[str] = None
        self._pending: Optional["asyncio.Task[Optional[UsernameCheckResult]]"] = None

        self.last_checked: Optional[str] = None
        self.last_result: Optional[UsernameCheckResult] = None

    @property
    def generation(self) -> int:
        """Number of the most recent submission."""
        return self._generation

    @property
    def is_pending(self) -> bool:
        """Whether a check is waiting or running."""
        return self._pending is not None and not self._pending.done()

    def submit(self, candidate: str) -> "asyncio.Task[Optional[UsernameCheckResult]]":
        """Register new input, superseding any earlier pending check.

        Must be called from a running event loop.

        Returns:
            Task resolving to the result, or None if the check was superseded
        """
        self._generation += 1
        self._current_input = candidate
        self._cancel_pending()

        self._pending = asyncio.create_task(self._run(self._generation, candidate))
        return self._pending

    def cancel(self) -> None:
        """Drop any pending check, e.g. when the setup screen goes away."""
        self._generation += 1
        self._current_input = None
        self._cancel_pending()

    def reset(self) -> None:
        """Cancel pending work and forget previous results."""
        self.cancel()
        self.last_checked = None
        self.last_result = None

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def _is_latest(self, generation: int, candidate: str) -> bool:
        return generation == self._generation and candidate == self._current_input

    async def _run(
        self, generation: int, candidate: str
    ) -> Optional[UsernameCheckResult]:
        await asyncio.sleep(self.quiet_period)
        if not self._is_latest(generation, candidate):
            return None

        result = await self._check(candidate)

        if not self._is_latest(generation, candidate):
            logger.debug("Discarding stale username check for: %s", candidate)
            return None

        self.last_checked = candidate
        self.last_result = result

        if self.on_result is not None:
            try:
                self.on_result(candidate, result)
            except Exception as e:
                logger.error("Error in username check callback: %s", e)

        return result
