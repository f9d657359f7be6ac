"""Cancelable background refresh bound to an open chat."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """Explicit stop signal shared between a chat and its background work."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class ThreadRefresher:
    """Periodically re-reads a conversation while its chat is open.

    Covers the gap between a send and its change notification. At most one
    fetch runs at a time: a tick that finds a fetch in flight is skipped, so
    slow responses never pile up.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[None]],
        interval: float = 2.0,
        token: CancellationToken | None = None,
    ):
        self.fetch = fetch
        self.interval = interval
        self.token = token or CancellationToken()
        self.in_flight = False
        self.fetches = 0
        self.skipped = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        if self.token.cancelled:
            raise RuntimeError("Cannot start a refresher whose token is cancelled")
        self._task = asyncio.create_task(self._run())

    async def refresh_now(self) -> bool:
        """Fetch once unless a fetch is already in flight. Returns True if it ran."""
        if self.in_flight or self.token.cancelled:
            self.skipped += 1
            return False

        self.in_flight = True
        try:
            await self.fetch()
            self.fetches += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Thread refresh failed: {e}")
        finally:
            self.in_flight = False
        return True

    async def _run(self) -> None:
        # First fetch happens one interval after start
        while not await self.token.wait(self.interval):
            await self.refresh_now()

    async def stop(self) -> None:
        """Cancel the token and abandon any in-flight fetch."""
        self.token.cancel()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
