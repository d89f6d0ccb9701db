"""
Refresh Coordination

Ensures at most one guide refresh runs at a time. Callers arriving while a
refresh is in flight wait for that refresh instead of starting another one.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """
    Single-slot in-flight guard for guide refreshes.

    The running refresh is kept as a task; every concurrent caller awaits the
    same task and receives its result or its exception.
    """

    def __init__(self):
        """Initialize the coordinator with an empty slot."""
        self._task: asyncio.Task | None = None

    async def execute(self, refresh_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run refresh_func unless a refresh is already running, then await it.

        Args:
            refresh_func: Async function performing one refresh

        Returns:
            Result of the refresh that was in flight or newly started

        Raises:
            Any exception raised by that refresh
        """
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(refresh_func())
        else:
            logger.info("Guide refresh already in progress, waiting for it to finish")

        # A cancelled caller must not cancel the refresh other callers share
        return await asyncio.shield(self._task)

    def is_refreshing(self) -> bool:
        """
        Check if a refresh is currently in progress.

        Returns:
            True if a refresh is running, False otherwise
        """
        return self._task is not None and not self._task.done()
