"""
Refresh Coordination

Ensures refresh cycles never overlap. Each cycle clears and rewrites the
channel and programme tables, so a second cycle started mid-way would race
the first one's writes.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable


logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """
    Coordinates refresh cycles to prevent concurrent executions.

    A request arriving while a cycle is running is skipped rather than queued:
    the running cycle already produces the fresh data it would have fetched.
    """

    def __init__(self):
        """Initialize the refresh coordinator with a lock."""
        self._refresh_lock = asyncio.Lock()

    async def execute(self, refresh_func: Callable[[], Awaitable[dict]]) -> dict:
        """
        Execute a refresh cycle with concurrency protection.

        Args:
            refresh_func: Async function running one full cycle

        Returns:
            Result from refresh_func, or a skip response if a cycle is already running
        """
        if self._refresh_lock.locked():
            logger.warning("IPTV refresh already in progress, skipping this request")
            return {
                "status": "skipped",
                "message": "IPTV refresh already in progress"
            }

        async with self._refresh_lock:
            return await refresh_func()

    def is_refreshing(self) -> bool:
        """
        Check if a refresh cycle is currently in progress.

        Returns:
            True if a refresh is running, False otherwise
        """
        return self._refresh_lock.locked()


# Global singleton instance
_coordinator: RefreshCoordinator | None = None


def get_refresh_coordinator() -> RefreshCoordinator:
    """
    Get or create the global refresh coordinator singleton.

    Returns:
        The global RefreshCoordinator instance
    """
    global _coordinator
    if _coordinator is None:
        _coordinator = RefreshCoordinator()
    return _coordinator


def reset_refresh_coordinator() -> None:
    """
    Reset the refresh coordinator (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _coordinator
    _coordinator = None
