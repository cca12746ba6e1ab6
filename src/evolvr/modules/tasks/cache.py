"""
In-memory ActiveTaskCacheStore.

Holds the current `ActiveTaskCache` value and, when given a fetcher, replaces
it with a fresh copy on `invalidate()`. Values are immutable, so `read()`
hands out the stored object itself.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from evolvr.core.logging.logger import get_logger
from evolvr.domain.models.task import ActiveTaskCache

logger = get_logger(__name__)

CacheFetcher = Callable[[], Awaitable[ActiveTaskCache]]


class InMemoryActiveTaskCacheStore:
    """
    Examples
    --------
    >>> store = InMemoryActiveTaskCacheStore(fetcher=load_active_tasks)
    >>> store.write(store.read().with_tasks(TaskKind.NORMAL, ()))
    >>> await store.invalidate()  # replaced by the fetcher's result
    """

    def __init__(
        self,
        initial: Optional[ActiveTaskCache] = None,
        fetcher: Optional[CacheFetcher] = None,
    ) -> None:
        self._state = initial if initial is not None else ActiveTaskCache()
        self._fetcher = fetcher
        self._version = 0
        self.stale = False

    @property
    def version(self) -> int:
        """Incremented on every write."""
        return self._version

    def read(self) -> ActiveTaskCache:
        return self._state

    def write(self, state: ActiveTaskCache) -> None:
        self._state = state
        self._version += 1
        self.stale = False

    async def invalidate(self) -> None:
        self.stale = True
        if self._fetcher is None:
            logger.debug("Active task cache invalidated without fetcher")
            return

        fresh = await self._fetcher()
        self.write(fresh)
        logger.debug(
            "Active task cache refetched",
            extra={
                "normal": len(fresh.normal_tasks),
                "habit": len(fresh.habit_tasks),
                "routine": len(fresh.routine_tasks),
                "challenge": len(fresh.challenge_tasks),
                "cache_version": self._version,
            },
        )
