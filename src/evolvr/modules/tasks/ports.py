"""
Ports: the narrow interfaces between the engine and its collaborators.

- `PersistenceGateway`: the authoritative store for user aggregates, task
  completions, XP and earned badges.
- `BadgeCatalogSource`: read-only badge definitions.
- `ActiveTaskCacheStore`: the client-held active-task cache the coordinator
  updates optimistically.

The engine never retries a gateway call; timeouts and retries belong to the
adapter behind the port.
"""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence, runtime_checkable

from evolvr.domain.models.badge import BadgeDefinition
from evolvr.domain.models.progression import XPSource
from evolvr.domain.models.task import ActiveTaskCache, ChallengeTask
from evolvr.domain.models.user import UserState


@runtime_checkable
class PersistenceGateway(Protocol):
    async def get_user_aggregate(self, user_id: str) -> UserState:
        ...

    async def complete_normal_task(self, user_id: str, task_id: str) -> None:
        ...

    async def complete_habit_task(self, user_id: str, task_id: str) -> None:
        ...

    async def complete_routine_task(self, user_id: str, task_id: str, routine_id: str) -> None:
        ...

    async def complete_challenge_task(
        self,
        user_id: str,
        task_id: str,
        challenge_id: str,
        task_ref: ChallengeTask,
    ) -> None:
        ...

    async def award_xp(
        self,
        user_id: str,
        xp_by_category: Mapping[str, int],
        source: XPSource,
    ) -> None:
        ...

    async def save_earned_badges(self, user_id: str, badge_ids: Sequence[str]) -> None:
        """Persist newly earned badges in one batch; ids already stored are ignored."""
        ...


@runtime_checkable
class BadgeCatalogSource(Protocol):
    async def get_all_badge_definitions(self) -> list[BadgeDefinition]:
        ...


@runtime_checkable
class ActiveTaskCacheStore(Protocol):
    def read(self) -> ActiveTaskCache:
        ...

    def write(self, state: ActiveTaskCache) -> None:
        ...

    async def invalidate(self) -> None:
        """Mark the cache stale and refetch it from the authoritative store."""
        ...


__all__ = [
    "ActiveTaskCacheStore",
    "BadgeCatalogSource",
    "PersistenceGateway",
    "XPSource",
]
