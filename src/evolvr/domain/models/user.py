"""
User aggregate as seen by the progression engine.

The engine reads this aggregate; it never writes it back except through the
persistence gateway.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from evolvr.domain.models.badge import UserBadge
from evolvr.domain.models.base import validate_non_negative
from evolvr.domain.models.progression import CategoryProgress, OverallProgress


@dataclass(frozen=True)
class UserStats:
    current_streak: int = 0
    longest_streak: int = 0
    total_tasks_completed: int = 0
    routines_completed: int = 0
    challenges_completed: tuple[str, ...] = ()
    today_xp: float = 0

    def __post_init__(self) -> None:
        validate_non_negative(self.current_streak, "current_streak")
        validate_non_negative(self.longest_streak, "longest_streak")
        validate_non_negative(self.total_tasks_completed, "total_tasks_completed")
        validate_non_negative(self.routines_completed, "routines_completed")
        validate_non_negative(self.today_xp, "today_xp")
        object.__setattr__(self, "challenges_completed", tuple(self.challenges_completed))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserStats":
        return cls(
            current_streak=int(data.get("current_streak", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
            total_tasks_completed=int(data.get("total_tasks_completed", 0)),
            routines_completed=int(data.get("routines_completed", 0)),
            challenges_completed=tuple(data.get("challenges_completed", ())),
            today_xp=data.get("today_xp", 0),
        )


@dataclass(frozen=True)
class UserState:
    """
    The user aggregate: per-category progress, overall progress, stats and
    earned badges.

    `categories` is keyed by category name; unknown names are kept as given
    so adapters never lose data, but the engine never invents entries.
    """

    categories: Mapping[str, CategoryProgress] = field(default_factory=dict)
    overall: OverallProgress = field(default_factory=OverallProgress)
    stats: UserStats = field(default_factory=UserStats)
    badges: tuple[UserBadge, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "categories", MappingProxyType(dict(self.categories)))
        object.__setattr__(self, "badges", tuple(self.badges))

    @property
    def earned_badge_ids(self) -> frozenset[str]:
        return frozenset(badge.badge_id for badge in self.badges)

    def category(self, name: str) -> Optional[CategoryProgress]:
        return self.categories.get(name)

    def with_badges(self, badges: Iterable[UserBadge]) -> "UserState":
        return UserState(
            categories=self.categories,
            overall=self.overall,
            stats=self.stats,
            badges=tuple(self.badges) + tuple(badges),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserState":
        return cls(
            categories={
                str(name).lower(): CategoryProgress.from_dict(value)
                for name, value in (data.get("categories") or {}).items()
            },
            overall=OverallProgress.from_dict(data.get("overall") or {}),
            stats=UserStats.from_dict(data.get("stats") or {}),
            badges=tuple(
                UserBadge(badge_id=b["badge_id"], earned_at=b["earned_at"])
                if "earned_at" in b
                else UserBadge(badge_id=b["badge_id"])
                for b in data.get("badges") or ()
            ),
        )
