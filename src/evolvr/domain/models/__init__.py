"""Immutable domain value objects for the progression engine."""

from evolvr.domain.models.badge import (
    BadgeDefinition,
    BadgeRequirement,
    RequirementKind,
    UserBadge,
)
from evolvr.domain.models.base import DomainEvent, DomainValidationError
from evolvr.domain.models.progression import (
    Category,
    CategoryProgress,
    LevelInfo,
    OverallLevelInfo,
    OverallProgress,
    XPSource,
)
from evolvr.domain.models.task import (
    ActiveTaskCache,
    ChallengeTask,
    HabitTask,
    NormalTask,
    RoutineCompletion,
    RoutineTask,
    TaskKind,
    TaskRef,
    date_key,
)
from evolvr.domain.models.user import UserState, UserStats

__all__ = [
    "ActiveTaskCache",
    "BadgeDefinition",
    "BadgeRequirement",
    "Category",
    "CategoryProgress",
    "ChallengeTask",
    "DomainEvent",
    "DomainValidationError",
    "HabitTask",
    "LevelInfo",
    "NormalTask",
    "OverallLevelInfo",
    "OverallProgress",
    "RequirementKind",
    "RoutineCompletion",
    "RoutineTask",
    "TaskKind",
    "TaskRef",
    "UserBadge",
    "UserState",
    "UserStats",
    "XPSource",
    "date_key",
]
