"""
Active task references and the client-held active-task cache.

Task references form a tagged union by `TaskKind`. Every object is frozen:
the coordinator produces a new `ActiveTaskCache` for each change, so a
snapshot is simply the previous cache value.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union

from evolvr.domain.models.base import validate_not_empty


class TaskKind(str, Enum):
    NORMAL = "normal"
    HABIT = "habit"
    ROUTINE = "routine"
    CHALLENGE = "challenge"


def date_key(moment: datetime) -> str:
    """ISO calendar date (UTC) used to bucket routine completions."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return date(moment.year, moment.month, moment.day).isoformat()


@dataclass(frozen=True)
class NormalTask:
    id: str
    title: str = ""
    category_xp: Mapping[str, int] = field(default_factory=dict)
    completed: bool = False

    kind = TaskKind.NORMAL

    def __post_init__(self) -> None:
        validate_not_empty(self.id, "id")


@dataclass(frozen=True)
class HabitTask:
    id: str
    title: str = ""
    category_xp: Mapping[str, int] = field(default_factory=dict)
    completed: bool = False
    habit_id: Optional[str] = None
    streak: int = 0

    kind = TaskKind.HABIT

    def __post_init__(self) -> None:
        validate_not_empty(self.id, "id")


@dataclass(frozen=True)
class RoutineCompletion:
    completed_by: str
    completed_at: datetime


@dataclass(frozen=True)
class RoutineTask:
    """
    A routine step shared by several participants.

    `completions` maps an ISO date key to the completions logged that day.
    `is_completed` is the viewing user's own flag.
    """

    id: str
    routine_id: Optional[str] = None
    title: str = ""
    category_xp: Mapping[str, int] = field(default_factory=dict)
    participants: tuple[str, ...] = ()
    completions: Mapping[str, tuple[RoutineCompletion, ...]] = field(default_factory=dict)
    is_completed: bool = False

    kind = TaskKind.ROUTINE

    def __post_init__(self) -> None:
        validate_not_empty(self.id, "id")
        object.__setattr__(self, "participants", tuple(self.participants))
        object.__setattr__(
            self,
            "completions",
            MappingProxyType({k: tuple(v) for k, v in self.completions.items()}),
        )

    def completions_on(self, key: str) -> tuple[RoutineCompletion, ...]:
        return self.completions.get(key, ())

    def completed_by_on(self, key: str) -> frozenset[str]:
        return frozenset(c.completed_by for c in self.completions_on(key))

    def is_fully_completed_on(self, key: str) -> bool:
        """Every participant has logged a completion for `key`."""
        if not self.participants:
            return bool(self.completions_on(key))
        return set(self.participants) <= self.completed_by_on(key)

    def with_completion(self, completion: RoutineCompletion, key: str) -> "RoutineTask":
        updated = dict(self.completions)
        updated[key] = self.completions_on(key) + (completion,)
        return replace(self, completions=updated, is_completed=True)


@dataclass(frozen=True)
class ChallengeTask:
    id: str
    challenge_id: Optional[str] = None
    title: str = ""
    category_xp: Mapping[str, int] = field(default_factory=dict)
    is_completed: bool = False
    last_completed: Optional[datetime] = None

    kind = TaskKind.CHALLENGE

    def __post_init__(self) -> None:
        validate_not_empty(self.id, "id")


TaskRef = Union[NormalTask, HabitTask, RoutineTask, ChallengeTask]


_KIND_FIELDS: dict[TaskKind, str] = {
    TaskKind.NORMAL: "normal_tasks",
    TaskKind.HABIT: "habit_tasks",
    TaskKind.ROUTINE: "routine_tasks",
    TaskKind.CHALLENGE: "challenge_tasks",
}


@dataclass(frozen=True)
class ActiveTaskCache:
    """The user's active tasks, one tuple per kind."""

    normal_tasks: tuple[NormalTask, ...] = ()
    habit_tasks: tuple[HabitTask, ...] = ()
    routine_tasks: tuple[RoutineTask, ...] = ()
    challenge_tasks: tuple[ChallengeTask, ...] = ()

    def __post_init__(self) -> None:
        for name in _KIND_FIELDS.values():
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def tasks_of(self, kind: TaskKind) -> tuple[TaskRef, ...]:
        return getattr(self, _KIND_FIELDS[kind])

    def find(self, kind: TaskKind, task_id: str) -> Optional[TaskRef]:
        for task in self.tasks_of(kind):
            if task.id == task_id:
                return task
        return None

    def index_of(self, kind: TaskKind, task_id: str) -> Optional[int]:
        for index, task in enumerate(self.tasks_of(kind)):
            if task.id == task_id:
                return index
        return None

    def with_tasks(self, kind: TaskKind, tasks: tuple[TaskRef, ...]) -> "ActiveTaskCache":
        return replace(self, **{_KIND_FIELDS[kind]: tuple(tasks)})
