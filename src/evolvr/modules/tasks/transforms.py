"""
Active-task cache reducer.

The only functions allowed to derive a new `ActiveTaskCache` from a
completion. Both are pure: they take a cache value and return a new one.

- `apply_optimistic_completion`: the tentative change shown before the
  authoritative write confirms it.
- `restore_task`: put one task's pre-completion record back, used for a
  task-scoped rollback when the cache changed underneath the completion.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional

from evolvr.domain.models.task import (
    ActiveTaskCache,
    ChallengeTask,
    RoutineCompletion,
    RoutineTask,
    TaskKind,
    TaskRef,
    date_key,
)


def _without(cache: ActiveTaskCache, kind: TaskKind, task_id: str) -> ActiveTaskCache:
    return cache.with_tasks(
        kind, tuple(task for task in cache.tasks_of(kind) if task.id != task_id)
    )


def _replacing(cache: ActiveTaskCache, kind: TaskKind, updated: TaskRef) -> ActiveTaskCache:
    return cache.with_tasks(
        kind,
        tuple(updated if task.id == updated.id else task for task in cache.tasks_of(kind)),
    )


def apply_optimistic_completion(
    cache: ActiveTaskCache,
    kind: TaskKind,
    task: TaskRef,
    user_id: str,
    now: datetime,
) -> ActiveTaskCache:
    """
    Cache as it should look once `user_id` has completed `task`.

    - normal / habit: the task leaves its list.
    - challenge: flagged completed with `last_completed = now`, kept in place.
    - routine: a completion by `user_id` is logged under today's date key and
      the task is flagged completed for this user; it leaves the list only
      once every participant has completed it today.
    """
    if kind in (TaskKind.NORMAL, TaskKind.HABIT):
        return _without(cache, kind, task.id)

    if kind is TaskKind.CHALLENGE:
        assert isinstance(task, ChallengeTask)
        return _replacing(cache, kind, replace(task, is_completed=True, last_completed=now))

    assert isinstance(task, RoutineTask)
    key = date_key(now)
    updated = task.with_completion(RoutineCompletion(completed_by=user_id, completed_at=now), key)
    if updated.is_fully_completed_on(key):
        return _without(cache, kind, task.id)
    return _replacing(cache, kind, updated)


def restore_task(
    cache: ActiveTaskCache,
    kind: TaskKind,
    original: TaskRef,
    index: Optional[int] = None,
) -> ActiveTaskCache:
    """
    Put `original` back into `cache`, leaving every other task as it is.

    A task still present is replaced in place; a removed task is re-inserted
    at `index` (clamped to the list length, appended when None).
    """
    tasks = list(cache.tasks_of(kind))
    for position, task in enumerate(tasks):
        if task.id == original.id:
            tasks[position] = original
            return cache.with_tasks(kind, tuple(tasks))

    position = len(tasks) if index is None else min(max(index, 0), len(tasks))
    tasks.insert(position, original)
    return cache.with_tasks(kind, tuple(tasks))
