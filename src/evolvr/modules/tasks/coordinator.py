"""
TaskCompletionCoordinator: optimistic task completion with commit or rollback.

Purpose
-------
Apply a task completion for one of the four task kinds. The user sees the
change immediately through the active-task cache; the authoritative write
then either confirms it or the cache is put back the way it was.

Flow
----
1. Reject a second completion of a task already in flight.
2. Resolve and validate the task (no mutation yet).
3. Snapshot the cache and write the optimistic transform.
4. Dispatch the kind-specific PersistenceGateway call.
5. Success: commit, refetch the cache, publish ``task.completion_committed``
   and re-evaluate badges (best effort). Failure: roll back, publish
   ``task.completion_rolled_back`` and re-raise.

Each request moves through ``IDLE -> OPTIMISTIC_APPLIED -> COMMITTED`` or
``-> ROLLED_BACK``; any other transition is a programming error.

Key Design Decisions
--------------------
- XP and stats change only on the gateway's success path; the coordinator
  never awards anything itself.
- Rollback restores the snapshot exactly when nothing else wrote the cache
  since the optimistic write; otherwise only this task's record is restored
  so another completion's optimistic change survives.
- The snapshot read and the optimistic write happen without an await in
  between, so concurrent completions on one event loop always see each
  other's transforms.
- A completion cancelled while the gateway call is pending is rolled back
  the same way as a failed one, then the cancellation propagates.
- Committed normal/habit ids are remembered up to
  ``tasks.committed_history_size`` entries, oldest dropped first.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from logging import Logger
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from evolvr.core.exceptions import EvolvrInfrastructureException, PersistenceError
from evolvr.core.logging.logger import LogContext, get_logger
from evolvr.domain.models.base import DomainEvent
from evolvr.domain.models.task import (
    ActiveTaskCache,
    ChallengeTask,
    HabitTask,
    NormalTask,
    RoutineTask,
    TaskKind,
    TaskRef,
    date_key,
)
from evolvr.modules.shared.base_service import BaseService
from evolvr.modules.shared.constants import (
    DEFAULT_COMMITTED_HISTORY_SIZE,
    EVENT_TASK_COMPLETION_COMMITTED,
    EVENT_TASK_COMPLETION_ROLLED_BACK,
)
from evolvr.modules.shared.exceptions import (
    AlreadyCompletedError,
    CompletionInFlightError,
    EvolvrDomainException,
    TaskNotFoundError,
    ValidationError,
)
from evolvr.modules.shared.validators import validate_identifier
from evolvr.modules.tasks.ports import ActiveTaskCacheStore, PersistenceGateway
from evolvr.modules.tasks.transforms import apply_optimistic_completion, restore_task


class CompletionState(Enum):
    IDLE = "idle"
    OPTIMISTIC_APPLIED = "optimistic_applied"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


_ALLOWED_TRANSITIONS: Mapping[CompletionState, frozenset[CompletionState]] = {
    CompletionState.IDLE: frozenset({CompletionState.OPTIMISTIC_APPLIED}),
    CompletionState.OPTIMISTIC_APPLIED: frozenset(
        {CompletionState.COMMITTED, CompletionState.ROLLED_BACK}
    ),
    CompletionState.COMMITTED: frozenset(),
    CompletionState.ROLLED_BACK: frozenset(),
}


@dataclass
class CompletionRequest:
    user_id: str
    task_id: str
    kind: TaskKind
    state: CompletionState = CompletionState.IDLE

    def advance(self, new_state: CompletionState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"illegal completion transition {self.state.value} -> {new_state.value} "
                f"for task {self.task_id}"
            )
        self.state = new_state


Dispatcher = Callable[[PersistenceGateway, str, Any], Awaitable[None]]


async def _dispatch_normal(gateway: PersistenceGateway, user_id: str, task: NormalTask) -> None:
    await gateway.complete_normal_task(user_id, task.id)


async def _dispatch_habit(gateway: PersistenceGateway, user_id: str, task: HabitTask) -> None:
    await gateway.complete_habit_task(user_id, task.id)


async def _dispatch_routine(gateway: PersistenceGateway, user_id: str, task: RoutineTask) -> None:
    await gateway.complete_routine_task(user_id, task.id, task.routine_id)


async def _dispatch_challenge(
    gateway: PersistenceGateway, user_id: str, task: ChallengeTask
) -> None:
    await gateway.complete_challenge_task(user_id, task.id, task.challenge_id, task)


DISPATCHERS: Mapping[TaskKind, Dispatcher] = {
    TaskKind.NORMAL: _dispatch_normal,
    TaskKind.HABIT: _dispatch_habit,
    TaskKind.ROUTINE: _dispatch_routine,
    TaskKind.CHALLENGE: _dispatch_challenge,
}

_GATEWAY_OPERATIONS: Mapping[TaskKind, str] = {
    TaskKind.NORMAL: "complete_normal_task",
    TaskKind.HABIT: "complete_habit_task",
    TaskKind.ROUTINE: "complete_routine_task",
    TaskKind.CHALLENGE: "complete_challenge_task",
}

if set(DISPATCHERS) != set(TaskKind):
    raise RuntimeError("every task kind needs a gateway dispatcher")


class TaskCompletionCoordinator(BaseService):
    """
    Examples
    --------
    >>> coordinator = TaskCompletionCoordinator(gateway, store, ConfigManager, bus)
    >>> await coordinator.complete_task("u1", "routine-step-1", TaskKind.ROUTINE)
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        cache_store: ActiveTaskCacheStore,
        config_manager: Any,
        event_bus: Any,
        logger: Optional[Logger] = None,
        *,
        badge_service: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._gateway = gateway
        self._store = cache_store
        self._badges = badge_service
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._in_flight: set[str] = set()
        self._committed: OrderedDict[tuple[TaskKind, str], None] = OrderedDict()
        self._committed_limit = int(
            self.get_number_config(
                "tasks.committed_history_size", DEFAULT_COMMITTED_HISTORY_SIZE, minimum=1
            )
        )

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def complete_task(
        self,
        user_id: str,
        task_id: str,
        kind: Union[TaskKind, str],
    ) -> None:
        """
        Complete a task optimistically and reconcile with the gateway.

        Raises:
            CompletionInFlightError: The same task is already being completed
            ValidationError: Missing user/task/routine/challenge id, or unknown kind
            TaskNotFoundError: The task is not in the kind's active list
            AlreadyCompletedError: The task is already done for this user
            PersistenceError: The gateway failed; the cache was rolled back
        """
        validate_identifier(user_id, "user_id")
        validate_identifier(task_id, "task_id")
        task_kind = self._coerce_kind(kind)

        if task_id in self._in_flight:
            raise CompletionInFlightError(task_id)

        self._in_flight.add(task_id)
        try:
            async with LogContext(
                user_id=user_id,
                task_id=task_id,
                task_kind=task_kind.value,
                operation="complete_task",
            ):
                await self._complete(CompletionRequest(user_id, task_id, task_kind))
        finally:
            self._in_flight.discard(task_id)

    # ------------------------------------------------------------------ #
    # Flow
    # ------------------------------------------------------------------ #

    @staticmethod
    def _coerce_kind(kind: Union[TaskKind, str]) -> TaskKind:
        try:
            return TaskKind(kind)
        except ValueError:
            raise ValidationError("kind", f"unknown task kind {kind!r}") from None

    def _resolve(
        self, cache: ActiveTaskCache, request: CompletionRequest, now: datetime
    ) -> TaskRef:
        """Locate the task and run every guard; raises before any mutation."""
        kind, task_id = request.kind, request.task_id
        task = cache.find(kind, task_id)

        if task is None:
            if (kind, task_id) in self._committed:
                raise AlreadyCompletedError(task_id, kind.value)
            raise TaskNotFoundError(task_id, kind.value)

        if isinstance(task, RoutineTask):
            validate_identifier(task.routine_id, "routine_id")
            if request.user_id in task.completed_by_on(date_key(now)):
                raise AlreadyCompletedError(task_id, kind.value, "already completed today")
        elif isinstance(task, ChallengeTask):
            validate_identifier(task.challenge_id, "challenge_id")
            if task.is_completed:
                raise AlreadyCompletedError(task_id, kind.value)
        elif task.completed:
            raise AlreadyCompletedError(task_id, kind.value)

        return task

    async def _complete(self, request: CompletionRequest) -> None:
        now = self._clock()

        snapshot = self._store.read()
        task = self._resolve(snapshot, request, now)
        index = snapshot.index_of(request.kind, request.task_id)

        applied = apply_optimistic_completion(snapshot, request.kind, task, request.user_id, now)
        self._store.write(applied)
        request.advance(CompletionState.OPTIMISTIC_APPLIED)

        self.log.debug(
            "Optimistic completion applied",
            extra={"removed": applied.find(request.kind, request.task_id) is None},
        )

        try:
            await DISPATCHERS[request.kind](self._gateway, request.user_id, task)
        except asyncio.CancelledError:
            self._rollback(snapshot, applied, request.kind, task, index)
            request.advance(CompletionState.ROLLED_BACK)
            self.log.warning(
                "Completion cancelled; optimistic change rolled back",
                extra={"task_id": request.task_id, "kind": request.kind.value},
            )
            raise
        except Exception as exc:
            self._rollback(snapshot, applied, request.kind, task, index)
            request.advance(CompletionState.ROLLED_BACK)
            self.log_error(
                "complete_task",
                exc,
                task_id=request.task_id,
                kind=request.kind.value,
                state=request.state.value,
            )
            await self._publish(
                EVENT_TASK_COMPLETION_ROLLED_BACK,
                request,
                error_type=type(exc).__name__,
            )
            if isinstance(exc, (EvolvrDomainException, EvolvrInfrastructureException)):
                raise
            raise PersistenceError(_GATEWAY_OPERATIONS[request.kind], exc) from exc

        request.advance(CompletionState.COMMITTED)
        if request.kind in (TaskKind.NORMAL, TaskKind.HABIT):
            self._remember_committed(request.kind, request.task_id)

        self.log_operation(
            "complete_task",
            task_id=request.task_id,
            kind=request.kind.value,
            state=request.state.value,
        )

        try:
            await self._store.invalidate()
        except Exception as exc:
            self.log.warning(
                "Active task refetch failed after commit",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

        await self._publish(EVENT_TASK_COMPLETION_COMMITTED, request)

        if self._badges is not None:
            await self._badges.evaluate_user(request.user_id)

    def _remember_committed(self, kind: TaskKind, task_id: str) -> None:
        self._committed[(kind, task_id)] = None
        self._committed.move_to_end((kind, task_id))
        while len(self._committed) > self._committed_limit:
            self._committed.popitem(last=False)

    def _rollback(
        self,
        snapshot: ActiveTaskCache,
        applied: ActiveTaskCache,
        kind: TaskKind,
        task: TaskRef,
        index: Optional[int],
    ) -> None:
        current = self._store.read()
        if current is applied or current == applied:
            self._store.write(snapshot)
            return

        self.log.info(
            "Cache changed during completion; restoring this task only",
            extra={"task_id": task.id, "kind": kind.value},
        )
        self._store.write(restore_task(current, kind, task, index))

    async def _publish(self, event_name: str, request: CompletionRequest, **extra: Any) -> None:
        event = DomainEvent(
            event_name=event_name,
            payload={
                "user_id": request.user_id,
                "task_id": request.task_id,
                "kind": request.kind.value,
                "state": request.state.value,
                **extra,
            },
        )
        await self.emit_domain_event(event)
