"""
Unit tests for TaskCompletionCoordinator.

Purpose
-------
Exercise optimistic completion for every task kind against the in-memory
gateway and cache store: the optimistic cache shape, commit and rollback,
guards that reject a completion before any mutation, and concurrent
completions interleaving on one event loop.

Testing Strategy
----------------
- Real EventBus with recorder listeners (``published`` fixture)
- Gateway failures and delays injected through tests/fakes.py
- Fixed clock so routine date keys and challenge timestamps are predictable
"""

import asyncio

import pytest

from evolvr.core.config.manager import ConfigManager
from evolvr.core.exceptions import PersistenceError
from evolvr.domain.models import (
    ActiveTaskCache,
    ChallengeTask,
    HabitTask,
    NormalTask,
    RoutineCompletion,
    RoutineTask,
    TaskKind,
)
from evolvr.modules.shared.exceptions import (
    AlreadyCompletedError,
    CompletionInFlightError,
    TaskNotFoundError,
    ValidationError,
)
from evolvr.modules.tasks.cache import InMemoryActiveTaskCacheStore
from evolvr.modules.tasks.coordinator import (
    CompletionRequest,
    DISPATCHERS,
    CompletionState,
    TaskCompletionCoordinator,
)
from tests.conftest import FIXED_NOW

TODAY = FIXED_NOW.date().isoformat()


@pytest.fixture
def make_coordinator(gateway, event_bus, clock):
    def _make(cache: ActiveTaskCache, **kwargs):
        store = kwargs.pop("store", None) or InMemoryActiveTaskCacheStore(cache)
        coordinator = TaskCompletionCoordinator(
            gateway, store, ConfigManager, event_bus, clock=clock, **kwargs
        )
        return coordinator, store

    return _make


async def _wait_until_in_flight(coordinator, task_id):
    for _ in range(100):
        if task_id in coordinator.in_flight:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"{task_id} never reached the gateway")


@pytest.mark.unit
@pytest.mark.asyncio
class TestNormalAndHabitCompletion:
    async def test_normal_task_leaves_cache_and_commits(self, make_coordinator, gateway, published):
        # Arrange
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"), NormalTask("n2")))
        coordinator, store = make_coordinator(cache)

        # Act
        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        # Assert
        assert [t.id for t in store.read().normal_tasks] == ["n2"]
        assert gateway.calls_to("complete_normal_task") == [("complete_normal_task", "u1", "n1")]
        committed = [p for name, p in published if name == "task.completion_committed"]
        assert len(committed) == 1
        assert committed[0]["task_id"] == "n1"
        assert committed[0]["kind"] == "normal"
        assert committed[0]["state"] == "committed"

    async def test_habit_task_accepts_kind_as_string(self, make_coordinator, gateway):
        cache = ActiveTaskCache(habit_tasks=(HabitTask("h1", habit_id="hab-1"),))
        coordinator, store = make_coordinator(cache)

        await coordinator.complete_task("u1", "h1", "habit")

        assert store.read().habit_tasks == ()
        assert gateway.calls_to("complete_habit_task") == [("complete_habit_task", "u1", "h1")]

    async def test_completing_committed_task_again_is_already_completed(self, make_coordinator):
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"),))
        coordinator, _ = make_coordinator(cache)
        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        with pytest.raises(AlreadyCompletedError):
            await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

    async def test_task_flagged_completed_is_rejected(self, make_coordinator, gateway):
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1", completed=True),))
        coordinator, store = make_coordinator(cache)

        with pytest.raises(AlreadyCompletedError):
            await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        assert store.read() is cache
        assert gateway.calls == []

    async def test_unknown_task_is_not_found(self, make_coordinator, gateway):
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"),))
        coordinator, store = make_coordinator(cache)

        with pytest.raises(TaskNotFoundError):
            await coordinator.complete_task("u1", "missing", TaskKind.NORMAL)

        assert store.read() is cache
        assert gateway.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestRoutineCompletion:
    async def test_routine_stays_until_every_participant_completes(self, make_coordinator, gateway):
        # Arrange
        routine = RoutineTask(
            "r1", routine_id="routine-1", participants=("u1", "u2", "u3")
        )
        coordinator, store = make_coordinator(ActiveTaskCache(routine_tasks=(routine,)))

        # Act
        await coordinator.complete_task("u1", "r1", TaskKind.ROUTINE)

        # Assert
        remaining = store.read().find(TaskKind.ROUTINE, "r1")
        assert remaining is not None
        assert remaining.is_completed is True
        assert remaining.completed_by_on(TODAY) == {"u1"}
        assert remaining.completions_on(TODAY)[0].completed_at == FIXED_NOW

        await coordinator.complete_task("u2", "r1", TaskKind.ROUTINE)
        assert store.read().find(TaskKind.ROUTINE, "r1") is not None

        await coordinator.complete_task("u3", "r1", TaskKind.ROUTINE)
        assert store.read().routine_tasks == ()
        assert [call[3] for call in gateway.calls_to("complete_routine_task")] == [
            "routine-1",
            "routine-1",
            "routine-1",
        ]

    async def test_outsider_completion_does_not_finish_routine(self, make_coordinator):
        routine = RoutineTask(
            "r1",
            routine_id="routine-1",
            participants=("a", "b", "c"),
            completions={
                TODAY: (RoutineCompletion("a", FIXED_NOW), RoutineCompletion("x", FIXED_NOW))
            },
        )
        coordinator, store = make_coordinator(ActiveTaskCache(routine_tasks=(routine,)))

        await coordinator.complete_task("b", "r1", TaskKind.ROUTINE)
        assert store.read().find(TaskKind.ROUTINE, "r1") is not None

        await coordinator.complete_task("c", "r1", TaskKind.ROUTINE)
        assert store.read().routine_tasks == ()

    async def test_same_user_twice_on_one_day_is_rejected(self, make_coordinator):
        routine = RoutineTask("r1", routine_id="routine-1", participants=("u1", "u2"))
        coordinator, store = make_coordinator(ActiveTaskCache(routine_tasks=(routine,)))
        await coordinator.complete_task("u1", "r1", TaskKind.ROUTINE)
        after_first = store.read()

        with pytest.raises(AlreadyCompletedError) as exc_info:
            await coordinator.complete_task("u1", "r1", TaskKind.ROUTINE)

        assert "today" in exc_info.value.message
        assert store.read() is after_first

    async def test_completion_from_yesterday_does_not_block_today(self, make_coordinator):
        routine = RoutineTask(
            "r1",
            routine_id="routine-1",
            participants=("u1", "u2"),
            completions={
                "2024-05-16": (RoutineCompletion("u1", FIXED_NOW.replace(day=16)),),
            },
        )
        coordinator, store = make_coordinator(ActiveTaskCache(routine_tasks=(routine,)))

        await coordinator.complete_task("u1", "r1", TaskKind.ROUTINE)

        updated = store.read().find(TaskKind.ROUTINE, "r1")
        assert updated.completed_by_on(TODAY) == {"u1"}
        assert updated.completed_by_on("2024-05-16") == {"u1"}

    async def test_missing_routine_id_is_rejected_before_any_write(self, make_coordinator, gateway):
        cache = ActiveTaskCache(routine_tasks=(RoutineTask("r1", participants=("u1",)),))
        coordinator, store = make_coordinator(cache)

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.complete_task("u1", "r1", TaskKind.ROUTINE)

        assert exc_info.value.field == "routine_id"
        assert store.read() is cache
        assert store.version == 0
        assert gateway.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestChallengeCompletion:
    async def test_challenge_is_flagged_and_kept(self, make_coordinator, gateway):
        challenge = ChallengeTask("c1", challenge_id="challenge-9")
        coordinator, store = make_coordinator(ActiveTaskCache(challenge_tasks=(challenge,)))

        await coordinator.complete_task("u1", "c1", TaskKind.CHALLENGE)

        updated = store.read().find(TaskKind.CHALLENGE, "c1")
        assert updated.is_completed is True
        assert updated.last_completed == FIXED_NOW
        (call,) = gateway.calls_to("complete_challenge_task")
        assert call[1:4] == ("u1", "c1", "challenge-9")
        assert call[4] == challenge

    async def test_second_completion_keeps_first_timestamp(self, make_coordinator):
        challenge = ChallengeTask("c1", challenge_id="challenge-9")
        coordinator, store = make_coordinator(ActiveTaskCache(challenge_tasks=(challenge,)))
        await coordinator.complete_task("u1", "c1", TaskKind.CHALLENGE)

        with pytest.raises(AlreadyCompletedError):
            await coordinator.complete_task("u1", "c1", TaskKind.CHALLENGE)

        assert store.read().find(TaskKind.CHALLENGE, "c1").last_completed == FIXED_NOW

    async def test_missing_challenge_id_is_rejected(self, make_coordinator, gateway):
        cache = ActiveTaskCache(challenge_tasks=(ChallengeTask("c1"),))
        coordinator, store = make_coordinator(cache)

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.complete_task("u1", "c1", TaskKind.CHALLENGE)

        assert exc_info.value.field == "challenge_id"
        assert store.read() is cache
        assert gateway.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestRollback:
    async def test_gateway_failure_restores_cache_exactly(self, make_coordinator, gateway, published):
        # Arrange
        cache = ActiveTaskCache(
            normal_tasks=(NormalTask("n1"), NormalTask("n2")),
            challenge_tasks=(ChallengeTask("c1", challenge_id="ch"),),
        )
        boom = ConnectionError("database unavailable")
        gateway.fail("complete_normal_task", boom)
        coordinator, store = make_coordinator(cache)

        # Act
        with pytest.raises(PersistenceError) as exc_info:
            await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        # Assert
        assert store.read() == cache
        assert exc_info.value.original_error is boom
        assert exc_info.value.operation == "complete_normal_task"
        assert exc_info.value.__cause__ is boom
        rolled_back = [p for name, p in published if name == "task.completion_rolled_back"]
        assert rolled_back[0]["error_type"] == "ConnectionError"
        assert rolled_back[0]["state"] == "rolled_back"
        assert not any(name == "task.completion_committed" for name, _ in published)

    async def test_challenge_rollback_restores_flags(self, make_coordinator, gateway):
        cache = ActiveTaskCache(challenge_tasks=(ChallengeTask("c1", challenge_id="ch"),))
        gateway.fail("complete_challenge_task", RuntimeError("timeout"))
        coordinator, store = make_coordinator(cache)

        with pytest.raises(PersistenceError):
            await coordinator.complete_task("u1", "c1", TaskKind.CHALLENGE)

        restored = store.read().find(TaskKind.CHALLENGE, "c1")
        assert restored.is_completed is False
        assert restored.last_completed is None

    async def test_domain_error_from_gateway_is_reraised_unwrapped(self, make_coordinator, gateway):
        cache = ActiveTaskCache(habit_tasks=(HabitTask("h1"),))
        rejected = ValidationError("habit_id", "habit no longer exists")
        gateway.fail("complete_habit_task", rejected)
        coordinator, store = make_coordinator(cache)

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.complete_task("u1", "h1", TaskKind.HABIT)

        assert exc_info.value is rejected
        assert store.read() == cache

    async def test_failed_task_can_be_retried(self, make_coordinator, gateway):
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"),))
        gateway.fail_task("n1", ConnectionError("flaky"))
        coordinator, store = make_coordinator(cache)
        with pytest.raises(PersistenceError):
            await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        gateway.task_failures.clear()
        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        assert store.read().normal_tasks == ()

    async def test_rollback_keeps_interleaved_completion(self, make_coordinator, gateway):
        # Arrange
        cache = ActiveTaskCache(
            normal_tasks=(NormalTask("a"), NormalTask("b"), NormalTask("c")),
        )
        coordinator, store = make_coordinator(cache)
        gate = gateway.gate("a")
        gateway.fail_task("a", ConnectionError("write lost"))

        # Act
        first = asyncio.create_task(coordinator.complete_task("u1", "a", TaskKind.NORMAL))
        await _wait_until_in_flight(coordinator, "a")
        await coordinator.complete_task("u1", "b", TaskKind.NORMAL)
        gate.set()
        with pytest.raises(PersistenceError):
            await first

        # Assert
        assert [t.id for t in store.read().normal_tasks] == ["a", "c"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestConcurrencyAndFollowUps:
    async def test_second_completion_of_in_flight_task_is_rejected(self, make_coordinator, gateway):
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"),))
        coordinator, store = make_coordinator(cache)
        gate = gateway.gate("n1")

        first = asyncio.create_task(coordinator.complete_task("u1", "n1", TaskKind.NORMAL))
        await _wait_until_in_flight(coordinator, "n1")

        with pytest.raises(CompletionInFlightError):
            await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        gate.set()
        await first
        assert coordinator.in_flight == frozenset()
        assert len(gateway.calls_to("complete_normal_task")) == 1
        assert store.read().normal_tasks == ()

    async def test_cache_is_refetched_after_commit(self, make_coordinator):
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"),))
        fresh = ActiveTaskCache(normal_tasks=(NormalTask("n9"),))

        async def fetch():
            return fresh

        store = InMemoryActiveTaskCacheStore(cache, fetcher=fetch)
        coordinator, _ = make_coordinator(cache, store=store)

        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        assert store.read() is fresh

    async def test_refetch_failure_does_not_fail_completion(self, make_coordinator, published):
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"), NormalTask("n2")))

        async def fetch():
            raise ConnectionError("cache backend down")

        store = InMemoryActiveTaskCacheStore(cache, fetcher=fetch)
        coordinator, _ = make_coordinator(cache, store=store)

        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        assert [t.id for t in store.read().normal_tasks] == ["n2"]
        assert store.stale is True
        assert any(name == "task.completion_committed" for name, _ in published)

    async def test_badges_are_reevaluated_after_commit(self, make_coordinator, mocker):
        badge_service = mocker.Mock()
        badge_service.evaluate_user = mocker.AsyncMock(return_value=[])
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"),))
        coordinator, _ = make_coordinator(cache, badge_service=badge_service)

        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        badge_service.evaluate_user.assert_awaited_once_with("u1")

    async def test_badges_not_evaluated_after_rollback(self, make_coordinator, gateway, mocker):
        badge_service = mocker.Mock()
        badge_service.evaluate_user = mocker.AsyncMock(return_value=[])
        gateway.fail("complete_normal_task", ConnectionError("down"))
        coordinator, _ = make_coordinator(
            ActiveTaskCache(normal_tasks=(NormalTask("n1"),)), badge_service=badge_service
        )

        with pytest.raises(PersistenceError):
            await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)

        badge_service.evaluate_user.assert_not_awaited()

    async def test_cancelled_completion_is_rolled_back(self, make_coordinator, gateway):
        # Arrange
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"), NormalTask("n2")))
        coordinator, store = make_coordinator(cache)
        gateway.gate("n1")

        # Act
        pending = asyncio.create_task(coordinator.complete_task("u1", "n1", TaskKind.NORMAL))
        await _wait_until_in_flight(coordinator, "n1")
        assert [t.id for t in store.read().normal_tasks] == ["n2"]
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        # Assert
        assert store.read() is cache
        assert coordinator.in_flight == frozenset()

        gateway.gates.clear()
        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)
        assert [t.id for t in store.read().normal_tasks] == ["n2"]

    async def test_committed_history_is_bounded(self, make_coordinator):
        ConfigManager.set_override("tasks.committed_history_size", 1)
        cache = ActiveTaskCache(normal_tasks=(NormalTask("n1"), NormalTask("n2")))
        coordinator, _ = make_coordinator(cache)

        await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)
        await coordinator.complete_task("u1", "n2", TaskKind.NORMAL)

        with pytest.raises(AlreadyCompletedError):
            await coordinator.complete_task("u1", "n2", TaskKind.NORMAL)
        with pytest.raises(TaskNotFoundError):
            await coordinator.complete_task("u1", "n1", TaskKind.NORMAL)


@pytest.mark.unit
@pytest.mark.asyncio
class TestInputValidation:
    @pytest.mark.parametrize(
        "user_id, task_id, kind, field",
        [
            ("", "n1", TaskKind.NORMAL, "user_id"),
            ("u1", "  ", TaskKind.NORMAL, "task_id"),
            ("u1", "n1", "quest", "kind"),
        ],
    )
    async def test_invalid_arguments(self, make_coordinator, user_id, task_id, kind, field):
        coordinator, _ = make_coordinator(ActiveTaskCache(normal_tasks=(NormalTask("n1"),)))

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.complete_task(user_id, task_id, kind)

        assert exc_info.value.field == field


@pytest.mark.unit
class TestDispatchers:
    def test_every_task_kind_has_a_dispatcher(self):
        assert set(DISPATCHERS) == set(TaskKind)


@pytest.mark.unit
class TestCompletionRequest:
    def test_happy_path_transitions(self):
        request = CompletionRequest("u1", "n1", TaskKind.NORMAL)

        request.advance(CompletionState.OPTIMISTIC_APPLIED)
        request.advance(CompletionState.COMMITTED)

        assert request.state is CompletionState.COMMITTED

    @pytest.mark.parametrize(
        "path",
        [
            (CompletionState.COMMITTED,),
            (CompletionState.OPTIMISTIC_APPLIED, CompletionState.ROLLED_BACK, CompletionState.COMMITTED),
            (CompletionState.OPTIMISTIC_APPLIED, CompletionState.OPTIMISTIC_APPLIED),
        ],
    )
    def test_illegal_transitions_raise(self, path):
        request = CompletionRequest("u1", "n1", TaskKind.NORMAL)

        with pytest.raises(RuntimeError):
            for state in path:
                request.advance(state)
