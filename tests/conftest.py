"""
Pytest Configuration and Fixtures for Evolvr Tests
==================================================

Purpose
-------
Shared fixtures for the unit and service tests: a fresh ConfigManager and
EventBus per test, in-memory ports, and small builders for user aggregates
and badge catalogs.

Architecture Notes
------------------
- No external infrastructure: every port is an in-memory fake (tests/fakes.py)
- ConfigManager is reset around every test so overrides never leak
- Services are built against the real EventBus; tests subscribe to it to
  observe published events
"""

from __future__ import annotations

import os

os.environ.setdefault("EVOLVR_ENVIRONMENT", "testing")
os.environ.setdefault("EVOLVR_LOG_LEVEL", "DEBUG")

from datetime import datetime, timezone
from typing import Any

import pytest

from evolvr.core.config.manager import ConfigManager
from evolvr.core.event.bus import EventBus
from evolvr.core.logging.logger import clear_log_context
from evolvr.domain.models import (
    BadgeDefinition,
    BadgeRequirement,
    CategoryProgress,
    OverallProgress,
    RequirementKind,
    UserState,
    UserStats,
)
from tests.fakes import InMemoryPersistenceGateway, StaticBadgeCatalog

FIXED_NOW = datetime(2024, 5, 17, 9, 30, tzinfo=timezone.utc)


# ============================================================================
# CONFIG / EVENTS
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config_manager():
    """Fresh ConfigManager state for every test."""
    ConfigManager.reset()
    yield ConfigManager
    ConfigManager.reset()
    clear_log_context()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(listener_timeout_seconds=1.0)


@pytest.fixture
def published(event_bus):
    """Collect every (event_name, payload) published on `event_bus`."""
    events: list[tuple[str, dict[str, Any]]] = []

    def _subscribe(name: str):
        async def _listener(payload):
            events.append((name, payload))

        event_bus.subscribe(name, _listener, identifier=f"test-recorder@{name}")

    for name in (
        "task.completion_committed",
        "task.completion_rolled_back",
        "badges.awarded",
        "progression.xp_awarded",
    ):
        _subscribe(name)

    return events


# ============================================================================
# PORTS
# ============================================================================


@pytest.fixture
def gateway() -> InMemoryPersistenceGateway:
    return InMemoryPersistenceGateway()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


# ============================================================================
# DOMAIN BUILDERS
# ============================================================================


def make_user(
    categories: dict[str, tuple[int, float]] | None = None,
    *,
    prestige: int = 0,
    overall_level: int = 1,
    **stats: Any,
) -> UserState:
    return UserState(
        categories={
            name: CategoryProgress(level=level, xp=xp)
            for name, (level, xp) in (categories or {}).items()
        },
        overall=OverallProgress(level=overall_level, xp=0, prestige=prestige),
        stats=UserStats(**stats),
    )


def make_badge(
    badge_id: str,
    kind: RequirementKind,
    threshold: float,
    *,
    requirement_category: str | None = None,
    badge_category: str | None = None,
) -> BadgeDefinition:
    return BadgeDefinition(
        id=badge_id,
        name=badge_id.replace("-", " ").title(),
        category=badge_category,
        requirement=BadgeRequirement(kind=kind, threshold=threshold, category=requirement_category),
    )


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def badge_factory():
    return make_badge


@pytest.fixture
def catalog_source() -> StaticBadgeCatalog:
    return StaticBadgeCatalog(
        [
            make_badge("mental-5", RequirementKind.LEVEL, 5, requirement_category="mental"),
            make_badge("streak-7", RequirementKind.STREAK, 7),
            make_badge("challenger-3", RequirementKind.COMPLETION, 3, badge_category="challenge"),
            make_badge("first-prestige", RequirementKind.PRESTIGE, 0),
        ]
    )
