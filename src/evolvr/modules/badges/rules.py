"""
Badge requirement rules.

Each `RequirementKind` has one handler that reads the user's current value
for that kind of requirement. The registry is checked at import time so a new
kind cannot be added without a handler.

Handlers raise `EvaluationError` for a badge that cannot be evaluated (a
level badge naming a category the user does not have, a non-positive
threshold). Callers in `engine` turn that into "not earned" / zero progress.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Mapping

from evolvr.core.logging.logger import get_logger
from evolvr.domain.models.badge import BadgeDefinition, BadgeRequirement, RequirementKind
from evolvr.domain.models.base import DomainValidationError
from evolvr.domain.models.user import UserState
from evolvr.modules.shared.constants import BADGE_CATEGORY_CHALLENGE, BADGE_CATEGORY_ROUTINE
from evolvr.modules.shared.exceptions import EvaluationError

logger = get_logger(__name__)

RequirementHandler = Callable[[BadgeDefinition, BadgeRequirement, UserState], float]


def _level_value(badge: BadgeDefinition, requirement: BadgeRequirement, user: UserState) -> float:
    if requirement.category:
        progress = user.category(requirement.category.lower())
        if progress is None:
            raise EvaluationError(
                badge.id, f"user has no category {requirement.category!r}"
            )
        return progress.level
    return user.overall.level


def _streak_value(badge: BadgeDefinition, requirement: BadgeRequirement, user: UserState) -> float:
    return user.stats.current_streak


def _completion_value(
    badge: BadgeDefinition, requirement: BadgeRequirement, user: UserState
) -> float:
    category = (badge.category or "").lower()
    if category == BADGE_CATEGORY_ROUTINE:
        return user.stats.routines_completed
    if category == BADGE_CATEGORY_CHALLENGE:
        return len(user.stats.challenges_completed)
    return user.stats.total_tasks_completed


def _prestige_value(
    badge: BadgeDefinition, requirement: BadgeRequirement, user: UserState
) -> float:
    return user.overall.prestige


REQUIREMENT_HANDLERS: Mapping[RequirementKind, RequirementHandler] = {
    RequirementKind.LEVEL: _level_value,
    RequirementKind.STREAK: _streak_value,
    RequirementKind.COMPLETION: _completion_value,
    RequirementKind.PRESTIGE: _prestige_value,
}

_missing = set(RequirementKind) - set(REQUIREMENT_HANDLERS)
if _missing:
    raise RuntimeError(
        f"no badge handler for requirement kinds: {sorted(k.value for k in _missing)}"
    )


def effective_threshold(badge: BadgeDefinition, requirement: BadgeRequirement) -> float:
    """
    Threshold the current value is compared against.

    Prestige badges need at least one prestige; every other kind needs a
    positive, finite threshold.
    """
    threshold = requirement.threshold
    if requirement.kind is RequirementKind.PRESTIGE:
        return max(1, threshold)
    if not math.isfinite(threshold) or threshold <= 0:
        raise EvaluationError(badge.id, f"threshold must be positive, got {threshold}")
    return threshold


def current_value(badge: BadgeDefinition, user: UserState) -> tuple[float, float]:
    """
    Return ``(current, threshold)`` for a badge.

    Raises:
        EvaluationError: If the badge has no requirement or cannot be evaluated
    """
    requirement = badge.requirement
    if requirement is None:
        raise EvaluationError(badge.id, "badge has no requirement")

    handler = REQUIREMENT_HANDLERS[requirement.kind]
    threshold = effective_threshold(badge, requirement)
    return handler(badge, requirement, user), threshold


def is_satisfied(badge: BadgeDefinition, user: UserState) -> bool:
    current, threshold = current_value(badge, user)
    return current >= threshold


def ratio(badge: BadgeDefinition, user: UserState) -> float:
    """Continuous progress for the badge; prestige badges are all-or-nothing."""
    current, threshold = current_value(badge, user)
    if badge.requirement is not None and badge.requirement.kind is RequirementKind.PRESTIGE:
        return 1.0 if current >= threshold else 0.0
    return min(max(current / threshold, 0.0), 1.0)


def parse_catalog(raw: Iterable[Mapping[str, Any]]) -> list[BadgeDefinition]:
    """
    Convert raw catalog entries into `BadgeDefinition`s.

    Malformed entries are skipped with a warning; a catalog source that
    returns a few bad rows still yields every good one.
    """
    catalog: list[BadgeDefinition] = []
    for index, entry in enumerate(raw):
        if isinstance(entry, BadgeDefinition):
            catalog.append(entry)
            continue
        try:
            catalog.append(BadgeDefinition.from_dict(entry))
        except (DomainValidationError, AttributeError, TypeError) as exc:
            logger.warning(
                "Skipping malformed badge definition",
                extra={
                    "index": index,
                    "badge_id": entry.get("id") if isinstance(entry, Mapping) else None,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
    return catalog
