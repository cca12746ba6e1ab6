"""
BadgeRuleEngine: decide which catalog badges a user has newly earned and how
close they are to the rest.

Both operations are pure with respect to the user aggregate: the engine
returns what changed and leaves persistence to `BadgeService`. Evaluation
never raises to callers; a badge that cannot be evaluated is logged and
counts as not earned with zero progress.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from evolvr.core.logging.logger import get_logger
from evolvr.domain.models.badge import BadgeDefinition, UserBadge
from evolvr.domain.models.user import UserState
from evolvr.modules.badges import rules
from evolvr.modules.shared.exceptions import EvaluationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class AwardResult:
    """
    Attributes
    ----------
    newly_awarded:
        Ids of badges earned by this evaluation, in catalog order.
    earned:
        The user's full earned collection after this evaluation.
    """

    newly_awarded: list[str] = field(default_factory=list)
    earned: list[UserBadge] = field(default_factory=list)


class BadgeRuleEngine:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _log_evaluation_failure(self, badge: BadgeDefinition, exc: Exception) -> None:
        error = exc if isinstance(exc, EvaluationError) else EvaluationError(badge.id, str(exc))
        logger.warning(
            "Badge evaluation failed",
            extra={
                "badge_id": badge.id,
                "error_code": error.error_code,
                "reason": error.details.get("reason"),
                "error_type": type(exc).__name__,
            },
        )

    def check_and_award(
        self,
        user_state: Optional[UserState],
        catalog: Optional[Sequence[BadgeDefinition]],
        already_earned: Optional[Iterable[str]] = None,
    ) -> AwardResult:
        """
        Award every catalog badge the user now satisfies and has not earned.

        Earned badges are never re-evaluated or revoked, and a badge id that
        appears twice in the catalog is awarded at most once. Calling this
        again with the returned `earned` ids yields no new badges.
        """
        if user_state is None or not catalog:
            return AwardResult(
                earned=list(user_state.badges) if user_state is not None else []
            )

        earned_ids = set(user_state.earned_badge_ids)
        if already_earned is not None:
            earned_ids.update(already_earned)

        now = self._clock()
        newly_awarded: list[str] = []
        new_badges: list[UserBadge] = []

        for badge in catalog:
            if badge.id in earned_ids:
                continue
            try:
                satisfied = rules.is_satisfied(badge, user_state)
            except Exception as exc:
                self._log_evaluation_failure(badge, exc)
                continue

            if satisfied:
                earned_ids.add(badge.id)
                newly_awarded.append(badge.id)
                new_badges.append(UserBadge(badge_id=badge.id, earned_at=now))

        if newly_awarded:
            logger.info(
                "Badges newly satisfied",
                extra={"badge_ids": newly_awarded, "catalog_size": len(catalog)},
            )

        return AwardResult(
            newly_awarded=newly_awarded,
            earned=list(user_state.badges) + new_badges,
        )

    def progress_of(self, badge: BadgeDefinition, user_state: Optional[UserState]) -> float:
        """Progress toward `badge` in [0, 1]; 0 for anything that cannot be evaluated."""
        if user_state is None:
            return 0.0
        try:
            return rules.ratio(badge, user_state)
        except Exception as exc:
            self._log_evaluation_failure(badge, exc)
            return 0.0
