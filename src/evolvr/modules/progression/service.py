"""
ProgressionService: XP awards and level recomputation.

Purpose
-------
Turn a confirmed task completion into an XP award: apply the source
multiplier (streak bonuses, challenge bonus, prestige), fit the award into the
user's remaining daily allowance, write it through the PersistenceGateway and
report level-ups and newly earned badges from the refetched aggregate.

Responsibilities
----------------
- `calculate_xp_award`: pure award arithmetic.
- `ProgressionService.award_xp`: gateway write, refetch, level-up report,
  best-effort badge evaluation, `progression.xp_awarded` event.
- `can_prestige` / `initial_user_levels`: prestige eligibility and the
  starting aggregate for new users. The prestige reset itself is external.

Key Design Decisions
--------------------
- XP is only ever awarded through the gateway; the service never edits a
  user aggregate in place.
- Normal and bonus awards use no multiplier; every other source is scaled
  by its bonus times the prestige multiplier.
- The daily cap scales every category by the same factor, so the split
  between categories survives the cap.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import Logger
from typing import Any, Mapping, Optional

from evolvr.core.exceptions import PersistenceError
from evolvr.core.logging.logger import LogContext, get_logger
from evolvr.domain.models.progression import (
    Category,
    CategoryProgress,
    OverallProgress,
    XPSource,
)
from evolvr.domain.models.user import UserState
from evolvr.modules.progression.aggregator import CategoryAggregator
from evolvr.modules.progression.level_curve import LevelCurve
from evolvr.modules.shared import formulas
from evolvr.modules.shared.base_service import BaseService
from evolvr.modules.shared.constants import (
    DEFAULT_CHALLENGE_BONUS,
    DEFAULT_DAILY_XP_LIMIT,
    DEFAULT_HABIT_STREAK_MAX,
    DEFAULT_HABIT_STREAK_STEP,
    DEFAULT_PRESTIGE_STEP,
    DEFAULT_ROUTINE_STREAK_MAX,
    DEFAULT_ROUTINE_STREAK_STEP,
    EVENT_XP_AWARDED,
)
from evolvr.modules.shared.validators import validate_identifier, validate_xp_gains


# ============================================================================
# Award arithmetic
# ============================================================================


@dataclass(frozen=True)
class XPMultipliers:
    routine_streak_step: float = DEFAULT_ROUTINE_STREAK_STEP
    routine_streak_max: float = DEFAULT_ROUTINE_STREAK_MAX
    habit_streak_step: float = DEFAULT_HABIT_STREAK_STEP
    habit_streak_max: float = DEFAULT_HABIT_STREAK_MAX
    challenge_bonus: float = DEFAULT_CHALLENGE_BONUS
    prestige_step: float = DEFAULT_PRESTIGE_STEP

    @classmethod
    def from_config(cls, config_manager: Any) -> "XPMultipliers":
        prefix = "progression.multipliers."
        return cls(
            routine_streak_step=config_manager.get(prefix + "routine_streak_step", DEFAULT_ROUTINE_STREAK_STEP),
            routine_streak_max=config_manager.get(prefix + "routine_streak_max", DEFAULT_ROUTINE_STREAK_MAX),
            habit_streak_step=config_manager.get(prefix + "habit_streak_step", DEFAULT_HABIT_STREAK_STEP),
            habit_streak_max=config_manager.get(prefix + "habit_streak_max", DEFAULT_HABIT_STREAK_MAX),
            challenge_bonus=config_manager.get(prefix + "challenge_bonus", DEFAULT_CHALLENGE_BONUS),
            prestige_step=config_manager.get(prefix + "prestige_step", DEFAULT_PRESTIGE_STEP),
        )

    def for_source(self, source: XPSource, streak: int = 0, prestige: int = 0) -> float:
        """
        Total multiplier for an award.

        Example:
            >>> XPMultipliers().for_source(XPSource.CHALLENGE, prestige=1)
            1.1845
        """
        if source in (XPSource.NORMAL, XPSource.BONUS):
            return 1.0

        if source is XPSource.ROUTINE:
            bonus = formulas.streak_bonus(streak, self.routine_streak_step, self.routine_streak_max)
        elif source is XPSource.HABIT:
            bonus = formulas.streak_bonus(streak, self.habit_streak_step, self.habit_streak_max)
        else:
            bonus = self.challenge_bonus

        return round((1 + bonus) * formulas.prestige_multiplier(prestige, self.prestige_step), 10)


@dataclass(frozen=True)
class XPAward:
    granted: dict[str, int]
    multiplier: float
    base_total: int
    granted_total: int
    xp_limit_reached: bool


def normalize_gains(xp_by_category: Mapping[str, float]) -> dict[str, int]:
    """Lower-case category names, merging entries that collide."""
    normalized: dict[str, int] = {}
    for category, xp in xp_by_category.items():
        key = category.strip().lower()
        normalized[key] = normalized.get(key, 0) + int(xp)
    return normalized


def calculate_xp_award(
    xp_by_category: Mapping[str, float],
    source: XPSource,
    *,
    streak: int = 0,
    prestige: int = 0,
    today_xp: float = 0,
    daily_limit: int = DEFAULT_DAILY_XP_LIMIT,
    multipliers: Optional[XPMultipliers] = None,
) -> XPAward:
    """
    Compute the XP actually granted for an award.

    Example:
        >>> calculate_xp_award({"Mental": 100}, XPSource.CHALLENGE).granted
        {'mental': 115}
    """
    multipliers = multipliers or XPMultipliers()
    base = normalize_gains(xp_by_category)
    multiplier = multipliers.for_source(source, streak=streak, prestige=prestige)

    scaled = formulas.apply_multiplier(base, multiplier) if multiplier != 1.0 else dict(base)
    granted = formulas.apply_daily_cap(scaled, today_xp, daily_limit)
    granted_total = sum(granted.values())

    return XPAward(
        granted=granted,
        multiplier=multiplier,
        base_total=sum(base.values()),
        granted_total=granted_total,
        xp_limit_reached=today_xp + granted_total >= daily_limit,
    )


def initial_user_levels() -> UserState:
    """Starting aggregate: every category at level 1 with 0 XP."""
    return UserState(
        categories={category.value: CategoryProgress(level=1, xp=0) for category in Category},
        overall=OverallProgress(level=1, xp=0, prestige=0),
    )


# ============================================================================
# Service
# ============================================================================


@dataclass(frozen=True)
class XPAwardResult:
    granted: dict[str, int] = field(default_factory=dict)
    multiplier: float = 1.0
    level_ups: list[str] = field(default_factory=list)
    new_overall_level: int = 1
    xp_limit_reached: bool = False
    new_badges: list[str] = field(default_factory=list)


class ProgressionService(BaseService):
    """
    Examples
    --------
    >>> service = ProgressionService(gateway, ConfigManager, bus, badge_service=badges)
    >>> result = await service.award_xp("u1", {"mental": 100}, XPSource.HABIT, streak=4)
    >>> result.level_ups
    []
    """

    def __init__(
        self,
        gateway: Any,
        config_manager: Any,
        event_bus: Any,
        logger: Optional[Logger] = None,
        *,
        badge_service: Optional[Any] = None,
        curve: Optional[LevelCurve] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._gateway = gateway
        self._badges = badge_service
        self.curve = curve or LevelCurve.from_config(config_manager)
        self.aggregator = CategoryAggregator(self.curve)

    def _daily_limit(self) -> int:
        return int(self.get_number_config("progression.daily_xp_limit", DEFAULT_DAILY_XP_LIMIT))

    def can_prestige(self, user_state: UserState) -> bool:
        """True once the derived overall level has reached the level cap."""
        overall = self.aggregator.overall_level_info(user_state.categories)
        return self.curve.is_max_level(overall.level)

    def project_categories(
        self,
        categories: Mapping[str, CategoryProgress],
        granted: Mapping[str, int],
    ) -> dict[str, CategoryProgress]:
        """Category map after adding `granted`, levels recomputed on the curve."""
        projected = dict(categories)
        for name, xp in granted.items():
            current = projected.get(name, CategoryProgress())
            total = current.xp + xp
            projected[name] = CategoryProgress(level=self.curve.level_of(total), xp=total)
        return projected

    async def _fetch(self, user_id: str) -> UserState:
        try:
            return await self._gateway.get_user_aggregate(user_id)
        except Exception as exc:
            raise PersistenceError("get_user_aggregate", exc) from exc

    async def award_xp(
        self,
        user_id: str,
        xp_by_category: Mapping[str, float],
        source: XPSource = XPSource.NORMAL,
        *,
        streak: int = 0,
    ) -> XPAwardResult:
        """
        Award XP for a confirmed completion.

        Raises:
            ValidationError: On a missing user id or invalid gains
            PersistenceError: When the aggregate read or the XP write fails
        """
        validate_identifier(user_id, "user_id")
        validate_xp_gains(xp_by_category)

        async with LogContext(user_id=user_id, operation="award_xp"):
            before = await self._fetch(user_id)
            award = calculate_xp_award(
                xp_by_category,
                source,
                streak=streak,
                prestige=before.overall.prestige,
                today_xp=before.stats.today_xp,
                daily_limit=self._daily_limit(),
                multipliers=XPMultipliers.from_config(self._config),
            )

            if award.granted_total <= 0:
                self.log.info(
                    "Daily XP limit reached; nothing awarded",
                    extra={"requested_xp": award.base_total, "source": source.value},
                )
                return XPAwardResult(
                    granted=award.granted,
                    multiplier=award.multiplier,
                    new_overall_level=self.aggregator.overall_level_info(before.categories).level,
                    xp_limit_reached=True,
                )

            try:
                await self._gateway.award_xp(user_id, award.granted, source)
            except Exception as exc:
                self.log_error("award_xp", exc, user_id=user_id, source=source.value)
                raise PersistenceError("award_xp", exc) from exc

            try:
                after_categories = (await self._gateway.get_user_aggregate(user_id)).categories
            except Exception as exc:
                self.log.warning(
                    "Refetch after XP award failed; reporting projected levels",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                after_categories = self.project_categories(before.categories, award.granted)

            level_ups = self.aggregator.level_ups(before.categories, after_categories)
            new_overall_level = self.aggregator.overall_level_info(after_categories).level

            new_badges: list[str] = []
            if self._badges is not None:
                new_badges = await self._badges.evaluate_user(user_id)

            result = XPAwardResult(
                granted=award.granted,
                multiplier=award.multiplier,
                level_ups=level_ups,
                new_overall_level=new_overall_level,
                xp_limit_reached=award.xp_limit_reached,
                new_badges=new_badges,
            )

            self.log_operation(
                "award_xp",
                source=source.value,
                granted_total=award.granted_total,
                multiplier=award.multiplier,
                level_ups=level_ups,
            )
            await self.emit_event(
                EVENT_XP_AWARDED,
                {
                    "user_id": user_id,
                    "source": source.value,
                    "granted": dict(award.granted),
                    "level_ups": list(level_ups),
                    "new_overall_level": new_overall_level,
                    "xp_limit_reached": award.xp_limit_reached,
                },
            )
            return result
