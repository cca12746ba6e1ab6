"""
CategoryAggregator: overall level and progress derived from category XP.

The overall level is never stored independently: it is recomputed from the
category map whenever XP changes. Every category weighs the same; the
aggregate XP is the floored mean of category XP.
"""

from __future__ import annotations

import math
from typing import Mapping, Optional

from evolvr.domain.models.progression import (
    CategoryProgress,
    OverallLevelInfo,
    OverallProgress,
)
from evolvr.modules.progression.level_curve import LevelCurve
from evolvr.modules.shared import formulas
from evolvr.modules.shared.validators import validate_level, validate_xp_amount


class CategoryAggregator:
    def __init__(self, curve: Optional[LevelCurve] = None) -> None:
        self.curve = curve or LevelCurve()

    def aggregate_xp(self, categories: Mapping[str, CategoryProgress]) -> int:
        """Floored equal-weight mean of category XP (0 for an empty map)."""
        return int(math.floor(formulas.mean_xp(c.xp for c in categories.values())))

    def overall_level_info(
        self, categories: Mapping[str, CategoryProgress]
    ) -> OverallLevelInfo:
        """
        Overall level readout for a category map.

        The result does not depend on the order of the map; an empty map is
        level 1 with zero progress.
        """
        total_xp = self.aggregate_xp(categories)
        info = self.curve.level_info(total_xp)
        return OverallLevelInfo(
            level=info.level,
            current_level_xp=info.current_level_xp,
            next_level_xp=info.next_level_xp,
            progress=info.progress,
            total_xp=total_xp,
        )

    def category_level_progress(self, xp: float, level: int) -> float:
        """Progress toward `level + 1` for one category, clamped to [0, 1]."""
        validate_xp_amount(xp)
        validate_level(level)
        return formulas.level_progress(xp, level, self.curve.xp_per_level)

    def overall_progress(
        self,
        categories: Mapping[str, CategoryProgress],
        prestige: int = 0,
    ) -> OverallProgress:
        """The derived overall record: level, XP inside that level, prestige carried."""
        info = self.overall_level_info(categories)
        return OverallProgress(
            level=info.level,
            xp=info.current_level_xp,
            prestige=prestige,
        )

    @staticmethod
    def level_ups(
        before: Mapping[str, CategoryProgress],
        after: Mapping[str, CategoryProgress],
    ) -> list[str]:
        """Categories whose level is higher in `after` than in `before`."""
        ups: list[str] = []
        for name, progress in after.items():
            previous = before.get(name)
            previous_level = previous.level if previous is not None else 1
            if progress.level > previous_level:
                ups.append(name)
        return ups
