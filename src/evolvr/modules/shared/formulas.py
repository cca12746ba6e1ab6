"""
Evolvr Progression Formulas

Purpose
-------
Pure calculation functions for the progression rules: the flat level curve,
within-level progress, category averaging, streak bonuses and the daily XP
cap.

Design Notes
------------
All formulas:
- Accept parameters explicitly (no config access)
- Are deterministic and side-effect free
- Never return a progress value outside [0, 1]

Usage
-----
    from evolvr.modules.shared.formulas import level_from_xp

    level = level_from_xp(2500, xp_per_level=1000, max_level=100)
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping


def clamp_progress(value: float) -> float:
    """
    Clamp a ratio into [0, 1]; NaN maps to 0.

    Example:
        >>> clamp_progress(1.4)
        1.0
        >>> clamp_progress(-0.2)
        0.0
    """
    if math.isnan(value):
        return 0.0
    return min(max(float(value), 0.0), 1.0)


def xp_for_next_level(level: int, xp_per_level: int) -> int:
    """
    Cumulative XP at which `level + 1` begins.

    Example:
        >>> xp_for_next_level(1, 1000)
        1000
        >>> xp_for_next_level(5, 1000)
        5000
    """
    return max(level, 0) * xp_per_level


def level_from_xp(xp: float, xp_per_level: int, max_level: int) -> int:
    """
    Level reached with `xp` cumulative XP (minimum 1, capped at `max_level`).

    XP exactly on a level boundary belongs to the new level.

    Example:
        >>> level_from_xp(0, 1000, 100)
        1
        >>> level_from_xp(1000, 1000, 100)
        2
        >>> level_from_xp(10**9, 1000, 100)
        100
    """
    if xp <= 0:
        return 1
    return min(int(xp // xp_per_level) + 1, max_level)


def level_progress(xp: float, level: int, xp_per_level: int) -> float:
    """
    Fraction of the current level's band already earned.

    Example:
        >>> level_progress(1500, 2, 1000)
        0.5
    """
    in_level = xp - (level - 1) * xp_per_level
    return clamp_progress(in_level / xp_per_level)


def mean_xp(values: Iterable[float]) -> float:
    """
    Equal-weight mean of category XP, independent of iteration order.

    Example:
        >>> mean_xp([1000, 3000])
        2000.0
        >>> mean_xp([])
        0.0
    """
    items = list(values)
    if not items:
        return 0.0
    return math.fsum(items) / len(items)


def streak_bonus(streak: int, step: float, cap: float) -> float:
    """
    Linear streak bonus, capped.

    Example:
        >>> streak_bonus(3, 0.01, 0.10)
        0.03
        >>> streak_bonus(40, 0.01, 0.10)
        0.1
    """
    if streak <= 0:
        return 0.0
    return min(round(streak * step, 10), cap)


def prestige_multiplier(prestige: int, step: float) -> float:
    """
    Example:
        >>> prestige_multiplier(2, 0.03)
        1.06
    """
    return round(1 + max(prestige, 0) * step, 10)


def apply_multiplier(xp_by_category: Mapping[str, int], multiplier: float) -> dict[str, int]:
    """
    Scale each category award and floor it. The product is rounded to six
    decimals first so binary float error cannot drop a whole point.

    Example:
        >>> apply_multiplier({"mental": 100, "physical": 55}, 1.15)
        {'mental': 115, 'physical': 63}
    """
    return {
        category: int(math.floor(round(max(xp, 0) * multiplier, 6)))
        for category, xp in xp_by_category.items()
    }


def apply_daily_cap(
    xp_by_category: Mapping[str, int],
    today_xp: float,
    daily_limit: int,
) -> dict[str, int]:
    """
    Fit an award into the remaining daily allowance by proportional scaling.

    The ratio between categories is preserved; each scaled value is floored,
    so the granted total never exceeds the allowance.

    Example:
        >>> apply_daily_cap({"mental": 300, "physical": 100}, today_xp=1800, daily_limit=2000)
        {'mental': 150, 'physical': 50}
        >>> apply_daily_cap({"mental": 300}, today_xp=2000, daily_limit=2000)
        {'mental': 0}
    """
    remaining = max(0, int(daily_limit - today_xp))
    total = sum(xp_by_category.values())

    if total <= remaining:
        return dict(xp_by_category)
    if total <= 0:
        return {category: 0 for category in xp_by_category}

    factor = remaining / total
    return {
        category: min(int(math.floor(xp * factor)), remaining)
        for category, xp in xp_by_category.items()
    }
