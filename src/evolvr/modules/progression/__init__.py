"""Level curve, category aggregation and XP awards."""

from evolvr.modules.progression.aggregator import CategoryAggregator
from evolvr.modules.progression.level_curve import LevelCurve
from evolvr.modules.progression.service import (
    ProgressionService,
    XPAward,
    XPAwardResult,
    XPMultipliers,
    calculate_xp_award,
    initial_user_levels,
)

__all__ = [
    "CategoryAggregator",
    "LevelCurve",
    "ProgressionService",
    "XPAward",
    "XPAwardResult",
    "XPMultipliers",
    "calculate_xp_award",
    "initial_user_levels",
]
