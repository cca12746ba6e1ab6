"""Badge rule evaluation and best-effort badge orchestration."""

from evolvr.modules.badges.engine import AwardResult, BadgeRuleEngine
from evolvr.modules.badges.rules import parse_catalog
from evolvr.modules.badges.service import BadgeProgress, BadgeService

__all__ = [
    "AwardResult",
    "BadgeProgress",
    "BadgeRuleEngine",
    "BadgeService",
    "parse_catalog",
]
