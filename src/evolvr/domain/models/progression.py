"""
Progression value objects: categories, per-category and overall progress,
and the level readouts produced by the level curve.

All objects are immutable; services return new instances instead of mutating.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from evolvr.domain.models.base import (
    DomainValidationError,
    validate_non_negative,
    validate_positive,
)


class Category(str, Enum):
    """The seven life categories tracked independently."""

    PHYSICAL = "physical"
    MENTAL = "mental"
    INTELLECTUAL = "intellectual"
    SPIRITUAL = "spiritual"
    FINANCIAL = "financial"
    CAREER = "career"
    RELATIONSHIPS = "relationships"

    @classmethod
    def from_name(cls, name: str) -> Optional["Category"]:
        """Case-insensitive lookup; returns None for names outside the enum."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class CategoryProgress:
    """Level and cumulative XP for one category."""

    level: int = 1
    xp: float = 0

    def __post_init__(self) -> None:
        validate_positive(self.level, "level")
        validate_non_negative(self.xp, "xp")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CategoryProgress":
        return cls(level=int(data.get("level", 1)), xp=data.get("xp", 0))

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "xp": self.xp}


@dataclass(frozen=True)
class OverallProgress:
    """
    Derived overall progress.

    `xp` is the XP inside the current overall level, not a cumulative total;
    prestige is carried through unchanged.
    """

    level: int = 1
    xp: float = 0
    prestige: int = 0

    def __post_init__(self) -> None:
        validate_positive(self.level, "level")
        validate_non_negative(self.xp, "xp")
        validate_non_negative(self.prestige, "prestige")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OverallProgress":
        return cls(
            level=int(data.get("level", 1)),
            xp=data.get("xp", 0),
            prestige=int(data.get("prestige", 0)),
        )


@dataclass(frozen=True)
class LevelInfo:
    """Level readout for a cumulative XP value."""

    level: int
    current_level_xp: float
    next_level_xp: float
    progress: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.progress <= 1.0:
            raise DomainValidationError(
                f"progress must be within [0, 1], got {self.progress}",
                field="progress",
            )

    @property
    def xp_remaining(self) -> float:
        """XP still needed to reach the next level."""
        return max(self.next_level_xp - self.current_level_xp, 0)


@dataclass(frozen=True)
class OverallLevelInfo(LevelInfo):
    """Overall level readout; `total_xp` is the aggregated XP it was computed from."""

    total_xp: float = 0


class XPSource(str, Enum):
    """Where an XP award came from; selects the award multiplier."""

    NORMAL = "normal"
    HABIT = "habit"
    ROUTINE = "routine"
    CHALLENGE = "challenge"
    BONUS = "bonus"
