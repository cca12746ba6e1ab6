"""
LevelCurve: cumulative XP to level and within-level progress.

A flat curve: every level spans `xp_per_level` XP and level N starts at
`(N - 1) * xp_per_level`. Levels are capped at `max_level`.

The curve is a pure value object. `LevelCurve.from_config()` reads the
parameters from ConfigManager once; every call afterwards is deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from evolvr.core.exceptions import ConfigurationError
from evolvr.domain.models.progression import LevelInfo
from evolvr.modules.shared import formulas
from evolvr.modules.shared.constants import DEFAULT_MAX_LEVEL, DEFAULT_XP_PER_LEVEL
from evolvr.modules.shared.validators import validate_level, validate_xp_amount


@dataclass(frozen=True)
class LevelCurve:
    xp_per_level: int = DEFAULT_XP_PER_LEVEL
    max_level: int = DEFAULT_MAX_LEVEL

    def __post_init__(self) -> None:
        if isinstance(self.xp_per_level, bool) or not isinstance(self.xp_per_level, int) or self.xp_per_level <= 0:
            raise ConfigurationError(
                "progression.xp_per_level", f"must be a positive integer, got {self.xp_per_level!r}"
            )
        if isinstance(self.max_level, bool) or not isinstance(self.max_level, int) or self.max_level < 1:
            raise ConfigurationError(
                "progression.max_level", f"must be an integer >= 1, got {self.max_level!r}"
            )

    @classmethod
    def from_config(cls, config_manager: Optional[Any] = None) -> "LevelCurve":
        """Build a curve from `progression.xp_per_level` / `progression.max_level`."""
        if config_manager is None:
            from evolvr.core.config.manager import ConfigManager

            config_manager = ConfigManager

        return cls(
            xp_per_level=config_manager.get("progression.xp_per_level", DEFAULT_XP_PER_LEVEL),
            max_level=config_manager.get("progression.max_level", DEFAULT_MAX_LEVEL),
        )

    def xp_for_next_level(self, level: int) -> int:
        """
        Cumulative XP at which `level + 1` begins.

        Example:
            >>> LevelCurve().xp_for_next_level(3)
            3000
        """
        validate_level(level)
        return formulas.xp_for_next_level(level, self.xp_per_level)

    def level_of(self, xp: float) -> int:
        validate_xp_amount(xp)
        return formulas.level_from_xp(xp, self.xp_per_level, self.max_level)

    def level_info(self, xp: float) -> LevelInfo:
        """
        Level readout for cumulative `xp`.

        Raises:
            ValidationError: If `xp` is negative or not a finite number

        Example:
            >>> LevelCurve().level_info(2500)
            LevelInfo(level=3, current_level_xp=500, next_level_xp=1000, progress=0.5)
        """
        level = self.level_of(xp)
        current = xp - (level - 1) * self.xp_per_level
        return LevelInfo(
            level=level,
            current_level_xp=current,
            next_level_xp=self.xp_per_level,
            progress=formulas.level_progress(xp, level, self.xp_per_level),
        )

    def is_max_level(self, level: int) -> bool:
        return level >= self.max_level
