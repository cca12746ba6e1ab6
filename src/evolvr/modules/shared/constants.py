"""
Evolvr Domain Constants

Purpose
-------
Progression rule constants and stable names shared across modules. Tunable
balance values (XP per level, daily cap, multipliers) are read from
ConfigManager at runtime; the values here are the fallbacks used when a
caller asks for the default curve explicitly.

Design Notes
------------
- Values are annotated with typing.Final to signal immutability
- Event names are the public contract with EventBus subscribers
"""

from __future__ import annotations

from typing import Final

# ============================================================================
# LEVEL CURVE DEFAULTS
# ============================================================================

DEFAULT_XP_PER_LEVEL: Final[int] = 1000
DEFAULT_MAX_LEVEL: Final[int] = 100
DEFAULT_DAILY_XP_LIMIT: Final[int] = 2000

# ============================================================================
# XP MULTIPLIER DEFAULTS
# ============================================================================

DEFAULT_ROUTINE_STREAK_STEP: Final[float] = 0.0285  # 20% max at 7 days
DEFAULT_ROUTINE_STREAK_MAX: Final[float] = 0.20
DEFAULT_HABIT_STREAK_STEP: Final[float] = 0.01  # 10% max at 10 days
DEFAULT_HABIT_STREAK_MAX: Final[float] = 0.10
DEFAULT_CHALLENGE_BONUS: Final[float] = 0.15
DEFAULT_PRESTIGE_STEP: Final[float] = 0.03

# ============================================================================
# BADGES
# ============================================================================

# Badge categories that select which completion counter a completion badge reads.
BADGE_CATEGORY_ROUTINE: Final[str] = "routine"
BADGE_CATEGORY_CHALLENGE: Final[str] = "challenge"

DEFAULT_CATALOG_CACHE_TTL_SECONDS: Final[int] = 3600

# ============================================================================
# TASK COMPLETION
# ============================================================================

# Most recent committed normal/habit completions remembered to report a repeat
# as already completed rather than not found.
DEFAULT_COMMITTED_HISTORY_SIZE: Final[int] = 1024

# ============================================================================
# EVENT NAMES
# ============================================================================

EVENT_TASK_COMPLETION_COMMITTED: Final[str] = "task.completion_committed"
EVENT_TASK_COMPLETION_ROLLED_BACK: Final[str] = "task.completion_rolled_back"
EVENT_BADGES_AWARDED: Final[str] = "badges.awarded"
EVENT_XP_AWARDED: Final[str] = "progression.xp_awarded"
