"""
Evolvr Domain Validators

Purpose
-------
Raise-on-error validation helpers used at service entry points. Each raises
a structured `ValidationError` and returns None on success.

Usage
-----
    from evolvr.modules.shared.validators import validate_xp_amount

    validate_xp_amount(-5)
    # Raises: ValidationError
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from evolvr.modules.shared.exceptions import ValidationError


def validate_xp_amount(xp: Any, field: str = "xp") -> None:
    """
    Validate a cumulative or awarded XP value.

    Raises:
        ValidationError: If `xp` is not a finite, non-negative number
    """
    if isinstance(xp, bool) or not isinstance(xp, (int, float)):
        raise ValidationError(field, f"XP must be a number, got {type(xp).__name__}")
    if not math.isfinite(xp):
        raise ValidationError(field, f"XP must be finite, got {xp}")
    if xp < 0:
        raise ValidationError(field, f"XP must be non-negative, got {xp}")


def validate_level(level: Any, field: str = "level") -> None:
    if isinstance(level, bool) or not isinstance(level, int) or level < 1:
        raise ValidationError(field, f"Level must be an integer >= 1, got {level!r}")


def validate_identifier(value: Optional[str], field: str) -> str:
    """
    Validate a required identifier and return it.

    Raises:
        ValidationError: If the identifier is missing or blank
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, f"{field} is required")
    return value


def validate_xp_gains(xp_by_category: Mapping[str, Any]) -> None:
    """Validate every per-category award in a gains map."""
    if not xp_by_category:
        raise ValidationError("xp_by_category", "at least one category is required")
    for category, xp in xp_by_category.items():
        if not isinstance(category, str) or not category.strip():
            raise ValidationError("xp_by_category", "category names must be non-empty strings")
        validate_xp_amount(xp, field=f"xp_by_category.{category}")
