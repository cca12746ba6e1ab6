"""
Badge catalog entries and earned-badge records.

Catalog entries are immutable and loaded from a `BadgeCatalogSource`; earned
badges are append-only records keyed by badge id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from evolvr.domain.models.base import DomainValidationError, validate_not_empty


class RequirementKind(str, Enum):
    LEVEL = "level"
    STREAK = "streak"
    COMPLETION = "completion"
    PRESTIGE = "prestige"


@dataclass(frozen=True)
class BadgeRequirement:
    """
    What a user must reach to earn a badge.

    `threshold` is not validated here: a non-positive threshold makes the
    badge malformed, which the rule engine reports as zero progress.
    """

    kind: RequirementKind
    threshold: float
    category: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BadgeRequirement":
        raw_kind = data.get("kind", data.get("type"))
        try:
            kind = RequirementKind(str(raw_kind).lower())
        except ValueError:
            raise DomainValidationError(
                f"unknown requirement kind: {raw_kind!r}", field="requirement.kind"
            ) from None

        threshold = data.get("threshold")
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise DomainValidationError(
                f"threshold must be a number, got {threshold!r}",
                field="requirement.threshold",
            )

        category = data.get("category")
        return cls(kind=kind, threshold=threshold, category=category or None)


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    description: str = ""
    category: Optional[str] = None
    requirement: Optional[BadgeRequirement] = None

    def __post_init__(self) -> None:
        validate_not_empty(self.id, "id")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BadgeDefinition":
        raw_requirement = data.get("requirement")
        requirement = (
            BadgeRequirement.from_dict(raw_requirement)
            if isinstance(raw_requirement, Mapping)
            else None
        )
        badge_id = data.get("id")
        if not isinstance(badge_id, str):
            raise DomainValidationError("badge id must be a string", field="id")

        return cls(
            id=badge_id,
            name=str(data.get("name", badge_id)),
            description=str(data.get("description", "")),
            category=data.get("category") or None,
            requirement=requirement,
        )


@dataclass(frozen=True)
class UserBadge:
    badge_id: str
    earned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        validate_not_empty(self.badge_id, "badge_id")
