"""
Base domain primitives for Evolvr.

Purpose
-------
Shared building blocks for the immutable value objects in
`evolvr.domain.models`: the domain event record published through the
EventBus, the validation error raised by `__post_init__` checks, and the small
validators those checks use.

Non-Responsibilities
--------------------
- Persistence (reached through the ports in `evolvr.modules.tasks.ports`)
- Orchestration (handled by the service layer)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass
class DomainEvent:
    """
    A fact that has occurred in the domain.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "task.completion_committed")
    payload : Dict[str, Any]
        Event payload with relevant data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        return {**self.payload, "occurred_at": self.occurred_at.isoformat()}


# ============================================================================
# DOMAIN MODEL VALIDATION
# ============================================================================


class DomainValidationError(Exception):
    """
    Raised when a domain value object is constructed with invalid data.

    Parameters
    ----------
    message : str
        Human-readable error message
    field : Optional[str]
        Field name that failed validation (if applicable)
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_positive(value: float, field_name: str) -> None:
    """Raise DomainValidationError unless `value` > 0."""
    if value <= 0:
        raise DomainValidationError(
            f"{field_name} must be positive, got {value}",
            field=field_name,
        )


def validate_non_negative(value: float, field_name: str) -> None:
    """Raise DomainValidationError if `value` is negative or not a finite number."""
    if isinstance(value, float) and not math.isfinite(value):
        raise DomainValidationError(
            f"{field_name} must be finite, got {value}",
            field=field_name,
        )
    if value < 0:
        raise DomainValidationError(
            f"{field_name} must be non-negative, got {value}",
            field=field_name,
        )


def validate_not_empty(value: str, field_name: str) -> None:
    if not value or not value.strip():
        raise DomainValidationError(
            f"{field_name} cannot be empty",
            field=field_name,
        )
