"""
Domain exceptions for Evolvr.

Purpose
-------
Define the structured exception hierarchy for progression rule violations.
Services raise these for guard failures (already completed, unknown task,
bad input); hosts translate them into user-facing messages. Infrastructure
failures (`PersistenceError`, `ConfigurationError`) live in
`evolvr.core.exceptions`.

Design Notes
------------
- All domain exceptions inherit from `EvolvrDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  cover both the domain and the infrastructure hierarchy.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from evolvr.core.exceptions import ErrorSeverity, EvolvrInfrastructureException


class EvolvrDomainException(Exception):
    """
    Base exception for all Evolvr domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ValidationError(EvolvrDomainException):
    """
    Raised when input fails domain validation (missing identifier, negative
    XP, unknown task kind).

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class NotFoundError(EvolvrDomainException):
    """
    Raised when a requested resource cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Task", "Badge")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class TaskNotFoundError(NotFoundError):
    """Raised when a task id is absent from the kind's active list."""

    def __init__(self, task_id: str, kind: str) -> None:
        self.task_id = task_id
        self.kind = kind
        super().__init__("Task", task_id)
        self.details["kind"] = kind


class AlreadyCompletedError(EvolvrDomainException):
    """
    Raised when a completion is requested for a task that is already done
    for this user (and, for routines, for today).

    The active-task cache is untouched when this is raised.
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = False

    def __init__(self, task_id: str, kind: str, reason: str = "already completed") -> None:
        self.task_id = task_id
        self.kind = kind
        super().__init__(
            f"{kind} task {task_id} {reason}",
            details={"task_id": task_id, "kind": kind, "reason": reason},
            error_code="ALREADY_COMPLETED",
        )


class CompletionInFlightError(EvolvrDomainException):
    """Raised when a completion for the same task is already being processed."""

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(
            f"Completion already in flight for task {task_id}",
            details={"task_id": task_id},
            error_code="COMPLETION_IN_FLIGHT",
        )


class EvaluationError(EvolvrDomainException):
    """
    A badge or level evaluation failed.

    Never raised out of the engine's public API; it is built so the failure
    is logged with the same structured fields as every other domain error.

    Args:
        subject: What was being evaluated (e.g. a badge id)
        reason: Explanation of the failure
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False

    def __init__(self, subject: str, reason: str) -> None:
        self.subject = subject
        self.reason = reason
        super().__init__(
            f"Evaluation failed for {subject}: {reason}",
            details={"subject": subject, "reason": reason},
            error_code="EVALUATION_FAILED",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """True if the exception says the operation may be retried."""
    if isinstance(exc, (EvolvrDomainException, EvolvrInfrastructureException)):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity for logging; unknown exceptions are treated as ERROR."""
    if isinstance(exc, (EvolvrDomainException, EvolvrInfrastructureException)):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    severity = get_error_severity(exc)
    return severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
