"""
Shared building blocks for the Evolvr service modules: constants, pure
formulas, the domain exception hierarchy, validators and the service base.
"""

from evolvr.modules.shared.base_service import BaseService
from evolvr.modules.shared.exceptions import (
    AlreadyCompletedError,
    CompletionInFlightError,
    EvaluationError,
    EvolvrDomainException,
    NotFoundError,
    TaskNotFoundError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "AlreadyCompletedError",
    "BaseService",
    "CompletionInFlightError",
    "EvaluationError",
    "EvolvrDomainException",
    "NotFoundError",
    "TaskNotFoundError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
