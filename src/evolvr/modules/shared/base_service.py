"""
Base Service Foundation

Purpose
-------
Common foundation for the Evolvr services (progression, badges, task
completion). Services hold business orchestration: they call ports, apply the
pure rule modules and publish domain events.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access
- Event emission helpers

What this class does NOT do:
- Own persistence (ports are injected into each service)
- Retry failed gateway calls

Usage
-----
    class ProgressionService(BaseService):
        def __init__(self, gateway, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._gateway = gateway
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from evolvr.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from logging import Logger

    from evolvr.core.config.manager import ConfigManager
    from evolvr.core.event.bus import EventBus
    from evolvr.domain.models.base import DomainEvent


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Configuration manager (class or compatible object)
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(key, f"Required configuration key '{key}' is missing")
        return value

    def get_number_config(self, key: str, default: float, *, minimum: float = 0) -> float:
        """
        Retrieve a numeric configuration value.

        Raises:
            ConfigurationError: If the value is not a number or is below `minimum`
        """
        value = self._config.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(key, f"expected a number, got {value!r}")
        if value < minimum:
            raise ConfigurationError(key, f"must be >= {minimum}, got {value}")
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish a domain event for cross-module communication."""
        await self._events.publish(event_type, {**data, **(context or {})})

    async def emit_domain_event(self, event: DomainEvent) -> None:
        await self._events.publish(event.event_name, event.to_payload())

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """Log a service error with full context (never raises)."""
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )
