"""
Evolvr EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouple the progression engine from its observers. The coordinator and the
services publish facts (a completion committed, badges awarded, XP granted);
hosts subscribe to react without the engine knowing about them.

Responsibilities
----------------
- Register/unregister listeners with priorities and wildcard patterns.
- Publish events to every matching listener according to its tier.
- Isolate listener failures so a broken observer never fails a publisher.

Design Decisions
----------------
- Instance-based: services receive a bus through their constructor, tests
  create a fresh one per case.
- Listener timeout for the sequential tiers comes from
  ``core.event.listener_timeout_seconds`` in ConfigManager unless passed
  explicitly.

Dependencies
------------
- evolvr.core.config.manager.ConfigManager
- evolvr.core.logging.logger
"""

from __future__ import annotations

import inspect
from typing import Any, Optional

from evolvr.core.config.manager import ConfigManager
from evolvr.core.event.registry import ListenerRegistry
from evolvr.core.event.router import EventRouter
from evolvr.core.event.scheduler import EventScheduler
from evolvr.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from evolvr.core.logging.logger import get_logger, set_log_context

logger = get_logger(__name__)


class EventBus:
    """
    Async event bus.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("badges.awarded", on_badges, priority=ListenerPriority.HIGH)
    >>> await bus.publish("badges.awarded", {"user_id": "u1", "badge_ids": ["b1"]})
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        scheduler: Optional[EventScheduler] = None,
        *,
        listener_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._registry = registry or ListenerRegistry(EventRouter())
        self._scheduler = scheduler or EventScheduler()
        self._events_published: dict[str, int] = {}
        self._timeout = self._load_timeout(listener_timeout_seconds)

        logger.debug(
            "EventBus initialized",
            extra={"listener_timeout_seconds": self._timeout},
        )

    @staticmethod
    def _load_timeout(override: Optional[float]) -> float:
        if override is not None:
            return float(override)

        value = ConfigManager.get("core.event.listener_timeout_seconds", 5.0)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_value": value, "default_value": 5.0},
            )
            return 5.0

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Ensure the callback accepts exactly one positional payload argument."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe `callback` to an event name or wildcard pattern.

        Returns the listener identifier for later unsubscription.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        added = self._registry.add_listener(
            event_name=event_name,
            listener=listener,
            allow_duplicates=allow_duplicates,
        )

        if added:
            logger.debug(
                "EventBus: subscribed listener",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "once": listener.once,
                },
            )
        else:
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )

        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        removed = self._registry.remove_listener(event_name=event_name, identifier=identifier)
        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        total = self._registry.clear_all()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to every matching listener.

        Returns results of the CRITICAL/HIGH/NORMAL listeners; LOW listeners
        run in the background and are not included.
        """
        self._events_published[event_name] = self._events_published.get(event_name, 0) + 1
        set_log_context(event_name=event_name)

        listeners = self._registry.extract_listeners_for_event(event_name=event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        logger.debug(
            "EventBus: publishing event",
            extra={
                "event_name": event_name,
                "payload_keys": list(data.keys()),
                "listener_count": len(listeners),
            },
        )

        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            logger=logger,
            timeout=self._timeout,
        )

    async def drain(self) -> None:
        await self._scheduler.drain()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name:
            return self._registry.get_listener_count_for_event(event_name)
        return self._registry.get_total_listener_count()

    def get_all_events(self) -> list[str]:
        return self._registry.get_all_event_keys()

    def get_metrics_summary(self) -> dict[str, Any]:
        total = sum(self._events_published.values())
        errors = self._scheduler.error_count
        return {
            "total_events_published": total,
            "events_by_type": dict(self._events_published),
            "total_errors": errors,
            "total_listeners": self._registry.get_total_listener_count(),
            "error_rate": round(errors / total * 100, 2) if total else 0.0,
        }
