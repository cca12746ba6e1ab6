"""
EventScheduler: tiered listener execution.

- CRITICAL / HIGH: sequential, awaited, timeout-protected.
- NORMAL: concurrent via ``asyncio.gather``, awaited.
- LOW: fire-and-forget background tasks (tracked until done).

Every listener runs inside its own error boundary; a failing listener is
logged and yields ``None`` without affecting the others.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from evolvr.core.event.types import EventListener, EventPayload, ListenerPriority


class EventScheduler:
    def __init__(self) -> None:
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self.error_count: int = 0

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        logger: Logger,
        timeout: Optional[float],
    ) -> list[Any]:
        """Run `listeners` and return results of every awaited tier."""
        by_tier: dict[ListenerPriority, list[EventListener]] = {p: [] for p in ListenerPriority}
        for listener in listeners:
            by_tier[listener.priority].append(listener)

        results: list[Any] = []

        for tier in (ListenerPriority.CRITICAL, ListenerPriority.HIGH):
            for listener in by_tier[tier]:
                results.append(
                    await self._run_with_timeout(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        logger=logger,
                        timeout=timeout,
                    )
                )

        if by_tier[ListenerPriority.NORMAL]:
            results.extend(
                await asyncio.gather(
                    *[
                        self._run_listener(
                            listener=lst,
                            event_name=event_name,
                            payload=payload,
                            logger=logger,
                        )
                        for lst in by_tier[ListenerPriority.NORMAL]
                    ]
                )
            )

        if by_tier[ListenerPriority.LOW]:
            loop = asyncio.get_running_loop()
            for listener in by_tier[ListenerPriority.LOW]:
                task = loop.create_task(
                    self._run_listener(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        logger=logger,
                    ),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(
                listener=listener, event_name=event_name, payload=payload, logger=logger
            )

        try:
            return await asyncio.wait_for(
                self._run_listener(
                    listener=listener,
                    event_name=event_name,
                    payload=payload,
                    logger=logger,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            self._handle_listener_error(
                logger=logger, event_name=event_name, listener=listener, exc=exc
            )
            return None

    async def _run_listener(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
    ) -> Any:
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            result = listener.callback(payload)
            if inspect.isawaitable(result):
                return await result
            return result
        except Exception as exc:
            self._handle_listener_error(
                logger=logger, event_name=event_name, listener=listener, exc=exc
            )
            return None

    def _handle_listener_error(
        self,
        *,
        logger: Logger,
        event_name: str,
        listener: EventListener,
        exc: BaseException,
    ) -> None:
        self.error_count += 1
        logger.error(
            "EventBus listener error",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=exc,
        )

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks (used on shutdown and in tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def get_background_task_count(self) -> int:
        return len(self._background_tasks)
