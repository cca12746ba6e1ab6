"""
ListenerRegistry: storage for exact and wildcard event listeners.

Exact listeners are keyed by event name; wildcard listeners are kept in a
single list of (pattern, listener) pairs. Both are ordered by priority so the
scheduler receives listeners already sorted.
"""

from __future__ import annotations

from evolvr.core.event.router import EventRouter
from evolvr.core.event.types import EventListener


class ListenerRegistry:
    def __init__(self, router: EventRouter | None = None) -> None:
        self._router = router or EventRouter()
        self._listeners: dict[str, list[EventListener]] = {}
        self._wildcard_listeners: list[tuple[str, EventListener]] = []

    def add_listener(
        self,
        *,
        event_name: str,
        listener: EventListener,
        allow_duplicates: bool = False,
    ) -> bool:
        """Register a listener; returns False when a duplicate was refused."""
        if "*" in event_name:
            if not allow_duplicates and any(
                pattern == event_name and lst.identifier == listener.identifier
                for pattern, lst in self._wildcard_listeners
            ):
                return False
            self._wildcard_listeners.append((event_name, listener))
            self._wildcard_listeners.sort(key=lambda item: item[1].priority.value)
            return True

        listeners = self._listeners.setdefault(event_name, [])
        if not allow_duplicates and any(
            lst.identifier == listener.identifier for lst in listeners
        ):
            return False
        listeners.append(listener)
        listeners.sort(key=lambda lst: lst.priority.value)
        return True

    def remove_listener(self, event_name: str, identifier: str) -> bool:
        removed = False

        if event_name in self._listeners:
            before = len(self._listeners[event_name])
            self._listeners[event_name] = [
                lst for lst in self._listeners[event_name] if lst.identifier != identifier
            ]
            removed = len(self._listeners[event_name]) < before
            if not self._listeners[event_name]:
                del self._listeners[event_name]

        before_wc = len(self._wildcard_listeners)
        self._wildcard_listeners = [
            (pattern, lst)
            for pattern, lst in self._wildcard_listeners
            if not (pattern == event_name and lst.identifier == identifier)
        ]
        return removed or len(self._wildcard_listeners) < before_wc

    def clear_all(self) -> int:
        total = self.get_total_listener_count()
        self._listeners.clear()
        self._wildcard_listeners.clear()
        return total

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """
        Return every listener matching `event_name`, sorted by priority.

        One-shot listeners are pruned from the registry before they are
        returned, so a listener registered with ``once=True`` runs at most once
        even if the same event is published again while it executes.
        """
        result: list[EventListener] = []

        exact = self._listeners.get(event_name, [])
        kept_exact = [lst for lst in exact if not lst.once]
        result.extend(exact)
        if kept_exact:
            self._listeners[event_name] = kept_exact
        elif event_name in self._listeners:
            del self._listeners[event_name]

        kept_wildcards: list[tuple[str, EventListener]] = []
        for pattern, listener in self._wildcard_listeners:
            if self._router.matches(event_name, pattern):
                result.append(listener)
                if listener.once:
                    continue
            kept_wildcards.append((pattern, listener))
        self._wildcard_listeners = kept_wildcards

        result.sort(key=lambda lst: lst.priority.value)
        return result

    def get_listener_count_for_event(self, event_name: str) -> int:
        count = len(self._listeners.get(event_name, []))
        count += sum(
            1
            for pattern, _ in self._wildcard_listeners
            if self._router.matches(event_name, pattern)
        )
        return count

    def get_total_listener_count(self) -> int:
        total = sum(len(listeners) for listeners in self._listeners.values())
        return total + len(self._wildcard_listeners)

    def get_all_event_keys(self) -> list[str]:
        keys: list[str] = list(self._listeners.keys())
        keys.extend(pattern for pattern, _ in self._wildcard_listeners)
        return sorted(set(keys))
