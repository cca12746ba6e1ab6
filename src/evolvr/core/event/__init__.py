"""
Event system for Evolvr.

Services take an ``EventBus`` instance through their constructor; there is
no global bus.
"""

from .bus import EventBus
from .types import CallbackType, EventListener, EventPayload, ListenerPriority

__all__ = [
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
