"""
EventRouter: wildcard event-name matching.

Supported Patterns
------------------
- Exact:    "task.completion_committed"
- Global:   "*"
- Prefix:   "task.*"
- Suffix:   "*.awarded"
- Sandwich: "task.*.committed"

Matching is case-sensitive.
"""

from __future__ import annotations


class EventRouter:
    """
    Stateless wildcard matcher.

    Examples
    --------
    >>> router = EventRouter()
    >>> router.matches("task.completion_committed", "task.*")
    True
    >>> router.matches("badges.awarded", "task.*")
    False
    """

    def matches(self, event_name: str, pattern: str) -> bool:
        if pattern == "*":
            return True

        if "*" not in pattern:
            return event_name == pattern

        while "**" in pattern:
            pattern = pattern.replace("**", "*")

        parts = pattern.split("*")

        if parts[0] and not event_name.startswith(parts[0]):
            return False

        if parts[-1] and not event_name.endswith(parts[-1]):
            return False

        idx = len(parts[0])
        for mid in parts[1:-1]:
            if not mid:
                continue
            next_idx = event_name.find(mid, idx)
            if next_idx == -1:
                return False
            idx = next_idx + len(mid)

        tail = parts[-1]
        if tail and len(event_name) - len(tail) < idx:
            return False

        return True
