"""Context window tracking.

Keeps the current context usage (tokens used / maximum tokens) so the
prompt and footer can display it. Updated after each inference turn.
"""

from __future__ import annotations

import threading

__all__ = [
    "ContextTracker",
    "update",
    "get",
    "percentage",
    "format_footer",
    "format_k",
]


def format_k(n: int) -> str:
    """Format a token count as ``"500"``, ``"4.1k"`` or ``"128k"``."""
    if n < 1_000:
        return str(n)
    if n < 10_000:
        return f"{n / 1_000:.1f}k"
    return f"{n // 1_000}k"


class ContextTracker:
    """Thread-safe record of how much of the context window is in use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._used = 0
        self._maximum = 0

    def update(self, used: int, maximum: int) -> None:
        """Record the context usage after assembling messages."""
        with self._lock:
            self._used = used
            self._maximum = maximum

    def get(self) -> tuple[int, int]:
        """Return the current usage as ``(used, maximum)``."""
        with self._lock:
            return self._used, self._maximum

    def percentage(self) -> int:
        """Return usage as a whole percentage, 0 when the maximum is unknown."""
        used, maximum = self.get()
        if maximum == 0:
            return 0
        return (used * 100) // maximum

    def format_footer(self) -> str:
        """Format usage for the footer, e.g. ``"context: 4.1k/128k (3%)"``."""
        used, maximum = self.get()
        if maximum == 0:
            return ""
        pct = (used * 100) // maximum
        return f"context: {format_k(used)}/{format_k(maximum)} ({pct}%)"


_tracker = ContextTracker()


def update(used: int, maximum: int) -> None:
    """Update the process-wide context usage."""
    _tracker.update(used, maximum)


def get() -> tuple[int, int]:
    """Return the process-wide context usage as ``(used, maximum)``."""
    return _tracker.get()


def percentage() -> int:
    """Return the process-wide context usage as a percentage (0-100)."""
    return _tracker.percentage()


def format_footer() -> str:
    """Format the process-wide context usage for the footer."""
    return _tracker.format_footer()