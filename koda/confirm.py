"""Confirmation outcomes and human-readable descriptions of tool actions."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ["ConfirmationKind", "Confirmation", "describe_action"]


class ConfirmationKind(enum.Enum):
    """The user's decision on a confirmation prompt."""

    APPROVED = "approved"
    REJECTED = "rejected"
    REJECTED_WITH_FEEDBACK = "rejected_with_feedback"
    ALWAYS_ALLOW = "always_allow"


@dataclass(frozen=True)
class Confirmation:
    """A confirmation decision, with feedback when the user gave some."""

    kind: ConfirmationKind
    feedback: str | None = None

    @classmethod
    def approved(cls) -> Confirmation:
        return cls(ConfirmationKind.APPROVED)

    @classmethod
    def rejected(cls) -> Confirmation:
        return cls(ConfirmationKind.REJECTED)

    @classmethod
    def always_allow(cls) -> Confirmation:
        """Approved, and the command pattern should be auto-approved from now on."""
        return cls(ConfirmationKind.ALWAYS_ALLOW)

    @classmethod
    def rejected_with_feedback(cls, feedback: str) -> Confirmation:
        """Rejected, with a note telling the model what to change."""
        return cls(ConfirmationKind.REJECTED_WITH_FEEDBACK, feedback)


def _first(args: Any, *keys: str) -> Any:
    """Value of the first key present in ``args`` (None if none is)."""
    if not isinstance(args, Mapping):
        return None
    for key in keys:
        if key in args:
            return args[key]
    return None


def _text(args: Any, *keys: str) -> str:
    value = _first(args, *keys)
    return value if isinstance(value, str) else "?"


def _flag(args: Any, key: str) -> bool:
    value = _first(args, key)
    return value if isinstance(value, bool) else False


def describe_action(tool_name: str, args: Mapping[str, Any] | None) -> str:
    """Describe what a tool call will do, with ANSI bold for the key detail."""
    args = args or {}
    if tool_name == "Bash":
        return f"\x1b[1m{_text(args, 'command', 'cmd')}\x1b[0m"
    if tool_name == "Delete":
        path = _text(args, "file_path", "path")
        if _flag(args, "recursive"):
            return f"Delete directory (recursive): \x1b[1m{path}\x1b[0m"
        return f"Delete: \x1b[1m{path}\x1b[0m"
    if tool_name == "Write":
        path = _text(args, "path", "file_path")
        if _flag(args, "overwrite"):
            return f"Overwrite file: \x1b[1m{path}\x1b[0m"
        return f"Create file: \x1b[1m{path}\x1b[0m"
    if tool_name == "Edit":
        source = args["payload"] if "payload" in args else args
        return f"Edit file: \x1b[1m{_text(source, 'file_path', 'path')}\x1b[0m"
    if tool_name == "WebFetch":
        return f"Fetch URL: \x1b[1m{_text(args, 'url')}\x1b[0m"
    return f"Execute: {tool_name}"