"""Approval modes and tool-call approval decisions.

Three modes control how tool confirmations are handled:

* ``PLAN``: read-only. Write tools are blocked; safe shell commands still run.
* ``NORMAL``: safe shell commands auto-approve, everything else is confirmed.
* ``YOLO``: everything is approved without asking.
"""

from __future__ import annotations

import enum
import os
import threading
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

from koda.shell_safety import is_command_safe

__all__ = [
    "ApprovalMode",
    "SharedMode",
    "new_shared_mode",
    "read_mode",
    "set_mode",
    "cycle_mode",
    "ToolApproval",
    "READ_ONLY_TOOLS",
    "check_tool",
    "Settings",
    "settings_path",
]


class ApprovalMode(enum.IntEnum):
    """How tool calls are approved."""

    PLAN = 0
    NORMAL = 1
    YOLO = 2

    def next(self) -> ApprovalMode:
        """Cycle to the next mode: plan, normal, yolo, then plan again."""
        return {
            ApprovalMode.PLAN: ApprovalMode.NORMAL,
            ApprovalMode.NORMAL: ApprovalMode.YOLO,
            ApprovalMode.YOLO: ApprovalMode.PLAN,
        }[self]

    def label(self) -> str:
        """Short lower-case name of the mode."""
        return self.name.lower()

    def description(self) -> str:
        """One-line explanation of the mode."""
        return _DESCRIPTIONS[self]

    @classmethod
    def from_str(cls, s: str) -> ApprovalMode | None:
        """Parse a mode name (case-insensitive); None if it is not recognised."""
        return _NAMES.get(s.lower())

    @classmethod
    def from_int(cls, value: int) -> ApprovalMode:
        """Convert a stored number to a mode, falling back to ``NORMAL``."""
        if value == 0:
            return cls.PLAN
        if value == 2:
            return cls.YOLO
        return cls.NORMAL


_DESCRIPTIONS = {
    ApprovalMode.PLAN: "read-only, describe actions without executing",
    ApprovalMode.NORMAL: "confirm dangerous actions, auto-approve safe ones",
    ApprovalMode.YOLO: "auto-approve everything",
}

_NAMES = {
    "plan": ApprovalMode.PLAN,
    "normal": ApprovalMode.NORMAL,
    "yolo": ApprovalMode.YOLO,
    "auto": ApprovalMode.YOLO,
    "accept": ApprovalMode.YOLO,
}


class SharedMode:
    """A thread-safe approval mode shared between the prompt and input handlers."""

    def __init__(self, mode: ApprovalMode = ApprovalMode.NORMAL) -> None:
        self._lock = threading.Lock()
        self._mode = mode

    def get(self) -> ApprovalMode:
        with self._lock:
            return self._mode

    def set(self, mode: ApprovalMode) -> None:
        with self._lock:
            self._mode = mode

    def cycle(self) -> ApprovalMode:
        """Advance to the next mode and return it."""
        with self._lock:
            self._mode = self._mode.next()
            return self._mode


def new_shared_mode(mode: ApprovalMode) -> SharedMode:
    return SharedMode(mode)


def read_mode(shared: SharedMode) -> ApprovalMode:
    return shared.get()


def set_mode(shared: SharedMode, mode: ApprovalMode) -> None:
    shared.set(mode)


def cycle_mode(shared: SharedMode) -> ApprovalMode:
    return shared.cycle()


class ToolApproval(enum.Enum):
    """What the approval system decides for a tool call."""

    AUTO_APPROVE = "auto_approve"
    NEEDS_CONFIRMATION = "needs_confirmation"
    BLOCKED = "blocked"


# Tools that never modify anything; they run in every mode, including plan.
READ_ONLY_TOOLS = frozenset(
    {
        "Read",
        "List",
        "Grep",
        "Glob",
        "MemoryRead",
        "ListAgents",
        "ShareReasoning",
        "InvokeAgent",  # sub-agents inherit the parent's mode
        "WebFetch",  # GET-only
    }
)


def _bash_command(args: Mapping[str, Any] | None) -> str:
    args = args or {}
    value = args["command"] if "command" in args else args.get("cmd")
    return value if isinstance(value, str) else ""


def check_tool(
    tool_name: str,
    args: Mapping[str, Any] | None,
    mode: ApprovalMode,
    user_whitelist: Iterable[str] = (),
) -> ToolApproval:
    """Decide whether a tool call is auto-approved, needs confirmation, or is blocked."""
    if tool_name in READ_ONLY_TOOLS:
        return ToolApproval.AUTO_APPROVE

    if mode is ApprovalMode.YOLO:
        return ToolApproval.AUTO_APPROVE

    refused = (
        ToolApproval.BLOCKED if mode is ApprovalMode.PLAN
        else ToolApproval.NEEDS_CONFIRMATION
    )
    if tool_name == "Bash" and is_command_safe(_bash_command(args), user_whitelist):
        return ToolApproval.AUTO_APPROVE
    return refused


def settings_path() -> Path | None:
    """Location of the user settings file, or None if no home directory is known."""
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE")
    if home is None:
        return None
    return Path(home) / ".config" / "koda" / "settings.toml"


@dataclass
class Settings:
    """User settings stored as TOML (``~/.config/koda/settings.toml``)."""

    allowed_commands: list[str] = field(default_factory=list)
    path: Path | None = field(default=None, compare=False, repr=False)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> Settings:
        """Load settings, returning defaults when the file is missing or invalid."""
        target = Path(path) if path is not None else settings_path()
        if target is None:
            return cls()
        try:
            settings = cls.from_toml(target.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError, ValueError):
            settings = cls()
        settings.path = target
        return settings

    def save(self, path: str | os.PathLike[str] | None = None) -> None:
        """Write the settings to disk, creating parent directories."""
        if path is not None:
            target: Path | None = Path(path)
        else:
            target = self.path or settings_path()
        if target is None:
            raise OSError("Cannot determine config directory")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_toml(), encoding="utf-8")
        self.path = target

    def add_allowed_command(self, pattern: str) -> None:
        """Add a command pattern to the whitelist and persist it if it is new."""
        pattern = pattern.strip()
        if pattern not in self.allowed_commands:
            self.allowed_commands.append(pattern)
            self.save()

    def to_toml(self) -> str:
        return tomli_w.dumps({"approval": {"allowed_commands": list(self.allowed_commands)}})

    @classmethod
    def from_toml(cls, text: str) -> Settings:
        """Parse settings from TOML text; missing sections take their defaults."""
        data = tomllib.loads(text)
        approval = data.get("approval", {})
        if not isinstance(approval, dict):
            raise ValueError("'approval' must be a table")
        commands = approval.get("allowed_commands", [])
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            raise ValueError("'approval.allowed_commands' must be a list of strings")
        return cls(allowed_commands=list(commands))