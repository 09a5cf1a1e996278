"""Approval modes, shell command safety, configuration, context tracking and SQLite session storage for a terminal coding agent."""

__version__ = "0.1.5"

__all__ = ["approval", "config", "confirm", "context", "db", "db_schema", "shell_safety"]