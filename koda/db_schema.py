"""Database locations, schema migrations and legacy-database import."""

from __future__ import annotations

import contextlib
import logging
import os
import sqlite3
from pathlib import Path

__all__ = ["config_dir", "db_dir", "migrate", "migrate_legacy"]

_log = logging.getLogger(__name__)

_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        agent_name TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT,
        tool_calls TEXT,
        tool_call_id TEXT,
        prompt_tokens INTEGER,
        completion_tokens INTEGER,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(session_id) REFERENCES sessions(id)
    )""",
    "CREATE INDEX IF NOT EXISTS idx_messages_session_id ON messages(session_id)",
)

_METADATA_TABLE = """CREATE TABLE IF NOT EXISTS session_metadata (
    session_id TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY(session_id, key),
    FOREIGN KEY(session_id) REFERENCES sessions(id)
)"""

_TOKEN_COLUMNS = ("cache_read_tokens", "cache_creation_tokens", "thinking_tokens")


def config_dir() -> Path:
    """The koda configuration directory (``$XDG_CONFIG_HOME/koda`` or ``~/.config/koda``)."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg is not None:
        return Path(xdg) / "koda"
    home = os.environ.get("HOME")
    if home is not None:
        return Path(home) / ".config" / "koda"
    raise RuntimeError("Cannot determine config directory (set HOME or XDG_CONFIG_HOME)")


def db_dir() -> Path:
    """The central database directory (``<config dir>/db``)."""
    return config_dir() / "db"


def _add_column(conn: sqlite3.Connection, table: str, column: str, kind: str) -> None:
    """Add a column, tolerating one that already exists."""
    try:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {kind}")
    except sqlite3.OperationalError as exc:
        if "duplicate column name" not in str(exc):
            raise


def migrate(conn: sqlite3.Connection) -> None:
    """Apply the schema to ``conn``; safe to run any number of times."""
    for statement in _SCHEMA:
        conn.execute(statement)
    for column in _TOKEN_COLUMNS:
        _add_column(conn, "messages", column, "INTEGER")
    conn.execute(_METADATA_TABLE)
    _add_column(conn, "sessions", "project_root", "TEXT")
    conn.commit()


@contextlib.contextmanager
def _attached(conn: sqlite3.Connection, path: Path):
    conn.commit()
    conn.execute("ATTACH DATABASE ? AS legacy", (os.fspath(path),))
    try:
        yield
        conn.commit()
    finally:
        conn.execute("DETACH DATABASE legacy")


def migrate_legacy(
    conn: sqlite3.Connection,
    legacy_path: str | os.PathLike[str],
    project_root: str | os.PathLike[str],
) -> int:
    """Copy a per-project legacy database into ``conn`` and delete the legacy files.

    Returns the number of sessions found in the legacy database.
    """
    legacy = Path(legacy_path)
    root = os.fspath(project_root)
    uri = f"{legacy.resolve().as_uri()}?mode=ro"

    with contextlib.closing(sqlite3.connect(uri, uri=True)) as old:
        sessions = old.execute("SELECT id, agent_name, created_at FROM sessions").fetchall()
        (message_count,) = old.execute("SELECT COUNT(*) FROM messages").fetchone()
        has_metadata = (
            old.execute(
                "SELECT name FROM sqlite_master "
                "WHERE type='table' AND name='session_metadata'"
            ).fetchone()
            is not None
        )

    for session_id, agent_name, created_at in sessions:
        with contextlib.suppress(sqlite3.Error):
            conn.execute(
                "INSERT OR IGNORE INTO sessions (id, agent_name, created_at, project_root) "
                "VALUES (?, ?, ?, ?)",
                (session_id, agent_name, created_at, root),
            )
    conn.commit()

    if message_count > 0:
        with _attached(conn, legacy):
            conn.execute(
                """INSERT OR IGNORE INTO messages
                   (id, session_id, role, content, tool_calls, tool_call_id,
                    prompt_tokens, completion_tokens, created_at)
                   SELECT id, session_id, role, content, tool_calls, tool_call_id,
                          prompt_tokens, completion_tokens, created_at
                   FROM legacy.messages"""
            )

    if has_metadata:
        with _attached(conn, legacy):
            with contextlib.suppress(sqlite3.Error):
                conn.execute(
                    """INSERT OR IGNORE INTO session_metadata
                       (session_id, key, value, updated_at)
                       SELECT session_id, key, value, updated_at
                       FROM legacy.session_metadata"""
                )

    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(OSError):
            Path(f"{legacy}{suffix}").unlink()

    _log.info("Migrated %d sessions from legacy DB %s", len(sessions), legacy)
    return len(sessions)