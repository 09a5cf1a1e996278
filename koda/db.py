"""SQLite storage for sessions, messages and per-session metadata.

Uses WAL mode for concurrent access and an index for fast session lookups.
"""

from __future__ import annotations

import enum
import logging
import os
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

from koda.db_schema import config_dir, db_dir, migrate, migrate_legacy

__all__ = [
    "Role",
    "TokenUsage",
    "Message",
    "SessionUsage",
    "SessionInfo",
    "Database",
]

_log = logging.getLogger(__name__)

# Messages this recent keep their full tool output in the context window.
_RECENCY_THRESHOLD = 4
_TOOL_OUTPUT_LIMIT = 500
_TOOL_OUTPUT_KEEP = 300
_CONTEXT_ROW_LIMIT = 200
_DELETE_BATCH = 500

_CONTINUATION = (
    "Your context was compacted. The previous message contains a summary of our "
    "earlier conversation. Do not mention the summary or that compaction occurred. "
    "Continue the conversation naturally based on the summarized context."
)


class Role(str, enum.Enum):
    """Message roles in the conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported for one model call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    thinking_tokens: int = 0


@dataclass
class Message:
    """A stored message row."""

    id: int
    session_id: str
    role: str
    content: str | None = None
    tool_calls: str | None = None
    tool_call_id: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    cache_read_tokens: int | None = None
    cache_creation_tokens: int | None = None
    thinking_tokens: int | None = None

    def estimated_tokens(self) -> int:
        """Rough estimate: about four bytes per token plus fixed overhead."""
        content_len = len(self.content.encode("utf-8")) if self.content else 0
        tool_len = len(self.tool_calls.encode("utf-8")) if self.tool_calls else 0
        return (content_len + tool_len) // 4 + 10


@dataclass(frozen=True)
class SessionUsage:
    """Token usage totals for a session."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    thinking_tokens: int = 0
    api_calls: int = 0


@dataclass(frozen=True)
class SessionInfo:
    """Summary of a session for listings."""

    id: str
    agent_name: str
    created_at: str
    message_count: int
    total_tokens: int


def _truncate_tool_output(content: str) -> str:
    raw = content.encode("utf-8")
    if len(raw) <= _TOOL_OUTPUT_LIMIT:
        return content
    head = raw[:_TOOL_OUTPUT_KEEP].decode("utf-8", errors="ignore")
    return (
        f"{head}\n\n[Previous tool output truncated — {len(raw)} chars. "
        "Re-read if needed.]"
    )


class Database:
    """A connection to the session database."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.RLock()

    # ── Lifecycle ─────────────────────────────────────────────

    @classmethod
    def open(
        cls,
        db_path: str | os.PathLike[str],
        project_root: str | os.PathLike[str],
    ) -> Database:
        """Open (creating if needed) a database at ``db_path`` and apply the schema."""
        path = Path(db_path)
        conn = sqlite3.connect(os.fspath(path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        migrate(conn)

        legacy = Path(project_root) / ".koda.db"
        if legacy.exists():
            try:
                migrate_legacy(conn, legacy, project_root)
            except (sqlite3.Error, OSError) as exc:
                conn.rollback()
                _log.warning("Failed to migrate legacy DB %s: %s", legacy, exc)

        _log.info("Database initialized at %s", path)
        return cls(conn)

    @classmethod
    def init(cls, project_root: str | os.PathLike[str]) -> Database:
        """Open the central database at ``<config dir>/db/koda.db``."""
        directory = db_dir()
        directory.mkdir(parents=True, exist_ok=True)
        db_path = directory / "koda.db"

        old_dir = config_dir()
        old_db = old_dir / "koda.db"
        if old_db.exists() and not db_path.exists():
            _log.info("Migrating koda.db to new db/ directory")
            try:
                old_db.rename(db_path)
            except OSError as exc:
                _log.warning("Failed to move old koda.db to db/ folder: %s", exc)
            for suffix in ("-wal", "-shm"):
                old_file = old_dir / f"koda.db{suffix}"
                if old_file.exists():
                    try:
                        old_file.rename(directory / f"koda.db{suffix}")
                    except OSError:
                        pass

        return cls.open(db_path, project_root)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ── Sessions and messages ─────────────────────────────────

    def create_session(
        self, agent_name: str, project_root: str | os.PathLike[str]
    ) -> str:
        """Create a new session and return its generated id."""
        session_id = str(uuid.uuid4())
        root = os.fspath(project_root)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO sessions (id, agent_name, project_root) VALUES (?, ?, ?)",
                (session_id, agent_name, root),
            )
        _log.info("Created session: %s (project: %s)", session_id, root)
        return session_id

    def insert_message(
        self,
        session_id: str,
        role: Role | str,
        content: str | None = None,
        tool_calls: str | None = None,
        tool_call_id: str | None = None,
        usage: TokenUsage | None = None,
    ) -> int:
        """Append a message to the conversation log and return its row id."""
        role = Role(role)
        counts: tuple[int | None, ...] = (
            (
                usage.prompt_tokens,
                usage.completion_tokens,
                usage.cache_read_tokens,
                usage.cache_creation_tokens,
                usage.thinking_tokens,
            )
            if usage is not None
            else (None,) * 5
        )
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "INSERT INTO messages (session_id, role, content, tool_calls, "
                "tool_call_id, prompt_tokens, completion_tokens, cache_read_tokens, "
                "cache_creation_tokens, thinking_tokens) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (session_id, role.value, content, tool_calls, tool_call_id, *counts),
            )
            return int(cursor.lastrowid)

    def load_context(self, session_id: str, max_tokens: int) -> list[Message]:
        """Load the most recent messages that fit in ``max_tokens``, oldest first.

        Tool output older than the most recent few messages is shortened.
        """
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, session_id, role, content, tool_calls, tool_call_id, "
                "prompt_tokens, completion_tokens, cache_read_tokens, "
                "cache_creation_tokens, thinking_tokens "
                "FROM messages WHERE session_id = ? ORDER BY id DESC LIMIT ?",
                (session_id, _CONTEXT_ROW_LIMIT),
            ).fetchall()

        budget = max_tokens
        window: list[Message] = []
        for idx, row in enumerate(rows):
            msg = Message(*row)
            if idx >= _RECENCY_THRESHOLD and msg.role == Role.TOOL.value and msg.content:
                msg.content = _truncate_tool_output(msg.content)
            estimated = msg.estimated_tokens()
            if estimated > budget:
                break
            budget -= estimated
            window.append(msg)

        window.reverse()
        return window

    def recent_user_messages(self, limit: int) -> list[str]:
        """Up to ``limit`` non-empty user messages across all sessions, newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT content FROM messages "
                "WHERE role = 'user' AND content IS NOT NULL AND content != '' "
                "ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [content for (content,) in rows]

    def session_token_usage(self, session_id: str) -> SessionUsage:
        """Token usage totals for the messages of a session."""
        with self._lock:
            row = self._conn.execute(
                "SELECT COALESCE(SUM(prompt_tokens), 0), "
                "COALESCE(SUM(completion_tokens), 0), "
                "COALESCE(SUM(cache_read_tokens), 0), "
                "COALESCE(SUM(cache_creation_tokens), 0), "
                "COALESCE(SUM(thinking_tokens), 0), COUNT(*) "
                "FROM messages WHERE session_id = ? "
                "AND (prompt_tokens IS NOT NULL OR completion_tokens IS NOT NULL)",
                (session_id,),
            ).fetchone()
        return SessionUsage(*row)

    def list_sessions(
        self, limit: int, project_root: str | os.PathLike[str]
    ) -> list[SessionInfo]:
        """Recent sessions of a project (and those with no project), newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT s.id, s.agent_name, s.created_at, COUNT(m.id), "
                "COALESCE(SUM(m.prompt_tokens), 0) + COALESCE(SUM(m.completion_tokens), 0) "
                "FROM sessions s LEFT JOIN messages m ON m.session_id = s.id "
                "WHERE s.project_root = ? OR s.project_root IS NULL "
                "GROUP BY s.id ORDER BY s.created_at DESC, s.rowid DESC LIMIT ?",
                (os.fspath(project_root), limit),
            ).fetchall()
        return [SessionInfo(*row) for row in rows]

    def last_assistant_message(self, session_id: str) -> str:
        """The last assistant text response, or an empty string if there is none."""
        with self._lock:
            row = self._conn.execute(
                "SELECT content FROM messages WHERE session_id = ? "
                "AND role = 'assistant' AND content IS NOT NULL "
                "ORDER BY id DESC LIMIT 1",
                (session_id,),
            ).fetchone()
        return row[0] if row else ""

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and its messages; False if the session did not exist."""
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            cursor = self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            return cursor.rowcount > 0

    def compact_session(self, session_id: str, summary: str, preserve_count: int) -> int:
        """Replace all but the last ``preserve_count`` messages with a summary.

        Inserts the summary as a system message and a continuation hint as an
        assistant message. Returns the number of messages deleted.
        """
        with self._lock, self._conn:
            ids = [
                row_id
                for (row_id,) in self._conn.execute(
                    "SELECT id FROM messages WHERE session_id = ? ORDER BY id ASC",
                    (session_id,),
                )
            ]
            keep_from = max(len(ids) - preserve_count, 0)
            to_delete = ids[:keep_from]
            if not to_delete:
                return 0

            for start in range(0, len(to_delete), _DELETE_BATCH):
                chunk = to_delete[start : start + _DELETE_BATCH]
                placeholders = ",".join("?" * len(chunk))
                self._conn.execute(
                    f"DELETE FROM messages WHERE session_id = ? AND id IN ({placeholders})",
                    (session_id, *chunk),
                )

            insert = (
                "INSERT INTO messages (session_id, role, content, tool_calls, "
                "tool_call_id, prompt_tokens, completion_tokens) "
                "VALUES (?, ?, ?, NULL, NULL, NULL, NULL)"
            )
            self._conn.execute(insert, (session_id, Role.SYSTEM.value, summary))
            self._conn.execute(insert, (session_id, Role.ASSISTANT.value, _CONTINUATION))
            return len(to_delete)

    def has_pending_tool_calls(self, session_id: str) -> bool:
        """True if the last message is an assistant tool call with no response yet."""
        with self._lock:
            row = self._conn.execute(
                "SELECT role, tool_calls FROM messages WHERE session_id = ? "
                "ORDER BY id DESC LIMIT 1",
                (session_id,),
            ).fetchone()
        return row is not None and row[0] == Role.ASSISTANT.value and row[1] is not None

    # ── Metadata ──────────────────────────────────────────────

    def get_metadata(self, session_id: str, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM session_metadata WHERE session_id = ? AND key = ?",
                (session_id, key),
            ).fetchone()
        return row[0] if row else None

    def set_metadata(self, session_id: str, key: str, value: str) -> None:
        """Insert or replace a metadata value."""
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO session_metadata (session_id, key, value, updated_at) "
                "VALUES (?, ?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(session_id, key) DO UPDATE SET "
                "value = excluded.value, updated_at = excluded.updated_at",
                (session_id, key, value),
            )

    def get_todo(self, session_id: str) -> str | None:
        return self.get_metadata(session_id, "todo")

    def set_todo(self, session_id: str, content: str) -> None:
        self.set_metadata(session_id, "todo", content)