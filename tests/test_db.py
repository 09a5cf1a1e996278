import sqlite3

import pytest

from koda.db import Database, Role, TokenUsage
from koda.db_schema import migrate


@pytest.fixture
def db(tmp_path):
    database = Database.open(tmp_path / "test.db", tmp_path)
    yield database
    database.close()


def test_create_session(db, tmp_path):
    session_id = db.create_session("default", tmp_path)
    assert len(session_id) == 36


def test_insert_and_load_messages(db, tmp_path):
    session = db.create_session("default", tmp_path)
    db.insert_message(session, Role.USER, "hello")
    db.insert_message(session, Role.ASSISTANT, "hi there!")
    msgs = db.load_context(session, 100_000)
    assert [m.role for m in msgs] == ["user", "assistant"]
    assert msgs[0].content == "hello"


def test_sliding_window_truncates_old_messages(db, tmp_path):
    session = db.create_session("default", tmp_path)
    for i in range(20):
        db.insert_message(
            session, Role.USER, f"Message number {i} with some padding text to take up tokens"
        )
    msgs = db.load_context(session, 50)
    assert 0 < len(msgs) < 20
    assert "19" in msgs[-1].content


def test_old_tool_output_is_truncated(db, tmp_path):
    session = db.create_session("default", tmp_path)
    db.insert_message(session, Role.TOOL, "x" * 600, tool_call_id="t1")
    for i in range(4):
        db.insert_message(session, Role.USER, f"later {i}")
    msgs = db.load_context(session, 100_000)
    tool = msgs[0]
    assert tool.content.startswith("x" * 300 + "\n\n")
    assert "truncated — 600 chars" in tool.content


def test_recent_tool_output_kept(db, tmp_path):
    session = db.create_session("default", tmp_path)
    db.insert_message(session, Role.TOOL, "y" * 600, tool_call_id="t1")
    msgs = db.load_context(session, 100_000)
    assert msgs[0].content == "y" * 600


def test_sessions_are_isolated(db, tmp_path):
    s1 = db.create_session("agent-a", tmp_path)
    s2 = db.create_session("agent-b", tmp_path)
    db.insert_message(s1, Role.USER, "session 1")
    db.insert_message(s2, Role.USER, "session 2")
    msgs1 = db.load_context(s1, 100_000)
    msgs2 = db.load_context(s2, 100_000)
    assert [m.content for m in msgs1] == ["session 1"]
    assert [m.content for m in msgs2] == ["session 2"]


def test_session_token_usage(db, tmp_path):
    session = db.create_session("default", tmp_path)
    db.insert_message(session, Role.USER, "q1")
    db.insert_message(
        session, Role.ASSISTANT, "a1", usage=TokenUsage(prompt_tokens=100, completion_tokens=50)
    )
    db.insert_message(session, Role.USER, "q2")
    db.insert_message(
        session, Role.ASSISTANT, "a2", usage=TokenUsage(prompt_tokens=200, completion_tokens=80)
    )
    usage = db.session_token_usage(session)
    assert usage.prompt_tokens == 300
    assert usage.completion_tokens == 130
    assert usage.api_calls == 2


def test_token_usage_empty_session(db, tmp_path):
    session = db.create_session("default", tmp_path)
    usage = db.session_token_usage(session)
    assert (usage.prompt_tokens, usage.completion_tokens, usage.api_calls) == (0, 0, 0)


def test_list_sessions(db, tmp_path):
    for name in ("agent-a", "agent-b", "agent-c"):
        db.create_session(name, tmp_path)
    sessions = db.list_sessions(10, tmp_path)
    assert len(sessions) == 3
    assert sessions[0].agent_name == "agent-c"


def test_list_sessions_counts_messages_and_tokens(db, tmp_path):
    session = db.create_session("default", tmp_path)
    db.insert_message(session, Role.USER, "q")
    db.insert_message(
        session, Role.ASSISTANT, "a", usage=TokenUsage(prompt_tokens=1500, completion_tokens=500)
    )
    (info,) = db.list_sessions(10, tmp_path)
    assert info.message_count == 2
    assert info.total_tokens == 2000


def test_list_sessions_filters_by_project(db, tmp_path):
    db.create_session("mine", tmp_path)
    db.create_session("other", tmp_path / "elsewhere")
    assert [s.agent_name for s in db.list_sessions(10, tmp_path)] == ["mine"]


def test_delete_session(db, tmp_path):
    s1 = db.create_session("default", tmp_path)
    db.insert_message(s1, Role.USER, "hello")
    assert db.delete_session(s1) is True
    assert db.list_sessions(10, tmp_path) == []
    assert db.delete_session(s1) is False


def test_compact_session(db, tmp_path):
    session = db.create_session("default", tmp_path)
    for i in range(10):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        db.insert_message(session, role, f"msg {i}")

    assert db.compact_session(session, "Summary of conversation", 2) == 8

    msgs = db.load_context(session, 100_000)
    assert len(msgs) == 4
    system_msgs = [m for m in msgs if m.role == "system"]
    assert len(system_msgs) == 1
    assert "Summary of conversation" in system_msgs[0].content
    assert any(
        "compacted" in (m.content or "") for m in msgs if m.role == "assistant"
    )
    preserved = [m for m in msgs if (m.content or "").startswith("msg ")]
    assert [m.content for m in preserved] == ["msg 8", "msg 9"]


def test_compact_preserves_zero(db, tmp_path):
    session = db.create_session("default", tmp_path)
    for i in range(6):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        db.insert_message(session, role, f"msg {i}")
    assert db.compact_session(session, "Full summary", 0) == 6
    msgs = db.load_context(session, 100_000)
    assert len(msgs) == 2
    assert sum(m.role == "system" for m in msgs) == 1
    assert sum(m.role == "assistant" for m in msgs) == 1


def test_compact_empty_session(db, tmp_path):
    session = db.create_session("default", tmp_path)
    assert db.compact_session(session, "nothing", 2) == 0
    assert db.load_context(session, 100_000) == []


def test_has_pending_tool_calls(db, tmp_path):
    session = db.create_session("default", tmp_path)
    assert db.has_pending_tool_calls(session) is False

    db.insert_message(session, Role.USER, "hello")
    assert db.has_pending_tool_calls(session) is False

    db.insert_message(
        session, Role.ASSISTANT, None, '[{"id":"tc1","name":"Read","arguments":"{}"}]'
    )
    assert db.has_pending_tool_calls(session) is True

    db.insert_message(session, Role.TOOL, "file contents", tool_call_id="tc1")
    assert db.has_pending_tool_calls(session) is False


def test_session_metadata_and_todo(db, tmp_path):
    session = db.create_session("default", tmp_path)
    assert db.get_todo(session) is None
    assert db.get_metadata(session, "anything") is None

    db.set_todo(session, "- [ ] Task 1\n- [x] Task 2")
    todo = db.get_todo(session)
    assert "Task 1" in todo and "Task 2" in todo

    db.set_todo(session, "- [x] Task 1\n- [x] Task 2")
    assert db.get_todo(session).startswith("- [x] Task 1")

    db.set_metadata(session, "custom_key", "custom_value")
    assert db.get_metadata(session, "custom_key") == "custom_value"


def test_last_assistant_message(db, tmp_path):
    session = db.create_session("default", tmp_path)
    assert db.last_assistant_message(session) == ""
    db.insert_message(session, Role.USER, "question 1")
    db.insert_message(session, Role.ASSISTANT, "answer 1")
    db.insert_message(session, Role.USER, "question 2")
    db.insert_message(session, Role.ASSISTANT, "answer 2")
    assert db.last_assistant_message(session) == "answer 2"


def test_last_assistant_message_skips_tool_calls(db, tmp_path):
    session = db.create_session("default", tmp_path)
    db.insert_message(session, Role.USER, "do something")
    db.insert_message(session, Role.ASSISTANT, None, '[{"id":"1"}]')
    db.insert_message(session, Role.TOOL, "tool result", tool_call_id="1")
    db.insert_message(session, Role.ASSISTANT, "Done!")
    assert db.last_assistant_message(session) == "Done!"


def test_recent_user_messages(db, tmp_path):
    session = db.create_session("default", tmp_path)
    for text in ("first", "", "second", "third"):
        db.insert_message(session, Role.USER, text)
    db.insert_message(session, Role.ASSISTANT, "reply")
    assert db.recent_user_messages(2) == ["third", "second"]
    assert db.recent_user_messages(10) == ["third", "second", "first"]


def test_insert_message_accepts_role_string(db, tmp_path):
    session = db.create_session("default", tmp_path)
    db.insert_message(session, "assistant", "text")
    assert db.load_context(session, 1000)[0].role == "assistant"


def test_insert_message_rejects_unknown_role(db, tmp_path):
    session = db.create_session("default", tmp_path)
    with pytest.raises(ValueError):
        db.insert_message(session, "narrator", "text")


def test_open_migrates_legacy_database(tmp_path):
    legacy_path = tmp_path / ".koda.db"
    with sqlite3.connect(legacy_path) as legacy:
        migrate(legacy)
        legacy.execute(
            "INSERT INTO sessions (id, agent_name) VALUES ('legacy-session-0001', 'old')"
        )
        legacy.execute(
            "INSERT INTO messages (session_id, role, content) "
            "VALUES ('legacy-session-0001', 'user', 'from the past')"
        )
    legacy.close()

    with Database.open(tmp_path / "central.db", tmp_path) as database:
        sessions = database.list_sessions(10, tmp_path)
        assert [s.id for s in sessions] == ["legacy-session-0001"]
        msgs = database.load_context("legacy-session-0001", 1000)
        assert [m.content for m in msgs] == ["from the past"]
    assert not legacy_path.exists()


def test_init_uses_config_dir_and_moves_old_db(tmp_path, monkeypatch):
    config_home = tmp_path / "cfg"
    old_dir = config_home / "koda"
    old_dir.mkdir(parents=True)
    old_db = old_dir / "koda.db"
    with sqlite3.connect(old_db) as conn:
        migrate(conn)
    conn.close()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))

    project = tmp_path / "project"
    project.mkdir()
    with Database.init(project) as database:
        session = database.create_session("default", project)
        assert [s.id for s in database.list_sessions(5, project)] == [session]

    assert (old_dir / "db" / "koda.db").exists()
    assert not old_db.exists()