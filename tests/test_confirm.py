from koda.confirm import Confirmation, ConfirmationKind, describe_action


def test_confirmation_variants():
    assert Confirmation.approved() != Confirmation.rejected()
    assert Confirmation.approved() != Confirmation.always_allow()
    assert Confirmation.rejected_with_feedback("fix it") == Confirmation.rejected_with_feedback(
        "fix it"
    )
    assert Confirmation.rejected_with_feedback("a") != Confirmation.rejected_with_feedback("b")


def test_feedback_is_kept():
    c = Confirmation.rejected_with_feedback("use a loop")
    assert c.kind is ConfirmationKind.REJECTED_WITH_FEEDBACK
    assert c.feedback == "use a loop"


def test_describe_bash():
    desc = describe_action("Bash", {"command": "cargo build"})
    assert desc == "\x1b[1mcargo build\x1b[0m"


def test_describe_bash_cmd_key_and_missing():
    assert "ls -la" in describe_action("Bash", {"cmd": "ls -la"})
    assert describe_action("Bash", {}) == "\x1b[1m?\x1b[0m"


def test_describe_delete():
    desc = describe_action("Delete", {"file_path": "old.rs"})
    assert desc == "Delete: \x1b[1mold.rs\x1b[0m"


def test_describe_delete_recursive():
    desc = describe_action("Delete", {"path": "build", "recursive": True})
    assert desc.startswith("Delete directory (recursive)")
    assert "build" in desc


def test_describe_edit():
    desc = describe_action("Edit", {"payload": {"file_path": "src/main.rs"}})
    assert "src/main.rs" in desc
    assert desc.startswith("Edit file:")


def test_describe_edit_without_payload():
    assert "lib.rs" in describe_action("Edit", {"path": "lib.rs"})


def test_describe_write():
    desc = describe_action("Write", {"path": "new.rs"})
    assert "Create file" in desc
    assert "new.rs" in desc


def test_describe_write_overwrite():
    desc = describe_action("Write", {"path": "x.rs", "overwrite": True})
    assert "Overwrite" in desc


def test_describe_web_fetch():
    desc = describe_action("WebFetch", {"url": "https://example.com"})
    assert desc == "Fetch URL: \x1b[1mhttps://example.com\x1b[0m"


def test_describe_unknown_tool():
    assert describe_action("MemoryWrite", {}) == "Execute: MemoryWrite"