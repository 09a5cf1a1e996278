# koda

Building blocks for a terminal coding agent that talks to an LLM and runs
tools on a project. The package covers the parts that decide, configure and
remember.

## Modules

- **`koda.approval`**: `ApprovalMode` (`PLAN`, `NORMAL`, `YOLO`) with
  `next()`, `label()`, `description()`, `from_str()` (accepts `plan`,
  `normal`, `yolo`, `auto`, `accept`, any case) and `from_int()` (unknown
  numbers fall back to `NORMAL`). `SharedMode` holds a mode behind a lock;
  `new_shared_mode`, `read_mode`, `set_mode` and `cycle_mode` work on it.
  `check_tool()` returns a `ToolApproval`: read-only tools (`READ_ONLY_TOOLS`)
  always auto-approve; in `YOLO` everything does; in `PLAN` only safe `Bash`
  commands run and the rest is `BLOCKED`; in `NORMAL` safe `Bash` commands
  run and the rest `NEEDS_CONFIRMATION`. `Settings` keeps an allow-list of
  shell commands as TOML, by default in `~/.config/koda/settings.toml`
  (`settings_path()`), with `load()`, `save()`, `add_allowed_command()`,
  `to_toml()` and `from_toml()`.
- **`koda.shell_safety`**: `is_command_safe()` rejects commands containing
  dangerous patterns (`rm `, `sudo `, `$(`, `| sh`, `git push --force`, …),
  then splits pipelines and chains with `split_command_segments()` (quotes
  respected), strips leading `NAME=value` assignments and common
  redirections, and checks every segment against a built-in safe list and
  the user's allow-list (entries ending in `*` match as prefixes).
  `extract_whitelist_pattern()` turns a command into the pattern to allow,
  e.g. `"cargo test --release 2>&1 | tail -5"` becomes `"cargo test"`.
- **`koda.confirm`**: `Confirmation` values (`approved()`, `rejected()`,
  `always_allow()`, `rejected_with_feedback(text)`) with a
  `ConfirmationKind`, and `describe_action()` for a readable, ANSI-bold
  summary of a pending `Bash`, `Delete`, `Write`, `Edit` or `WebFetch` call.
- **`koda.config`**: `ProviderType` detection with `from_url_or_name()`, plus
  each provider's `default_base_url()`, `default_model()`, `env_key_name()`
  and `requires_api_key()`. `AgentConfig.from_json()` / `from_dict()` parse
  agent definitions. `KodaConfig.load(project_root, agent_name)` reads
  `<agents dir>/<agent_name>.json`, where the agents directory is the
  project's `agents/` or else `~/.config/koda/agents/` (`find_agents_dir()`,
  `user_agents_dir()`); local providers without a `base_url` use
  `KODA_LOCAL_URL` when it is set. `KodaConfig.for_provider()` builds a
  minimal configuration, and `with_overrides()` / `with_model_overrides()`
  return adjusted copies. Problems raise `ConfigError`.
- **`koda.context`**: `ContextTracker` and the process-wide `update()`,
  `get()`, `percentage()` and `format_footer()`, which formats usage such as
  `context: 4.1k/128k (3%)`; `format_k()` formats a single count.
- **`koda.db`**: `Database`, a SQLite store in WAL mode for sessions,
  messages (`Role`, `Message`, `TokenUsage`), token totals (`SessionUsage`),
  session listings (`SessionInfo`) and per-session metadata (`get_metadata`,
  `set_metadata`, `get_todo`, `set_todo`). `load_context()` returns the
  newest messages that fit a token budget, oldest first, shortening old tool
  output; `compact_session()` replaces all but the last few messages with a
  system summary and an assistant continuation hint. `Database.init()` opens
  `<config dir>/db/koda.db`; `Database.open()` opens any path and imports a
  legacy `.koda.db` found in the project root. A `Database` is a context
  manager that closes on exit.
- **`koda.db_schema`**: `config_dir()` (`$XDG_CONFIG_HOME/koda` or
  `~/.config/koda`), `db_dir()`, the idempotent `migrate()` and
  `migrate_legacy()`.

## Install

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

```python
from koda.approval import ApprovalMode, ToolApproval, check_tool
from koda.shell_safety import is_command_safe

assert is_command_safe("git log --oneline | head -20", [])
assert not is_command_safe("cargo build && rm -rf target/", [])

decision = check_tool("Bash", {"command": "rm -rf target/"}, ApprovalMode.NORMAL, [])
assert decision is ToolApproval.NEEDS_CONFIRMATION
```

```python
from pathlib import Path
from koda.db import Database, Role

with Database.open(Path("koda.db"), Path.cwd()) as db:
    session = db.create_session("default", Path.cwd())
    db.insert_message(session, Role.USER, "hello", None, None, None)
    for message in db.load_context(session, 32_000):
        print(message.role, message.content)
```

```python
from koda.config import ProviderType

provider = ProviderType.from_url_or_name("https://api.anthropic.com/v1", None)
print(provider, provider.default_model(), provider.env_key_name())
```

## What the package does not do

- There is no `koda` command and no interactive prompt; the package is a
  library only.
- It does not talk to any LLM: there are no provider clients and no
  inference loop. `ProviderType` only names providers and their defaults.
- It does not show confirmation prompts; `koda.confirm` only describes
  actions and represents the user's answer.
- It ships no agent definitions; `KodaConfig.load()` reads agent JSON files
  from disk and raises `ConfigError` when the file is missing.
- It does not run tools or shell commands; it only classifies them.