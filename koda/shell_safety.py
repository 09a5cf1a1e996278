"""Bash command safety classification.

Commands are split into pipeline and chain segments; each segment is
checked against a built-in safe list and a user whitelist. Any dangerous
pattern anywhere in the command makes the whole command unsafe.
"""

from __future__ import annotations

from collections.abc import Iterable

__all__ = [
    "is_command_safe",
    "split_command_segments",
    "extract_whitelist_pattern",
]

# Entries ending with a space must match as a literal prefix; others must
# match the whole segment or be followed by a space or tab.
_SAFE_PREFIXES: tuple[str, ...] = (
    # Read-only file inspection
    "cat ", "head ", "tail ", "less ", "more ", "wc ", "file ", "stat ", "bat ",
    # Directory listing
    "ls", "tree", "du ", "df", "pwd",
    # Search
    "grep ", "rg ", "ag ", "find ", "fd ", "fzf",
    # System info
    "echo ", "printf ", "whoami", "hostname", "uname", "date", "which ",
    "type ", "command -v ", "env", "printenv",
    # Version checks
    "rustc --version", "node --version", "npm --version",
    "python --version", "python3 --version",
    # Rust dev workflow
    "cargo check", "cargo build", "cargo test", "cargo clippy", "cargo fmt",
    "cargo bench", "cargo doc", "cargo run",
    # Node dev workflow
    "npm test", "npm run ", "npm install", "npm ci", "npx ", "yarn ", "pnpm ",
    # Python dev workflow
    "python -m pytest", "python -m mypy", "python -m black", "python -m ruff",
    "python -c ", "python3 -m pytest", "pytest", "mypy ", "black ", "ruff ",
    "uv ",
    # Go dev workflow
    "go build", "go test", "go vet", "go fmt",
    # Git read-only
    "git status", "git log", "git diff", "git branch", "git show",
    "git remote", "git stash list", "git tag", "git describe",
    "git rev-parse", "git ls-files", "git blame",
    # Git common writes (force pushes are caught by the dangerous patterns)
    "git add", "git commit", "git stash", "git checkout", "git switch",
    "git fetch", "git pull", "git merge", "git push",
    # Docker read-only
    "docker ps", "docker images", "docker logs", "docker compose ps",
    "docker compose logs",
    # Misc
    "make", "cmake ", "just ", "tput ", "true", "false", "test ", "[ ",
    "sort ", "uniq ", "cut ", "awk ", "sed ", "tr ", "diff ", "jq ", "yq ",
    "xargs ", "dirname ", "basename ", "realpath ", "readlink ",
)

# Checked against the full command; any hit overrides the safe list.
_DANGEROUS_PATTERNS: tuple[str, ...] = (
    "rm ", "rm\t", "rmdir ",
    "sudo ", "su ",
    "dd ", "mkfs", "fdisk",
    "chmod ", "chown ",
    "| sh", "| bash", "| zsh",
    "$(", "`", "eval ", "eval\t",
    "> /dev/",
    "kill ", "killall ", "pkill ",
    "git push -f", "git push --force", "git reset --hard", "git clean -fd",
    "reboot", "shutdown", "halt",
    "npm publish", "cargo publish",
)

_REDIRECTIONS = ("2>&1", "2>/dev/null", ">/dev/null", "</dev/null")

_COMPOUND_COMMANDS = frozenset(
    {"git", "cargo", "npm", "npx", "yarn", "pnpm", "docker", "kubectl", "go"}
)


def is_command_safe(command: str, user_whitelist: Iterable[str] = ()) -> bool:
    """Return True if every segment of ``command`` may run without confirmation."""
    trimmed = command.strip()
    if not trimmed:
        return True
    if any(pat in trimmed for pat in _DANGEROUS_PATTERNS):
        return False
    whitelist = list(user_whitelist)
    return all(
        _is_segment_safe(seg, whitelist) for seg in split_command_segments(trimmed)
    )


def _is_segment_safe(segment: str, user_whitelist: list[str]) -> bool:
    seg = _strip_redirections(_strip_env_vars(segment.strip())).strip()
    if not seg:
        return True

    for prefix in _SAFE_PREFIXES:
        if prefix.endswith(" "):
            if seg.startswith(prefix):
                return True
        elif seg == prefix or seg.startswith((prefix + " ", prefix + "\t")):
            return True

    for allowed in user_whitelist:
        allowed = allowed.strip()
        if allowed.endswith("*"):
            if seg.startswith(allowed[:-1]):
                return True
        elif seg == allowed or seg.startswith(allowed + " "):
            return True

    return False


def split_command_segments(command: str) -> list[str]:
    """Split a command on ``|``, ``&&``, ``||`` and ``;`` outside of quotes."""
    segments: list[str] = []
    start = 0
    i = 0
    length = len(command)
    in_single = in_double = False

    while i < length:
        c = command[i]
        if c == "'" and not in_double:
            in_single = not in_single
        elif c == '"' and not in_single:
            in_double = not in_double
        elif not in_single and not in_double:
            nxt = command[i + 1] if i + 1 < length else ""
            if (c == "|" and nxt == "|") or (c == "&" and nxt == "&"):
                segments.append(command[start:i])
                i += 2
                start = i
                continue
            if c in "|;":
                segments.append(command[start:i])
                i += 1
                start = i
                continue
        i += 1

    if start < length:
        segments.append(command[start:])
    return segments


def _strip_env_vars(segment: str) -> str:
    """Drop leading ``NAME=value`` assignments from a segment."""
    rest = segment
    while True:
        trimmed = rest.lstrip()
        eq_pos = trimmed.find("=")
        if eq_pos > 0:
            name = trimmed[:eq_pos]
            if all((ch.isascii() and ch.isalnum()) or ch == "_" for ch in name):
                after_eq = trimmed[eq_pos + 1 :]
                space_pos = _find_unquoted_space(after_eq)
                if space_pos is not None:
                    rest = after_eq[space_pos:]
                    continue
        return trimmed


def _strip_redirections(segment: str) -> str:
    for pat in _REDIRECTIONS:
        segment = segment.replace(pat, "")
    return segment


def _find_unquoted_space(text: str) -> int | None:
    in_single = in_double = False
    for i, c in enumerate(text):
        if c == "'" and not in_double:
            in_single = not in_single
        elif c == '"' and not in_single:
            in_double = not in_double
        elif c in " \t" and not in_single and not in_double:
            return i
    return None


def extract_whitelist_pattern(command: str) -> str:
    """Return the command prefix (1-3 non-flag words) to use as a whitelist entry."""
    segments = split_command_segments(command.strip())
    first = segments[0].strip() if segments else ""
    cleaned = _strip_redirections(_strip_env_vars(first))

    all_words = cleaned.split()
    if (
        len(all_words) >= 3
        and all_words[0] in ("python", "python3")
        and all_words[1] == "-m"
    ):
        return " ".join(all_words[:3])

    words = [w for w in all_words if not w.startswith("-") and "=" not in w][:3]
    if len(words) >= 2 and words[0] in _COMPOUND_COMMANDS:
        return " ".join(words[:2])
    return words[0] if words else ""