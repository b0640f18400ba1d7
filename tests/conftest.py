"""Shared test fixtures for convx."""

import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from convx.models import ScanOptions, SizeMode


def ms(dt: datetime) -> int:
    """Epoch milliseconds of a datetime."""
    return int(dt.timestamp() * 1000)


def write_jsonl(path: Path, entries: list[dict | str]) -> Path:
    """Write entries as JSON lines; strings are written verbatim."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [e if isinstance(e, str) else json.dumps(e) for e in entries]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_json(path: Path, data: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def set_mtime(path: Path, dt: datetime) -> None:
    ts = dt.timestamp()
    os.utime(path, (ts, ts))


def create_opencode_session(
    root: Path,
    session_id: str,
    messages: list[dict],
    info: dict | None = None,
    project_slug: str = "Users-dev-api",
) -> Path:
    """Create an OpenCode storage tree for one session.

    Layout under root:
        <project_slug>/storage/session/info/<sid>.json
        <project_slug>/storage/session/message/<sid>/<mid>.json
        <project_slug>/storage/session/part/<sid>/<mid>/<pid>.json

    Args:
        root: Scan root (simulates ~/.local/share/opencode/project)
        session_id: Session identifier
        messages: Dicts with 'id', 'role', optional 'time' and 'parts'
        info: Session info file contents (omitted when None)
        project_slug: Project directory name

    Returns:
        The session storage directory
    """
    storage = root / project_slug / "storage" / "session"

    if info is not None:
        write_json(storage / "info" / f"{session_id}.json", info)

    for msg in messages:
        msg_id = msg["id"]
        msg_data = {"id": msg_id, "sessionID": session_id, "role": msg["role"]}
        if "time" in msg:
            msg_data["time"] = msg["time"]
        write_json(storage / "message" / session_id / f"{msg_id}.json", msg_data)

        for i, part in enumerate(msg.get("parts", [])):
            part_data = {"id": f"prt_{i:03d}", "messageID": msg_id, **part}
            write_json(storage / "part" / session_id / msg_id / f"prt_{i:03d}.json", part_data)

    return storage


T0 = datetime(2025, 1, 20, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def claude_root(tmp_path: Path) -> Path:
    root = tmp_path / "claude" / "projects"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def opencode_root(tmp_path: Path) -> Path:
    root = tmp_path / "opencode" / "project"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def scan_options(claude_root: Path, opencode_root: Path) -> ScanOptions:
    return ScanOptions(
        claude_root=claude_root,
        opencode_root=opencode_root,
        size_mode=SizeMode.CHARS,
    )


@pytest.fixture
def claude_session_file(claude_root: Path) -> Path:
    """A Claude Code session with user, assistant and tool_use records."""
    return write_jsonl(
        claude_root / "-Users-dev-myapp" / "session-001.jsonl",
        [
            {
                "type": "user",
                "sessionId": "session-001",
                "cwd": "/Users/dev/myapp",
                "timestamp": "2025-01-20T12:00:00Z",
                "message": {"role": "user", "content": "Help me refactor auth"},
            },
            {
                "type": "assistant",
                "sessionId": "session-001",
                "cwd": "/Users/dev/myapp",
                "timestamp": "2025-01-20T12:00:05Z",
                "message": {
                    "role": "assistant",
                    "content": [{"type": "text", "text": "Sure, let me look."}],
                },
            },
            {
                "type": "assistant",
                "sessionId": "session-001",
                "cwd": "/Users/dev/myapp",
                "timestamp": "2025-01-20T12:00:10Z",
                "message": {
                    "role": "assistant",
                    "content": [
                        {"type": "tool_use", "id": "toolu_1", "name": "Read", "input": {"path": "auth.py"}},
                    ],
                },
            },
        ],
    )


@pytest.fixture
def opencode_session(opencode_root: Path) -> Path:
    """An OpenCode session with a user turn and an assistant turn with a tool."""
    return create_opencode_session(
        opencode_root,
        session_id="ses_001",
        info={"cwd": "/Users/dev/api", "created": ms(T0), "updated": ms(T0) + 60_000},
        messages=[
            {
                "id": "msg_001",
                "role": "user",
                "time": {"created": ms(T0)},
                "parts": [{"type": "text", "text": "Why is /users returning 500?"}],
            },
            {
                "id": "msg_002",
                "role": "assistant",
                "time": {"created": ms(T0) + 1_000},
                "parts": [
                    {"type": "text", "text": "Let me grep.", "time": {"start": ms(T0) + 2_000}},
                    {
                        "type": "tool",
                        "tool": "grep",
                        "callID": "call_1",
                        "state": {
                            "status": "completed",
                            "input": {"pattern": "SELECT"},
                            "output": "src/db.py:15",
                            "time": {"start": ms(T0) + 3_000, "end": ms(T0) + 4_000},
                        },
                    },
                ],
            },
        ],
    )


@pytest.fixture
def new_york_tz(monkeypatch: pytest.MonkeyPatch):
    """Run the test with a negative UTC offset as the local timezone."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
