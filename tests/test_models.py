"""Tests for the canonical data models."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from convx.models import (
    ClaudeCodePayload,
    Index,
    Message,
    MsgType,
    OpenCodePayload,
    ScanOptions,
    Session,
    SizeMode,
    Tool,
)

T0 = datetime(2025, 1, 20, 12, 0, 0, tzinfo=timezone.utc)


def make_message(
    offset_minutes: int = 0,
    session_id: str = "s1",
    msg_type: MsgType = MsgType.USER,
    size: int = 8,
    tool: Tool = Tool.CLAUDE_CODE,
    project: str = "myapp",
) -> Message:
    ts = T0 + timedelta(minutes=offset_minutes)
    return Message(
        tool=tool,
        session_id=session_id,
        project_display=project,
        timestamp=ts,
        file_modified_at=ts,
        msg_type=msg_type,
        size=size,
        raw=ClaudeCodePayload(entry={"type": "user", "message": {"content": "hi"}}, file_path="/x.jsonl"),
    )


class TestSizeMode:
    """Tests for SizeMode.parse."""

    @pytest.mark.parametrize("value", ["chars", "BYTES", " tokens "])
    def test_parses_names(self, value: str) -> None:
        assert SizeMode.parse(value).value == value.strip().lower()

    def test_rejects_unknown_mode(self) -> None:
        with pytest.raises(ValueError, match="Unknown size mode"):
            SizeMode.parse("words")


class TestMessage:
    """Tests for Message validation and text."""

    def test_rejects_empty_session_id(self) -> None:
        with pytest.raises(ValueError):
            make_message(session_id="")

    def test_rejects_zero_size(self) -> None:
        with pytest.raises(ValueError):
            make_message(size=0)

    def test_text_for_claude_blocks(self) -> None:
        entry = {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "text", "text": "Reading file"},
                    {"type": "tool_use", "name": "Read", "input": {"path": "a.py"}},
                ]
            },
        }
        message = Message(
            tool=Tool.CLAUDE_CODE,
            session_id="s",
            project_display="p",
            timestamp=T0,
            file_modified_at=T0,
            msg_type=MsgType.TOOL_CALL,
            size=1,
            raw=ClaudeCodePayload(entry=entry, file_path="/x.jsonl"),
        )

        assert message.text == 'Reading file\nTool: Read\nInput: {"path": "a.py"}'

    def test_text_for_opencode_payload(self) -> None:
        message = Message(
            tool=Tool.OPENCODE,
            session_id="s",
            project_display="p",
            timestamp=T0,
            file_modified_at=T0,
            msg_type=MsgType.ASSISTANT,
            size=1,
            raw=OpenCodePayload(message={"role": "assistant"}, parts=(), content="hello"),
        )

        assert message.text == "hello"


class TestSession:
    """Tests for Session."""

    def test_from_messages_requires_messages(self) -> None:
        with pytest.raises(ValueError):
            Session.from_messages([])

    def test_size_and_tokens(self) -> None:
        session = Session.from_messages([make_message(0, size=10), make_message(1, size=6)])

        assert session.size == 16
        assert session.estimated_tokens == round(10 / 4) + round(6 / 4)

    def test_size_by_type(self) -> None:
        session = Session.from_messages(
            [
                make_message(0, msg_type=MsgType.USER, size=5),
                make_message(1, msg_type=MsgType.TOOL_CALL, size=7),
                make_message(2, msg_type=MsgType.TOOL_CALL, size=3),
            ]
        )

        assert session.size_by_type() == {
            MsgType.USER: 5,
            MsgType.ASSISTANT: 0,
            MsgType.TOOL_CALL: 10,
            MsgType.TOOL_RESULT: 0,
        }

    def test_delete_message_recomputes_bounds(self) -> None:
        """Should drop the message and refresh start and end."""
        session = Session.from_messages([make_message(0), make_message(5), make_message(10)])

        removed = session.delete_message(0)

        assert removed.timestamp == T0
        assert len(session.messages) == 2
        assert session.started_at == T0 + timedelta(minutes=5)
        assert session.ended_at == T0 + timedelta(minutes=10)

    def test_delete_last_remaining_message_fails(self) -> None:
        session = Session.from_messages([make_message(0)])

        with pytest.raises(ValueError):
            session.delete_message(0)
        assert len(session.messages) == 1

    def test_delete_out_of_range(self) -> None:
        session = Session.from_messages([make_message(0), make_message(1)])

        with pytest.raises(IndexError):
            session.delete_message(5)


class TestIndex:
    """Tests for Index."""

    @pytest.fixture
    def index(self) -> Index:
        api = Session.from_messages([make_message(0, session_id="a", project="api")])
        web = Session.from_messages([make_message(0, session_id="b", project="web", tool=Tool.OPENCODE)])
        old = Session.from_messages([make_message(0, session_id="c", project="api")])
        return Index(by_date={"2025-01-20": [api, web], "2024-12-31": [old]})

    def test_date_keys_newest_first(self, index: Index) -> None:
        assert index.date_keys() == ["2025-01-20", "2024-12-31"]

    def test_counts(self, index: Index) -> None:
        assert index.session_count == 3
        assert index.message_count == 3

    def test_get_missing_date(self, index: Index) -> None:
        assert index.get("1999-01-01") == []

    def test_find(self, index: Index) -> None:
        assert index.find(Tool.OPENCODE, "b").project_display == "web"
        assert index.find(Tool.CLAUDE_CODE, "b") is None

    def test_filter_by_project(self, index: Index) -> None:
        filtered = index.filter("API")

        assert filtered.date_keys() == ["2025-01-20", "2024-12-31"]
        assert [s.session_id for s in filtered.get("2025-01-20")] == ["a"]

    def test_filter_by_tool(self, index: Index) -> None:
        filtered = index.filter("opencode")

        assert filtered.date_keys() == ["2025-01-20"]
        assert filtered.session_count == 1

    def test_blank_filter_keeps_everything(self, index: Index) -> None:
        assert index.filter("  ").session_count == 3


class TestScanOptions:
    """Tests for ScanOptions."""

    def test_defaults_point_at_home(self) -> None:
        options = ScanOptions()

        assert options.claude_root == Path.home() / ".claude" / "projects"
        assert options.opencode_root == Path.home() / ".local" / "share" / "opencode" / "project"
        assert options.size_mode is SizeMode.CHARS
        assert options.since is None

    def test_cache_key_without_since(self) -> None:
        options = ScanOptions(claude_root=Path("/a"), opencode_root=Path("/b"), size_mode="tokens")
        assert options.cache_key() == "/a|/b|tokens|no-since"

    def test_cache_key_with_since(self) -> None:
        options = ScanOptions(claude_root="/a", opencode_root="/b", since=T0)
        assert options.cache_key() == f"/a|/b|chars|{int(T0.timestamp() * 1000)}"

    def test_naive_since_is_utc(self) -> None:
        options = ScanOptions(since=datetime(2025, 1, 20, 12, 0, 0))
        assert options.since == T0

    def test_includes_is_inclusive(self) -> None:
        options = ScanOptions(since=T0)

        assert options.includes(T0)
        assert options.includes(T0 + timedelta(seconds=1))
        assert not options.includes(T0 - timedelta(microseconds=1))
        assert ScanOptions().includes(T0 - timedelta(days=999))
