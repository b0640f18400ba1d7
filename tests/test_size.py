"""Tests for message size measurement."""

import json

import pytest

from convx.models import SizeMode
from convx.size import (
    claude_content_fields,
    measure_claude_entry,
    measure_opencode_payload,
    measure_text,
)


class TestMeasureText:
    """Tests for measure_text function."""

    def test_chars_counts_code_points(self) -> None:
        """Should count characters, not bytes."""
        assert measure_text("héllo", SizeMode.CHARS) == 5

    def test_bytes_counts_utf8(self) -> None:
        """Should count UTF-8 encoded bytes."""
        assert measure_text("héllo", SizeMode.BYTES) == 6

    @pytest.mark.parametrize(("text", "expected"), [("a", 1), ("abcd", 1), ("abcde", 2), ("a" * 9, 3)])
    def test_tokens_is_ceil_of_quarter_length(self, text: str, expected: int) -> None:
        """Should approximate tokens as ceil(length / 4)."""
        assert measure_text(text, SizeMode.TOKENS) == expected

    def test_empty_text_is_zero(self) -> None:
        """Should measure empty text as zero before flooring."""
        assert measure_text("", SizeMode.CHARS) == 0


class TestMeasureClaudeEntry:
    """Tests for Claude Code record measurement."""

    def test_user_string_content(self) -> None:
        """Should measure plain string content."""
        entry = {"type": "user", "message": {"role": "user", "content": "hello"}}
        assert measure_claude_entry(entry) == 5

    def test_user_tool_result_content(self) -> None:
        """Should measure text and a string tool result without quotes."""
        entry = {
            "type": "user",
            "message": {
                "content": [
                    {"type": "text", "text": "abc"},
                    {"type": "tool_result", "tool_use_id": "t1", "content": "output"},
                ]
            },
        }
        assert measure_claude_entry(entry) == 3 + 6

    def test_structured_tool_result_is_stringified(self) -> None:
        content = [{"type": "text", "text": "ok"}]
        entry = {
            "type": "user",
            "message": {"content": [{"type": "tool_result", "tool_use_id": "t1", "content": content}]},
        }
        assert measure_claude_entry(entry) == len(json.dumps(content, ensure_ascii=False))

    def test_assistant_text_thinking_and_tool_input(self) -> None:
        """Should sum text, thinking and stringified tool input."""
        tool_input = {"path": "a.py"}
        entry = {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "thinking", "thinking": "hmm"},
                    {"type": "text", "text": "ok"},
                    {"type": "tool_use", "name": "Read", "input": tool_input},
                ]
            },
        }
        assert measure_claude_entry(entry) == 3 + 2 + len(json.dumps(tool_input))

    def test_summary_measures_summary_text(self) -> None:
        """Should measure the summary field of summary records."""
        assert measure_claude_entry({"type": "summary", "summary": "1234567"}) == 7

    def test_unrecognized_shape_measures_whole_record(self) -> None:
        """Should stringify records with unknown discriminators."""
        entry = {"type": "queue-operation", "operation": "dequeue"}
        assert claude_content_fields(entry) is None
        assert measure_claude_entry(entry) == len(json.dumps(entry))

    def test_empty_content_is_floored_at_one(self) -> None:
        """Should never return less than 1."""
        entry = {"type": "assistant", "message": {"content": []}}
        assert measure_claude_entry(entry) == 1

    def test_bytes_mode(self) -> None:
        """Should apply the selected mode to every field."""
        entry = {"type": "user", "message": {"content": "日本"}}
        assert measure_claude_entry(entry, SizeMode.BYTES) == 6


class TestMeasureOpenCodePayload:
    """Tests for OpenCode payload measurement."""

    def test_parts_text_and_tool_payloads(self) -> None:
        """Should measure text parts and tool input/output."""
        payload = {
            "parts": [
                {"type": "text", "text": "abcd"},
                {"type": "reasoning", "text": "xy"},
                {"type": "tool", "state": {"input": "in", "output": "out"}},
            ]
        }
        assert measure_opencode_payload(payload) == 4 + 2 + 2 + 3

    def test_content_string(self) -> None:
        """Should measure a direct content string."""
        assert measure_opencode_payload({"content": "hello world"}) == 11

    def test_fallback_stringifies_whole_object(self) -> None:
        """Should stringify the object when it has no content fields."""
        obj = {"id": "msg_1", "role": "user"}
        assert measure_opencode_payload(obj) == len(json.dumps(obj))

    def test_tokens_mode(self) -> None:
        """Should approximate tokens for the content."""
        assert measure_opencode_payload({"content": "a" * 10}, SizeMode.TOKENS) == 3
