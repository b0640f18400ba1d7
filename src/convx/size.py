"""Message size measurement.

Sizes weigh messages in bar charts, so every record measures at least 1.
Only content-bearing fields are counted: plain text, thinking/reasoning
text and stringified tool inputs and outputs.
"""

import json
import math
from typing import Any, Iterable

from convx.models import SizeMode


def _stringify(value: Any) -> str:
    # Strings are measured raw, without JSON quotes
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def measure_text(text: str, mode: SizeMode = SizeMode.CHARS) -> int:
    """Measure a string in the given mode.

    chars counts code points, bytes counts UTF-8 bytes and tokens is the
    fixed approximation ceil(chars / 4).
    """
    if not text:
        return 0
    if mode is SizeMode.BYTES:
        return len(text.encode("utf-8"))
    if mode is SizeMode.TOKENS:
        return math.ceil(len(text) / 4)
    return len(text)


def measure_fields(fields: Iterable[str], mode: SizeMode = SizeMode.CHARS) -> int:
    """Sum the measured size of several fields, floored at 1."""
    return max(sum(measure_text(f, mode) for f in fields), 1)


def claude_content_fields(entry: dict) -> list[str] | None:
    """Collect the content-bearing fields of a Claude Code record.

    Returns:
        List of strings to measure, or None when the record shape is not
        one of the recognized discriminators
    """
    entry_type = entry.get("type")
    message = entry.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    fields: list[str] = []

    if entry_type == "summary":
        summary = entry.get("summary")
        if isinstance(summary, str):
            fields.append(summary)
        return fields

    if entry_type not in ("user", "assistant"):
        return None

    if isinstance(content, str):
        fields.append(content)
        return fields

    if not isinstance(content, list):
        return fields

    for part in content:
        if not isinstance(part, dict):
            continue
        part_type = part.get("type")
        if part_type == "text" and part.get("text"):
            fields.append(_stringify(part["text"]))
        elif entry_type == "user" and part_type == "tool_result" and part.get("content"):
            fields.append(_stringify(part["content"]))
        elif entry_type == "assistant" and part_type == "thinking" and part.get("thinking"):
            fields.append(_stringify(part["thinking"]))
        elif entry_type == "assistant" and part_type == "tool_use" and part.get("input"):
            fields.append(_stringify(part["input"]))

    return fields


def measure_claude_entry(entry: dict, mode: SizeMode = SizeMode.CHARS) -> int:
    """Measure a Claude Code record, stringifying unrecognized shapes whole."""
    fields = claude_content_fields(entry)
    if fields is None:
        fields = [_stringify(entry)]
    return measure_fields(fields, mode)


def opencode_content_fields(obj: dict) -> list[str]:
    """Collect the content-bearing fields of an OpenCode parts/content shape."""
    fields: list[str] = []

    parts = obj.get("parts")
    if isinstance(parts, (list, tuple)):
        for part in parts:
            if not isinstance(part, dict):
                continue
            part_type = part.get("type")
            if part_type in ("text", "reasoning"):
                text = part.get("text") or part.get("reasoning")
                if text:
                    fields.append(_stringify(text))
            elif part_type == "tool":
                state = part.get("state") or {}
                for key in ("input", "output"):
                    if state.get(key):
                        fields.append(_stringify(state[key]))

    content = obj.get("content")
    if content:
        fields.append(_stringify(content))

    return fields


def measure_opencode_payload(obj: dict, mode: SizeMode = SizeMode.CHARS) -> int:
    """Measure an OpenCode parts/content shape, stringifying it whole if empty."""
    fields = opencode_content_fields(obj)
    if not fields:
        fields = [_stringify(obj)]
    return measure_fields(fields, mode)
