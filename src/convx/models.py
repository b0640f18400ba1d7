"""Canonical data models."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator


class Tool(str, Enum):
    """Originating coding assistant."""

    CLAUDE_CODE = "claude-code"
    OPENCODE = "opencode"


class MsgType(str, Enum):
    """Normalized message taxonomy."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class SizeMode(str, Enum):
    """Unit used to weigh message content."""

    CHARS = "chars"
    BYTES = "bytes"
    TOKENS = "tokens"

    @classmethod
    def parse(cls, value: "str | SizeMode") -> "SizeMode":
        """Parse a size mode name, raising ValueError for unknown modes."""
        if isinstance(value, SizeMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown size mode: {value!r} (expected one of: {valid})")


@dataclass(frozen=True)
class ClaudeCodePayload:
    """A Claude Code record kept verbatim for re-serialization."""

    entry: dict
    file_path: str


@dataclass(frozen=True)
class OpenCodePayload:
    """An OpenCode message with the parts that produced it.

    `part` is set for messages synthesized from a single part (assistant
    text, reasoning and tool events) and None for user messages, which
    combine all of their parts.
    """

    message: dict
    parts: tuple[dict, ...]
    content: str
    session_info: dict | None = None
    part: dict | None = None


RawPayload = ClaudeCodePayload | OpenCodePayload


def _claude_text(entry: dict) -> str:
    message = entry.get("message")
    content = message.get("content") if isinstance(message, dict) else None

    if isinstance(content, str):
        return content

    if isinstance(content, list):
        texts: list[str] = []
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text" and block.get("text"):
                texts.append(block["text"])
            elif block_type == "thinking" and block.get("thinking"):
                texts.append(block["thinking"])
            elif block_type == "tool_use":
                texts.append(f"Tool: {block.get('name', 'unknown')}")
                texts.append(f"Input: {json.dumps(block.get('input', {}))}")
            elif block_type == "tool_result":
                result = block.get("content")
                texts.append(result if isinstance(result, str) else json.dumps(result))
        return "\n".join(texts)

    if isinstance(entry.get("summary"), str):
        return entry["summary"]
    return ""


@dataclass(frozen=True)
class Message:
    """One normalized conversational turn or tool event."""

    tool: Tool
    session_id: str
    project_display: str
    timestamp: datetime
    file_modified_at: datetime
    msg_type: MsgType
    size: int
    raw: RawPayload
    project_path: str | None = None
    role: str | None = None

    def __post_init__(self) -> None:
        if not self.session_id:
            raise ValueError("Message session_id must be non-empty")
        if self.size < 1:
            raise ValueError(f"Message size must be >= 1, got {self.size}")

    @property
    def text(self) -> str:
        """Readable text content of the underlying record."""
        if isinstance(self.raw, OpenCodePayload):
            return self.raw.content
        return _claude_text(self.raw.entry)


@dataclass
class Session:
    """All messages sharing one (tool, session_id) pair."""

    tool: Tool
    session_id: str
    project_display: str
    started_at: datetime
    ended_at: datetime
    file_last_modified: datetime
    messages: list[Message] = field(default_factory=list)
    project_path: str | None = None

    @classmethod
    def from_messages(cls, messages: list[Message]) -> "Session":
        """Build a session from messages of a single (tool, session_id) key.

        Raises:
            ValueError: If messages is empty
        """
        if not messages:
            raise ValueError("Cannot build a session without messages")

        ordered = sorted(messages, key=lambda m: m.timestamp)
        first = ordered[0]
        return cls(
            tool=first.tool,
            session_id=first.session_id,
            project_display=first.project_display,
            project_path=first.project_path,
            started_at=first.timestamp,
            ended_at=ordered[-1].timestamp,
            file_last_modified=max(m.file_modified_at for m in ordered),
            messages=ordered,
        )

    @property
    def key(self) -> tuple[Tool, str]:
        return (self.tool, self.session_id)

    @property
    def size(self) -> int:
        return sum(m.size for m in self.messages)

    @property
    def estimated_tokens(self) -> int:
        """Rough token estimate at four size units per token."""
        return sum(round(m.size / 4) for m in self.messages)

    def size_by_type(self) -> dict[MsgType, int]:
        """Total message size per message type, for stacked bar display."""
        totals = {msg_type: 0 for msg_type in MsgType}
        for message in self.messages:
            totals[message.msg_type] += message.size
        return totals

    def delete_message(self, position: int) -> Message:
        """Remove a message from this in-memory session view.

        Source files are never touched. Derived times are recomputed.

        Raises:
            IndexError: If position is out of range
            ValueError: If the message is the last one in the session
        """
        if len(self.messages) <= 1:
            raise ValueError("Cannot delete the only message of a session")

        removed = self.messages.pop(position)
        self.started_at = self.messages[0].timestamp
        self.ended_at = self.messages[-1].timestamp
        self.file_last_modified = max(m.file_modified_at for m in self.messages)
        return removed


@dataclass
class Index:
    """Sessions bucketed by the calendar date of their start time."""

    by_date: dict[str, list[Session]] = field(default_factory=dict)

    def date_keys(self) -> list[str]:
        """Date keys, newest first."""
        return sorted(self.by_date, reverse=True)

    def get(self, date_key: str) -> list[Session]:
        return self.by_date.get(date_key, [])

    def sessions(self) -> Iterator[Session]:
        """Iterate all sessions, oldest date first."""
        for date_key in sorted(self.by_date):
            yield from self.by_date[date_key]

    def find(self, tool: Tool, session_id: str) -> Session | None:
        for session in self.sessions():
            if session.tool == tool and session.session_id == session_id:
                return session
        return None

    def filter(self, text: str) -> "Index":
        """Return a new index keeping sessions whose project, id or tool match.

        Matching is a case-insensitive substring test. Blank text keeps
        everything.
        """
        needle = text.strip().lower()
        if not needle:
            return Index(by_date={k: list(v) for k, v in self.by_date.items()})

        by_date: dict[str, list[Session]] = {}
        for date_key, sessions in self.by_date.items():
            matches = [
                s
                for s in sessions
                if needle in s.project_display.lower()
                or needle in s.session_id.lower()
                or needle in s.tool.value.lower()
            ]
            if matches:
                by_date[date_key] = matches
        return Index(by_date=by_date)

    @property
    def session_count(self) -> int:
        return sum(len(sessions) for sessions in self.by_date.values())

    @property
    def message_count(self) -> int:
        return sum(len(s.messages) for s in self.sessions())


def _default_claude_root() -> Path:
    return Path.home() / ".claude" / "projects"


def _default_opencode_root() -> Path:
    return Path.home() / ".local" / "share" / "opencode" / "project"


@dataclass(frozen=True)
class ScanOptions:
    """Scan configuration; also the cache key of a built index."""

    claude_root: Path = field(default_factory=_default_claude_root)
    opencode_root: Path = field(default_factory=_default_opencode_root)
    size_mode: SizeMode = SizeMode.CHARS
    since: datetime | None = None

    def __post_init__(self) -> None:
        # Frozen, so normalize through object.__setattr__
        object.__setattr__(self, "claude_root", Path(self.claude_root))
        object.__setattr__(self, "opencode_root", Path(self.opencode_root))
        object.__setattr__(self, "size_mode", SizeMode.parse(self.size_mode))
        if self.since is not None and self.since.tzinfo is None:
            object.__setattr__(self, "since", self.since.replace(tzinfo=timezone.utc))

    def includes(self, timestamp: datetime) -> bool:
        """Check a message timestamp against the inclusive `since` bound."""
        return self.since is None or timestamp >= self.since

    def cache_key(self) -> str:
        since = str(int(self.since.timestamp() * 1000)) if self.since else "no-since"
        return "|".join(
            [str(self.claude_root), str(self.opencode_root), self.size_mode.value, since]
        )
