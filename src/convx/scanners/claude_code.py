"""Scanner for Claude Code conversation transcripts.

Claude Code stores conversations as JSONL files at:
    ~/.claude/projects/<encoded-project-path>/<session-id>.jsonl

The scanner also accepts .json, .ndjson and .log files, either
line-delimited or holding a single JSON document or array.

Each record is a JSON object with:
- type: "user", "assistant", "summary", or other bookkeeping types
- message.role: "user" or "assistant"
- message.content: string or array of content blocks
  (text, thinking, tool_use with name/input, tool_result with tool_use_id/content)
- timestamp: ISO 8601 string, epoch millis, or absent
- sessionId / requestId: session identifiers
- cwd: Working directory (project path)
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from convx.logging import get_logger
from convx.models import ClaudeCodePayload, Message, MsgType, ScanOptions, Tool
from convx.scanners.base import (
    FileInfo,
    Scanner,
    find_files,
    iter_json_file_lines,
    parse_json,
    project_display_name,
    read_head_lines,
    read_text_file,
)
from convx.size import measure_claude_entry
from convx.timestamps import parse_timestamp, to_epoch_millis

logger = get_logger("scanner.claude_code")

FILE_PATTERNS = ["**/*.json", "**/*.jsonl", "**/*.ndjson", "**/*.log"]
STREAM_SUFFIXES = {".jsonl", ".ndjson", ".log"}

# Sampling rule for files whose extension does not say "stream"
SAMPLE_LINES = 5
MIN_JSON_LINES = 2

SESSION_ID_FIELDS = ("sessionId", "requestId", "conversationId", "threadId")

MILLIS_PER_HOUR = 60 * 60 * 1000


def looks_like_ndjson(text: str) -> bool:
    """Check whether text is line-delimited JSON.

    At least two of the first five non-empty lines must parse as JSON.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < MIN_JSON_LINES:
        return False

    valid = sum(1 for line in lines[:SAMPLE_LINES] if parse_json(line.strip()) is not None)
    return valid >= MIN_JSON_LINES


def _content_blocks(entry: dict) -> list[dict]:
    message = entry.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _has_block(entry: dict, block_type: str) -> bool:
    return any(block.get("type") == block_type for block in _content_blocks(entry))


def _classify_user(entry: dict) -> MsgType:
    if _has_block(entry, "tool_result"):
        return MsgType.TOOL_RESULT
    return MsgType.USER


def _classify_assistant(entry: dict) -> MsgType:
    if _has_block(entry, "tool_use"):
        return MsgType.TOOL_CALL
    return MsgType.ASSISTANT


# One classifier per recognized discriminator value
ENTRY_CLASSIFIERS: dict[str, Callable[[dict], MsgType]] = {
    "user": _classify_user,
    "assistant": _classify_assistant,
}


def _classify_unrecognized(entry: dict) -> MsgType:
    return MsgType.ASSISTANT


def classify_entry(entry: dict) -> MsgType:
    """Classify a Claude Code record into the message taxonomy.

    Records with an unrecognized discriminator are assistant messages.
    """
    entry_type = entry.get("type")
    if not isinstance(entry_type, str):
        return _classify_unrecognized(entry)
    return ENTRY_CLASSIFIERS.get(entry_type, _classify_unrecognized)(entry)


def derive_session_id(entry: dict, project_dir_name: str, timestamp: datetime) -> str:
    """Resolve the session identifier of a record.

    Falls back to grouping by project directory and hour of the record's
    timestamp when no identifier field is present.
    """
    for key in SESSION_ID_FIELDS:
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)

    hour_bucket = to_epoch_millis(timestamp) // MILLIS_PER_HOUR
    return f"{project_dir_name}-{hour_bucket}"


class ClaudeCodeScanner(Scanner):
    """Scanner for Claude Code JSON/JSONL transcript trees."""

    tool = Tool.CLAUDE_CODE

    async def scan(self, options: ScanOptions) -> list[Message]:
        """Scan every transcript file under options.claude_root.

        Args:
            options: Scan configuration

        Returns:
            Messages passing the `since` filter
        """
        root = options.claude_root
        logger.info("Scanning Claude Code data: root=%s", root)

        files = await asyncio.to_thread(find_files, root, FILE_PATTERNS)
        logger.info("Found Claude Code files: count=%d", len(files))

        messages: list[Message] = []
        error_count = 0
        for file_info in files:
            try:
                file_messages = await self.scan_file(file_info, root, options)
            except Exception:
                logger.warning("Error processing Claude Code file: path=%s", file_info.path, exc_info=True)
                error_count += 1
                continue
            messages.extend(file_messages)

        logger.info(
            "Claude Code scan complete: messages=%d errors=%d",
            len(messages),
            error_count,
        )
        return messages

    async def scan_file(self, file_info: FileInfo, root: Path, options: ScanOptions) -> list[Message]:
        """Parse one transcript file into messages in a worker thread."""
        project_dir_name = self._project_dir_name(file_info.path, root)
        return await asyncio.to_thread(self._parse_file, file_info, project_dir_name, options)

    def _parse_file(self, file_info: FileInfo, project_dir_name: str, options: ScanOptions) -> list[Message]:
        messages: list[Message] = []
        for entry in self._iter_records(file_info.path):
            try:
                message = self.parse_entry(entry, file_info, project_dir_name, options)
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.debug("Skipping unparseable record: path=%s", file_info.path, exc_info=True)
                continue
            if message is not None and options.includes(message.timestamp):
                messages.append(message)
        return messages

    def parse_entry(
        self,
        entry: Any,
        file_info: FileInfo,
        project_dir_name: str,
        options: ScanOptions,
    ) -> Message | None:
        """Convert one parsed record into a Message.

        Args:
            entry: Parsed JSON value
            file_info: The file the record came from
            project_dir_name: Name of the directory holding the file
            options: Scan configuration (size mode)

        Returns:
            Message, or None if the value is not a JSON object
        """
        if not isinstance(entry, dict):
            return None

        timestamp = parse_timestamp(entry.get("timestamp"), fallback=file_info.mtime)
        session_id = derive_session_id(entry, project_dir_name, timestamp)

        cwd = entry.get("cwd") if isinstance(entry.get("cwd"), str) else None
        message_obj = entry.get("message")
        role = message_obj.get("role") if isinstance(message_obj, dict) else None

        return Message(
            tool=self.tool,
            session_id=session_id,
            project_display=project_display_name(cwd, project_dir_name),
            project_path=cwd or None,
            timestamp=timestamp,
            file_modified_at=file_info.mtime,
            role=role if role in ("user", "assistant") else None,
            msg_type=classify_entry(entry),
            size=measure_claude_entry(entry, options.size_mode),
            raw=ClaudeCodePayload(entry=entry, file_path=str(file_info.path)),
        )

    def _is_stream(self, path: Path) -> bool:
        if path.suffix.lower() in STREAM_SUFFIXES:
            return True
        return looks_like_ndjson("\n".join(read_head_lines(path, SAMPLE_LINES)))

    def _iter_records(self, path: Path) -> Iterator[Any]:
        if self._is_stream(path):
            yield from iter_json_file_lines(path)
            return

        # Single JSON documents have to be read whole
        text = read_text_file(path)
        if text is None:
            return
        document = parse_json(text)
        if document is None:
            logger.warning("Failed to parse JSON file: path=%s", path)
            return
        if isinstance(document, list):
            yield from document
        else:
            yield document

    def _project_dir_name(self, path: Path, root: Path) -> str:
        parent = path.parent
        if parent == root:
            return "unknown"
        return parent.name
