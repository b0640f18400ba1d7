"""Scanner for OpenCode (SST) conversation storage.

OpenCode stores each project's conversations under:
    ~/.local/share/opencode/project/<project-slug>/storage/

Directory layout below the scan root:
    **/session/info/<sessionID>.json                     - Session metadata
    **/session/message/<sessionID>/<messageID>.json      - Message metadata
    **/session/part/<sessionID>/<messageID>/<partID>.json - Content parts

Session info file contains:
- cwd / workspace: Working directory path
- created / createdAt, updated / updatedAt: Timestamps

Message file contains:
- id: Message identifier
- role: "user" or "assistant"
- time.created: Creation timestamp (milliseconds or ISO string)

Part file contains one typed fragment:
- TextPart: {type: "text", text: string}
- ReasoningPart: {type: "reasoning", text | reasoning: string}
- ToolPart: {type: "tool", tool: string, callID: string,
             state: {status, input, output, time: {start, end}}}

User messages become one message each. Assistant messages are expanded
part by part: text and reasoning parts become assistant messages and each
completed tool part becomes a tool_call / tool_result pair.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from convx.logging import get_logger
from convx.models import Message, MsgType, OpenCodePayload, ScanOptions, Tool
from convx.scanners.base import FileInfo, Scanner, find_files, project_display_name, read_json_file
from convx.size import measure_opencode_payload
from convx.timestamps import ONE_MILLISECOND, parse_timestamp, to_epoch_millis, try_parse_timestamp

logger = get_logger("scanner.opencode")

INFO_PATTERN = "**/session/info/*.json"
MESSAGE_PATTERN = "**/session/message/*/*.json"
PART_PATTERN = "**/session/part/*/*/*.json"

_INFO_PATH = re.compile(r"/session/info/([^/]+)\.json$")
_MESSAGE_PATH = re.compile(r"/session/message/([^/]+)/([^/]+)\.json$")
_PART_PATH = re.compile(r"/session/part/([^/]+)/([^/]+)/([^/]+)\.json$")
_PROJECT_PATH = re.compile(r"/project/([^/]+)/")

ASSISTANT_PART_TYPES = ("text", "reasoning", "tool")
TEXT_PART_TYPES = ("text", "reasoning")


@dataclass
class PartRecord:
    """A loaded part file."""

    data: dict
    mtime: datetime


def session_id_from_info_path(path: Path) -> str | None:
    match = _INFO_PATH.search(path.as_posix())
    return match.group(1) if match else None


def ids_from_message_path(path: Path) -> tuple[str, str] | None:
    """Recover (session_id, message_id) from a message file path."""
    match = _MESSAGE_PATH.search(path.as_posix())
    return (match.group(1), match.group(2)) if match else None


def ids_from_part_path(path: Path) -> tuple[str, str, str] | None:
    """Recover (session_id, message_id, part_id) from a part file path."""
    match = _PART_PATH.search(path.as_posix())
    return (match.group(1), match.group(2), match.group(3)) if match else None


def project_dir_from_path(path: Path) -> str | None:
    match = _PROJECT_PATH.search(path.as_posix())
    return match.group(1) if match else None


def _string_id(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _time_fields(part: dict) -> tuple[dict, dict]:
    part_time = part.get("time")
    state = part.get("state")
    state_time = state.get("time") if isinstance(state, dict) else None
    return (
        part_time if isinstance(part_time, dict) else {},
        state_time if isinstance(state_time, dict) else {},
    )


def part_start_time(part: dict) -> datetime | None:
    """Earliest recorded time of a part (start or created)."""
    part_time, state_time = _time_fields(part)
    for value in (
        part_time.get("start"),
        part_time.get("created"),
        state_time.get("start"),
    ):
        dt = try_parse_timestamp(value)
        if dt is not None:
            return dt
    return None


def part_time(part: dict) -> datetime | None:
    """Event time of a part: start, created, then end."""
    start = part_start_time(part)
    if start is not None:
        return start
    part_time_, state_time = _time_fields(part)
    return try_parse_timestamp(part_time_.get("end")) or try_parse_timestamp(state_time.get("end"))


def part_sort_key(part: dict) -> int:
    """Epoch millis used to order assistant parts; 0 when untimed."""
    dt = part_time(part)
    return to_epoch_millis(dt) if dt is not None else 0


def part_text(part: dict) -> str:
    text = part.get("text") or part.get("reasoning") or ""
    return text if isinstance(text, str) else json.dumps(text, ensure_ascii=False)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def tool_call_content(part: dict) -> str:
    state = part.get("state") or {}
    return "\n".join(
        [
            f"Tool: {part.get('tool', 'unknown')}",
            f"Call ID: {part.get('callID', '')}",
            f"Input: {_stringify(state.get('input'))}",
        ]
    )


def tool_result_content(part: dict) -> str:
    state = part.get("state") or {}
    return "\n".join(
        [
            f"Tool: {part.get('tool', 'unknown')}",
            f"Call ID: {part.get('callID', '')}",
            f"Output: {_stringify(state.get('output'))}",
        ]
    )


class OpenCodeScanner(Scanner):
    """Scanner for OpenCode session/message/part storage trees."""

    tool = Tool.OPENCODE

    async def scan(self, options: ScanOptions) -> list[Message]:
        """Scan every OpenCode message under options.opencode_root.

        Args:
            options: Scan configuration

        Returns:
            Messages passing the `since` filter
        """
        root = options.opencode_root
        logger.info("Scanning OpenCode data: root=%s", root)

        info_files = await asyncio.to_thread(find_files, root, [INFO_PATTERN])
        message_files = await asyncio.to_thread(find_files, root, [MESSAGE_PATTERN])
        part_files = await asyncio.to_thread(find_files, root, [PART_PATTERN])
        logger.info(
            "Found OpenCode files: info=%d messages=%d parts=%d",
            len(info_files),
            len(message_files),
            len(part_files),
        )

        session_infos = await self._load_session_infos(info_files)
        parts_by_message = await self._load_parts(part_files)

        messages: list[Message] = []
        error_count = 0
        for file_info in message_files:
            try:
                expanded = await self.scan_message_file(file_info, session_infos, parts_by_message, options)
            except Exception:
                logger.warning("Error processing OpenCode file: path=%s", file_info.path, exc_info=True)
                error_count += 1
                continue
            messages.extend(m for m in expanded if options.includes(m.timestamp))

        logger.info(
            "OpenCode scan complete: messages=%d errors=%d",
            len(messages),
            error_count,
        )
        return messages

    async def _load_session_infos(self, info_files: list[FileInfo]) -> dict[str, dict]:
        infos: dict[str, dict] = {}
        for file_info in info_files:
            session_id = session_id_from_info_path(file_info.path)
            if session_id is None:
                continue
            try:
                data = await asyncio.to_thread(read_json_file, file_info.path)
            except Exception:
                logger.warning("Error loading OpenCode session info: path=%s", file_info.path, exc_info=True)
                continue
            if isinstance(data, dict):
                infos[session_id] = data
            else:
                logger.debug("Ignoring non-object session info: path=%s", file_info.path)
        return infos

    async def _load_parts(self, part_files: list[FileInfo]) -> dict[str, list[PartRecord]]:
        parts: dict[str, list[PartRecord]] = {}
        for file_info in part_files:
            try:
                data = await asyncio.to_thread(read_json_file, file_info.path)
                if not isinstance(data, dict):
                    continue
                message_id = _string_id(data.get("messageID"))
                if message_id is None:
                    ids = ids_from_part_path(file_info.path)
                    message_id = ids[1] if ids else None
                if message_id is None:
                    logger.debug("Part without owning message: path=%s", file_info.path)
                    continue
                parts.setdefault(message_id, []).append(PartRecord(data=data, mtime=file_info.mtime))
            except Exception:
                logger.warning("Error loading OpenCode part: path=%s", file_info.path, exc_info=True)
        return parts

    async def scan_message_file(
        self,
        file_info: FileInfo,
        session_infos: dict[str, dict],
        parts_by_message: dict[str, list[PartRecord]],
        options: ScanOptions,
    ) -> list[Message]:
        """Load one message file and expand it into messages."""
        ids = ids_from_message_path(file_info.path)
        if ids is None:
            return []
        session_id, path_message_id = ids

        data = await asyncio.to_thread(read_json_file, file_info.path)
        if not isinstance(data, dict):
            return []

        message_id = _string_id(data.get("id")) or path_message_id
        part_records = parts_by_message.get(message_id, [])
        latest_mtime = max([file_info.mtime, *(p.mtime for p in part_records)])

        return self.expand_message(
            data,
            session_id=session_id,
            parts=[p.data for p in part_records],
            session_info=session_infos.get(session_id),
            project_dir_name=project_dir_from_path(file_info.path),
            file_modified_at=latest_mtime,
            options=options,
        )

    def expand_message(
        self,
        data: dict,
        session_id: str,
        parts: list[dict],
        session_info: dict | None,
        project_dir_name: str | None,
        file_modified_at: datetime,
        options: ScanOptions,
    ) -> list[Message]:
        """Expand one OpenCode message and its parts into messages.

        Args:
            data: Parsed message file
            session_id: Owning session identifier
            parts: Parsed part files of this message, in discovery order
            session_info: Parsed session info file, if any
            project_dir_name: Slugged project directory from the file path
            file_modified_at: Latest mtime across the message and part files
            options: Scan configuration

        Returns:
            Zero or more messages
        """
        role = data.get("role")
        info = session_info or {}
        cwd = info.get("cwd") or info.get("workspace")
        cwd = cwd if isinstance(cwd, str) else None

        context = _MessageContext(
            scanner=self,
            data=data,
            session_id=session_id,
            parts=tuple(parts),
            session_info=session_info,
            project_display=project_display_name(cwd, project_dir_name),
            project_path=cwd,
            file_modified_at=file_modified_at,
            options=options,
        )

        if role == "user":
            return [context.user_message()]
        if role == "assistant":
            return context.assistant_messages()

        logger.debug("Skipping message with unsupported role: session=%s role=%s", session_id, role)
        return []


@dataclass
class _MessageContext:
    """Shared fields while expanding a single OpenCode message."""

    scanner: OpenCodeScanner
    data: dict
    session_id: str
    parts: tuple[dict, ...]
    session_info: dict | None
    project_display: str
    project_path: str | None
    file_modified_at: datetime
    options: ScanOptions

    @property
    def declared_time(self) -> datetime:
        time_data = self.data.get("time")
        created = time_data.get("created") if isinstance(time_data, dict) else None
        return parse_timestamp(created, fallback=self.file_modified_at)

    def _message(
        self,
        msg_type: MsgType,
        timestamp: datetime,
        content: str,
        size: int,
        part: dict | None = None,
    ) -> Message:
        return Message(
            tool=self.scanner.tool,
            session_id=self.session_id,
            project_display=self.project_display,
            project_path=self.project_path,
            timestamp=timestamp,
            file_modified_at=self.file_modified_at,
            role=self.data.get("role"),
            msg_type=msg_type,
            size=size,
            raw=OpenCodePayload(
                message=self.data,
                parts=self.parts,
                content=content,
                session_info=self.session_info,
                part=part,
            ),
        )

    def user_message(self) -> Message:
        starts = [t for t in (part_start_time(p) for p in self.parts) if t is not None]
        timestamp = min(starts) if starts else self.declared_time

        content = "\n".join(
            part_text(p) for p in self.parts if p.get("type") in TEXT_PART_TYPES and part_text(p)
        )
        size = measure_opencode_payload({**self.data, "parts": list(self.parts)}, self.options.size_mode)
        return self._message(MsgType.USER, timestamp, content, size)

    def assistant_messages(self) -> list[Message]:
        relevant = [p for p in self.parts if p.get("type") in ASSISTANT_PART_TYPES]
        # sorted() is stable, so untimed and tied parts keep their order
        relevant = sorted(relevant, key=part_sort_key)

        messages: list[Message] = []
        for part in relevant:
            if part.get("type") == "tool":
                messages.extend(self._tool_messages(part))
                continue

            content = part_text(part)
            timestamp = part_time(part) or self.declared_time
            size = measure_opencode_payload({"content": content}, self.options.size_mode)
            messages.append(self._message(MsgType.ASSISTANT, timestamp, content, size, part))
        return messages

    def _tool_messages(self, part: dict) -> list[Message]:
        state = part.get("state")
        if not isinstance(state, dict) or state.get("status") != "completed":
            logger.debug(
                "Dropping incomplete tool part: session=%s tool=%s",
                self.session_id,
                part.get("tool"),
            )
            return []

        _, state_time = _time_fields(part)
        started = (
            try_parse_timestamp(state_time.get("start"))
            or part_time(part)
            or self.declared_time
        )
        ended = try_parse_timestamp(state_time.get("end")) or started + ONE_MILLISECOND

        call_content = tool_call_content(part)
        result_content = tool_result_content(part)
        mode = self.options.size_mode
        return [
            self._message(
                MsgType.TOOL_CALL,
                started,
                call_content,
                measure_opencode_payload({"content": call_content}, mode),
                part,
            ),
            self._message(
                MsgType.TOOL_RESULT,
                ended,
                result_content,
                measure_opencode_payload({"content": result_content}, mode),
                part,
            ),
        ]
