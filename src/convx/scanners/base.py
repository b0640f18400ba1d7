"""Base scanner interface, registry and file helpers."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from convx.logging import get_logger
from convx.models import Message, ScanOptions, Tool
from convx.timestamps import from_mtime

__all__ = [
    "FileInfo",
    "Scanner",
    "ScannerRegistry",
    "find_files",
    "iter_json_file_lines",
    "parse_json",
    "project_display_name",
    "read_head_lines",
    "read_json_file",
    "read_text_file",
]

logger = get_logger("scanner")

UNKNOWN_PROJECT = "unknown-project"


@dataclass(frozen=True)
class FileInfo:
    """A discovered file and its modification time."""

    path: Path
    mtime: datetime


def find_files(root: Path, patterns: list[str]) -> list[FileInfo]:
    """Discover files under root matching any of the glob patterns.

    Missing roots and unreadable entries yield no files rather than errors.

    Args:
        root: Directory to search
        patterns: Glob patterns relative to root (e.g. "**/*.jsonl")

    Returns:
        Sorted list of FileInfo, one per unique file
    """
    if not root.is_dir():
        logger.debug("Scan root missing: root=%s", root)
        return []

    seen: set[Path] = set()
    infos: list[FileInfo] = []
    for pattern in patterns:
        try:
            matches = list(root.glob(pattern))
        except OSError:
            logger.warning("Failed to glob: root=%s pattern=%s", root, pattern, exc_info=True)
            continue

        for path in matches:
            if path in seen:
                continue
            seen.add(path)
            try:
                if not path.is_file():
                    continue
                mtime = from_mtime(path.stat().st_mtime)
            except OSError:
                logger.warning("Failed to stat file: path=%s", path)
                continue
            infos.append(FileInfo(path=path, mtime=mtime))

    infos.sort(key=lambda info: info.path)
    return infos


def read_text_file(path: Path) -> str | None:
    """Read a UTF-8 text file, returning None on failure."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.warning("Failed to read file: path=%s", path, exc_info=True)
        return None


def parse_json(text: str) -> Any | None:
    """Parse JSON text, returning None when it is invalid."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def read_json_file(path: Path) -> Any | None:
    """Read and parse a JSON file, returning None on read or parse failure."""
    text = read_text_file(path)
    if text is None:
        return None
    data = parse_json(text)
    if data is None:
        logger.warning("Failed to parse JSON file: path=%s", path)
    return data


def read_head_lines(path: Path, count: int) -> list[str]:
    """Read up to count non-empty lines from the start of a file."""
    lines: list[str] = []
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                if line.strip():
                    lines.append(line.strip())
                if len(lines) >= count:
                    break
    except OSError:
        logger.warning("Failed to read file: path=%s", path, exc_info=True)
    return lines


def iter_json_file_lines(path: Path) -> Iterator[Any]:
    """Stream each parseable line of a newline-delimited JSON file.

    Blank lines are ignored. Lines that are not valid UTF-8 or not valid
    JSON are skipped.
    """
    with open(path, "rb") as f:
        for line_number, line in enumerate(f, start=1):
            try:
                line_text = line.decode("utf-8").strip()
            except UnicodeDecodeError:
                logger.debug("Skipping undecodable line: path=%s line=%d", path, line_number)
                continue

            if not line_text:
                continue

            obj = parse_json(line_text)
            if obj is None:
                logger.debug("Skipping malformed line: path=%s line=%d", path, line_number)
                continue
            yield obj


def project_display_name(cwd: str | None = None, project_dir_name: str | None = None) -> str:
    """Derive a human project label.

    Uses the last segment of the working directory when known, else decodes
    a slugged directory name ("-Users-dev-app" -> "/Users/dev/app").
    """
    if cwd:
        name = cwd.rstrip("/\\").replace("\\", "/").split("/")[-1]
        return name or cwd

    if project_dir_name:
        return project_dir_name.replace("-", "/")

    return UNKNOWN_PROJECT


class Scanner(ABC):
    """Base class for source scanners.

    Subclasses set `tool` and implement `scan()`, which walks the source's
    own file tree and returns a flat list of messages. Per-file and
    per-record failures are logged and skipped inside `scan()`.
    """

    tool: Tool

    @abstractmethod
    async def scan(self, options: ScanOptions) -> list[Message]:
        """Scan the source root configured in options.

        Args:
            options: Scan configuration

        Returns:
            Messages passing the `since` filter, in discovery order
        """


class ScannerRegistry:
    """Registry of scanners by tool."""

    _scanners: dict[Tool, Scanner] = {}

    @classmethod
    def register(cls, scanner: Scanner) -> None:
        """Register a scanner."""
        cls._scanners[scanner.tool] = scanner

    @classmethod
    def get(cls, tool: Tool) -> Scanner | None:
        """Get scanner by tool."""
        return cls._scanners.get(tool)

    @classmethod
    def all(cls) -> list[Scanner]:
        """List all registered scanners."""
        return list(cls._scanners.values())
