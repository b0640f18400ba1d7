"""Scanners for the supported conversation log formats."""

from .base import FileInfo, Scanner, ScannerRegistry
from .claude_code import ClaudeCodeScanner
from .opencode import OpenCodeScanner

__all__ = [
    "ClaudeCodeScanner",
    "FileInfo",
    "OpenCodeScanner",
    "Scanner",
    "ScannerRegistry",
]

# Register scanners
ScannerRegistry.register(ClaudeCodeScanner())
ScannerRegistry.register(OpenCodeScanner())
