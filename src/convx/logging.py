"""Logging configuration for convx.

Every module logs through a component logger (``convx.indexer``,
``convx.scanner.opencode``, ...). setup_logging() attaches the output
handlers once, to the package logger, and sets per-component levels so a
single noisy scanner can be turned up without flooding the rest.
"""

import logging
import sys
from pathlib import Path

# Default log directory
DEFAULT_LOG_DIR = Path.home() / ".convx" / "logs"

PACKAGE_LOGGER = "convx"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    name: str,
    log_dir: Path | None = None,
    level: int = logging.INFO,
    console: bool = True,
    component_levels: dict[str, int] | None = None,
) -> logging.Logger:
    """Configure logging for a convx entry point.

    Log files are written to <log_dir>/<name>.log. Handlers pass every
    record through; filtering happens on the loggers, so a component level
    below the package level still reaches the file.

    Args:
        name: Entry point name (used for log filename)
        log_dir: Directory for log files (defaults to ~/.convx/logs/)
        level: Level of the package logger (defaults to INFO)
        console: Whether to also log to stderr (defaults to True)
        component_levels: Level overrides keyed by component name
            (e.g. {"scanner.opencode": logging.DEBUG})

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for component, component_level in (component_levels or {}).items():
        get_logger(component).setLevel(component_level)

    # Handlers are attached once per process
    if logger.handlers:
        return logger

    if log_dir is None:
        log_dir = DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    file_handler = logging.FileHandler(log_dir / f"{name}.log", encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a convx component.

    Args:
        name: Component name (will be prefixed with 'convx.')

    Returns:
        Logger instance
    """
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
