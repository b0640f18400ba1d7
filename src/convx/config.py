"""Configuration loading and management."""

import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from pathlib import Path

import yaml

from convx.cache import DEFAULT_TTL_SECONDS
from convx.models import ScanOptions, SizeMode


@dataclass
class ScanConfig:
    claude_root: Path = field(default_factory=lambda: Path.home() / ".claude" / "projects")
    opencode_root: Path = field(
        default_factory=lambda: Path.home() / ".local" / "share" / "opencode" / "project"
    )
    size_mode: SizeMode = SizeMode.CHARS
    since: datetime | None = None


@dataclass
class CacheConfig:
    ttl_seconds: int = DEFAULT_TTL_SECONDS


@dataclass
class LoggingConfig:
    level: int = logging.INFO
    log_dir: Path = field(default_factory=lambda: Path.home() / ".convx" / "logs")
    console: bool = True
    components: dict[str, int] = field(default_factory=dict)


@dataclass
class Config:
    scan: ScanConfig = field(default_factory=ScanConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def scan_options(self) -> ScanOptions:
        """Build the ScanOptions used to request an index."""
        return ScanOptions(
            claude_root=self.scan.claude_root,
            opencode_root=self.scan.opencode_root,
            size_mode=self.scan.size_mode,
            since=self.scan.since,
        )


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def parse_since(value: object) -> datetime | None:
    """Parse the `since` setting into a UTC datetime.

    Dates mean midnight UTC. Raises ValueError for unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = expand_env_var(value.strip())
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_since(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"Invalid since value: {value!r} (expected YYYY-MM-DD)")
    raise ValueError(f"Invalid since value: {value!r} (expected YYYY-MM-DD)")


def parse_log_level(value: object) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value!r}")
    return level


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config in standard locations
        search_paths = [
            Path.cwd() / "convx.yaml",
            Path.home() / ".config" / "convx" / "config.yaml",
            Path("/etc/convx/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not config_path.exists():
        return Config()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    defaults = Config()

    # Parse scan config
    scan_data = data.get("scan") or {}
    scan = ScanConfig(
        claude_root=expand_path(str(scan_data["claude_root"]))
        if scan_data.get("claude_root")
        else defaults.scan.claude_root,
        opencode_root=expand_path(str(scan_data["opencode_root"]))
        if scan_data.get("opencode_root")
        else defaults.scan.opencode_root,
        size_mode=SizeMode.parse(scan_data.get("size_mode", SizeMode.CHARS)),
        since=parse_since(scan_data.get("since")),
    )

    # Parse cache config
    cache_data = data.get("cache") or {}
    cache = CacheConfig(
        ttl_seconds=int(cache_data.get("ttl_seconds", DEFAULT_TTL_SECONDS)),
    )

    # Parse logging config
    logging_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=parse_log_level(logging_data.get("level", "INFO")),
        log_dir=expand_path(str(logging_data["log_dir"]))
        if logging_data.get("log_dir")
        else defaults.logging.log_dir,
        console=bool(logging_data.get("console", True)),
        components={
            str(component): parse_log_level(component_level)
            for component, component_level in (logging_data.get("levels") or {}).items()
        },
    )

    return Config(scan=scan, cache=cache, logging=logging_config)
