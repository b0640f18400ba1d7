"""CLI entry point for browsing the conversation index.

Allows running as a module:
    python -m convx
"""

import asyncio
from collections import Counter
from datetime import datetime
from pathlib import Path

import click

from convx.config import Config, load_config, parse_since
from convx.indexer import Indexer
from convx.logging import setup_logging
from convx.models import Index, MsgType, ScanOptions, Session, SizeMode, Tool
from convx.timestamps import format_time


def format_size(size: int, mode: SizeMode) -> str:
    """Format a size with its unit suffix."""
    suffix = {SizeMode.CHARS: "c", SizeMode.BYTES: "B", SizeMode.TOKENS: "t"}[mode]
    return f"{size:,}{suffix}"


def print_session(session: Session, mode: SizeMode) -> None:
    """Print a one-line session summary."""
    click.echo(
        f"  \033[36m{format_time(session.started_at)}-{format_time(session.ended_at)}\033[0m "
        f"\033[32m{session.tool.value:<11}\033[0m "
        f"{session.project_display} "
        f"({len(session.messages)} msgs, {format_size(session.size, mode)}) "
        f"\033[2m{session.session_id}\033[0m"
    )


def load_index(ctx: click.Context) -> Index:
    options: ScanOptions = ctx.obj["options"]
    indexer: Indexer = ctx.obj["indexer"]
    return asyncio.run(indexer.build_index(options))


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to config YAML")
@click.option("--claude-root", type=click.Path(path_type=Path), help="Claude Code projects directory")
@click.option("--opencode-root", type=click.Path(path_type=Path), help="OpenCode projects directory")
@click.option(
    "--size-mode",
    type=click.Choice([m.value for m in SizeMode]),
    help="Unit used to measure message size",
)
@click.option("--since", help="Only include messages at or after this date (YYYY-MM-DD)")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    claude_root: Path | None,
    opencode_root: Path | None,
    size_mode: str | None,
    since: str | None,
) -> None:
    """Browse Claude Code and OpenCode conversation history."""
    config: Config = load_config(config_path)
    setup_logging(
        "cli",
        log_dir=config.logging.log_dir,
        level=config.logging.level,
        console=config.logging.console,
        component_levels=config.logging.components,
    )

    if claude_root:
        config.scan.claude_root = claude_root
    if opencode_root:
        config.scan.opencode_root = opencode_root
    if size_mode:
        config.scan.size_mode = SizeMode.parse(size_mode)
    if since:
        try:
            config.scan.since = parse_since(since)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--since")

    ctx.ensure_object(dict)
    ctx.obj["options"] = config.scan_options()
    ctx.obj["indexer"] = Indexer(ttl_seconds=config.cache.ttl_seconds)


@cli.command()
@click.pass_context
def dates(ctx: click.Context) -> None:
    """List dates with sessions, newest first."""
    index = load_index(ctx)

    if not index.by_date:
        click.echo("No sessions found.")
        return

    for date_key in index.date_keys():
        sessions = index.get(date_key)
        message_count = sum(len(s.messages) for s in sessions)
        click.echo(f"{date_key}  {len(sessions):>4} sessions  {message_count:>6} messages")


@cli.command()
@click.argument("date_key", required=False)
@click.option("--filter", "filter_text", default="", help="Filter by project, session id or tool")
@click.pass_context
def sessions(ctx: click.Context, date_key: str | None, filter_text: str) -> None:
    """List sessions, optionally for a single date (YYYY-MM-DD)."""
    if date_key:
        try:
            datetime.strptime(date_key, "%Y-%m-%d")
        except ValueError:
            raise click.BadParameter("expected YYYY-MM-DD", param_hint="DATE_KEY")

    options: ScanOptions = ctx.obj["options"]
    index = load_index(ctx).filter(filter_text)

    keys = [date_key] if date_key else index.date_keys()
    found = False
    for key in keys:
        day_sessions = index.get(key)
        if not day_sessions:
            continue
        found = True
        click.echo(f"\033[1m{key}\033[0m")
        for session in day_sessions:
            print_session(session, options.size_mode)

    if not found:
        click.echo("No sessions found.")


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show totals per tool and message type."""
    options: ScanOptions = ctx.obj["options"]
    index = load_index(ctx)

    sessions_by_tool: Counter[Tool] = Counter()
    size_by_type: Counter[MsgType] = Counter()
    count_by_type: Counter[MsgType] = Counter()
    for session in index.sessions():
        sessions_by_tool[session.tool] += 1
        for message in session.messages:
            count_by_type[message.msg_type] += 1
            size_by_type[message.msg_type] += message.size

    click.echo(f"Sessions: {index.session_count}  Messages: {index.message_count}")
    for tool in Tool:
        click.echo(f"  {tool.value:<12} {sessions_by_tool[tool]:>6} sessions")
    for msg_type in MsgType:
        click.echo(
            f"  {msg_type.value:<12} {count_by_type[msg_type]:>6} messages  "
            f"{format_size(size_by_type[msg_type], options.size_mode)}"
        )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
