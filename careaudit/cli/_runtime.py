"""
Shared plumbing for CLI commands: settings, service construction, output.
"""

import json
from dataclasses import replace
from datetime import datetime
from typing import Any, List, NoReturn, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from careaudit.config import Settings
from careaudit.core.entry import AuditLogEntry, format_timestamp
from careaudit.log.store import full_range
from careaudit.logging_config import setup_logging
from careaudit.query import TimeRange
from careaudit.service import AuditService

console = Console()

DATETIME_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
]


def load_settings(log_path: Optional[str] = None) -> Settings:
    """Settings from the environment; --log forces the file store at that path."""
    settings = Settings.from_env()
    if log_path:
        settings = replace(settings, store="file", log_path=log_path)
    return settings


def open_service(log_path: Optional[str] = None, verbose: bool = False) -> AuditService:
    settings = load_settings(log_path)
    # Errors only unless --verbose
    setup_logging(level=settings.log_level if verbose else "ERROR", fmt=settings.log_format)
    return AuditService.from_settings(settings)


def time_range(since: Optional[datetime], until: Optional[datetime]) -> TimeRange:
    """CLI bounds (naive = UTC); missing bounds are unbounded."""
    lo, hi = full_range()
    return TimeRange(since or lo, until or hi)


def emit_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def fail(error: Exception, json_output: bool) -> NoReturn:
    """Report an error and exit with code 2."""
    if json_output:
        emit_json({"error": str(error), "type": type(error).__name__})
    else:
        console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(2)


def entries_table(entries: List[AuditLogEntry], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Timestamp", style="cyan")
    table.add_column("Event", style="green")
    table.add_column("Actor", style="yellow")
    table.add_column("Resource")
    table.add_column("Action")
    table.add_column("Hash (prefix)", style="dim")

    for e in entries:
        event = e.event_type.value if hasattr(e.event_type, "value") else str(e.event_type)
        actor = e.actor_username or (str(e.actor_user_id) if e.actor_user_id is not None else "-")
        resource = "/".join(p for p in (e.resource_type, e.resource_id) if p) or "-"
        table.add_row(format_timestamp(e.timestamp), event, actor, resource, e.action, e.hash[:16])
    return table


def describe_range(tr: TimeRange) -> Tuple[Optional[str], Optional[str]]:
    lo, hi = full_range()
    return (
        None if tr.start == lo else format_timestamp(tr.start),
        None if tr.end == hi else format_timestamp(tr.end),
    )
