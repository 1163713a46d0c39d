"""
Audit log commands: tail, query, summary, export, append
"""

import asyncio
import json
from datetime import datetime
from typing import Optional

import typer
from rich.table import Table

from careaudit.cli._runtime import (
    DATETIME_FORMATS,
    console,
    describe_range,
    emit_json,
    entries_table,
    fail,
    open_service,
    time_range,
)
from careaudit.core.entry import Actor, Provenance, Resource
from careaudit.log.store import full_range
from careaudit.query import EXPORT_FORMATS, AuditFilter

app = typer.Typer()

LOG_OPTION = typer.Option(
    None,
    "--log",
    "-l",
    help="Path to audit log file (default: configured store)",
)
SINCE_OPTION = typer.Option(None, "--since", formats=DATETIME_FORMATS, help="Range start (UTC)")
UNTIL_OPTION = typer.Option(None, "--until", formats=DATETIME_FORMATS, help="Range end (UTC)")
JSON_OPTION = typer.Option(False, "--json", help="Output as JSON")


@app.command()
def tail(
    log_path: Optional[str] = LOG_OPTION,
    lines: int = typer.Option(20, "--lines", "-n", min=1, help="Number of entries to show"),
    json_output: bool = JSON_OPTION,
):
    """
    Show the most recent audit entries.

    Examples:
        careaudit log tail
        careaudit log tail --lines 50 --json
    """
    try:
        service = open_service(log_path)
        result = asyncio.run(service.reader.query(full_range(), limit=lines))
    except Exception as e:
        fail(e, json_output)

    entries = list(reversed(result.entries))
    if json_output:
        emit_json({"entries": [e.to_record() for e in entries], "count": len(entries), "total": result.total})
    elif not entries:
        console.print("[yellow]Audit log is empty[/yellow]")
    else:
        console.print(entries_table(entries, "Audit log (most recent last)"))
        console.print(f"\n[bold]Total entries:[/bold] {result.total}")


@app.command()
def query(
    log_path: Optional[str] = LOG_OPTION,
    since: Optional[datetime] = SINCE_OPTION,
    until: Optional[datetime] = UNTIL_OPTION,
    event_type: Optional[str] = typer.Option(None, "--event-type", "-t", help="Filter by event type"),
    user_id: Optional[int] = typer.Option(None, "--user-id", "-u", help="Filter by actor user id"),
    resource_type: Optional[str] = typer.Option(None, "--resource-type", help="Filter by resource type"),
    resource_id: Optional[str] = typer.Option(None, "--resource-id", help="Filter by resource id"),
    limit: int = typer.Option(100, "--limit", min=0, help="Page size"),
    offset: int = typer.Option(0, "--offset", min=0, help="Entries to skip"),
    json_output: bool = JSON_OPTION,
):
    """
    Query entries by time range and filters (most recent first).

    Examples:
        careaudit log query --since 2024-01-01 --until 2024-01-31
        careaudit log query --event-type login_failure --json
    """
    try:
        service = open_service(log_path)
        tr = time_range(since, until)
        filters = AuditFilter(
            event_type=event_type,
            actor_user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
        )
        result = asyncio.run(service.reader.query(tr, filters, limit=limit, offset=offset))
    except Exception as e:
        fail(e, json_output)

    if json_output:
        emit_json({"entries": [e.to_record() for e in result.entries], "total": result.total})
        return

    start, end = describe_range(tr)
    console.print(entries_table(result.entries, f"Audit entries {start or '-inf'} .. {end or '+inf'}"))
    console.print(f"\n[bold]Matches:[/bold] {result.total} (showing {len(result.entries)})")


@app.command()
def summary(
    log_path: Optional[str] = LOG_OPTION,
    since: Optional[datetime] = SINCE_OPTION,
    until: Optional[datetime] = UNTIL_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Counts by event type, category, actor, resource type and auth outcome, plus top users and IPs."""
    try:
        service = open_service(log_path)
        result = asyncio.run(service.reader.summarize(time_range(since, until)))
    except Exception as e:
        fail(e, json_output)

    data = result.to_dict()
    if json_output:
        emit_json(data)
        return

    console.print(f"[bold]Total entries:[/bold] {data['total']}")
    if data["total"]:
        console.print(f"  First: {data['first_timestamp']}")
        console.print(f"  Last:  {data['last_timestamp']}")

    if data["unreadable"]:
        console.print(f"  [red]Unreadable records: {data['unreadable']}[/red] (run `careaudit verify chain`)")

    for title, key in (
        ("Event type", "by_event_type"),
        ("Category", "by_category"),
        ("Actor", "by_actor"),
        ("Resource type", "by_resource_type"),
        ("Auth outcome", "auth_outcomes"),
    ):
        if not data[key]:
            continue
        table = Table(title=f"By {title.lower()}")
        table.add_column(title, style="green")
        table.add_column("Count", justify="right")
        for name, count in data[key].items():
            table.add_row(name, str(count))
        console.print(table)

    if data["top_actors"]:
        table = Table(title="Top users")
        table.add_column("User id", style="cyan", justify="right")
        table.add_column("Username", style="yellow")
        table.add_column("Count", justify="right")
        for row in data["top_actors"]:
            table.add_row(str(row["user_id"]), row["username"] or "-", str(row["count"]))
        console.print(table)

    if data["top_source_ips"]:
        table = Table(title="Top source IPs")
        table.add_column("IP address", style="cyan")
        table.add_column("Count", justify="right")
        for row in data["top_source_ips"]:
            table.add_row(row["ip_address"], str(row["count"]))
        console.print(table)


@app.command()
def export(
    log_path: Optional[str] = LOG_OPTION,
    since: Optional[datetime] = SINCE_OPTION,
    until: Optional[datetime] = UNTIL_OPTION,
    fmt: str = typer.Option("json", "--format", "-f", help=f"One of: {', '.join(EXPORT_FORMATS)}"),
    event_type: Optional[str] = typer.Option(None, "--event-type", "-t", help="Filter by event type"),
    output: Optional[str] = typer.Option(None, "--out", "-o", help="Write to file instead of stdout"),
):
    """
    Export entries in append order for external review.

    Examples:
        careaudit log export --format csv --out audit.csv
        careaudit log export --since 2024-01-01 --format jsonl
    """
    try:
        service = open_service(log_path)
        filters = AuditFilter(event_type=event_type) if event_type else None
        data = asyncio.run(service.reader.export(time_range(since, until), filters, fmt=fmt))
        if output:
            with open(output, "w", newline="") as f:
                f.write(data)
    except Exception as e:
        fail(e, False)

    if output:
        console.print(f"[green]✓ Exported to[/green] [cyan]{output}[/cyan]")
    else:
        typer.echo(data, nl=False)


@app.command()
def append(
    event_type: str = typer.Argument(..., help="Event type, e.g. login_success"),
    log_path: Optional[str] = LOG_OPTION,
    user_id: Optional[int] = typer.Option(None, "--user-id", "-u", help="Actor user id"),
    username: Optional[str] = typer.Option(None, "--username", help="Actor username"),
    ip_address: Optional[str] = typer.Option(None, "--ip", help="Source IP address"),
    user_agent: Optional[str] = typer.Option(None, "--user-agent", help="Client user agent"),
    resource_type: Optional[str] = typer.Option(None, "--resource-type", help="Resource type"),
    resource_id: Optional[str] = typer.Option(None, "--resource-id", help="Resource id"),
    action: Optional[str] = typer.Option(None, "--action", "-a", help="Action description"),
    details: Optional[str] = typer.Option(None, "--details", "-d", help="Details as a JSON object"),
    json_output: bool = JSON_OPTION,
):
    """
    Append one audit event (operator actions, backfills of manual events).

    Examples:
        careaudit log append system_backup --action "nightly backup"
        careaudit log append user_role_change -u 1 --details '{"role": "admin"}'
    """
    try:
        parsed_details = json.loads(details) if details else None
        service = open_service(log_path)

        async def _run():
            await service.start()
            return await service.writer.append(
                event_type,
                actor=Actor(user_id=user_id, username=username),
                provenance=Provenance(ip_address=ip_address, user_agent=user_agent),
                resource=Resource(type=resource_type, id=resource_id),
                action=action,
                details=parsed_details,
            )

        entry = asyncio.run(_run())
    except Exception as e:
        fail(e, json_output)

    if json_output:
        emit_json(entry.to_record())
    else:
        console.print("[green]✓ Entry appended[/green]")
        console.print(f"  Id: [cyan]{entry.id}[/cyan]")
        console.print(f"  Hash: {entry.hash[:16]}...")
        console.print(f"  Previous: {entry.previous_entry_hash[:16] or '<genesis>'}")
