"""
Integrity commands: range, chain

Exit codes: 0 chain intact, 1 chain broken, 2 error.
"""

import asyncio
from datetime import datetime
from typing import Optional

import typer
from rich.table import Table

from careaudit.cli._runtime import DATETIME_FORMATS, console, emit_json, fail, open_service, time_range
from careaudit.verify import VerificationResult

app = typer.Typer()


def _report(result: VerificationResult, json_output: bool, scope: str) -> None:
    if json_output:
        emit_json(result.to_dict())
    elif result.valid:
        console.print(f"[green]✓ Audit chain intact[/green] ({scope}, {result.checked} entries checked)")
    else:
        console.print(
            f"[red]✗ Audit chain BROKEN[/red] ({scope}): "
            f"{len(result.broken_entry_ids)} of {result.checked} entries fail verification"
        )
        table = Table()
        table.add_column("Position", style="cyan", justify="right")
        table.add_column("Entry ID", style="yellow")
        table.add_column("Check", style="red")
        table.add_column("Expected (prefix)", style="dim")
        table.add_column("Actual (prefix)", style="dim")
        for b in result.breaks:
            table.add_row(
                str(b.position), b.entry_id, b.reason, b.expected[:16] or "<genesis>", b.actual[:16] or "<genesis>"
            )
        console.print(table)

    raise typer.Exit(0 if result.valid else 1)


@app.command("range")
def verify_range(
    log_path: Optional[str] = typer.Option(None, "--log", "-l", help="Path to audit log file"),
    since: Optional[datetime] = typer.Option(None, "--since", formats=DATETIME_FORMATS, help="Range start (UTC)"),
    until: Optional[datetime] = typer.Option(None, "--until", formats=DATETIME_FORMATS, help="Range end (UTC)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Verify the chain slice overlapping a time range.

    Examples:
        careaudit verify range --since 2024-01-01 --until 2024-02-01
    """
    try:
        service = open_service(log_path)
        result = asyncio.run(service.verifier.verify(time_range(since, until)))
    except Exception as e:
        fail(e, json_output)

    _report(result, json_output, "range")


@app.command()
def chain(
    log_path: Optional[str] = typer.Option(None, "--log", "-l", help="Path to audit log file"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Verify the whole chain back to genesis.

    Examples:
        careaudit verify chain --json
    """
    try:
        service = open_service(log_path)
        result = asyncio.run(service.verifier.verify_chain())
    except Exception as e:
        fail(e, json_output)

    _report(result, json_output, "full chain")
