#!/usr/bin/env python3
"""
careaudit CLI

Main entrypoint for the careaudit command-line tool.
"""

import typer
from rich.console import Console
from rich.table import Table

from careaudit import __version__
from careaudit.cli.commands import checkpoint, log, verify
from careaudit.log.integrity import DEFAULT_HASH_ALGORITHM

# Initialize Typer app
app = typer.Typer(
    name="careaudit",
    help="Tamper-evident security audit log",
    add_completion=False,
)

console = Console()

app.add_typer(log.app, name="log", help="Audit log operations")
app.add_typer(verify.app, name="verify", help="Hash chain integrity verification")
app.add_typer(checkpoint.app, name="checkpoint", help="Signed checkpoint management")


@app.command()
def version():
    """Show version information."""
    table = Table(show_header=False, box=None)
    table.add_row("[bold]careaudit[/bold]", f"v{__version__}")
    table.add_row("Default digest", DEFAULT_HASH_ALGORITHM)

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
