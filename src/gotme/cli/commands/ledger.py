"""Ledger export command."""

from pathlib import Path
from typing import Annotated

import typer

from gotme.audit.ledger import write_ledger
from gotme.cli import runtime
from gotme.cli.formatters.panels import print_success
from gotme.core.errors import PersistenceError

app = typer.Typer(
    name="ledger",
    help="Export the audit ledger of a session.",
    no_args_is_help=True,
)


@app.command("export")
def export(
    session_id: Annotated[
        str | None,
        typer.Option("--session", "-S", help="Session id (defaults to the most recent)."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Target file (default: GOTME_LEDGER_<id>.md)."),
    ] = None,
) -> None:
    """Write the full session history as a Markdown ledger."""
    runtime.load_settings()
    session = runtime.resolve_session(runtime.get_store(), session_id)
    target = output or Path(f"GOTME_LEDGER_{session.id}.md")
    try:
        path = write_ledger(session, target)
    except PersistenceError as e:
        runtime.fail(e, title="Export Failed")
    print_success(f"Ledger with {len(session.rounds)} round(s) written to {path}")


__all__ = ["app"]
