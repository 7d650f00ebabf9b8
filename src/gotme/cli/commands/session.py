"""Session commands: inspect saved sessions and steer them between rounds."""

from typing import Annotated

import typer

from gotme.cli import runtime
from gotme.cli.formatters import console
from gotme.cli.formatters.panels import print_info, print_success
from gotme.cli.formatters.tables import (
    create_table,
    metrics_table,
    print_table,
    round_table,
    session_table,
)
from gotme.core.errors import ValidationError
from gotme.persistence.session_store import load_session

app = typer.Typer(
    name="session",
    help="Inspect and steer sessions.",
    no_args_is_help=True,
)

SessionOption = Annotated[
    str | None,
    typer.Option("--session", "-S", help="Session id (defaults to the most recent)."),
]


@app.command("list")
def list_sessions() -> None:
    """List saved sessions, most recent first."""
    runtime.load_settings()
    store = runtime.get_store()
    ids = store.list_ids()
    if not ids:
        print_info("No saved sessions. Create one with 'gotme contract new'.")
        return

    table = create_table("Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Topic")
    table.add_column("Rounds", justify="right")
    table.add_column("Status")
    for session_id in ids:
        result = load_session(store.path_for(session_id))
        if result.is_err:
            table.add_row(session_id, "[error]unreadable[/]", "-", "-")
            continue
        session = result.value
        table.add_row(
            session.id, session.contract.topic, str(len(session.rounds)), session.status.value
        )
    print_table(table)


@app.command("show")
def show(
    session_id: SessionOption = None,
    rounds: Annotated[
        bool,
        typer.Option("--rounds", "-r", help="Also print every round's runs."),
    ] = False,
) -> None:
    """Show session state, partner metrics and the active contract."""
    runtime.load_settings()
    session = runtime.resolve_session(runtime.get_store(), session_id)
    print_table(session_table(session))
    if session.model_metrics:
        print_table(metrics_table(session))
    if rounds:
        for round_ in session.rounds:
            print_table(round_table(round_))
    console.print("[bold]Active contract[/]")
    console.print(session.active_contract, markup=False)


@app.command("override")
def override(
    text: Annotated[str, typer.Argument(help="Replacement thesis for the next round.")],
    session_id: SessionOption = None,
) -> None:
    """Director override of the running contract.

    Replaces the latest evolved contract, or the contract context before
    the first round.
    """
    config = runtime.load_settings()
    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    result = runtime.build_engine(config).apply_override(session, text)
    if result.is_err:
        runtime.fail(result.error, title="Override Rejected")
    updated, event = result.value
    runtime.persist(store, updated)
    print_success(f"Override applied to the {event.data['target']}.")


@app.command("rate")
def rate(
    round_number: Annotated[int, typer.Argument(help="Round number (1-based).")],
    run_index: Annotated[int, typer.Argument(help="Run index within the round (0-based).")],
    rating: Annotated[int, typer.Argument(help="Rating from 1 to 5.")],
    session_id: SessionOption = None,
) -> None:
    """Rate a partner run. Only the rating and partner metrics change."""
    runtime.load_settings()
    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    try:
        updated = session.with_rating(round_number, run_index, rating)
    except ValidationError as e:
        runtime.fail(e, title="Rating Rejected")
    runtime.persist(store, updated)
    run = updated.rounds[round_number - 1].runs[run_index]
    print_success(f"Rated {run.display_name} {rating}/5.")


@app.command("threshold")
def threshold(
    value: Annotated[int, typer.Argument(help="Convergence threshold (50-95).")],
    session_id: SessionOption = None,
) -> None:
    """Change the convergence threshold for future rounds."""
    runtime.load_settings()
    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    try:
        updated = session.with_threshold(value)
    except ValidationError as e:
        runtime.fail(e, title="Threshold Rejected")
    runtime.persist(store, updated)
    print_success(f"Convergence threshold set to {value}%.")


@app.command("tool")
def tool(
    tool_id: Annotated[str, typer.Argument(help="Capability to toggle: search, code, memory.")],
    session_id: SessionOption = None,
) -> None:
    """Toggle a capability on or off."""
    runtime.load_settings()
    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    try:
        updated = session.with_tool_toggled(tool_id)
    except ValidationError as e:
        runtime.fail(e, title="Unknown Capability")
    runtime.persist(store, updated)
    state = "enabled" if tool_id in updated.active_tools else "disabled"
    print_success(f"{tool_id} {state}.")


__all__ = ["app"]
