"""Partner pool commands."""

from typing import Annotated

import typer

from gotme.cli import runtime
from gotme.cli.formatters.panels import print_success, print_warning
from gotme.cli.formatters.tables import partners_table, print_table
from gotme.core.errors import ValidationError

app = typer.Typer(
    name="partners",
    help="Inspect the partner pool and edit a session's active partners.",
    no_args_is_help=True,
)

SessionOption = Annotated[
    str | None,
    typer.Option("--session", "-S", help="Session id (defaults to the most recent)."),
]


@app.command("list")
def list_partners(session_id: SessionOption = None) -> None:
    """Show the configured pool and which partners are active."""
    config = runtime.load_settings()
    store = runtime.get_store()
    if session_id or store.list_ids():
        session = runtime.resolve_session(store, session_id)
        active = {p.name for p in session.active_partners}
    else:
        active = {p.name for p in config.partners.active_partners()}
    print_table(partners_table(list(config.partners.pool), active))


@app.command("add")
def add(
    name: Annotated[str, typer.Argument(help="Partner name from the pool.")],
    session_id: SessionOption = None,
) -> None:
    """Activate a pool partner for a session."""
    config = runtime.load_settings()
    entry = config.partners.get(name)
    if entry is None:
        runtime.fail(ValidationError(f"Unknown partner: {name}", field="partner", value=name))

    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    updated = session.with_partner_added(entry.to_partner())
    if updated is session:
        print_warning(f"{name} is already active.")
        return
    runtime.persist(store, updated)
    print_success(f"{name} joins the next round.")


@app.command("remove")
def remove(
    name: Annotated[str, typer.Argument(help="Active partner to drop.")],
    session_id: SessionOption = None,
) -> None:
    """Deactivate a partner. The last active partner cannot be removed."""
    runtime.load_settings()
    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    try:
        updated = session.with_partner_removed(name)
    except ValidationError as e:
        runtime.fail(e)
    if updated is session:
        print_warning(f"{name} is not active.")
        return
    runtime.persist(store, updated)
    print_success(f"{name} removed from the active set.")


__all__ = ["app"]
