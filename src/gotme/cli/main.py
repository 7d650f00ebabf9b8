"""GOTME CLI main entry point.

This module defines the main Typer application and registers
all command groups for the GOTME CLI.
"""

from typing import Annotated

import typer

from gotme import __version__
from gotme.cli import runtime
from gotme.cli.commands import config, contract, ledger, partners, run, session
from gotme.cli.formatters import console

app = typer.Typer(
    name="gotme",
    help="GOTME - Governed Orchestrated Thought Machine Engine",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(contract.app, name="contract")
app.add_typer(run.app, name="run")
app.add_typer(session.app, name="session")
app.add_typer(partners.app, name="partners")
app.add_typer(ledger.app, name="ledger")
app.add_typer(config.app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]GOTME[/] version [green]{__version__}[/]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Stream debug logs to stderr."),
    ] = False,
) -> None:
    """GOTME - Governed Orchestrated Thought Machine Engine.

    Several partner models review a research contract each round, a
    synthesizer folds their runs into an evolved contract, and rounds
    continue until the output stops growing.

    Use [bold cyan]gotme COMMAND --help[/] for command-specific help.
    """
    runtime.set_verbose(verbose)


__all__ = ["app", "main"]
