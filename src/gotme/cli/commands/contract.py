"""Contract commands for GOTME.

Finalize a research contract and open a session for it.
"""

from pathlib import Path
from typing import Annotated

import typer

from gotme.cli import runtime
from gotme.cli.formatters import console
from gotme.cli.formatters.panels import print_info, print_success
from gotme.cli.formatters.tables import print_table, session_table
from gotme.core.contract import Contract, ExecutionSchema
from gotme.core.errors import ValidationError
from gotme.core.security import InputValidator
from gotme.core.session import CAPABILITIES, new_session

app = typer.Typer(
    name="contract",
    help="Create research contracts.",
    no_args_is_help=True,
)


def _read_context(context: str | None, context_file: Path | None) -> str:
    if context_file is not None:
        try:
            return context_file.read_text(encoding="utf-8")
        except OSError as e:
            runtime.fail(ValidationError(f"Cannot read context file: {e}", field="context_file"))
    return context or ""


@app.command("new")
def new(
    topic: Annotated[str, typer.Argument(help="What is being researched.")],
    context: Annotated[
        str | None,
        typer.Option("--context", "-c", help="Thesis body: constraints, references, stop rules."),
    ] = None,
    context_file: Annotated[
        Path | None,
        typer.Option("--context-file", "-f", help="Read the thesis body from a file."),
    ] = None,
    schema: Annotated[
        ExecutionSchema | None,
        typer.Option("--schema", "-s", help="Execution schema for every round."),
    ] = None,
    threshold: Annotated[
        int | None,
        typer.Option("--threshold", "-t", help="Convergence threshold (50-95, percent of peak)."),
    ] = None,
    partners: Annotated[
        list[str] | None,
        typer.Option("--partner", "-p", help="Partner from the pool (repeatable)."),
    ] = None,
    tools: Annotated[
        list[str] | None,
        typer.Option("--tool", help=f"Enable a capability: {', '.join(CAPABILITIES)}."),
    ] = None,
    refine: Annotated[
        bool,
        typer.Option("--refine", help="Let the synthesizer model rewrite the context first."),
    ] = False,
) -> None:
    """Finalize a contract and create an idle session.

    Examples:

        gotme contract new "Grid-scale sodium batteries" -c "Focus on cost per kWh"

        gotme contract new "Protein folding heuristics" -f thesis.md --schema sequential
    """
    config = runtime.load_settings()
    body = _read_context(context, context_file).strip()
    is_valid, error_msg = InputValidator.validate_contract_context(body)
    if not is_valid:
        runtime.fail(ValidationError(error_msg, field="context"))

    pool = config.partners
    if partners:
        chosen = {name: pool.get(name) for name in partners}
        unknown = [name for name, entry in chosen.items() if entry is None]
        if unknown:
            runtime.fail(
                ValidationError(f"Unknown partners: {', '.join(unknown)}", field="partner")
            )
        selected = [entry.to_partner() for entry in chosen.values() if entry is not None]
    else:
        selected = pool.active_partners()
    if not selected:
        runtime.fail(ValidationError("No partners configured", field="partners"))

    contract = Contract(
        topic=topic,
        context=body,
        schema=schema or config.orchestration.default_schema,
    )
    if refine:
        refiner = runtime.build_refiner(config)
        with console.status("[info]Refining contract...[/]"):
            improved = runtime.run_async(refiner.refine(topic, body))
        if improved != body:
            contract = contract.with_context(
                improved, improved_by=config.orchestration.synthesizer_model
            )
            print_info("Contract context rewritten by the refiner.", title="Refined")

    try:
        session = new_session(
            contract,
            selected,
            threshold=threshold or config.convergence.threshold,
            tools=tuple(dict.fromkeys(tools or config.orchestration.enabled_tools)),
        )
    except ValueError as e:
        runtime.fail(ValidationError(str(e), field="session"))

    store = runtime.get_store()
    runtime.persist(store, session)
    print_table(session_table(session))
    print_success(f"Session {session.id} created. Advance it with 'gotme run step'.")


__all__ = ["app"]
