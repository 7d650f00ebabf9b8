"""Run commands for GOTME.

Advance a session one round at a time, or let it run until the
convergence signal stops it.
"""

import asyncio
import contextlib
import signal
from typing import Annotated

import typer

from gotme.cli import runtime
from gotme.cli.formatters import console
from gotme.cli.formatters.panels import print_info, print_success, print_warning
from gotme.cli.formatters.tables import print_table, round_table, signal_table
from gotme.core.session import Session, SessionStatus
from gotme.evolution.engine import AutoRunResult, CycleOutcome, OrchestrationEngine, StopReason
from gotme.persistence.session_store import SessionStore

app = typer.Typer(
    name="run",
    help="Advance sessions through orchestration rounds.",
    no_args_is_help=True,
)

SessionOption = Annotated[
    str | None,
    typer.Option("--session", "-S", help="Session id (defaults to the most recent)."),
]


def _render_outcome(outcome: CycleOutcome) -> None:
    print_table(round_table(outcome.round))
    print_table(signal_table(outcome.round, outcome.signal, outcome.session))


def _report_connectivity(session: Session) -> None:
    if not session.local_backend_connected and any(p.local for p in session.active_partners):
        print_warning("Local backend unreachable; local partners will report errors.")


async def _step(engine: OrchestrationEngine, session: Session) -> CycleOutcome:
    session = await engine.refresh_connectivity(session)
    _report_connectivity(session)
    with console.status(f"[info]Round {session.next_round_number} in progress...[/]"):
        result = await engine.run_cycle(session)
    if result.is_err:
        runtime.fail(result.error, title="Round Failed")
    return result.value


@app.command("step")
def step(session_id: SessionOption = None) -> None:
    """Run a single dispatch → synthesize → commit round."""
    config = runtime.load_settings()
    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    if session.status == SessionStatus.CONVERGED:
        print_info("Session has converged. Export the ledger with 'gotme ledger export'.")
        raise typer.Exit(0)

    engine = runtime.build_engine(config)
    outcome = runtime.run_async(_step(engine, session))
    runtime.persist(store, outcome.session)
    _render_outcome(outcome)
    if outcome.session.status == SessionStatus.CONVERGED:
        print_success(f"Converged at round {outcome.round.round_number}.")


async def _auto(
    engine: OrchestrationEngine,
    store: SessionStore,
    session: Session,
    *,
    max_rounds: int,
    settle_delay: float,
) -> AutoRunResult:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, stop.set)

    def _on_round(outcome: CycleOutcome) -> None:
        runtime.persist(store, outcome.session)
        _render_outcome(outcome)

    session = await engine.refresh_connectivity(session)
    _report_connectivity(session)
    try:
        return await engine.run_until_converged(
            session,
            stop=stop,
            settle_delay=settle_delay,
            max_rounds=max_rounds,
            on_round=_on_round,
        )
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


@app.command("auto")
def auto(
    session_id: SessionOption = None,
    max_rounds: Annotated[
        int | None,
        typer.Option("--max-rounds", "-n", help="Stop after this many rounds."),
    ] = None,
    delay: Annotated[
        float | None,
        typer.Option("--delay", help="Seconds to wait between rounds."),
    ] = None,
) -> None:
    """Run rounds until the session converges.

    Ctrl+C lets the round in progress finish and then stops.
    """
    config = runtime.load_settings()
    store = runtime.get_store()
    session = runtime.resolve_session(store, session_id)
    if session.status == SessionStatus.CONVERGED:
        print_info("Session has already converged.")
        raise typer.Exit(0)

    engine = runtime.build_engine(config)
    result = runtime.run_async(
        _auto(
            engine,
            store,
            session,
            max_rounds=max_rounds or config.convergence.max_rounds,
            settle_delay=config.autorun.settle_delay_seconds if delay is None else delay,
        )
    )

    summary = f"{result.rounds_completed} round(s) completed."
    match result.stop_reason:
        case StopReason.CONVERGED:
            print_success(f"{summary} Session converged.")
        case StopReason.STOPPED:
            print_info(f"{summary} Stopped by operator.")
        case StopReason.MAX_ROUNDS:
            print_warning(f"{summary} Round limit reached before convergence.")
        case StopReason.FAILED:
            assert result.error is not None
            runtime.fail(result.error, title=f"{summary} Round Failed")


__all__ = ["app"]
