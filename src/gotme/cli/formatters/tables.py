"""Rich tables for sessions, rounds and partners."""

from typing import Any

from rich.table import Table

from gotme.cli.formatters import console
from gotme.config.models import PartnerConfig
from gotme.core.session import Round, Session
from gotme.evolution.convergence import ConvergenceSignal


def create_table(
    title: str | None = None,
    *,
    show_header: bool = True,
    show_lines: bool = False,
) -> Table:
    """Table with the shared GOTME styling."""
    return Table(
        title=title,
        show_header=show_header,
        show_lines=show_lines,
        border_style="blue",
        header_style="bold cyan",
        row_styles=["", "dim"],
    )


def create_key_value_table(data: dict[str, Any], title: str | None = None) -> Table:
    table = create_table(title, show_header=False)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(str(key), str(value))
    return table


def _preview(text: str, limit: int = 80) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else f"{flat[: limit - 3]}..."


def round_table(round_: Round) -> Table:
    """One row per Run of ``round_``."""
    table = create_table(f"Round {round_.round_number} ({round_.execution_schema.value})")
    table.add_column("#", justify="right")
    table.add_column("Partner", style="cyan")
    table.add_column("Source")
    table.add_column("Chars", justify="right")
    table.add_column("Tools", justify="right")
    table.add_column("Response")
    for index, run in enumerate(round_.runs):
        response = f"[error]{_preview(run.response)}[/]" if run.failed else _preview(run.response)
        table.add_row(
            str(index),
            run.display_name,
            f"{run.source} ({run.model_class})",
            str(run.char_count),
            str(len(run.tool_calls)),
            response,
        )
    return table


def signal_table(round_: Round, signal: ConvergenceSignal, session: Session) -> Table:
    return create_key_value_table(
        {
            "IAT signature": round_.iat_signature,
            "Archive": round_.archive_id or "LOCAL_ONLY",
            "Round chars": round_.synthesis_char_count,
            "Peak": signal.peak,
            "Stop line": f"{signal.limit:.0f}",
            "Signal": f"{session.convergence_signal_pct:.1f}% of peak",
            "Status": session.status.value,
            "Verdict": signal.reason,
        },
        "Convergence",
    )


def session_table(session: Session) -> Table:
    return create_key_value_table(
        {
            "Session": session.id,
            "Topic": session.contract.topic,
            "Schema": session.contract.execution_schema.value,
            "Status": session.status.value,
            "Rounds": len(session.rounds),
            "Threshold": f"{session.convergence_threshold}%",
            "Peak": session.convergence_peak,
            "Chars preserved": session.total_chars_preserved,
            "Partners": ", ".join(p.name for p in session.active_partners),
            "Tools": ", ".join(session.active_tools) or "-",
            "Archive connected": session.archive_connected,
            "Local backend connected": session.local_backend_connected,
        },
        "Session",
    )


def metrics_table(session: Session) -> Table:
    table = create_table("Partner metrics")
    table.add_column("Partner", style="cyan")
    table.add_column("Class")
    table.add_column("Runs", justify="right")
    table.add_column("Total chars", justify="right")
    table.add_column("Avg rating", justify="right")
    for metrics in session.model_metrics.values():
        rating = f"{metrics.avg_rating:.1f}" if metrics.rating_count else "-"
        table.add_row(
            metrics.name,
            str(metrics.model_class),
            str(metrics.runs),
            str(metrics.total_chars),
            rating,
        )
    return table


def partners_table(pool: list[PartnerConfig], active: set[str]) -> Table:
    table = create_table("Partner pool")
    table.add_column("Name", style="cyan")
    table.add_column("Model")
    table.add_column("Class")
    table.add_column("Source")
    table.add_column("Active", justify="center")
    for partner in pool:
        table.add_row(
            partner.name,
            partner.model,
            str(partner.model_class),
            "local" if partner.local else "cloud",
            "[success]yes[/]" if partner.name in active else "[muted]no[/]",
        )
    return table


def print_table(table: Table) -> None:
    console.print(table)


__all__ = [
    "create_table",
    "create_key_value_table",
    "round_table",
    "signal_table",
    "session_table",
    "metrics_table",
    "partners_table",
    "print_table",
]
