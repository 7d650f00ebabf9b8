"""Session event definitions.

Factories follow the BaseEvent pattern and the dot.notation.past_tense
naming convention.
"""

from gotme.events.base import BaseEvent


def session_round_completed(
    session_id: str,
    round_number: int,
    char_count: int,
    iat_signature: str,
    archive_id: str | None = None,
    failed_runs: int = 0,
) -> BaseEvent:
    """Create event when a round is committed to the session."""
    return BaseEvent(
        type="session.round.completed",
        aggregate_type="session",
        aggregate_id=session_id,
        data={
            "round_number": round_number,
            "char_count": char_count,
            "iat_signature": iat_signature,
            "archive_id": archive_id,
            "failed_runs": failed_runs,
        },
    )


def session_converged(
    session_id: str,
    round_number: int,
    reason: str,
    peak: int,
    limit: float,
) -> BaseEvent:
    """Create event when the convergence signal halts the session."""
    return BaseEvent(
        type="session.converged",
        aggregate_type="session",
        aggregate_id=session_id,
        data={
            "round_number": round_number,
            "reason": reason,
            "peak": peak,
            "limit": limit,
        },
    )


def session_override_applied(
    session_id: str,
    target: str,
    round_number: int | None,
    char_count: int,
) -> BaseEvent:
    """Create event for a director override.

    ``target`` is "contract" before the first round, otherwise "round".
    """
    return BaseEvent(
        type="session.override.applied",
        aggregate_type="session",
        aggregate_id=session_id,
        data={
            "target": target,
            "round_number": round_number,
            "char_count": char_count,
        },
    )


def session_cycle_failed(
    session_id: str,
    round_number: int,
    error: str,
) -> BaseEvent:
    """Create event when a cycle is discarded without committing a round."""
    return BaseEvent(
        type="session.cycle.failed",
        aggregate_type="session",
        aggregate_id=session_id,
        data={
            "round_number": round_number,
            "error": error,
        },
    )
