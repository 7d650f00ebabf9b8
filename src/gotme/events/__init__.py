"""Immutable domain events emitted by the orchestration engine."""

from gotme.events.base import BaseEvent
from gotme.events.session import (
    session_converged,
    session_cycle_failed,
    session_override_applied,
    session_round_completed,
)

__all__ = [
    "BaseEvent",
    "session_converged",
    "session_cycle_failed",
    "session_override_applied",
    "session_round_completed",
]
