"""Evolutionary loop: convergence tracking and the orchestration engine."""

from gotme.evolution.convergence import BudgetMode, ConvergenceSignal, ConvergenceTracker
from gotme.evolution.engine import (
    AutoRunResult,
    CycleOutcome,
    OrchestrationEngine,
    StopReason,
)

__all__ = [
    "BudgetMode",
    "ConvergenceSignal",
    "ConvergenceTracker",
    "AutoRunResult",
    "CycleOutcome",
    "OrchestrationEngine",
    "StopReason",
]
