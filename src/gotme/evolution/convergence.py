"""Convergence (stall) detection for the evolutionary loop.

After every round from ``min_rounds`` on, the round's combined character
count is compared against ``reference * threshold / 100``. The reference is
the historical peak by default; in phase mode it is a fixed per-phase
allowance instead. Exactly one reference is authoritative per tracker.

A round that falls below the limit produced disproportionately less material
than the reference: the process has run out of novel content and the session
converges. Converged is terminal.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from gotme.core.session import DEFAULT_THRESHOLD, MAX_THRESHOLD, MIN_THRESHOLD, Session


class BudgetMode(StrEnum):
    """Which reference the stall limit is computed from."""

    PEAK = "peak"
    PHASE = "phase"


@dataclass(frozen=True, slots=True)
class ConvergenceSignal:
    """Result of convergence evaluation."""

    converged: bool
    reason: str
    peak: int
    limit: float
    char_count: int
    round_number: int


@dataclass
class ConvergenceTracker:
    """Decides when a session has stalled.

    Attributes:
        min_rounds: First round number at which convergence is checked.
        budget_mode: ``peak`` (percentage of the historical peak) or
            ``phase`` (percentage of the fixed phase allowance).
        first_round_budget: Phase allowance for round 1.
        later_round_budget: Phase allowance for rounds 2+.

    Phase allowances, when set, are also handed to dispatch and synthesis as
    advisory budgets in both modes; only ``budget_mode`` decides which value
    the limit is computed from.
    """

    min_rounds: int = 3
    budget_mode: BudgetMode = BudgetMode.PEAK
    first_round_budget: int | None = None
    later_round_budget: int | None = None

    def __post_init__(self) -> None:
        if self.min_rounds < 1:
            msg = "min_rounds must be >= 1"
            raise ValueError(msg)
        if self.budget_mode == BudgetMode.PHASE and (
            self.first_round_budget is None or self.later_round_budget is None
        ):
            msg = "Phase budget mode needs both first_round_budget and later_round_budget"
            raise ValueError(msg)

    def budget_for_round(self, round_number: int) -> int | None:
        """Advisory character budget for ``round_number``."""
        if round_number <= 1:
            return self.first_round_budget
        return self.later_round_budget

    def reference_for(self, round_number: int, peak: int) -> int:
        if self.budget_mode == BudgetMode.PHASE:
            budget = self.budget_for_round(round_number)
            if budget is not None:
                return budget
        return peak

    def evaluate(
        self,
        char_counts: Sequence[int],
        threshold: int = DEFAULT_THRESHOLD,
    ) -> ConvergenceSignal:
        """Check whether the latest round stalled.

        Args:
            char_counts: Combined char count of every committed round, in
                order, including the one just produced.
            threshold: Stall threshold as a percentage of the reference.

        Returns:
            ConvergenceSignal for the latest round.
        """
        if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
            msg = f"threshold must be within [{MIN_THRESHOLD}, {MAX_THRESHOLD}]"
            raise ValueError(msg)
        if not char_counts:
            return ConvergenceSignal(
                converged=False,
                reason="No rounds yet",
                peak=0,
                limit=0.0,
                char_count=0,
                round_number=0,
            )

        round_number = len(char_counts)
        peak = max(char_counts)
        current = char_counts[-1]
        limit = self.reference_for(round_number, peak) * threshold / 100

        if round_number < self.min_rounds:
            return ConvergenceSignal(
                converged=False,
                reason=f"Below minimum rounds ({round_number}/{self.min_rounds})",
                peak=peak,
                limit=limit,
                char_count=current,
                round_number=round_number,
            )

        if current < limit:
            return ConvergenceSignal(
                converged=True,
                reason=(
                    f"Stalled: {current} chars < {limit:g} "
                    f"({threshold}% of {self.budget_mode} reference)"
                ),
                peak=peak,
                limit=limit,
                char_count=current,
                round_number=round_number,
            )

        return ConvergenceSignal(
            converged=False,
            reason=f"Continuing: {current} chars >= {limit:g}",
            peak=peak,
            limit=limit,
            char_count=current,
            round_number=round_number,
        )

    def stop_at_chars(self, session: Session) -> int:
        """Char count below which the next round would converge the session."""
        next_round = session.next_round_number
        reference = self.reference_for(next_round, session.convergence_peak)
        return int(reference * session.convergence_threshold / 100)
