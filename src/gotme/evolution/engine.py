"""OrchestrationEngine - the round-based state machine.

One cycle:

    reject if converged or in flight
    → resolve active contract and base topic
    → dispatch (schema-aware) → synthesize → sign → archive
    → evaluate convergence → commit Round into a new Session

Sessions are immutable values. A cycle either returns a new Session with
exactly one more Round, or returns an error and the caller keeps the
Session it passed in. No partial Round ever exists.

States: idle (no rounds) → orchestrating → converged (terminal). A director
override replaces the latest evolved contract, or the contract context
before round 1, without changing the state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
import random

import structlog
from structlog.contextvars import bound_contextvars

from gotme.audit.signature import generate_signature
from gotme.core.errors import GotmeError, OrchestrationError, ValidationError
from gotme.core.session import Round, Session, SessionStatus
from gotme.core.types import Result
from gotme.events.base import BaseEvent
from gotme.events.session import (
    session_converged,
    session_cycle_failed,
    session_override_applied,
    session_round_completed,
)
from gotme.evolution.convergence import ConvergenceSignal, ConvergenceTracker
from gotme.orchestrator.dispatcher import DispatchRequest, RunDispatcher
from gotme.orchestrator.synthesizer import Synthesizer
from gotme.persistence.archive import ArchivalService, NullArchive
from gotme.providers.base import LocalCompletionProvider

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CycleOutcome:
    """A committed cycle.

    Attributes:
        session: The new Session with the round appended.
        round: The committed Round.
        signal: Convergence evaluation for the round.
        events: Domain events produced by the cycle.
    """

    session: Session
    round: Round
    signal: ConvergenceSignal
    events: tuple[BaseEvent, ...] = ()


class StopReason(StrEnum):
    """Why an auto-advance loop ended."""

    CONVERGED = "converged"
    STOPPED = "stopped"
    MAX_ROUNDS = "max_rounds"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class AutoRunResult:
    """Final state of an auto-advance loop."""

    session: Session
    rounds_completed: int
    stop_reason: StopReason
    error: GotmeError | None = None
    events: tuple[BaseEvent, ...] = ()


class OrchestrationEngine:
    """Drives dispatch, synthesis, audit and convergence for sessions.

    Cycles are single-flight per session id: a second ``run_cycle`` for a
    session whose cycle is still running is rejected, as is an override.

    Args:
        dispatcher: Run dispatcher for the partner pass.
        synthesizer: Synthesizer folding Runs into the evolved contract.
        tracker: Convergence tracker (percentage-of-peak by default).
        archive: Archival collaborator; archival is skipped when disabled.
        local_backend: Local provider, probed by ``refresh_connectivity``.
        char_budget: Advisory budget used when the tracker sets no phase
            allowance.
        rng: Random source for signature suffixes.
        clock: Returns the round timestamp.

    Example:
        engine = OrchestrationEngine(dispatcher, synthesizer)
        result = await engine.run_cycle(session)
        if result.is_ok:
            session = result.value.session
    """

    def __init__(
        self,
        dispatcher: RunDispatcher,
        synthesizer: Synthesizer,
        *,
        tracker: ConvergenceTracker | None = None,
        archive: ArchivalService | None = None,
        local_backend: LocalCompletionProvider | None = None,
        char_budget: int | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._synthesizer = synthesizer
        self._tracker = tracker or ConvergenceTracker()
        self._archive = archive or NullArchive()
        self._local_backend = local_backend
        self._char_budget = char_budget
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._in_flight: set[str] = set()

    @property
    def tracker(self) -> ConvergenceTracker:
        return self._tracker

    def is_in_flight(self, session_id: str) -> bool:
        return session_id in self._in_flight

    def budget_for_round(self, round_number: int) -> int | None:
        budget = self._tracker.budget_for_round(round_number)
        return budget if budget is not None else self._char_budget

    async def run_cycle(self, session: Session) -> Result[CycleOutcome, OrchestrationError]:
        """Run one dispatch → synthesize → commit cycle.

        Returns:
            Result containing the CycleOutcome, or OrchestrationError when the
            cycle was rejected or discarded. On error ``session`` is unchanged.
        """
        round_number = session.next_round_number
        if session.status == SessionStatus.CONVERGED:
            return Result.err(
                OrchestrationError(
                    "Session has converged; no further rounds are dispatched",
                    session_id=session.id,
                    round_number=round_number,
                )
            )
        if session.id in self._in_flight:
            return Result.err(
                OrchestrationError(
                    "A cycle is already in flight for this session",
                    session_id=session.id,
                    round_number=round_number,
                )
            )

        self._in_flight.add(session.id)
        try:
            with bound_contextvars(session_id=session.id, round=round_number):
                return await self._run_cycle(session, round_number)
        finally:
            self._in_flight.discard(session.id)

    async def _run_cycle(
        self,
        session: Session,
        round_number: int,
    ) -> Result[CycleOutcome, OrchestrationError]:
        contract = session.active_contract
        topic = session.base_topic
        schema = session.contract.execution_schema
        budget = self.budget_for_round(round_number)

        log.info("engine.cycle.started", schema=schema.value, partners=len(session.active_partners))

        try:
            runs = await self._dispatcher.dispatch(
                DispatchRequest(
                    partners=session.active_partners,
                    contract=contract,
                    topic=topic,
                    schema=schema,
                    round_number=round_number,
                    tools=session.active_tools,
                    budget=budget,
                )
            )
            if all(run.failed for run in runs):
                return self._fail(
                    session,
                    round_number,
                    "Every partner failed; round discarded",
                    details={"errors": [run.response for run in runs]},
                )

            synthesis = await self._synthesizer.synthesize(
                runs,
                contract,
                schema=schema,
                round_number=round_number,
                budget=budget,
            )
            if synthesis.is_err:
                return self._fail(
                    session,
                    round_number,
                    f"Synthesis failed: {synthesis.error.message}",
                    cause=synthesis.error,
                )
            result = synthesis.value

            timestamp = self._clock()
            round_ = Round(
                round_number=round_number,
                topic=topic,
                runs=tuple(runs),
                synthesis=result.synthesis,
                evolved_contract=result.evolved_contract,
                synthesis_char_count=result.char_count,
                timestamp=timestamp,
                iat_signature=generate_signature(round_number, topic, timestamp, rng=self._rng),
                schema=schema,
            )
            round_ = await self._archive_round(round_, session)
        except Exception as e:
            log.exception("engine.cycle.crashed", error=str(e))
            return self._fail(session, round_number, f"Cycle aborted: {e}", cause=e)

        counts = [r.synthesis_char_count for r in session.rounds] + [round_.synthesis_char_count]
        signal = self._tracker.evaluate(counts, session.convergence_threshold)
        status = SessionStatus.CONVERGED if signal.converged else SessionStatus.ORCHESTRATING
        updated = session.with_committed_round(round_, status=status, convergence_peak=max(counts))

        events: list[BaseEvent] = [
            session_round_completed(
                session.id,
                round_number,
                round_.synthesis_char_count,
                round_.iat_signature,
                round_.archive_id,
                failed_runs=sum(1 for run in round_.runs if run.failed),
            )
        ]
        log.info(
            "engine.cycle.committed",
            char_count=round_.synthesis_char_count,
            peak=updated.convergence_peak,
            limit=signal.limit,
            archive_id=round_.archive_id,
        )
        if signal.converged:
            events.append(
                session_converged(
                    session.id, round_number, signal.reason, signal.peak, signal.limit
                )
            )
            log.info("engine.session.converged", reason=signal.reason)

        return Result.ok(
            CycleOutcome(session=updated, round=round_, signal=signal, events=tuple(events))
        )

    async def _archive_round(self, round_: Round, session: Session) -> Round:
        if not self._archive.enabled:
            return round_
        try:
            receipt = await self._archive.archive(round_, session.contract)
        except Exception as e:
            log.warning("archive.round.failed", error=str(e))
            return round_
        if receipt.is_err:
            log.warning("archive.round.failed", error=receipt.error.message)
            return round_
        return round_.model_copy(update={"archive_id": receipt.value})

    def _fail(
        self,
        session: Session,
        round_number: int,
        message: str,
        *,
        cause: BaseException | None = None,
        details: dict[str, object] | None = None,
    ) -> Result[CycleOutcome, OrchestrationError]:
        event = session_cycle_failed(session.id, round_number, message)
        error = OrchestrationError(
            message,
            session_id=session.id,
            round_number=round_number,
            details={**(details or {}), "event_id": event.id},
        )
        if cause is not None:
            error.__cause__ = cause
        log.warning("engine.cycle.failed", error=message)
        return Result.err(error)

    def apply_override(
        self,
        session: Session,
        text: str,
    ) -> Result[tuple[Session, BaseEvent], GotmeError]:
        """Director intervention on the running contract.

        Rejected while a cycle for the session is in flight.
        """
        if session.id in self._in_flight:
            return Result.err(
                OrchestrationError(
                    "Cannot override while a cycle is in flight",
                    session_id=session.id,
                    round_number=session.next_round_number,
                )
            )
        try:
            updated = session.with_override(text)
        except ValidationError as e:
            return Result.err(e)

        latest = session.latest_round
        event = session_override_applied(
            session.id,
            target="round" if latest else "contract",
            round_number=latest.round_number if latest else None,
            char_count=len(text),
        )
        log.info("engine.override.applied", session_id=session.id, target=event.data["target"])
        return Result.ok((updated, event))

    async def refresh_connectivity(self, session: Session) -> Session:
        """Probe the archive and local backend and record reachability."""
        archive_ok, local_ok = await asyncio.gather(
            self._archive.check_reachable(),
            self._probe_local_backend(),
        )
        log.debug("engine.connectivity.refreshed", archive=archive_ok, local_backend=local_ok)
        return session.with_connectivity(
            archive_connected=archive_ok,
            local_backend_connected=local_ok,
        )

    async def _probe_local_backend(self) -> bool:
        if self._local_backend is None:
            return False
        return await self._local_backend.check_reachable()

    async def run_until_converged(
        self,
        session: Session,
        *,
        stop: asyncio.Event | None = None,
        settle_delay: float = 1.5,
        max_rounds: int | None = None,
        on_round: Callable[[CycleOutcome], None] | None = None,
    ) -> AutoRunResult:
        """Keep running cycles until convergence, failure, a cap or a stop.

        Setting ``stop`` only prevents the next cycle from starting; a cycle
        already running completes (commit or discard) first.

        Args:
            session: Session to advance.
            stop: Event that halts the loop once set.
            settle_delay: Seconds to wait between cycles.
            max_rounds: Upper bound on cycles run by this call.
            on_round: Called with every committed CycleOutcome.
        """
        stop = stop or asyncio.Event()
        completed = 0
        events: list[BaseEvent] = []

        def _result(reason: StopReason, error: GotmeError | None = None) -> AutoRunResult:
            log.info("engine.autorun.stopped", reason=reason.value, rounds=completed)
            return AutoRunResult(
                session=session,
                rounds_completed=completed,
                stop_reason=reason,
                error=error,
                events=tuple(events),
            )

        while True:
            if session.status == SessionStatus.CONVERGED:
                return _result(StopReason.CONVERGED)
            if stop.is_set():
                return _result(StopReason.STOPPED)
            if max_rounds is not None and completed >= max_rounds:
                return _result(StopReason.MAX_ROUNDS)

            outcome = await self.run_cycle(session)
            if outcome.is_err:
                return _result(StopReason.FAILED, outcome.error)

            session = outcome.value.session
            completed += 1
            events.extend(outcome.value.events)
            if on_round is not None:
                on_round(outcome.value)

            if session.status == SessionStatus.CONVERGED:
                return _result(StopReason.CONVERGED)
            if settle_delay > 0:
                try:
                    await asyncio.wait_for(stop.wait(), timeout=settle_delay)
                except TimeoutError:
                    pass
