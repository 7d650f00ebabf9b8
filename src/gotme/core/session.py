"""Session aggregate: partners, runs, rounds and the session itself.

All models are frozen. State transitions produce new instances through
``with_*()`` methods, so a cycle that fails halfway simply never builds the
next Session and the caller keeps the previous one.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from gotme.core.contract import Contract, ExecutionSchema
from gotme.core.errors import ValidationError

# Advisory capabilities a session can enable. Only "search" changes how a
# completion is routed; the rest are surfaced to partners as tool-use tags.
CAPABILITIES: dict[str, str] = {
    "search": "Grounded web search for current facts and citations.",
    "code": "Simulated code execution for quick calculations.",
    "memory": "Recall of snippets archived in earlier rounds.",
}

MIN_THRESHOLD = 50
MAX_THRESHOLD = 95
DEFAULT_THRESHOLD = 75


class ModelClass(StrEnum):
    """Size class of a partner model."""

    SLM = "SLM"
    LLM = "LLM"


class SessionStatus(StrEnum):
    """Engine state of a session."""

    IDLE = "idle"
    ORCHESTRATING = "orchestrating"
    CONVERGED = "converged"


class Partner(BaseModel, frozen=True):
    """A completion-capable reviewer.

    Attributes:
        name: Unique identifier shown in runs and metrics.
        model: Backend model id (LiteLLM route or local model tag).
        model_class: SLM or LLM; shapes the persona prompt.
        local: True when served by the local backend.
    """

    name: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    model_class: ModelClass = ModelClass.LLM
    local: bool = False

    @property
    def source(self) -> str:
        return "local" if self.local else "cloud"


class ToolCall(BaseModel, frozen=True):
    """A tool invocation lifted out of a partner response."""

    tool_name: str
    action: str
    result: str


class Run(BaseModel, frozen=True):
    """One partner's contribution to one round.

    Attributes:
        partner_name: Name of the partner that produced it.
        display_name: Partner name plus the role it was assigned.
        model_class: Partner size class.
        local: Whether the local backend served it.
        response: Response text with tool-use tags removed.
        char_count: Length of ``response``.
        rating: Optional operator rating (1-5).
        tool_calls: Tool-use records extracted from the raw response.
        grounding: Citation metadata from a grounded completion.
        failed: True when ``response`` is an inline error marker.
    """

    partner_name: str
    display_name: str
    model_class: ModelClass
    local: bool = False
    response: str
    char_count: int = Field(ge=0)
    rating: int | None = Field(default=None, ge=1, le=5)
    tool_calls: tuple[ToolCall, ...] = Field(default_factory=tuple)
    grounding: tuple[dict[str, Any], ...] = Field(default_factory=tuple)
    failed: bool = False

    @property
    def source(self) -> str:
        return "local" if self.local else "cloud"


class Round(BaseModel, frozen=True):
    """One committed dispatch → synthesize → sign cycle.

    ``synthesis_char_count`` is the combined length of the synthesis and
    the evolved contract; it is the quantity the convergence signal tracks.
    """

    model_config = {"populate_by_name": True}

    round_number: int = Field(ge=1)
    topic: str
    runs: tuple[Run, ...]
    synthesis: str
    evolved_contract: str
    synthesis_char_count: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    iat_signature: str
    archive_id: str | None = None
    execution_schema: ExecutionSchema = Field(default=ExecutionSchema.PARALLEL, alias="schema")


class PartnerMetrics(BaseModel, frozen=True):
    """Running totals for one partner across the session."""

    name: str
    model_class: ModelClass = ModelClass.LLM
    total_chars: int = 0
    runs: int = 0
    rating_total: int = 0
    rating_count: int = 0

    @property
    def avg_rating(self) -> float:
        """Mean operator rating, 0.0 when nothing was rated yet."""
        if not self.rating_count:
            return 0.0
        return self.rating_total / self.rating_count

    def with_run(self, char_count: int) -> PartnerMetrics:
        return self.model_copy(
            update={"total_chars": self.total_chars + char_count, "runs": self.runs + 1}
        )

    def with_rating(self, rating: int, *, replaces: int | None = None) -> PartnerMetrics:
        if replaces is None:
            return self.model_copy(
                update={
                    "rating_total": self.rating_total + rating,
                    "rating_count": self.rating_count + 1,
                }
            )
        return self.model_copy(update={"rating_total": self.rating_total - replaces + rating})


class Session(BaseModel, frozen=True):
    """Aggregate root of one orchestration.

    Attributes:
        id: Session identifier.
        contract: The original thesis seed.
        rounds: Committed rounds, numbered 1..n without gaps.
        status: idle, orchestrating or converged.
        convergence_peak: Highest round char count seen so far.
        convergence_threshold: Stall threshold as a percentage of the peak.
        active_partners: Partners dispatched each round (never empty).
        active_tools: Enabled capabilities (keys of ``CAPABILITIES``).
        model_metrics: Per-partner totals keyed by partner name.
        archive_connected: Last known archival service reachability.
        local_backend_connected: Last known local backend reachability.
    """

    id: str = Field(default_factory=lambda: f"ses_{uuid4().hex[:12]}")
    contract: Contract
    rounds: tuple[Round, ...] = Field(default_factory=tuple)
    status: SessionStatus = SessionStatus.IDLE
    convergence_peak: int = 0
    convergence_threshold: int = Field(
        default=DEFAULT_THRESHOLD, ge=MIN_THRESHOLD, le=MAX_THRESHOLD
    )
    active_partners: tuple[Partner, ...] = Field(..., min_length=1)
    active_tools: tuple[str, ...] = Field(default_factory=tuple)
    model_metrics: dict[str, PartnerMetrics] = Field(default_factory=dict)
    archive_connected: bool = False
    local_backend_connected: bool = False

    @model_validator(mode="after")
    def _check_invariants(self) -> Session:
        for index, round_ in enumerate(self.rounds, start=1):
            if round_.round_number != index:
                msg = (
                    "Round numbers must run 1..n without gaps; "
                    f"got {round_.round_number} at {index}"
                )
                raise ValueError(msg)
        names = [p.name for p in self.active_partners]
        if len(names) != len(set(names)):
            msg = "Active partner names must be unique"
            raise ValueError(msg)
        unknown = set(self.active_tools) - CAPABILITIES.keys()
        if unknown:
            msg = f"Unknown capabilities: {sorted(unknown)}"
            raise ValueError(msg)
        return self

    # -- Read helpers --

    @property
    def latest_round(self) -> Round | None:
        return self.rounds[-1] if self.rounds else None

    @property
    def next_round_number(self) -> int:
        return len(self.rounds) + 1

    @property
    def active_contract(self) -> str:
        """Thesis fed into the next dispatch."""
        latest = self.latest_round
        return latest.evolved_contract if latest else self.contract.context

    @property
    def base_topic(self) -> str:
        """Topic fed into the next dispatch."""
        latest = self.latest_round
        return latest.synthesis if latest else self.contract.topic

    @property
    def total_chars_preserved(self) -> int:
        return sum(r.synthesis_char_count for r in self.rounds)

    @property
    def convergence_signal_pct(self) -> float:
        """Latest round size as a percentage of the peak."""
        latest = self.latest_round
        if latest is None or not self.convergence_peak:
            return 0.0
        return latest.synthesis_char_count / self.convergence_peak * 100

    # -- Transitions --

    def with_committed_round(
        self,
        round_: Round,
        *,
        status: SessionStatus,
        convergence_peak: int,
    ) -> Session:
        """Return a session with ``round_`` appended and metrics accumulated."""
        if round_.round_number != self.next_round_number:
            raise ValidationError(
                f"Expected round {self.next_round_number}, got {round_.round_number}",
                field="round_number",
                value=round_.round_number,
            )
        metrics = dict(self.model_metrics)
        for run in round_.runs:
            current = metrics.get(
                run.partner_name,
                PartnerMetrics(name=run.partner_name, model_class=run.model_class),
            )
            metrics[run.partner_name] = current.with_run(run.char_count)
        return self.model_copy(
            update={
                "rounds": self.rounds + (round_,),
                "status": status,
                "convergence_peak": convergence_peak,
                "model_metrics": metrics,
            }
        )

    def with_override(self, text: str) -> Session:
        """Director intervention.

        Replaces the latest round's evolved contract, or the contract context
        when no round exists yet. Status and all other rounds are untouched.
        """
        if not text.strip():
            raise ValidationError("Override text cannot be empty", field="override")
        latest = self.latest_round
        if latest is None:
            return self.model_copy(update={"contract": self.contract.with_context(text)})
        patched = latest.model_copy(update={"evolved_contract": text})
        return self.model_copy(update={"rounds": self.rounds[:-1] + (patched,)})

    def with_partner_added(self, partner: Partner) -> Session:
        if any(p.name == partner.name for p in self.active_partners):
            return self
        return self.model_copy(update={"active_partners": self.active_partners + (partner,)})

    def with_partner_removed(self, name: str) -> Session:
        """Drop a partner from the active set.

        Raises:
            ValidationError: If ``name`` is the last active partner.
        """
        remaining = tuple(p for p in self.active_partners if p.name != name)
        if len(remaining) == len(self.active_partners):
            return self
        if not remaining:
            raise ValidationError(
                "At least one partner must stay active", field="active_partners", value=name
            )
        return self.model_copy(update={"active_partners": remaining})

    def with_tool_toggled(self, tool_id: str) -> Session:
        if tool_id not in CAPABILITIES:
            raise ValidationError(f"Unknown capability: {tool_id}", field="tool", value=tool_id)
        if tool_id in self.active_tools:
            tools = tuple(t for t in self.active_tools if t != tool_id)
        else:
            tools = self.active_tools + (tool_id,)
        return self.model_copy(update={"active_tools": tools})

    def with_threshold(self, threshold: int) -> Session:
        if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
            raise ValidationError(
                f"Threshold must be within [{MIN_THRESHOLD}, {MAX_THRESHOLD}]",
                field="convergence_threshold",
                value=threshold,
            )
        return self.model_copy(update={"convergence_threshold": threshold})

    def with_rating(self, round_number: int, run_index: int, rating: int) -> Session:
        """Annotate a run with an operator rating and fold it into metrics.

        Only the ``rating`` field of the run changes; response text, synthesis
        and evolved contract stay as committed.
        """
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", field="rating", value=rating)
        if not 1 <= round_number <= len(self.rounds):
            raise ValidationError("No such round", field="round_number", value=round_number)
        round_ = self.rounds[round_number - 1]
        if not 0 <= run_index < len(round_.runs):
            raise ValidationError("No such run", field="run_index", value=run_index)

        run = round_.runs[run_index]
        runs = list(round_.runs)
        runs[run_index] = run.model_copy(update={"rating": rating})
        rounds = list(self.rounds)
        rounds[round_number - 1] = round_.model_copy(update={"runs": tuple(runs)})

        metrics = dict(self.model_metrics)
        current = metrics.get(
            run.partner_name, PartnerMetrics(name=run.partner_name, model_class=run.model_class)
        )
        metrics[run.partner_name] = current.with_rating(rating, replaces=run.rating)
        return self.model_copy(update={"rounds": tuple(rounds), "model_metrics": metrics})

    def with_connectivity(
        self,
        *,
        archive_connected: bool | None = None,
        local_backend_connected: bool | None = None,
    ) -> Session:
        update: dict[str, bool] = {}
        if archive_connected is not None:
            update["archive_connected"] = archive_connected
        if local_backend_connected is not None:
            update["local_backend_connected"] = local_backend_connected
        return self.model_copy(update=update)


def new_session(
    contract: Contract,
    partners: tuple[Partner, ...] | list[Partner],
    *,
    threshold: int = DEFAULT_THRESHOLD,
    tools: tuple[str, ...] = (),
) -> Session:
    """Create an idle session for a finalized contract."""
    return Session(
        contract=contract,
        active_partners=tuple(partners),
        convergence_threshold=threshold,
        active_tools=tools,
    )
