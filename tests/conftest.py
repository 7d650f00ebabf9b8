"""Shared fixtures for GOTME tests."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from gotme.core.contract import Contract, ExecutionSchema
from gotme.core.errors import ProviderError
from gotme.core.session import (
    ModelClass,
    Partner,
    Round,
    Run,
    Session,
    SessionStatus,
    new_session,
)
from gotme.core.types import Result
from gotme.providers.base import Completion, CompletionOptions, DeliveryMode

SYNTHESIS_TEXT = "### Synthesis\nPartners agree on scope.\n### Evolved Contract\nNarrowed thesis."


@dataclass
class ProviderCall:
    prompt: str
    persona: str
    options: CompletionOptions


@dataclass
class FakeProvider:
    """Scripted completion provider.

    ``replies`` maps a model id to the text to return, a ProviderError, or an
    exception to raise. ``delays`` maps a model id to seconds to sleep first.
    Models missing from ``replies`` answer with ``default``.
    """

    replies: dict[str, str | ProviderError | Exception] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    default: str = "Default response."
    reachable: bool = True
    calls: list[ProviderCall] = field(default_factory=list)
    completion_order: list[str] = field(default_factory=list)

    async def complete(
        self,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> Result[Completion, ProviderError]:
        self.calls.append(ProviderCall(prompt, persona, options))
        delay = self.delays.get(options.model, 0.0)
        if delay:
            await asyncio.sleep(delay)
        self.completion_order.append(options.model)
        reply = self.replies.get(options.model, self.default)
        if isinstance(reply, ProviderError):
            return Result.err(reply)
        if isinstance(reply, Exception):
            raise reply
        return Result.ok(Completion(text=reply, model=options.model, mode=DeliveryMode.REMOTE))

    async def check_reachable(self) -> bool:
        return self.reachable


@dataclass
class SequencedProvider:
    """Provider that answers successive calls from a list of texts."""

    texts: list[str]
    calls: list[ProviderCall] = field(default_factory=list)

    async def complete(
        self,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> Result[Completion, ProviderError]:
        self.calls.append(ProviderCall(prompt, persona, options))
        text = self.texts[min(len(self.calls), len(self.texts)) - 1]
        return Result.ok(Completion(text=text, model=options.model))


def make_partner(
    name: str,
    *,
    model: str | None = None,
    model_class: ModelClass = ModelClass.LLM,
    local: bool = False,
) -> Partner:
    return Partner(name=name, model=model or f"model/{name}", model_class=model_class, local=local)


def make_round(
    number: int = 1,
    *,
    partners: tuple[str, ...] = ("alpha", "beta"),
    synthesis: str = "Partners agree on scope.",
    evolved_contract: str = "Narrowed thesis.",
    archive_id: str | None = None,
) -> Round:
    runs = tuple(
        Run(
            partner_name=name,
            display_name=f"{name} (Skeptic)",
            model_class=ModelClass.LLM,
            response=f"{name} finding for round {number}",
            char_count=len(f"{name} finding for round {number}"),
        )
        for name in partners
    )
    return Round(
        round_number=number,
        topic=f"Topic {number}",
        runs=runs,
        synthesis=synthesis,
        evolved_contract=evolved_contract,
        synthesis_char_count=len(synthesis) + len(evolved_contract),
        timestamp=datetime(2025, 3, 1, 12, number, tzinfo=UTC),
        iat_signature=f"IAT-0000000{number}-abc12{number}",
        archive_id=archive_id,
    )


def with_rounds(session: Session, count: int) -> Session:
    """Commit ``count`` synthetic rounds onto ``session``."""
    for number in range(1, count + 1):
        round_ = make_round(number)
        session = session.with_committed_round(
            round_,
            status=SessionStatus.ORCHESTRATING,
            convergence_peak=max(session.convergence_peak, round_.synthesis_char_count),
        )
    return session


@pytest.fixture
def partners() -> tuple[Partner, ...]:
    return (make_partner("alpha"), make_partner("beta"), make_partner("gamma"))


@pytest.fixture
def contract() -> Contract:
    return Contract(topic="Sodium batteries", context="Assess cost per kWh at grid scale.")


@pytest.fixture
def session_factory(
    contract: Contract, partners: tuple[Partner, ...]
) -> Callable[..., Session]:
    def _make(
        *,
        schema: ExecutionSchema = ExecutionSchema.PARALLEL,
        threshold: int = 75,
        tools: tuple[str, ...] = (),
        active: tuple[Partner, ...] | None = None,
    ) -> Session:
        seeded = contract.model_copy(update={"execution_schema": schema})
        return new_session(seeded, active or partners, threshold=threshold, tools=tools)

    return _make


@pytest.fixture
def session(session_factory: Callable[..., Session]) -> Session:
    return session_factory()
