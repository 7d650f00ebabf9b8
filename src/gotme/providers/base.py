"""Completion provider protocols and models.

The engine sees every backend, cloud or local, through ``CompletionProvider``.
A backend is addressed with a prompt, a persona string and per-call options;
it answers with a ``Completion`` or a ``ProviderError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from gotme.core.errors import ProviderError
from gotme.core.types import Result


class DeliveryMode(StrEnum):
    """Path a completion request is routed through."""

    REMOTE = "remote"
    GROUNDED = "grounded"
    LOCAL = "local"


@dataclass(frozen=True, slots=True)
class CompletionOptions:
    """Per-call options for a completion request.

    Attributes:
        model: Backend model id.
        budget: Advisory character budget; stated in the system instruction.
        grounded: Route through the search-augmented path.
        temperature: Sampling temperature.
        max_tokens: Hard token cap passed to the backend.
    """

    model: str
    budget: int | None = None
    grounded: bool = False
    temperature: float = 0.7
    max_tokens: int = 4096


@dataclass(frozen=True, slots=True)
class UsageInfo:
    """Token usage reported by a backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class Completion:
    """Text returned by a backend.

    Attributes:
        text: Generated text.
        model: Model that produced it.
        mode: Delivery path that served the request.
        grounding: Citation records from a grounded completion.
        usage: Token usage, when reported.
    """

    text: str
    model: str
    mode: DeliveryMode = DeliveryMode.REMOTE
    grounding: tuple[dict[str, Any], ...] = ()
    usage: UsageInfo = field(default_factory=UsageInfo)


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol every completion backend implements.

    Expected failures (rate limits, refused requests, unreachable hosts) come
    back as ``Result.err(ProviderError)``; exceptions mean a bug.

    Example:
        result = await provider.complete(
            "Critique this thesis...",
            "Skeptic",
            CompletionOptions(model="openrouter/openai/gpt-4o", budget=2000),
        )
        if result.is_ok:
            print(result.value.text)
    """

    async def complete(
        self,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> Result[Completion, ProviderError]: ...


@runtime_checkable
class LocalCompletionProvider(CompletionProvider, Protocol):
    """A completion backend served from the operator's machine."""

    async def check_reachable(self) -> bool:
        """Probe the backend with a short timeout; never raises."""
        ...


def build_system_instruction(persona: str, budget: int | None = None) -> str:
    """System instruction shared by all backends."""
    instruction = (
        f"You are the {persona} in a GOTME (Governed Orchestrated Thought Machine Engine) "
        "session. Your goal is to provide high-signal, machine-consumable analysis."
    )
    if budget:
        instruction += f" Keep your output under {budget} characters."
    return instruction
