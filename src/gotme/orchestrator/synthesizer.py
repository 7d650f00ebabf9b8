"""Synthesis of a round's Runs into a summary and an evolved contract.

The synthesizing model answers in two sections::

    ### Synthesis
    <narrative summary>
    ### Evolved Contract
    <rewritten thesis>

Parsing is best-effort. When the ``### Evolved Contract`` section is missing
or empty the running contract is kept unchanged.
"""

import asyncio
from dataclasses import dataclass

import structlog

from gotme.core.contract import ExecutionSchema
from gotme.core.errors import ProviderError
from gotme.core.session import Run
from gotme.core.types import Result
from gotme.providers.base import CompletionOptions, CompletionProvider

log = structlog.get_logger()

SYNTHESIS_MARKER = "### Synthesis"
EVOLVED_CONTRACT_MARKER = "### Evolved Contract"

CONSENSUS_PERSONA = "Synthesizer"
ARBITER_PERSONA = "Arbiter"
REFINER_PERSONA = "Contract Refiner"


@dataclass(frozen=True, slots=True)
class SynthesisResult:
    """Parsed synthesizer output.

    Attributes:
        synthesis: Narrative summary of the round.
        evolved_contract: Thesis for the next round.
        fallback: True when the evolved section was missing or empty and the
            previous contract was carried over.
    """

    synthesis: str
    evolved_contract: str
    fallback: bool = False

    @property
    def char_count(self) -> int:
        """Combined size tracked by the convergence signal."""
        return len(self.synthesis) + len(self.evolved_contract)


def parse_synthesis(raw: str, current_contract: str) -> SynthesisResult:
    """Split raw synthesizer text on the evolved-contract marker.

    Everything before the marker, minus the ``### Synthesis`` label, is the
    synthesis; everything after it is the evolved contract.
    """
    head, marker, tail = raw.partition(EVOLVED_CONTRACT_MARKER)
    synthesis = head.replace(SYNTHESIS_MARKER, "", 1).strip()
    evolved = tail.strip()
    if not marker or not evolved:
        return SynthesisResult(
            synthesis=synthesis, evolved_contract=current_contract, fallback=True
        )
    return SynthesisResult(synthesis=synthesis, evolved_contract=evolved)


def _format_runs(runs: list[Run] | tuple[Run, ...]) -> str:
    return "\n\n".join(f"## {run.display_name.upper()}\n{run.response}" for run in runs)


def build_consensus_prompt(
    runs: list[Run] | tuple[Run, ...],
    current_contract: str,
    round_number: int,
    budget: int | None = None,
) -> str:
    """Prompt for parallel and sequential rounds."""
    prompt = f"""Partner responses for round {round_number}:

{_format_runs(runs)}

CURRENT CONTRACT:
{current_contract}

TASK: Synthesize the gains and evolve the contract for round {round_number + 1}.
1. Assign a feasibility assessment to the current contract.
2. Surface the single highest-value improvement.
3. Fold the critique that survives scrutiny into a rewritten contract.

Answer in exactly this format:
{SYNTHESIS_MARKER}
<summary>
{EVOLVED_CONTRACT_MARKER}
<rewritten contract>"""
    if budget:
        prompt += f"\n\nThe two sections together must stay under {budget} characters."
    return prompt


def build_arbitration_prompt(
    runs: list[Run] | tuple[Run, ...],
    current_contract: str,
    round_number: int,
    budget: int | None = None,
) -> str:
    """Prompt for competitive rounds: pick winners instead of blending."""
    prompt = f"""Competing positions for round {round_number}:

{_format_runs(runs)}

CURRENT CONTRACT:
{current_contract}

TASK: Arbitrate between the competing positions.
1. Rule which position is strongest and why; reject the weaker claims explicitly.
2. State the single decisive improvement the winning position brings.
3. Rewrite the contract around the winning position for round {round_number + 1}.

Answer in exactly this format:
{SYNTHESIS_MARKER}
<ruling>
{EVOLVED_CONTRACT_MARKER}
<rewritten contract>"""
    if budget:
        prompt += f"\n\nThe two sections together must stay under {budget} characters."
    return prompt


class Synthesizer:
    """Folds a round's Runs and the current contract into a SynthesisResult.

    Args:
        provider: Remote completion provider.
        model: Model used for synthesis.
        timeout: Seconds allowed for the synthesis request.
        temperature: Sampling temperature.
        max_tokens: Token cap for the synthesis request.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        model: str,
        timeout: float = 180.0,
        temperature: float = 0.4,
        max_tokens: int = 4096,
    ) -> None:
        self._provider = provider
        self._model = model
        self._timeout = timeout
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def synthesize(
        self,
        runs: list[Run] | tuple[Run, ...],
        current_contract: str,
        *,
        schema: ExecutionSchema = ExecutionSchema.PARALLEL,
        round_number: int = 1,
        budget: int | None = None,
    ) -> Result[SynthesisResult, ProviderError]:
        """Synthesize ``runs``; competitive rounds are framed as arbitration."""
        if schema == ExecutionSchema.COMPETITIVE:
            prompt = build_arbitration_prompt(runs, current_contract, round_number, budget)
            persona = ARBITER_PERSONA
        else:
            prompt = build_consensus_prompt(runs, current_contract, round_number, budget)
            persona = CONSENSUS_PERSONA

        options = CompletionOptions(
            model=self._model,
            budget=budget,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        try:
            result = await asyncio.wait_for(
                self._provider.complete(prompt, persona, options),
                timeout=self._timeout,
            )
        except TimeoutError:
            log.warning("synthesis.request.timed_out", timeout_seconds=self._timeout)
            return Result.err(
                ProviderError(
                    f"Synthesis did not complete within {self._timeout:g}s",
                    provider="synthesizer",
                )
            )
        if result.is_err:
            log.warning("synthesis.request.failed", error=result.error.message)
            return Result.err(result.error)

        parsed = parse_synthesis(result.value.text, current_contract)
        if parsed.fallback:
            log.info("synthesis.contract.carried_over", round=round_number)
        log.info(
            "synthesis.round.completed",
            round=round_number,
            persona=persona,
            char_count=parsed.char_count,
        )
        return Result.ok(parsed)


class ContractRefiner:
    """Rewrites an operator-authored thesis into a more rigorous one.

    Refinement is optional polish: any failure or empty answer returns the
    original context unchanged.
    """

    def __init__(self, provider: CompletionProvider, *, model: str) -> None:
        self._provider = provider
        self._model = model

    async def refine(self, topic: str, context: str) -> str:
        prompt = f"""Review and improve this orchestration contract:

TOPIC: {topic}
CONTEXT: {context}

Provide a more robust, clear and challenging version of this contract for partner models to
follow. Return ONLY the refined contract text."""
        result = await self._provider.complete(
            prompt, REFINER_PERSONA, CompletionOptions(model=self._model, temperature=0.3)
        )
        if result.is_err:
            log.warning("contract.refinement.failed", error=result.error.message)
            return context
        refined = result.value.text.strip()
        return refined or context
