"""Run dispatch for one round.

The dispatcher turns the active partner set into an ordered list of Runs
under the contract's execution schema:

- parallel / competitive: one concurrent request per partner, gathered in
  active-partner order regardless of completion order
- sequential: one request at a time; each prompt carries the transcript of
  every earlier partner in the round

A partner that fails, times out or cannot be reached still yields a Run.
Its response text is an inline error marker and ``Run.failed`` is set, so
synthesis and audit always see one Run per listed partner.
"""

import asyncio
from dataclasses import dataclass

import structlog

from gotme.core.contract import ExecutionSchema
from gotme.core.errors import ProviderError
from gotme.core.session import ModelClass, Partner, Run
from gotme.core.types import Result
from gotme.orchestrator.roles import Role, RoleAssigner
from gotme.orchestrator.tool_use import extract_tool_calls, tool_instruction
from gotme.providers.base import (
    Completion,
    CompletionOptions,
    CompletionProvider,
    LocalCompletionProvider,
)

log = structlog.get_logger()

PARTNER_ERROR_MARKER = "[PARTNER_ERROR]"
PARTNER_TIMEOUT_MARKER = "[PARTNER_TIMEOUT]"
LOCAL_UNREACHABLE_MARKER = "[LOCAL_UNREACHABLE]"
LOCAL_ERROR_MARKER = "[LOCAL_ERROR]"

ERROR_MARKERS = (
    PARTNER_ERROR_MARKER,
    PARTNER_TIMEOUT_MARKER,
    LOCAL_UNREACHABLE_MARKER,
    LOCAL_ERROR_MARKER,
)

SLM_NOTE = (
    "You are a small, fast model. Favor concise, atomic findings: short verifiable "
    "claims, one per line."
)
LLM_NOTE = (
    "You are a large model. Favor systemic reasoning: connect findings, weigh trade-offs "
    "and explain second-order effects."
)


@dataclass(frozen=True, slots=True)
class DispatchRequest:
    """Inputs of one dispatch pass.

    Attributes:
        partners: Active partners, in dispatch order.
        contract: Thesis the partners review.
        topic: Round topic (original topic or the previous synthesis).
        schema: Execution schema of the session.
        round_number: Round being produced.
        tools: Enabled capabilities.
        budget: Advisory character budget per response.
    """

    partners: tuple[Partner, ...]
    contract: str
    topic: str
    schema: ExecutionSchema = ExecutionSchema.PARALLEL
    round_number: int = 1
    tools: tuple[str, ...] = ()
    budget: int | None = None


def is_error_response(text: str) -> bool:
    return text.startswith(ERROR_MARKERS)


def build_partner_prompt(
    partner: Partner,
    role: Role,
    request: DispatchRequest,
    transcript: list[tuple[str, str]] | None = None,
) -> str:
    """Build the user prompt for one partner.

    Args:
        partner: Partner being addressed.
        role: Persona assigned to it.
        request: The dispatch pass.
        transcript: ``(display_name, response)`` pairs of earlier partners,
            only given under the sequential schema.
    """
    sections = [
        f"ROUND: {request.round_number}",
        f"CONTRACT:\n{request.contract}",
        f"TOPIC:\n{request.topic}",
        f"ROLE: {role.label}\nFOCUS: {role.focus}",
        SLM_NOTE if partner.model_class == ModelClass.SLM else LLM_NOTE,
    ]
    if transcript:
        prior = "\n\n".join(f"## {name}\n{response}" for name, response in transcript)
        sections.append("PRIOR PARTNER RESPONSES (build on or critique them):\n" + prior)
    note = tool_instruction(request.tools)
    if note:
        sections.append(note)
    if request.budget:
        sections.append(f"Keep your output under {request.budget} characters.")
    return "\n\n".join(sections)


class RunDispatcher:
    """Executes one evaluation pass over the active partners.

    Args:
        remote: Provider for cloud partners (default and grounded paths).
        local: Provider for local partners; local partners fail with an
            unreachable marker when it is missing.
        role_assigner: Persona rotation.
        partner_timeout: Seconds to wait for a single partner.
        temperature: Sampling temperature passed to every request.

    Example:
        dispatcher = RunDispatcher(LiteLLMProvider(), OllamaProvider())
        runs = await dispatcher.dispatch(
            DispatchRequest(partners=session.active_partners, contract=..., topic=...)
        )
    """

    def __init__(
        self,
        remote: CompletionProvider,
        local: LocalCompletionProvider | None = None,
        *,
        role_assigner: RoleAssigner | None = None,
        partner_timeout: float = 90.0,
        temperature: float = 0.7,
    ) -> None:
        self._remote = remote
        self._local = local
        self._roles = role_assigner or RoleAssigner()
        self._partner_timeout = partner_timeout
        self._temperature = temperature

    async def dispatch(self, request: DispatchRequest) -> list[Run]:
        """Return one Run per partner, in ``request.partners`` order."""
        log.info(
            "dispatch.round.started",
            round=request.round_number,
            schema=request.schema.value,
            partners=len(request.partners),
        )
        if request.schema == ExecutionSchema.SEQUENTIAL:
            runs = await self._dispatch_sequential(request)
        else:
            runs = await self._dispatch_parallel(request)
        log.info(
            "dispatch.round.completed",
            round=request.round_number,
            failed=sum(1 for r in runs if r.failed),
            total_chars=sum(r.char_count for r in runs),
        )
        return runs

    async def _dispatch_parallel(self, request: DispatchRequest) -> list[Run]:
        tasks = [
            self._run_partner(
                index,
                partner,
                build_partner_prompt(partner, self._roles.assign(index), request),
                request,
            )
            for index, partner in enumerate(request.partners)
        ]
        return list(await asyncio.gather(*tasks))

    async def _dispatch_sequential(self, request: DispatchRequest) -> list[Run]:
        runs: list[Run] = []
        transcript: list[tuple[str, str]] = []
        for index, partner in enumerate(request.partners):
            prompt = build_partner_prompt(partner, self._roles.assign(index), request, transcript)
            run = await self._run_partner(index, partner, prompt, request)
            runs.append(run)
            transcript.append((run.display_name, run.response))
        return runs

    async def _run_partner(
        self,
        index: int,
        partner: Partner,
        prompt: str,
        request: DispatchRequest,
    ) -> Run:
        role = self._roles.assign(index)
        display_name = f"{partner.name} ({role.label})"
        options = CompletionOptions(
            model=partner.model,
            budget=request.budget,
            grounded=not partner.local and "search" in request.tools,
            temperature=self._temperature,
        )

        try:
            result = await asyncio.wait_for(
                self._complete(partner, prompt, role.label, options),
                timeout=self._partner_timeout,
            )
        except TimeoutError:
            log.warning(
                "dispatch.partner.timed_out",
                partner=partner.name,
                timeout_seconds=self._partner_timeout,
            )
            return self._error_run(
                partner,
                display_name,
                f"{PARTNER_TIMEOUT_MARKER} {partner.name} did not respond within "
                f"{self._partner_timeout:g}s.",
            )
        except Exception as e:
            log.exception("dispatch.partner.crashed", partner=partner.name, error=str(e))
            return self._error_run(
                partner, display_name, f"{PARTNER_ERROR_MARKER} {partner.name}: {e}"
            )

        if result.is_err:
            log.warning(
                "dispatch.partner.failed",
                partner=partner.name,
                local=partner.local,
                unreachable=result.error.unreachable,
                error=result.error.message,
            )
            return self._error_run(partner, display_name, self._error_text(partner, result.error))

        completion = result.value
        response, tool_calls = extract_tool_calls(completion.text)
        return Run(
            partner_name=partner.name,
            display_name=display_name,
            model_class=partner.model_class,
            local=partner.local,
            response=response,
            char_count=len(response),
            tool_calls=tool_calls,
            grounding=completion.grounding,
        )

    async def _complete(
        self,
        partner: Partner,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> Result[Completion, ProviderError]:
        if partner.local:
            if self._local is None:
                return Result.err(
                    ProviderError(
                        "No local backend configured",
                        provider="local",
                        unreachable=True,
                    )
                )
            return await self._local.complete(prompt, persona, options)
        return await self._remote.complete(prompt, persona, options)

    @staticmethod
    def _error_text(partner: Partner, error: ProviderError) -> str:
        if not partner.local:
            return f"{PARTNER_ERROR_MARKER} {partner.name}: {error.message}"
        if error.unreachable:
            return (
                f"{LOCAL_UNREACHABLE_MARKER} Local backend could not be reached for model "
                f"'{partner.model}'. Make sure the local server is running and the model "
                "is pulled."
            )
        return (
            f"{LOCAL_ERROR_MARKER} Local backend rejected the request for model "
            f"'{partner.model}': {error.message}"
        )

    @staticmethod
    def _error_run(partner: Partner, display_name: str, text: str) -> Run:
        return Run(
            partner_name=partner.name,
            display_name=display_name,
            model_class=partner.model_class,
            local=partner.local,
            response=text,
            char_count=len(text),
            failed=True,
        )
