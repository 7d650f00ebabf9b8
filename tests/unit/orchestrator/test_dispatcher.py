"""Unit tests for schema-aware run dispatch."""

import asyncio

from conftest import FakeProvider, make_partner
import httpx

from gotme.core.contract import ExecutionSchema
from gotme.core.errors import ProviderError
from gotme.core.session import ModelClass, Partner
from gotme.orchestrator.dispatcher import (
    LLM_NOTE,
    LOCAL_ERROR_MARKER,
    LOCAL_UNREACHABLE_MARKER,
    PARTNER_ERROR_MARKER,
    PARTNER_TIMEOUT_MARKER,
    SLM_NOTE,
    DispatchRequest,
    RunDispatcher,
    build_partner_prompt,
    is_error_response,
)
from gotme.orchestrator.roles import ROLES
from gotme.providers.ollama import OllamaProvider


def request_for(
    partners: tuple[Partner, ...],
    schema: ExecutionSchema = ExecutionSchema.PARALLEL,
    **kwargs: object,
) -> DispatchRequest:
    return DispatchRequest(
        partners=partners,
        contract="Assess cost per kWh.",
        topic="Sodium batteries",
        schema=schema,
        **kwargs,  # type: ignore[arg-type]
    )


class TestBuildPartnerPrompt:
    def test_contains_contract_topic_and_role(self) -> None:
        prompt = build_partner_prompt(
            make_partner("alpha"), ROLES[1], request_for((make_partner("alpha"),), round_number=3)
        )

        assert "ROUND: 3" in prompt
        assert "Assess cost per kWh." in prompt
        assert "Sodium batteries" in prompt
        assert "ROLE: Skeptic" in prompt
        assert LLM_NOTE in prompt

    def test_slm_note(self) -> None:
        slm = make_partner("mini", model_class=ModelClass.SLM)

        prompt = build_partner_prompt(slm, ROLES[0], request_for((slm,)))

        assert SLM_NOTE in prompt
        assert LLM_NOTE not in prompt

    def test_budget_and_tools(self) -> None:
        alpha = make_partner("alpha")

        prompt = build_partner_prompt(
            alpha, ROLES[0], request_for((alpha,), tools=("code",), budget=900)
        )

        assert "under 900 characters" in prompt
        assert "[TOOL_USE:" in prompt


class TestParallelDispatch:
    async def test_runs_follow_partner_order_not_completion_order(
        self, partners: tuple[Partner, ...]
    ) -> None:
        provider = FakeProvider(
            replies={p.model: f"{p.name} says hi" for p in partners},
            delays={partners[0].model: 0.05, partners[1].model: 0.02},
        )

        runs = await RunDispatcher(provider).dispatch(request_for(partners))

        assert [r.partner_name for r in runs] == ["alpha", "beta", "gamma"]
        assert [r.response for r in runs] == ["alpha says hi", "beta says hi", "gamma says hi"]
        assert provider.completion_order[0] == partners[2].model

    async def test_display_name_and_persona(self, partners: tuple[Partner, ...]) -> None:
        provider = FakeProvider()

        runs = await RunDispatcher(provider).dispatch(request_for(partners))

        assert runs[0].display_name == "alpha (Feasibility Lead)"
        assert runs[1].display_name == "beta (Skeptic)"
        assert sorted(c.persona for c in provider.calls) == sorted(
            ["Feasibility Lead", "Skeptic", "Innovation Scout"]
        )

    async def test_parallel_prompts_carry_no_transcript(
        self, partners: tuple[Partner, ...]
    ) -> None:
        provider = FakeProvider()

        await RunDispatcher(provider).dispatch(request_for(partners))

        assert all("PRIOR PARTNER RESPONSES" not in c.prompt for c in provider.calls)

    async def test_tool_tags_are_extracted(self) -> None:
        alpha = make_partner("alpha")
        provider = FakeProvider(replies={alpha.model: "Found it. [TOOL_USE: search | q | 2 hits]"})

        runs = await RunDispatcher(provider).dispatch(request_for((alpha,), tools=("search",)))

        assert runs[0].response == "Found it."
        assert runs[0].char_count == len("Found it.")
        assert runs[0].tool_calls[0].result == "2 hits"

    async def test_search_tool_grounds_cloud_partners_only(self) -> None:
        cloud = make_partner("alpha")
        local = make_partner("llama", local=True)
        remote, local_backend = FakeProvider(), FakeProvider()

        await RunDispatcher(remote, local_backend).dispatch(
            request_for((cloud, local), tools=("search",))
        )

        assert remote.calls[0].options.grounded is True
        assert local_backend.calls[0].options.grounded is False

    async def test_competitive_dispatches_like_parallel(
        self, partners: tuple[Partner, ...]
    ) -> None:
        provider = FakeProvider()

        runs = await RunDispatcher(provider).dispatch(
            request_for(partners, ExecutionSchema.COMPETITIVE)
        )

        assert len(runs) == 3
        assert all("PRIOR PARTNER RESPONSES" not in c.prompt for c in provider.calls)


class TestSequentialDispatch:
    async def test_each_prompt_contains_every_earlier_response(
        self, partners: tuple[Partner, ...]
    ) -> None:
        provider = FakeProvider(replies={p.model: f"insight from {p.name}" for p in partners})

        runs = await RunDispatcher(provider).dispatch(
            request_for(partners, ExecutionSchema.SEQUENTIAL)
        )

        prompts = [c.prompt for c in provider.calls]
        assert "PRIOR PARTNER RESPONSES" not in prompts[0]
        assert "## alpha (Feasibility Lead)\ninsight from alpha" in prompts[1]
        assert "insight from alpha" in prompts[2]
        assert "insight from beta" in prompts[2]
        assert [r.partner_name for r in runs] == ["alpha", "beta", "gamma"]

    async def test_failed_partner_marker_enters_transcript(
        self, partners: tuple[Partner, ...]
    ) -> None:
        provider = FakeProvider(replies={partners[0].model: ProviderError("quota exceeded")})

        runs = await RunDispatcher(provider).dispatch(
            request_for(partners, ExecutionSchema.SEQUENTIAL)
        )

        assert runs[0].failed
        assert PARTNER_ERROR_MARKER in provider.calls[1].prompt


class TestPartnerFailures:
    async def test_provider_error_becomes_error_run(self, partners: tuple[Partner, ...]) -> None:
        provider = FakeProvider(replies={partners[1].model: ProviderError("quota exceeded")})

        runs = await RunDispatcher(provider).dispatch(request_for(partners))

        assert len(runs) == 3
        assert runs[1].failed
        assert runs[1].response.startswith(PARTNER_ERROR_MARKER)
        assert "quota exceeded" in runs[1].response
        assert not runs[0].failed and not runs[2].failed

    async def test_exception_becomes_error_run(self) -> None:
        alpha = make_partner("alpha")
        provider = FakeProvider(replies={alpha.model: RuntimeError("socket closed")})

        runs = await RunDispatcher(provider).dispatch(request_for((alpha,)))

        assert runs[0].failed
        assert is_error_response(runs[0].response)

    async def test_timeout_becomes_timeout_run(self) -> None:
        alpha, beta = make_partner("alpha"), make_partner("beta")
        provider = FakeProvider(delays={alpha.model: 1.0})

        runs = await RunDispatcher(provider, partner_timeout=0.05).dispatch(
            request_for((alpha, beta))
        )

        assert runs[0].failed
        assert runs[0].response.startswith(PARTNER_TIMEOUT_MARKER)
        assert not runs[1].failed

    async def test_local_partner_without_backend_is_unreachable(self) -> None:
        llama = make_partner("llama", model="llama3.2", local=True)

        runs = await RunDispatcher(FakeProvider()).dispatch(request_for((llama,)))

        assert runs[0].failed
        assert runs[0].local
        assert runs[0].response.startswith(LOCAL_UNREACHABLE_MARKER)
        assert "llama3.2" in runs[0].response

    async def test_local_request_error_distinct_from_unreachable(self) -> None:
        llama = make_partner("llama", model="llama3.2", local=True)
        local = FakeProvider(replies={"llama3.2": ProviderError("model not found")})

        runs = await RunDispatcher(FakeProvider(), local).dispatch(request_for((llama,)))

        assert runs[0].response.startswith(LOCAL_ERROR_MARKER)
        assert "model not found" in runs[0].response

    async def test_local_backend_garbage_body_is_local_error(self) -> None:
        llama = make_partner("llama", model="llama3.2", local=True)
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>proxy</html>")
        )
        local = OllamaProvider("http://local.test", transport=transport)

        runs = await RunDispatcher(FakeProvider(), local).dispatch(request_for((llama,)))

        assert runs[0].failed
        assert runs[0].response.startswith(LOCAL_ERROR_MARKER)

    async def test_local_unreachable_error(self) -> None:
        llama = make_partner("llama", model="llama3.2", local=True)
        local = FakeProvider(replies={"llama3.2": ProviderError("down", unreachable=True)})

        runs = await RunDispatcher(FakeProvider(), local).dispatch(request_for((llama,)))

        assert runs[0].response.startswith(LOCAL_UNREACHABLE_MARKER)

    async def test_dispatch_does_not_block_on_slow_partner_beyond_timeout(self) -> None:
        partners = tuple(make_partner(name) for name in ("a", "b", "c"))
        provider = FakeProvider(delays={p.model: 1.0 for p in partners})
        dispatcher = RunDispatcher(provider, partner_timeout=0.05)

        runs = await asyncio.wait_for(dispatcher.dispatch(request_for(partners)), timeout=0.5)

        assert all(r.failed for r in runs)
