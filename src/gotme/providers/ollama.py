"""Local-backend completions through an Ollama-compatible HTTP server.

Reachability is probed with ``GET /api/tags`` under a short timeout;
generation is a non-streaming ``POST /api/generate``.
"""

import httpx
import structlog

from gotme.core.errors import ProviderError
from gotme.core.security import MAX_LLM_RESPONSE_LENGTH
from gotme.core.types import Result
from gotme.providers.base import (
    Completion,
    CompletionOptions,
    DeliveryMode,
    UsageInfo,
    build_system_instruction,
)

log = structlog.get_logger()

DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaProvider:
    """Completion provider for models served on the operator's machine.

    A connection failure or timeout is reported with ``unreachable=True`` so
    the dispatcher can tell "service unreachable" apart from "request failed".

    Args:
        base_url: Root URL of the local server.
        probe_timeout: Seconds allowed for the reachability probe.
        request_timeout: Seconds allowed for one generation request.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        probe_timeout: float = 2.0,
        request_timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._probe_timeout = probe_timeout
        self._request_timeout = request_timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    async def check_reachable(self) -> bool:
        """True when the server answers the tag listing with 200."""
        try:
            async with self._client(self._probe_timeout) as client:
                response = await client.get("/api/tags")
        except httpx.HTTPError as e:
            log.debug("local.backend.probe_failed", base_url=self._base_url, error=str(e))
            return False
        return response.status_code == 200

    async def list_models(self) -> Result[list[str], ProviderError]:
        """Model tags installed on the local server."""
        try:
            async with self._client(self._probe_timeout) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            return Result.err(ProviderError.from_exception(e, provider="ollama", unreachable=True))
        except httpx.HTTPError as e:
            return Result.err(ProviderError.from_exception(e, provider="ollama"))
        try:
            data = response.json()
        except ValueError as e:
            return Result.err(ProviderError.from_exception(e, provider="ollama"))
        models = data.get("models", []) if isinstance(data, dict) else []
        return Result.ok([m["name"] for m in models if "name" in m])

    async def complete(
        self,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> Result[Completion, ProviderError]:
        """Generate a completion with the local model ``options.model``."""
        payload = {
            "model": options.model,
            "prompt": prompt,
            "system": build_system_instruction(persona, options.budget),
            "stream": False,
            "options": {"temperature": options.temperature},
        }
        log.debug("local.request.started", model=options.model, persona=persona)
        try:
            async with self._client(self._request_timeout) as client:
                response = await client.post("/api/generate", json=payload)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            log.warning("local.request.unreachable", model=options.model, error=str(e))
            return Result.err(
                ProviderError(
                    f"Local backend at {self._base_url} is unreachable",
                    provider="ollama",
                    unreachable=True,
                    details={"original_exception": type(e).__name__},
                )
            )
        except httpx.HTTPError as e:
            log.warning("local.request.failed", model=options.model, error=str(e))
            return Result.err(ProviderError.from_exception(e, provider="ollama"))

        if response.status_code != 200:
            log.warning(
                "local.request.failed",
                model=options.model,
                status_code=response.status_code,
            )
            return Result.err(
                ProviderError(
                    f"Local backend returned HTTP {response.status_code}",
                    provider="ollama",
                    status_code=response.status_code,
                    details={"body": response.text[:200]},
                )
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            log.warning("local.request.failed", model=options.model, reason="malformed body")
            return Result.err(
                ProviderError(
                    "Local backend returned a malformed response body",
                    provider="ollama",
                    details={"body": response.text[:200]},
                )
            )
        text = (data.get("response") or "")[:MAX_LLM_RESPONSE_LENGTH]
        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0
        return Result.ok(
            Completion(
                text=text,
                model=data.get("model") or options.model,
                mode=DeliveryMode.LOCAL,
                usage=UsageInfo(
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                    total_tokens=prompt_tokens + completion_tokens,
                ),
            )
        )
