"""LiteLLM provider for cloud partners.

Serves both remote delivery modes: the default completion path and the
grounded path, which asks the backend for web-search augmentation and lifts
URL citations into ``Completion.grounding``.
"""

import os
from typing import Any

import litellm
import stamina
import structlog

from gotme.core.errors import ProviderError
from gotme.core.security import MAX_LLM_RESPONSE_LENGTH, InputValidator
from gotme.core.types import Result
from gotme.providers.base import (
    Completion,
    CompletionOptions,
    DeliveryMode,
    UsageInfo,
    build_system_instruction,
)

log = structlog.get_logger()

RETRIABLE_EXCEPTIONS = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.Timeout,
    litellm.APIConnectionError,
)

GROUNDED_SEARCH_OPTIONS: dict[str, Any] = {"search_context_size": "medium"}


class LiteLLMProvider:
    """Completion provider backed by ``litellm.acompletion``.

    API keys come from the environment by model prefix (OPENROUTER_API_KEY,
    ANTHROPIC_API_KEY, OPENAI_API_KEY, GEMINI_API_KEY) unless one is passed
    explicitly.

    Example:
        provider = LiteLLMProvider()
        result = await provider.complete(
            prompt, "Feasibility Lead", CompletionOptions(model="openrouter/openai/gpt-4o")
        )
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float = 120.0,
        max_retries: int = 3,
    ) -> None:
        self._api_key = api_key
        self._api_base = api_base
        self._timeout = timeout
        self._max_retries = max_retries

    def _get_api_key(self, model: str) -> str | None:
        if self._api_key:
            return self._api_key
        if model.startswith("openrouter/"):
            return os.environ.get("OPENROUTER_API_KEY")
        if model.startswith(("anthropic/", "claude")):
            return os.environ.get("ANTHROPIC_API_KEY")
        if model.startswith(("openai/", "gpt")):
            return os.environ.get("OPENAI_API_KEY")
        if model.startswith(("gemini/", "gemini")):
            return os.environ.get("GEMINI_API_KEY")
        return os.environ.get("OPENROUTER_API_KEY")

    def _build_completion_kwargs(
        self,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": options.model,
            "messages": [
                {"role": "system", "content": build_system_instruction(persona, options.budget)},
                {"role": "user", "content": prompt},
            ],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "timeout": self._timeout,
        }
        if options.grounded:
            kwargs["web_search_options"] = dict(GROUNDED_SEARCH_OPTIONS)

        api_key = self._get_api_key(options.model)
        if api_key:
            kwargs["api_key"] = api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        return kwargs

    async def _raw_complete(
        self,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> litellm.ModelResponse:
        kwargs = self._build_completion_kwargs(prompt, persona, options)
        log.debug(
            "llm.request.started",
            model=options.model,
            persona=persona,
            grounded=options.grounded,
            budget=options.budget,
        )
        response = await litellm.acompletion(**kwargs)
        log.debug(
            "llm.request.completed",
            model=options.model,
            finish_reason=response.choices[0].finish_reason,
        )
        return response

    def _parse_response(
        self,
        response: litellm.ModelResponse,
        options: CompletionOptions,
    ) -> Completion:
        choice = response.choices[0]
        usage = response.usage
        content = choice.message.content or ""

        is_valid, _ = InputValidator.validate_llm_response(content)
        if not is_valid:
            log.warning(
                "llm.response.truncated",
                model=options.model,
                original_length=len(content),
                max_length=MAX_LLM_RESPONSE_LENGTH,
            )
            content = content[:MAX_LLM_RESPONSE_LENGTH]

        return Completion(
            text=content,
            model=response.model or options.model,
            mode=DeliveryMode.GROUNDED if options.grounded else DeliveryMode.REMOTE,
            grounding=extract_grounding(choice.message) if options.grounded else (),
            usage=UsageInfo(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
        )

    async def complete(
        self,
        prompt: str,
        persona: str,
        options: CompletionOptions,
    ) -> Result[Completion, ProviderError]:
        """Request a completion, retrying transient failures with stamina."""

        @stamina.retry(
            on=RETRIABLE_EXCEPTIONS,
            attempts=self._max_retries,
            wait_initial=1.0,
            wait_max=10.0,
            wait_jitter=1.0,
        )
        async def _with_retry() -> litellm.ModelResponse:
            return await self._raw_complete(prompt, persona, options)

        provider = self._extract_provider(options.model)
        try:
            response = await _with_retry()
            return Result.ok(self._parse_response(response, options))
        except RETRIABLE_EXCEPTIONS as e:
            log.warning(
                "llm.request.failed.retries_exhausted",
                model=options.model,
                error=str(e),
                max_retries=self._max_retries,
            )
            return Result.err(ProviderError.from_exception(e, provider=provider))
        except litellm.AuthenticationError as e:
            log.warning("llm.request.failed.auth_error", model=options.model, error=str(e))
            return Result.err(
                ProviderError(
                    "Authentication failed - check API key",
                    provider=provider,
                    status_code=401,
                    details={"original_exception": type(e).__name__},
                )
            )
        except (litellm.BadRequestError, litellm.APIError) as e:
            log.warning(
                "llm.request.failed.api_error",
                model=options.model,
                error=str(e),
                status_code=getattr(e, "status_code", None),
            )
            return Result.err(ProviderError.from_exception(e, provider=provider))
        except Exception as e:
            log.exception("llm.request.failed.unexpected", model=options.model, error=str(e))
            return Result.err(
                ProviderError(
                    f"Unexpected error: {e!s}",
                    provider=provider,
                    details={"original_exception": type(e).__name__},
                )
            )

    def _extract_provider(self, model: str) -> str:
        if "/" in model:
            return model.split("/")[0]
        if model.startswith("gpt"):
            return "openai"
        if model.startswith("claude"):
            return "anthropic"
        if model.startswith("gemini"):
            return "gemini"
        return "unknown"


def extract_grounding(message: Any) -> tuple[dict[str, Any], ...]:
    """Collect ``{"title", "url"}`` records from message annotations.

    Handles both plain dict annotations and pydantic objects, in either the
    nested ``{"type": "url_citation", "url_citation": {...}}`` shape or flat.
    """
    annotations = getattr(message, "annotations", None)
    if not isinstance(annotations, list):
        return ()

    records: list[dict[str, Any]] = []
    for annotation in annotations:
        data = annotation if isinstance(annotation, dict) else _as_dict(annotation)
        citation = data.get("url_citation") or data
        if not isinstance(citation, dict):
            citation = _as_dict(citation)
        url = citation.get("url")
        if url:
            records.append({"title": citation.get("title") or "", "url": url})
    return tuple(records)


def _as_dict(obj: Any) -> dict[str, Any]:
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        data = dump()
        if isinstance(data, dict):
            return data
    return {}
