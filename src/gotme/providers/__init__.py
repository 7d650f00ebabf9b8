"""Completion provider adapters for GOTME.

Cloud partners go through LiteLLMProvider (remote and grounded delivery);
local partners go through OllamaProvider.
"""

from gotme.providers.base import (
    Completion,
    CompletionOptions,
    CompletionProvider,
    DeliveryMode,
    LocalCompletionProvider,
    UsageInfo,
    build_system_instruction,
)
from gotme.providers.litellm_adapter import LiteLLMProvider
from gotme.providers.ollama import OllamaProvider

__all__ = [
    # Protocols
    "CompletionProvider",
    "LocalCompletionProvider",
    # Models
    "Completion",
    "CompletionOptions",
    "DeliveryMode",
    "UsageInfo",
    "build_system_instruction",
    # Implementations
    "LiteLLMProvider",
    "OllamaProvider",
]
