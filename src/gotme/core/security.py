"""Secret masking and size limits.

Used by the structlog processor chain to keep API keys out of log output
and by the providers to bound what a backend can push into a Run.
"""

from __future__ import annotations

from typing import Any

MAX_LLM_RESPONSE_LENGTH = 100_000
MAX_CONTRACT_CONTEXT_LENGTH = 50_000
MAX_SESSION_FILE_SIZE = 20_000_000

SENSITIVE_FIELD_NAMES = frozenset(
    {
        "password",
        "api_key",
        "apikey",
        "api-key",
        "secret",
        "token",
        "credential",
        "authorization",
        "bearer",
    }
)

SENSITIVE_PREFIXES = (
    "sk-",
    "pk-",
    "bearer ",
    "token ",
    "secret_",
    "AIza",
)


def mask_api_key(api_key: str, visible_chars: int = 4) -> str:
    """Mask an API key, keeping its prefix and last few characters.

    Example:
        >>> mask_api_key("sk-or-1234567890abcdef")
        'sk-...cdef'
    """
    if not api_key:
        return "<empty>"
    if len(api_key) <= visible_chars + 4:
        return "*" * len(api_key)
    if "-" in api_key[:6]:
        prefix = api_key[: api_key.index("-") + 1]
        return f"{prefix}...{api_key[-visible_chars:]}"
    return f"...{api_key[-visible_chars:]}"


def is_sensitive_field(field_name: str) -> bool:
    """True if the field name suggests it holds a secret."""
    if not field_name:
        return False
    lowered = field_name.lower()
    return any(name in lowered for name in SENSITIVE_FIELD_NAMES)


def is_sensitive_value(value: Any) -> bool:
    """True if the value looks like a secret (API key, bearer token)."""
    if not isinstance(value, str):
        return False
    lowered = value.lower()
    return any(lowered.startswith(prefix.lower()) for prefix in SENSITIVE_PREFIXES)


class InputValidator:
    """Size checks for text entering the engine from outside."""

    @staticmethod
    def validate_contract_context(context: str) -> tuple[bool, str]:
        """Validate a thesis body supplied by the operator.

        Returns:
            Tuple of (is_valid, error_message). error_message is empty if valid.
        """
        if not context or not context.strip():
            return False, "Contract context cannot be empty"
        if len(context) > MAX_CONTRACT_CONTEXT_LENGTH:
            return (
                False,
                f"Contract context exceeds maximum length ({MAX_CONTRACT_CONTEXT_LENGTH} chars)",
            )
        return True, ""

    @staticmethod
    def validate_llm_response(response: str) -> tuple[bool, str]:
        """Validate the length of raw completion text."""
        if len(response) > MAX_LLM_RESPONSE_LENGTH:
            return False, f"Response exceeds maximum length ({MAX_LLM_RESPONSE_LENGTH} chars)"
        return True, ""

    @staticmethod
    def validate_session_file_size(file_size: int) -> tuple[bool, str]:
        """Validate the size of a session JSON file before loading it."""
        if file_size > MAX_SESSION_FILE_SIZE:
            return False, f"Session file exceeds maximum size ({MAX_SESSION_FILE_SIZE} bytes)"
        return True, ""
