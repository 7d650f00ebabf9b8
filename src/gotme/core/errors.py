"""Error hierarchy for GOTME.

Exception Hierarchy:
    GotmeError (base)
    ├── ProviderError       - completion backend failures (remote or local)
    ├── ConfigError         - configuration loading and validation
    ├── ValidationError     - data model invariant violations
    ├── OrchestrationError  - cycle-level failures (rejected or aborted rounds)
    └── PersistenceError    - session files and archival I/O

The same classes are used as the error side of ``Result`` for expected
failures and raised directly for invariant violations.
"""

from __future__ import annotations

from typing import Any


class GotmeError(Exception):
    """Base exception for all GOTME errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the failure.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ProviderError(GotmeError):
    """A completion backend failed to produce text.

    Attributes:
        provider: Backend name (e.g. "openrouter", "ollama").
        status_code: HTTP status code when one was returned.
        unreachable: True when the backend could not be contacted at all,
            as opposed to a request that reached it and failed.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        unreachable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.provider = provider
        self.status_code = status_code
        self.unreachable = unreachable

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        *,
        provider: str | None = None,
        unreachable: bool = False,
    ) -> ProviderError:
        """Wrap a backend exception, keeping it as ``__cause__``."""
        error = cls(
            str(exc) or type(exc).__name__,
            provider=provider,
            status_code=getattr(exc, "status_code", None),
            unreachable=unreachable,
            details={"original_exception": type(exc).__name__},
        )
        error.__cause__ = exc
        return error


class ConfigError(GotmeError):
    """Configuration could not be loaded or failed validation.

    Attributes:
        config_key: The offending configuration key, if known.
        config_file: Path of the configuration file, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


class ValidationError(GotmeError):
    """A value violates a data model rule.

    Attributes:
        field: The field that failed validation.
        value: The rejected value. Use ``safe_value`` when logging.
    """

    _SENSITIVE_FIELDS = frozenset({"api_key", "secret", "token", "credential", "password"})

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value

    @property
    def safe_value(self) -> str:
        """Loggable representation of ``value``: redacted, truncated or typed."""
        if self.value is None:
            return "<None>"
        if self.field and any(s in self.field.lower() for s in self._SENSITIVE_FIELDS):
            return "<REDACTED>"
        if isinstance(self.value, str):
            if len(self.value) > 50:
                return f"{self.value[:20]}...({len(self.value)} chars)"
            return repr(self.value)
        if isinstance(self.value, (int, float, bool)):
            return repr(self.value)
        return f"<{type(self.value).__name__}>"

    def __str__(self) -> str:
        base = self.message
        if self.field:
            base = f"{base} (field: {self.field}, value: {self.safe_value})"
        if self.details:
            base = f"{base} (details: {self.details})"
        return base


class OrchestrationError(GotmeError):
    """An engine cycle was rejected or could not be committed.

    The Session passed into the cycle is left exactly as it was.

    Attributes:
        session_id: Session the cycle was run against.
        round_number: Round number the cycle would have produced.
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        round_number: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.session_id = session_id
        self.round_number = round_number


class PersistenceError(GotmeError):
    """Session file or archival storage failed.

    Attributes:
        operation: The operation that failed (e.g. "save", "load", "archive").
        path: File path or endpoint involved.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation
        self.path = path
