"""Observability for GOTME: structured logging."""

from gotme.observability.logging import (
    LoggingConfig,
    LogMode,
    bind_context,
    clear_context,
    configure_from_settings,
    configure_logging,
    get_logger,
    reset_logging,
    set_console_logging,
    unbind_context,
)

__all__ = [
    "LoggingConfig",
    "LogMode",
    "bind_context",
    "clear_context",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "set_console_logging",
    "unbind_context",
]
