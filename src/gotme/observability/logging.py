"""Structured logging configuration for GOTME.

structlog is configured once at startup with one of two renderers:

- dev: colored key/value console output
- prod: one JSON object per line

Both share ISO-8601 UTC timestamps, the log level, contextvars merging and a
masking processor that keeps API keys out of every entry. Optionally the
same rendered entries are also written to a daily-rotated file under
``~/.gotme/logs/``.

Standard context keys:
- session_id: Session identifier
- round: Round number being produced
- partner: Partner name

Event naming convention: ``domain.entity.verb_past_tense``, for example
``dispatch.partner.failed`` or ``engine.session.converged``.

Usage:
    from gotme.observability import configure_logging, get_logger, bind_context

    configure_logging(LoggingConfig(mode=LogMode.PROD))
    bind_context(session_id=session.id)
    get_logger().info("engine.cycle.started", partners=3)
"""

from __future__ import annotations

from enum import StrEnum
import logging
from logging.handlers import TimedRotatingFileHandler
import os
from pathlib import Path
import sys
from typing import Any

from pydantic import BaseModel, Field
import structlog

from gotme.core.security import is_sensitive_field, is_sensitive_value, mask_api_key

_RESERVED_KEYS = frozenset({"event", "level", "timestamp", "filename", "lineno"})


class LogMode(StrEnum):
    """Logging output mode."""

    DEV = "dev"
    PROD = "prod"


class LoggingConfig(BaseModel, frozen=True):
    """Runtime logging settings.

    Attributes:
        mode: dev (console) or prod (JSON).
        log_level: Minimum level emitted.
        log_dir: Directory for rotated log files.
        max_log_days: Rotated files kept.
        enable_file_logging: Also write entries to ``log_dir``.
    """

    mode: LogMode = LogMode.DEV
    log_level: str = "INFO"
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".gotme" / "logs")
    max_log_days: int = Field(default=7, ge=1, le=365)
    enable_file_logging: bool = False


_configured: bool = False
_current_config: LoggingConfig | None = None
_console_logging_enabled: bool = True


def _get_mode_from_env() -> LogMode:
    """Mode from GOTME_LOG_MODE; anything but "prod" means dev."""
    if os.environ.get("GOTME_LOG_MODE", "dev").lower() == "prod":
        return LogMode.PROD
    return LogMode.DEV


def _get_log_level(level_str: str) -> int:
    level = logging.getLevelName(level_str.upper())
    return level if isinstance(level, int) else logging.INFO


def _mask_value(key: str, value: Any) -> Any:
    if is_sensitive_field(key):
        return "<REDACTED>"
    if isinstance(value, str) and is_sensitive_value(value):
        return mask_api_key(value)
    if isinstance(value, dict):
        return {k: _mask_value(k, v) for k, v in value.items()}
    return value


def _mask_sensitive_data(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that redacts secret-looking keys and values, recursively."""
    for key, value in list(event_dict.items()):
        if key not in _RESERVED_KEYS:
            event_dict[key] = _mask_value(key, value)
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        _mask_sensitive_data,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _setup_file_handler(config: LoggingConfig) -> TimedRotatingFileHandler | None:
    if not config.enable_file_logging:
        return None
    config.log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(config.log_dir / "gotme.log"),
        when="midnight",
        backupCount=config.max_log_days,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(_get_log_level(config.log_level))
    return handler


class _ConsoleAndFileLogger:
    """Writes each rendered entry to stderr and, when set up, to the log file."""

    def __init__(self, file_handler: TimedRotatingFileHandler | None) -> None:
        self._file_handler = file_handler

    def _write(self, message: str, level: int) -> None:
        if _console_logging_enabled:
            print(message, file=sys.stderr)
        if self._file_handler is not None:
            record = logging.LogRecord("gotme", level, "", 0, message, (), None)
            self._file_handler.emit(record)

    def msg(self, message: str) -> None:
        self._write(message, logging.INFO)

    def debug(self, message: str) -> None:
        self._write(message, logging.DEBUG)

    def info(self, message: str) -> None:
        self._write(message, logging.INFO)

    def warning(self, message: str) -> None:
        self._write(message, logging.WARNING)

    def error(self, message: str) -> None:
        self._write(message, logging.ERROR)

    def critical(self, message: str) -> None:
        self._write(message, logging.CRITICAL)

    warn = warning
    exception = error
    fatal = critical


def set_console_logging(enabled: bool) -> None:
    """Enable or disable stderr output (file output is unaffected)."""
    global _console_logging_enabled
    _console_logging_enabled = enabled


def is_console_logging_enabled() -> bool:
    return _console_logging_enabled


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog for the application.

    Args:
        config: Logging configuration. If None, defaults are used with the
            mode taken from GOTME_LOG_MODE.
    """
    global _configured, _current_config

    if config is None:
        config = LoggingConfig(mode=_get_mode_from_env())
    _current_config = config

    log_level = _get_log_level(config.log_level)
    file_handler = _setup_file_handler(config)

    processors = _shared_processors()
    if config.mode == LogMode.DEV:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=lambda *_args: _ConsoleAndFileLogger(file_handler),
        cache_logger_on_first_use=True,
    )
    _configured = True


def configure_from_settings(
    level: str = "info",
    mode: str | None = None,
    log_to_file: bool = False,
) -> None:
    """Configure from the ``logging`` section of config.yaml.

    GOTME_LOG_MODE, when set, wins over the configured mode.
    """
    env_mode = os.environ.get("GOTME_LOG_MODE", "").lower()
    resolved = LogMode(env_mode) if env_mode in ("dev", "prod") else LogMode(mode or "dev")
    configure_logging(
        LoggingConfig(mode=resolved, log_level=level.upper(), enable_file_logging=log_to_file)
    )


def get_logger(name: str | None = None) -> Any:
    """Return a bound logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind keys to every subsequent entry in the current async context.

    Never bind secrets.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_current_config() -> LoggingConfig | None:
    return _current_config


def is_configured() -> bool:
    return _configured


def reset_logging() -> None:
    """Reset module state and structlog defaults (for tests)."""
    global _configured, _current_config, _console_logging_enabled
    _configured = False
    _current_config = None
    _console_logging_enabled = True
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
