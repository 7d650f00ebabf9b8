"""Shared wiring for CLI commands.

Builds the engine and its collaborators from configuration and handles the
load/save of the session a command operates on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, NoReturn, TypeVar

import typer

from gotme.cli.formatters.panels import print_error
from gotme.config.loader import load_config_or_default
from gotme.config.models import GotmeConfig, get_config_dir
from gotme.core.errors import ConfigError, GotmeError
from gotme.core.session import Session
from gotme.evolution.convergence import BudgetMode, ConvergenceTracker
from gotme.evolution.engine import OrchestrationEngine
from gotme.observability.logging import configure_from_settings, set_console_logging
from gotme.orchestrator.dispatcher import RunDispatcher
from gotme.orchestrator.synthesizer import ContractRefiner, Synthesizer
from gotme.persistence.archive import ArchivalService, HttpArchive, NullArchive
from gotme.persistence.session_store import SessionStore
from gotme.providers.litellm_adapter import LiteLLMProvider
from gotme.providers.ollama import OllamaProvider

T = TypeVar("T")

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def load_settings() -> GotmeConfig:
    """Load config.yaml (or defaults) and configure logging from it.

    Exits with code 1 when the file exists but is invalid.
    """
    try:
        config = load_config_or_default()
    except ConfigError as e:
        print_error(e.message, title="Configuration Error")
        raise typer.Exit(1) from e

    configure_from_settings(
        level="debug" if _verbose else config.logging.level,
        mode=config.logging.mode,
        log_to_file=config.logging.log_to_file,
    )
    set_console_logging(_verbose)
    return config


def build_archive(config: GotmeConfig) -> ArchivalService:
    if not config.archive.enabled:
        return NullArchive()
    return HttpArchive(config.archive.base_url, probe_timeout=config.archive.probe_timeout_seconds)


def build_local_backend(config: GotmeConfig) -> OllamaProvider:
    return OllamaProvider(
        config.local_backend.base_url,
        probe_timeout=config.local_backend.probe_timeout_seconds,
        request_timeout=config.local_backend.request_timeout_seconds,
    )


def build_tracker(config: GotmeConfig) -> ConvergenceTracker:
    settings = config.convergence
    return ConvergenceTracker(
        min_rounds=settings.min_rounds,
        budget_mode=BudgetMode(settings.budget_mode),
        first_round_budget=settings.first_round_budget,
        later_round_budget=settings.later_round_budget,
    )


def build_engine(config: GotmeConfig) -> OrchestrationEngine:
    """Wire providers, dispatcher, synthesizer and tracker from config."""
    remote = LiteLLMProvider()
    local = build_local_backend(config)
    orchestration = config.orchestration
    dispatcher = RunDispatcher(
        remote,
        local,
        partner_timeout=orchestration.partner_timeout_seconds,
        temperature=orchestration.temperature,
    )
    synthesizer = Synthesizer(
        remote,
        model=orchestration.synthesizer_model,
        timeout=orchestration.synthesis_timeout_seconds,
    )
    return OrchestrationEngine(
        dispatcher,
        synthesizer,
        tracker=build_tracker(config),
        archive=build_archive(config),
        local_backend=local,
        char_budget=orchestration.char_budget,
    )


def build_refiner(config: GotmeConfig) -> ContractRefiner:
    return ContractRefiner(LiteLLMProvider(), model=config.orchestration.synthesizer_model)


def get_store() -> SessionStore:
    return SessionStore(get_config_dir() / "sessions")


def resolve_session(store: SessionStore, session_id: str | None) -> Session:
    """Load ``session_id``, or the most recent session when omitted."""
    result = store.load(session_id) if session_id else store.load_latest()
    if result.is_err:
        print_error(result.error.message, title="Session Error")
        raise typer.Exit(1)
    return result.value


def persist(store: SessionStore, session: Session) -> None:
    result = store.save(session)
    if result.is_err:
        print_error(result.error.message, title="Save Failed")
        raise typer.Exit(1)


def fail(error: GotmeError, title: str = "Error") -> NoReturn:
    """Print ``error`` and exit with code 1."""
    print_error(error.message, title=title)
    raise typer.Exit(1)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


__all__ = [
    "build_archive",
    "build_engine",
    "build_local_backend",
    "build_refiner",
    "build_tracker",
    "fail",
    "get_store",
    "load_settings",
    "persist",
    "resolve_session",
    "run_async",
    "set_verbose",
]
