"""Pydantic models for GOTME configuration.

All configuration validation happens through these models.

Classes:
    PartnerConfig: One entry of the partner model pool
    PartnersConfig: The pool and the partners active by default
    OrchestrationConfig: Dispatch and synthesis settings
    ConvergenceConfig: Stall detection and phase budgets
    LocalBackendConfig: Local completion server
    ArchiveConfig: Round archival service
    AutorunConfig: Auto-advance loop
    LoggingConfig: Logging configuration
    GotmeConfig: Top-level configuration combining all sections
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from gotme.core.contract import ExecutionSchema
from gotme.core.session import (
    CAPABILITIES,
    DEFAULT_THRESHOLD,
    MAX_THRESHOLD,
    MIN_THRESHOLD,
    ModelClass,
    Partner,
)


class PartnerConfig(BaseModel, frozen=True):
    """A model available as a partner.

    Attributes:
        name: Unique partner name shown in runs and metrics
        model: LiteLLM route for cloud partners, model tag for local ones
        model_class: SLM or LLM
        local: Served by the local backend instead of the cloud path
    """

    name: str = Field(min_length=1)
    model: str = Field(min_length=1)
    model_class: ModelClass = ModelClass.LLM
    local: bool = False

    def to_partner(self) -> Partner:
        return Partner(
            name=self.name, model=self.model, model_class=self.model_class, local=self.local
        )


class PartnersConfig(BaseModel, frozen=True):
    """Partner pool.

    Attributes:
        pool: Every partner the operator may activate
        default_active: Names activated for a new session
    """

    pool: list[PartnerConfig] = Field(default_factory=list)
    default_active: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_pool(self) -> "PartnersConfig":
        names = [p.name for p in self.pool]
        if len(names) != len(set(names)):
            msg = "Partner names in the pool must be unique"
            raise ValueError(msg)
        unknown = [n for n in self.default_active if n not in names]
        if unknown:
            msg = f"default_active names not in pool: {unknown}"
            raise ValueError(msg)
        return self

    def get(self, name: str) -> PartnerConfig | None:
        return next((p for p in self.pool if p.name == name), None)

    def active_partners(self) -> list[Partner]:
        """Default active set, falling back to the first pool entry."""
        names = self.default_active or [p.name for p in self.pool[:1]]
        return [p.to_partner() for p in self.pool if p.name in names]


class OrchestrationConfig(BaseModel, frozen=True):
    """Dispatch and synthesis configuration.

    Attributes:
        default_schema: Execution schema for new contracts
        synthesizer_model: Model used for synthesis and contract refinement
        partner_timeout_seconds: Bounded wait per partner completion
        synthesis_timeout_seconds: Bounded wait for synthesis
        char_budget: Advisory per-response character budget
        enabled_tools: Capabilities enabled for new sessions
        temperature: Sampling temperature for partner requests
    """

    default_schema: ExecutionSchema = ExecutionSchema.PARALLEL
    synthesizer_model: str = "openrouter/google/gemini-2.5-flash"
    partner_timeout_seconds: float = Field(default=90.0, gt=0)
    synthesis_timeout_seconds: float = Field(default=180.0, gt=0)
    char_budget: int | None = Field(default=None, ge=100)
    enabled_tools: list[str] = Field(default_factory=list)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    @field_validator("enabled_tools")
    @classmethod
    def validate_tools(cls, v: list[str]) -> list[str]:
        unknown = [t for t in v if t not in CAPABILITIES]
        if unknown:
            msg = f"Unknown capabilities: {unknown}. Known: {sorted(CAPABILITIES)}"
            raise ValueError(msg)
        return v


class ConvergenceConfig(BaseModel, frozen=True):
    """Convergence configuration.

    Attributes:
        threshold: Stall threshold, percent of the reference
        min_rounds: First round at which convergence is checked
        budget_mode: "peak" (historical peak) or "phase" (fixed allowances)
        first_round_budget: Phase allowance for round 1
        later_round_budget: Phase allowance for rounds 2+
        max_rounds: Hard cap for the auto-advance loop
    """

    threshold: int = Field(default=DEFAULT_THRESHOLD, ge=MIN_THRESHOLD, le=MAX_THRESHOLD)
    min_rounds: int = Field(default=3, ge=1)
    budget_mode: Literal["peak", "phase"] = "peak"
    first_round_budget: int | None = Field(default=None, ge=100)
    later_round_budget: int | None = Field(default=None, ge=100)
    max_rounds: int = Field(default=12, ge=1)

    @model_validator(mode="after")
    def validate_phase_budgets(self) -> "ConvergenceConfig":
        if self.budget_mode == "phase" and (
            self.first_round_budget is None or self.later_round_budget is None
        ):
            msg = "budget_mode 'phase' requires first_round_budget and later_round_budget"
            raise ValueError(msg)
        return self


class LocalBackendConfig(BaseModel, frozen=True):
    """Local completion server configuration."""

    base_url: str = "http://localhost:11434"
    probe_timeout_seconds: float = Field(default=2.0, gt=0)
    request_timeout_seconds: float = Field(default=120.0, gt=0)


class ArchiveConfig(BaseModel, frozen=True):
    """Round archival configuration.

    Attributes:
        enabled: Archive every committed round
        base_url: Root URL of the snippet service
        probe_timeout_seconds: Reachability probe timeout
    """

    enabled: bool = False
    base_url: str = "http://localhost:1000"
    probe_timeout_seconds: float = Field(default=2.0, gt=0)


class AutorunConfig(BaseModel, frozen=True):
    """Auto-advance loop configuration."""

    settle_delay_seconds: float = Field(default=1.5, ge=0)


class LoggingConfig(BaseModel, frozen=True):
    """Logging configuration.

    Attributes:
        level: Log level (debug, info, warning, error)
        mode: "dev" console output or "prod" JSON lines
        log_to_file: Also write daily-rotated logs under ~/.gotme/logs/
    """

    level: Literal["debug", "info", "warning", "error"] = "info"
    mode: Literal["dev", "prod"] = "dev"
    log_to_file: bool = False


class GotmeConfig(BaseModel, frozen=True):
    """Top-level GOTME configuration.

    Validates against config.yaml in ~/.gotme/.
    """

    partners: PartnersConfig = Field(default_factory=PartnersConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    convergence: ConvergenceConfig = Field(default_factory=ConvergenceConfig)
    local_backend: LocalBackendConfig = Field(default_factory=LocalBackendConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    autorun: AutorunConfig = Field(default_factory=AutorunConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def get_default_config() -> GotmeConfig:
    """Default configuration with a mixed cloud/local partner pool."""
    return GotmeConfig(
        partners=PartnersConfig(
            pool=[
                PartnerConfig(name="claude-sonnet", model="openrouter/anthropic/claude-sonnet-4"),
                PartnerConfig(name="gpt-4o", model="openrouter/openai/gpt-4o"),
                PartnerConfig(name="gemini-pro", model="openrouter/google/gemini-2.5-pro"),
                PartnerConfig(
                    name="gpt-4o-mini",
                    model="openrouter/openai/gpt-4o-mini",
                    model_class=ModelClass.SLM,
                ),
                PartnerConfig(
                    name="llama-local",
                    model="llama3.2",
                    model_class=ModelClass.SLM,
                    local=True,
                ),
            ],
            default_active=["claude-sonnet", "gpt-4o", "gemini-pro"],
        ),
    )


def get_config_dir() -> Path:
    """Get the GOTME configuration directory path.

    Returns:
        $GOTME_HOME when set, otherwise ~/.gotme/
    """
    override = os.environ.get("GOTME_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".gotme"
