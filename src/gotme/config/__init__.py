"""GOTME configuration: pydantic models and the YAML loader."""

from gotme.config.loader import (
    config_exists,
    create_default_config,
    ensure_config_dir,
    load_config,
    load_config_or_default,
)
from gotme.config.models import (
    ArchiveConfig,
    AutorunConfig,
    ConvergenceConfig,
    GotmeConfig,
    LocalBackendConfig,
    LoggingConfig,
    OrchestrationConfig,
    PartnerConfig,
    PartnersConfig,
    get_config_dir,
    get_default_config,
)

__all__ = [
    # Models
    "ArchiveConfig",
    "AutorunConfig",
    "ConvergenceConfig",
    "GotmeConfig",
    "LocalBackendConfig",
    "LoggingConfig",
    "OrchestrationConfig",
    "PartnerConfig",
    "PartnersConfig",
    "get_config_dir",
    "get_default_config",
    # Loader
    "config_exists",
    "create_default_config",
    "ensure_config_dir",
    "load_config",
    "load_config_or_default",
]
