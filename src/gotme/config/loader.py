"""Configuration loading for GOTME.

Functions:
    load_config: Load configuration from ~/.gotme/config.yaml
    load_config_or_default: Same, falling back to defaults when no file exists
    create_default_config: Write a default configuration file
    ensure_config_dir: Ensure ~/.gotme/ exists
    config_exists: Check for the configuration file
"""

from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError
import yaml

from gotme.config.models import GotmeConfig, get_config_dir, get_default_config
from gotme.core.errors import ConfigError

# API keys come from the environment; .env files may supply them.
load_dotenv()
load_dotenv(get_config_dir() / ".env")


def ensure_config_dir() -> Path:
    """Create ~/.gotme/ with its sessions/ and logs/ subdirectories."""
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "sessions").mkdir(exist_ok=True)
    (config_dir / "logs").mkdir(exist_ok=True)
    return config_dir


def _model_to_yaml_dict(model: GotmeConfig) -> dict[str, Any]:
    return model.model_dump(mode="json")


def create_default_config(
    config_dir: Path | None = None,
    *,
    overwrite: bool = False,
) -> Path:
    """Create a default config.yaml.

    Args:
        config_dir: Directory to create the file in. Defaults to ~/.gotme/
        overwrite: If True, overwrite an existing file.

    Returns:
        Path to the written config.yaml.

    Raises:
        ConfigError: If the file exists and overwrite=False.
    """
    if config_dir is None:
        config_dir = ensure_config_dir()
    else:
        config_dir.mkdir(parents=True, exist_ok=True)

    config_path = config_dir / "config.yaml"
    if config_path.exists() and not overwrite:
        raise ConfigError(
            f"Configuration file already exists: {config_path}",
            config_file=str(config_path),
        )

    with config_path.open("w") as f:
        yaml.dump(
            _model_to_yaml_dict(get_default_config()),
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    return config_path


def load_config(config_path: Path | None = None) -> GotmeConfig:
    """Load and validate configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to ~/.gotme/config.yaml.

    Raises:
        ConfigError: If the file doesn't exist, is malformed, or fails validation.
    """
    if config_path is None:
        config_path = get_config_dir() / "config.yaml"

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}. "
            "Run `gotme config init` to create default configuration.",
            config_file=str(config_path),
        )

    try:
        with config_path.open() as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse configuration file: {e}",
            config_file=str(config_path),
            details={"yaml_error": str(e)},
        ) from e

    if config_dict is None:
        config_dict = {}
    if not isinstance(config_dict, dict):
        raise ConfigError(
            "Configuration file must contain a mapping at the top level",
            config_file=str(config_path),
        )

    try:
        return GotmeConfig.model_validate(config_dict)
    except PydanticValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            error_messages.append(f"  - {loc}: {error['msg']}")

        raise ConfigError(
            "Configuration validation failed:\n" + "\n".join(error_messages),
            config_file=str(config_path),
            details={"validation_errors": e.errors()},
        ) from e


def load_config_or_default(config_path: Path | None = None) -> GotmeConfig:
    """Load configuration, using defaults when no file exists yet.

    A file that exists but is invalid still raises ConfigError.
    """
    path = config_path or get_config_dir() / "config.yaml"
    if not path.exists():
        return get_default_config()
    return load_config(path)


def config_exists() -> bool:
    return (get_config_dir() / "config.yaml").exists()
