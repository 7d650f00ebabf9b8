"""Config command group for GOTME.

Manage configuration settings and provider setup.
"""

from typing import Annotated

import typer

from gotme.cli import runtime
from gotme.cli.formatters.panels import print_info, print_success
from gotme.cli.formatters.tables import create_key_value_table, print_table
from gotme.config.loader import create_default_config, load_config
from gotme.config.models import get_config_dir
from gotme.core.errors import ConfigError

app = typer.Typer(
    name="config",
    help="Manage GOTME configuration.",
    no_args_is_help=True,
)


@app.command()
def show(
    section: Annotated[
        str | None,
        typer.Argument(help="Configuration section to display (e.g., 'convergence')."),
    ] = None,
) -> None:
    """Display current configuration.

    Shows all sections if none is specified.
    """
    config = runtime.load_settings()
    data = config.model_dump(mode="json")
    if section:
        if section not in data:
            runtime.fail(
                ConfigError(f"Unknown section: {section}. Known: {', '.join(data)}"),
                title="Configuration Error",
            )
        data = {section: data[section]}

    for name, values in data.items():
        if name == "partners":
            values = {
                "pool": ", ".join(p["name"] for p in values["pool"]),
                "default_active": ", ".join(values["default_active"]),
            }
        print_table(create_key_value_table(values, name.capitalize()))


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing config.yaml."),
    ] = False,
) -> None:
    """Initialize GOTME configuration.

    Creates ~/.gotme/config.yaml with defaults unless it already exists.
    """
    try:
        path = create_default_config(overwrite=force)
    except ConfigError as e:
        print_info(f"{e.message}. Use --force to overwrite.")
        raise typer.Exit(0) from e
    print_success(f"Configuration written to {path}")
    print_info(
        "API keys are read from the environment or from "
        f"{get_config_dir() / '.env'} (e.g. OPENROUTER_API_KEY)."
    )


@app.command()
def validate() -> None:
    """Validate current configuration.

    Checks config.yaml for errors.
    """
    try:
        load_config()
    except ConfigError as e:
        runtime.fail(e, title="Configuration Error")
    print_success("Configuration is valid.")


__all__ = ["app"]
