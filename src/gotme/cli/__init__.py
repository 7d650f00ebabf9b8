"""GOTME command-line interface.

Built with Typer and Rich.
"""

from gotme.cli.main import app

__all__ = ["app"]
