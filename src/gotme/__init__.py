"""GOTME - Governed Orchestrated Thought Machine Engine.

Multi-model research orchestration: partner models review a contract each
round, a synthesizer evolves it, and a convergence signal decides when the
research has stalled.

Example:
    # Using CLI
    gotme contract new "Grid-scale sodium batteries" -c "Focus on cost per kWh"
    gotme run auto

    # Using Python
    from gotme.core import Result, Contract
    from gotme.evolution import OrchestrationEngine
"""

__version__ = "0.1.0"

__all__ = ["__version__", "main"]


def main() -> None:
    """Main entry point for the GOTME CLI.

    This function invokes the Typer app from gotme.cli.main.
    """
    from gotme.cli.main import app

    app()
