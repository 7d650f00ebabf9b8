"""Rich formatters for CLI output.

Provides the shared Console instance used by every command.

Semantic Colors:
- green: success
- yellow: warning
- red: error
- blue: info
"""

from rich.console import Console
from rich.theme import Theme

GOTME_THEME = Theme(
    {
        "success": "green",
        "warning": "yellow",
        "error": "red",
        "info": "blue",
        "muted": "dim",
        "highlight": "bold magenta",
    }
)

console = Console(theme=GOTME_THEME)

__all__ = ["console", "GOTME_THEME"]
