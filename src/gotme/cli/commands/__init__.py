"""CLI command groups for GOTME."""
