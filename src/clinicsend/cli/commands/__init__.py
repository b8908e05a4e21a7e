"""CLI command modules."""

from clinicsend.cli.commands import config, history, run, schedule, send

__all__ = [
    "config",
    "history",
    "run",
    "schedule",
    "send",
]
