"""CLI commands package."""

from atelier.cli.commands import config, session

__all__ = ["config", "session"]
