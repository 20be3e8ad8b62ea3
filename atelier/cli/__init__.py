"""
CLI package for Atelier.

Provides a rich command-line interface using Typer.
"""

from atelier.cli.app import app, main

__all__ = ["app", "main"]
