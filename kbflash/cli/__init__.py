"""Command-line interface for kbflash."""

from kbflash.cli.app import app, main
from kbflash.cli.commands import register_all_commands


register_all_commands(app)

__all__ = ["app", "main"]
