"""CLI command modules."""

import typer

from kbflash.cli.commands.config import register_commands as register_config_commands
from kbflash.cli.commands.firmware import (
    register_commands as register_firmware_commands,
)


def register_all_commands(app: typer.Typer) -> None:
    """Register all CLI commands with the main app."""
    register_config_commands(app)
    register_firmware_commands(app)
