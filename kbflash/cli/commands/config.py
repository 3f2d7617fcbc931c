"""Configuration commands."""

import logging
from pathlib import Path
from typing import Annotated

import typer

from kbflash.cli.decorators import handle_errors
from kbflash.cli.helpers.theme import ThemedConsole
from kbflash.config.user_config import generate_example_config


logger = logging.getLogger(__name__)


@handle_errors
def init_config(
    path: Annotated[
        Path | None,
        typer.Option(
            "--path",
            "-p",
            help="Where to write the config (default: XDG config directory)",
        ),
    ] = None,
) -> None:
    """Write an example configuration file."""
    written = generate_example_config(path)
    console = ThemedConsole()
    console.print_success(f"Created {written}")
    console.print_info("Edit keyboard.name and device.name before flashing")


def register_commands(app: typer.Typer) -> None:
    app.command(name="init")(init_config)
