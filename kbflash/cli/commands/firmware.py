"""Firmware commands: list builds, flash and build headlessly."""

import logging
from typing import Annotated

import typer

from kbflash.cli.app import AppContext
from kbflash.cli.decorators import handle_errors
from kbflash.cli.executors import FlowExecutor
from kbflash.cli.helpers.theme import Icons, TableStyles, ThemedConsole
from kbflash.core.errors import BuildError
from kbflash.firmware.models import format_size
from kbflash.firmware.scanner import create_firmware_scanner
from kbflash.flow.orchestrator import create_orchestrator


logger = logging.getLogger(__name__)


@handle_errors
def list_builds(ctx: typer.Context) -> None:
    """List firmware builds, newest first."""
    app_context: AppContext = ctx.obj
    config = app_context.config
    console = ThemedConsole()

    scanner = create_firmware_scanner(
        config.build.firmware_dir, config.build.file_pattern
    )
    builds = scanner.scan()
    if not builds:
        console.print_warning(f"No firmware builds found in {config.build.firmware_dir}")
        return

    table = TableStyles.create_builds_table()
    for index, build in enumerate(builds, start=1):
        table.add_row(
            str(index),
            build.display_date,
            "\n".join(f.name for f in build.files),
            format_size(build.total_size),
        )
    table.caption = str(scanner.firmware_dir)
    console.console.print(table)


@handle_errors
def flash_firmware(
    ctx: typer.Context,
    build: Annotated[
        str | None,
        typer.Option(
            "--build",
            "-b",
            help="Build to flash: YYYYMMDD, YYYY-MM-DD or 'current' (default: latest)",
        ),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Seconds to wait for each device", min=1),
    ] = None,
) -> None:
    """Flash a build to every side without the interactive UI."""
    app_context: AppContext = ctx.obj
    config = app_context.config
    if timeout is not None:
        config.device.wait_timeout = timeout

    console = ThemedConsole()
    console.console.print(
        Icons.format_with_icon(
            "KEYBOARD", f"{config.keyboard.name}: {', '.join(config.keyboard.sides)}"
        ),
        style="header",
    )

    orchestrator = create_orchestrator(config)
    exit_code = FlowExecutor(orchestrator, console).flash(build_date=build)
    if exit_code:
        raise typer.Exit(exit_code)


@handle_errors
def build_firmware(
    ctx: typer.Context,
    target: Annotated[
        str,
        typer.Argument(help="Side to build, or 'all' for every side"),
    ] = "all",
) -> None:
    """Build firmware using the configured build mode."""
    app_context: AppContext = ctx.obj
    config = app_context.config
    if not config.build.enabled:
        raise BuildError("Build not enabled in config (set build.enabled: true)")

    orchestrator = create_orchestrator(config)
    exit_code = FlowExecutor(orchestrator, ThemedConsole()).build(target)
    if exit_code:
        raise typer.Exit(exit_code)


def register_commands(app: typer.Typer) -> None:
    app.command(name="builds")(list_builds)
    app.command(name="flash")(flash_firmware)
    app.command(name="build")(build_firmware)
