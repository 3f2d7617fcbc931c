"""Main CLI application for kbflash."""

import logging
import sys
from typing import Annotated

import typer

from kbflash import __version__
from kbflash.cli.decorators.error_handling import print_stack_trace_if_verbose
from kbflash.config.models import KbflashConfig
from kbflash.config.user_config import UserConfig, create_user_config
from kbflash.core.logging import setup_logging
from kbflash.utils.xdg import get_default_log_file


__all__ = ["app", "main", "AppContext"]

logger = logging.getLogger(__name__)


class AppContext:
    """Application context for storing shared state.

    The configuration file is loaded on first use so commands such as
    `init` work before one exists.
    """

    def __init__(
        self,
        verbose: int = 0,
        log_file: str | None = None,
        config_file: str | None = None,
        explicit_log_level: bool = False,
    ):
        self.verbose = verbose
        self.log_file = log_file
        self.config_file = config_file
        self.explicit_log_level = explicit_log_level
        self.console_logging = True
        self._user_config: UserConfig | None = None

    @property
    def user_config(self) -> UserConfig:
        """Loaded configuration; raises ConfigError when none is usable."""
        if self._user_config is None:
            self._user_config = create_user_config(cli_config_path=self.config_file)
            if not self.explicit_log_level:
                # config file level applies only without -v/--debug
                setup_logging(
                    level=self._user_config.config.log_level,
                    log_file=self.log_file,
                    console=self.console_logging,
                )
        return self._user_config

    @property
    def config(self) -> KbflashConfig:
        return self.user_config.config


def resolve_log_level(verbose: int, debug: bool) -> int:
    if debug or verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


app = typer.Typer(
    name="kbflash",
    help=f"""kbflash v{__version__}

Build and flash keyboard firmware onto UF2 bootloader volumes.

Split keyboards are flashed one half at a time: after each half the
device must be unplugged before the next half is connected.

Common workflows:
  • Create a config:  kbflash init
  • Interactive UI:   kbflash
  • Flash latest:     kbflash flash
  • Build one side:   kbflash build left""",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity (-v=INFO, -vv=DEBUG)",
        ),
    ] = 0,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging (equivalent to -vv)"),
    ] = False,
    log_file: Annotated[
        str | None, typer.Option("--log-file", help="Log to file")
    ] = None,
    config_file: Annotated[
        str | None,
        typer.Option("-c", "--config", help="Path to configuration file"),
    ] = None,
    version: Annotated[
        bool, typer.Option("--version", help="Show version and exit")
    ] = False,
) -> None:
    """kbflash keyboard firmware flasher."""
    if version:
        print(f"kbflash v{__version__}")
        raise typer.Exit()

    app_context = AppContext(
        verbose=verbose,
        log_file=log_file,
        config_file=config_file,
        explicit_log_level=bool(verbose or debug),
    )
    ctx.obj = app_context
    log_level = resolve_log_level(verbose, debug)

    if ctx.invoked_subcommand is None:
        # keep log output off the screen the TUI draws on
        app_context.console_logging = False
        app_context.log_file = log_file or str(get_default_log_file())
        setup_logging(level=log_level, log_file=app_context.log_file, console=False)

        from kbflash.cli.commands.tui import launch_tui

        launch_tui(app_context)
        return

    setup_logging(level=log_level, log_file=log_file)


def main() -> int:
    """Main CLI entry point."""
    try:
        app()
        return 0

    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0

    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        print_stack_trace_if_verbose()
        return 1


if __name__ == "__main__":
    sys.exit(main())
