"""Error handling decorators for CLI commands."""

import logging
import sys
import traceback
from collections.abc import Callable
from functools import wraps
from typing import Any

import typer

from kbflash.cli.helpers.theme import ThemedConsole
from kbflash.core.errors import (
    BuildError,
    ConfigError,
    DeviceError,
    FlashError,
    KbflashError,
)
from kbflash.core.structlog_logger import get_struct_logger


__all__ = ["handle_errors", "print_stack_trace_if_verbose"]

logger = get_struct_logger(__name__)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to handle common exceptions in CLI commands.

    Known errors are reported on stderr and turned into exit code 1.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ConfigError as e:
            _report("configuration_error", e)
        except BuildError as e:
            _report("build_error", e)
        except FlashError as e:
            _report("flash_error", e)
        except DeviceError as e:
            _report("device_error", e)
        except KbflashError as e:
            _report("kbflash_error", e)
        except FileNotFoundError as e:
            _report("file_not_found", e)
        except typer.Exit:
            raise
        except Exception as e:
            exc_info = logger.isEnabledFor(logging.DEBUG)
            logger.error("unexpected_error", error=str(e), exc_info=exc_info)
            ThemedConsole(stderr=True).print_error(f"Unexpected error: {e}")
            print_stack_trace_if_verbose()
            raise typer.Exit(1) from e

    return wrapper


def _report(event: str, error: Exception) -> None:
    logger.debug(event, error=str(error))
    ThemedConsole(stderr=True).print_error(str(error))
    print_stack_trace_if_verbose()
    raise typer.Exit(1) from error


def print_stack_trace_if_verbose() -> None:
    """Print stack trace if verbose/debug mode is enabled."""
    if any(arg in sys.argv for arg in ["-v", "-vv", "--verbose", "--debug"]):
        print("\nStack trace:", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
