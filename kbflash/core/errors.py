"""Exception hierarchy for kbflash.

Components raise these internally; worker boundaries convert them into typed
outcomes so nothing propagates into the flow loop.
"""

from typing import Any


class KbflashError(Exception):
    """Base class for all kbflash errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(KbflashError):
    """Configuration file missing, unreadable or invalid."""


class BuildError(KbflashError):
    """Firmware build could not be prepared or run."""


class DockerError(BuildError):
    """Container runtime missing, not running, or a docker command failed."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.command = command


class FlashError(KbflashError):
    """Flash operation could not be prepared."""


class DeviceError(KbflashError):
    """Device detection problem."""


class UnsupportedPlatformError(DeviceError):
    """No volume detector exists for the running platform."""


class OperationCancelledError(KbflashError):
    """A cancellation token fired while an operation was in progress."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)


def create_docker_error(
    message: str,
    command: str | None = None,
    cause: Exception | None = None,
    context: dict[str, Any] | None = None,
) -> DockerError:
    """Build a DockerError, folding the cause into the context."""
    ctx = dict(context or {})
    if cause is not None:
        ctx["cause"] = str(cause)
        ctx["cause_type"] = cause.__class__.__name__
    return DockerError(message, command=command, context=ctx)


__all__ = [
    "KbflashError",
    "ConfigError",
    "BuildError",
    "DockerError",
    "FlashError",
    "DeviceError",
    "UnsupportedPlatformError",
    "OperationCancelledError",
    "create_docker_error",
]
