from .cancellation import CancellationToken
from .errors import (
    BuildError,
    ConfigError,
    DeviceError,
    DockerError,
    FlashError,
    KbflashError,
    OperationCancelledError,
    UnsupportedPlatformError,
)
from .logging import setup_logging


__all__ = [
    "setup_logging",
    "CancellationToken",
    "KbflashError",
    "ConfigError",
    "BuildError",
    "DockerError",
    "FlashError",
    "DeviceError",
    "UnsupportedPlatformError",
    "OperationCancelledError",
]
