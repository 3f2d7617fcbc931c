"""Utility modules shared across kbflash.

1. Process Streaming: subprocess execution with per-line output middleware
2. XDG: config and state directory resolution
"""

from kbflash.utils.stream_process import (
    DefaultOutputMiddleware,
    OutputMiddleware,
    ProcessResult,
    request_termination,
    run_command,
    terminate_process,
)
from kbflash.utils.xdg import get_default_log_file, get_xdg_config_dir


__all__ = [
    "DefaultOutputMiddleware",
    "OutputMiddleware",
    "ProcessResult",
    "request_termination",
    "run_command",
    "terminate_process",
    "get_default_log_file",
    "get_xdg_config_dir",
]
