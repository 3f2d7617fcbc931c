"""Helpers for the XDG base directory layout."""

import os
from pathlib import Path


def get_xdg_config_dir() -> Path:
    """Get XDG config directory for kbflash.

    Returns:
        Path to config directory: $XDG_CONFIG_HOME/kbflash or ~/.config/kbflash
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "kbflash"
    return Path.home() / ".config" / "kbflash"


def get_xdg_state_dir() -> Path:
    """Get XDG state directory for kbflash (TUI log files live here).

    Returns:
        Path to state directory: $XDG_STATE_HOME/kbflash or ~/.local/state/kbflash
    """
    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        return Path(xdg_state) / "kbflash"
    return Path.home() / ".local" / "state" / "kbflash"


def get_default_log_file() -> Path:
    """Log file used when the TUI redirects console logging."""
    return get_xdg_state_dir() / "kbflash.log"
