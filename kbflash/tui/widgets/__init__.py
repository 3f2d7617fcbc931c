"""Widgets for the kbflash TUI."""

from .firmware_list import FirmwareList
from .log_panel import LogPanel
from .status_panel import StatusPanel


__all__ = ["FirmwareList", "LogPanel", "StatusPanel"]
