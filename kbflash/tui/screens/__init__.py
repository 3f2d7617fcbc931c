"""Screens for the kbflash TUI."""

from .build_menu import BuildMenuScreen
from .help import HelpScreen
from .reset_confirm import ResetConfirmScreen


__all__ = ["BuildMenuScreen", "HelpScreen", "ResetConfirmScreen"]
