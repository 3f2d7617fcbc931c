"""Textual user interface for kbflash."""

from .app import KbflashApp


__all__ = ["KbflashApp"]
