"""CLI helper utilities."""

from .theme import Colors, Icons, KBFLASH_THEME, TableStyles, ThemedConsole


__all__ = ["Colors", "Icons", "KBFLASH_THEME", "TableStyles", "ThemedConsole"]
