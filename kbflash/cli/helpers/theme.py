"""Theme for consistent Rich styling across CLI commands."""

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from kbflash.flow.models import LogLevel


class Colors:
    """Standardized color palette for CLI output."""

    SUCCESS = "bold green"
    ERROR = "bold red"
    WARNING = "bold yellow"
    INFO = "bold blue"

    PRIMARY = "cyan"
    SECONDARY = "blue"
    ACCENT = "magenta"
    MUTED = "dim"

    HEADER = "bold cyan"
    HIGHLIGHT = "bold white"


class Icons:
    """Standardized icons for different message types."""

    SUCCESS = "✅"
    ERROR = "❌"
    WARNING = "⚠️"
    INFO = "ℹ️"

    CHECKMARK = "✓"
    CROSS = "✗"
    BULLET = "•"

    KEYBOARD = "⌨️"
    FIRMWARE = "🔧"

    _TEXT_FALLBACKS = {
        "SUCCESS": "",
        "ERROR": "",
        "WARNING": "!",
        "INFO": "i",
        "CHECKMARK": "✓",
        "CROSS": "✗",
        "BULLET": "•",
    }

    @classmethod
    def get_icon(cls, icon_name: str, icon_mode: str = "emoji") -> str:
        """Get icon based on the specified mode ("emoji" or "text")."""
        if icon_mode == "emoji":
            return str(getattr(cls, icon_name, ""))
        return cls._TEXT_FALLBACKS.get(icon_name, "")

    @classmethod
    def format_with_icon(
        cls, icon_name: str, text: str, icon_mode: str = "emoji"
    ) -> str:
        icon = cls.get_icon(icon_name, icon_mode)
        return f"{icon} {text}" if icon else text


KBFLASH_THEME = Theme(
    {
        "success": Colors.SUCCESS,
        "error": Colors.ERROR,
        "warning": Colors.WARNING,
        "info": Colors.INFO,
        "primary": Colors.PRIMARY,
        "secondary": Colors.SECONDARY,
        "accent": Colors.ACCENT,
        "muted": Colors.MUTED,
        "header": Colors.HEADER,
        "highlight": Colors.HIGHLIGHT,
    }
)

LOG_LEVEL_ICONS = {
    LogLevel.INFO: "BULLET",
    LogLevel.SUCCESS: "CHECKMARK",
    LogLevel.WARNING: "WARNING",
    LogLevel.ERROR: "CROSS",
}


class ThemedConsole:
    """Console wrapper with the kbflash theme applied."""

    def __init__(self, icon_mode: str = "emoji", stderr: bool = False) -> None:
        self.console = Console(theme=KBFLASH_THEME, stderr=stderr)
        self.icon_mode = icon_mode

    def _print(self, icon_name: str, message: str, style: str) -> None:
        icon = Icons.get_icon(icon_name, self.icon_mode)
        # messages carry paths and tool output, never markup
        self.console.print(
            f"{icon} {message}".strip(), style=style, markup=False, soft_wrap=True
        )

    def print_success(self, message: str) -> None:
        self._print("SUCCESS", message, "success")

    def print_error(self, message: str) -> None:
        self._print("ERROR", message, "error")

    def print_warning(self, message: str) -> None:
        self._print("WARNING", message, "warning")

    def print_info(self, message: str) -> None:
        self._print("INFO", message, "info")

    def print_log_entry(self, level: LogLevel, message: str) -> None:
        """Print one flow log line with the level's icon and style."""
        style = "primary" if level == LogLevel.INFO else level.value
        self._print(LOG_LEVEL_ICONS[level], message, style)


class TableStyles:
    """Predefined table styling templates."""

    @staticmethod
    def create_basic_table(
        title: str = "", icon: str = "", icon_mode: str = "emoji"
    ) -> Table:
        if icon and title:
            title = Icons.format_with_icon(icon.upper(), title, icon_mode)
        return Table(
            title=title,
            show_header=True,
            header_style=Colors.HEADER,
            border_style=Colors.SECONDARY,
        )

    @staticmethod
    def create_builds_table(icon_mode: str = "emoji") -> Table:
        """Create table for firmware build listings."""
        table = TableStyles.create_basic_table("Firmware Builds", "FIRMWARE", icon_mode)
        table.add_column("#", style=Colors.MUTED, justify="right")
        table.add_column("Date", style=Colors.PRIMARY, no_wrap=True)
        table.add_column("Files", style=Colors.ACCENT)
        table.add_column("Size", style=Colors.MUTED, justify="right")
        return table
