"""Activity log panel."""

from rich.text import Text
from textual.widgets import RichLog

from kbflash.flow.models import LogEntry, LogLevel


LEVEL_STYLES = {
    LogLevel.INFO: "",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red",
}


class LogPanel(RichLog):
    """RichLog fed incrementally from the flow log."""

    can_focus = False

    def __init__(self, id: str | None = None) -> None:
        super().__init__(
            id=id, highlight=False, markup=False, wrap=True, max_lines=1000
        )
        self.last_seq = 0

    def append_entries(self, entries: tuple[LogEntry, ...]) -> int:
        """Write entries newer than the last one shown; returns how many."""
        written = 0
        for entry in entries:
            if entry.seq <= self.last_seq:
                continue
            self.last_seq = entry.seq
            line = Text(entry.timestamp.strftime("%H:%M:%S "), style="dim")
            line.append(entry.message, style=LEVEL_STYLES[entry.level])
            self.write(line)
            written += 1
        return written
