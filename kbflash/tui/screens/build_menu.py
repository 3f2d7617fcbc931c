"""Build target menu."""

from textual import events
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Static

from kbflash.flow.orchestrator import ALL_TARGETS


class BuildMenuScreen(ModalScreen[str | None]):
    """Pick a side (1-9) or every side (a); Esc closes without building."""

    def __init__(self, sides: tuple[str, ...]) -> None:
        super().__init__()
        self.sides = sides[:9]

    def compose(self) -> ComposeResult:
        lines = [f"  {i}  {side}" for i, side in enumerate(self.sides, start=1)]
        if len(self.sides) > 1:
            lines.append("  a  all sides")
        lines.append("")
        lines.append("  esc  cancel")
        with Vertical(id="dialog"):
            yield Static("Build firmware", classes="dialog-title")
            yield Static("\n".join(lines), id="build-options")

    def on_key(self, event: events.Key) -> None:
        key = event.key
        if key == "escape":
            event.stop()
            self.dismiss(None)
        elif key == "a" and len(self.sides) > 1:
            event.stop()
            self.dismiss(ALL_TARGETS)
        elif key.isdigit() and 1 <= int(key) <= len(self.sides):
            event.stop()
            self.dismiss(self.sides[int(key) - 1])
