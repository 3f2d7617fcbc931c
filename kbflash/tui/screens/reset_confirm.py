"""Factory reset confirmation dialog."""

from textual import events
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Static


class ResetConfirmScreen(ModalScreen[bool]):
    """Asks before flashing the settings-reset image."""

    def __init__(self, side: str) -> None:
        super().__init__()
        self.side = side

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static("Factory reset", classes="dialog-title")
            yield Static(
                f"Flash the settings reset image to {self.side}?\n"
                "This clears Bluetooth bonds and stored settings.\n\n"
                "  y  reset    n/esc  cancel"
            )

    def on_key(self, event: events.Key) -> None:
        if event.key == "y":
            event.stop()
            self.dismiss(True)
        elif event.key in ("n", "escape"):
            event.stop()
            self.dismiss(False)
