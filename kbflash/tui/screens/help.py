"""Key reference overlay."""

from textual import events
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Static


HELP_TEXT = """\
  f / enter   flash the selected build
  b           build firmware
  r           factory reset (split keyboards)
  j / k       select build
  esc         cancel waiting or building
  enter       continue after a completed flash
  q           quit (when idle or complete)
  ?           toggle this help

Split keyboards are flashed one half at a time. After each half,
unplug it, then connect the next half and double-tap reset."""


class HelpScreen(ModalScreen[None]):
    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static("Keys", classes="dialog-title")
            yield Static(HELP_TEXT)

    def on_key(self, event: events.Key) -> None:
        if event.key in ("escape", "question_mark", "q", "enter"):
            event.stop()
            self.dismiss(None)
