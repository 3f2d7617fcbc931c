"""Main Textual application for kbflash."""

import logging

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Footer, Header

from kbflash.flow.models import FlowSnapshot, FlowState
from kbflash.flow.orchestrator import FlowOrchestrator

from .screens import BuildMenuScreen, HelpScreen, ResetConfirmScreen
from .widgets import FirmwareList, LogPanel, StatusPanel
from .widgets.status_panel import describe_device


logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 0.1


class KbflashApp(App[None]):
    """Interactive front end over a FlowOrchestrator.

    The orchestrator's inbox is drained on a 100 ms timer; every widget is
    re-rendered from a fresh snapshot whenever something changed.
    """

    TITLE = "kbflash"

    CSS = """
    #main-row {
        height: 1fr;
    }
    #firmware-list {
        width: 2fr;
        border: round $secondary;
        padding: 0 1;
    }
    #status-panel {
        width: 3fr;
        border: round $secondary;
        padding: 0 1;
    }
    #build-progress {
        margin: 1 0;
    }
    #log-panel {
        height: 12;
        border: round $secondary;
    }
    .hint {
        dock: bottom;
    }
    ModalScreen {
        align: center middle;
    }
    #dialog {
        width: 64;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }
    .dialog-title {
        text-style: bold;
        margin-bottom: 1;
    }
    """

    BINDINGS = [
        Binding("f", "flash", "Flash"),
        Binding("enter", "enter", "Flash/Continue", show=False),
        Binding("b", "build", "Build"),
        Binding("r", "factory_reset", "Reset"),
        Binding("j,down", "select(1)", "Next", show=False),
        Binding("k,up", "select(-1)", "Previous", show=False),
        Binding("escape", "cancel", "Cancel"),
        Binding("question_mark", "help", "Help"),
        Binding("q", "request_quit", "Quit"),
    ]

    def __init__(self, orchestrator: FlowOrchestrator) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self._dirty = True
        self._remove_listener = orchestrator.add_listener(self._mark_dirty)

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-row"):
            yield FirmwareList(id="firmware-list")
            yield StatusPanel(id="status-panel")
        yield LogPanel(id="log-panel")
        yield Footer()

    def on_mount(self) -> None:
        snapshot = self.orchestrator.snapshot()
        self.title = f"kbflash - {snapshot.keyboard_name}"
        self.query_one("#firmware-list").border_title = "Firmware"
        self.query_one("#status-panel").border_title = "Status"
        self.query_one("#log-panel").border_title = "Log"

        self.orchestrator.start()
        self.refresh_flow()
        self.set_interval(REFRESH_INTERVAL, self.refresh_flow)

    def on_unmount(self) -> None:
        self._remove_listener()
        self.orchestrator.stop()

    def _mark_dirty(self) -> None:
        self._dirty = True

    def refresh_flow(self) -> None:
        """Handle pending orchestrator messages and re-render on change."""
        self.orchestrator.process_pending()
        if self._dirty:
            self._dirty = False
            self.render_snapshot(self.orchestrator.snapshot())

    def render_snapshot(self, snapshot: FlowSnapshot) -> None:
        self.sub_title = describe_device(snapshot)
        self.query_one(FirmwareList).update_from_snapshot(snapshot)
        self.query_one(StatusPanel).update_from_snapshot(snapshot)
        self.query_one(LogPanel).append_entries(snapshot.log)

    def action_flash(self) -> None:
        self.orchestrator.request_flash()
        self.refresh_flow()

    def action_enter(self) -> None:
        if self.orchestrator.state == FlowState.COMPLETE:
            self.orchestrator.acknowledge()
        else:
            self.orchestrator.request_flash()
        self.refresh_flow()

    def action_build(self) -> None:
        snapshot = self.orchestrator.snapshot()
        if snapshot.state != FlowState.IDLE:
            return
        if not snapshot.build_enabled:
            # logs "Build not enabled in config"
            self.orchestrator.request_build(snapshot.sides[0])
            self.refresh_flow()
            return

        def on_choice(target: str | None) -> None:
            if target is not None:
                self.orchestrator.request_build(target)
            self.refresh_flow()

        self.push_screen(BuildMenuScreen(snapshot.sides), on_choice)

    def action_factory_reset(self) -> None:
        if not self.orchestrator.request_factory_reset():
            self.refresh_flow()
            return

        def on_answer(confirmed: bool | None) -> None:
            if confirmed:
                self.orchestrator.confirm_factory_reset()
            else:
                self.orchestrator.decline_factory_reset()
            self.refresh_flow()

        self.push_screen(ResetConfirmScreen(self.orchestrator.sides[0]), on_answer)

    def action_select(self, delta: int) -> None:
        self.orchestrator.move_selection(delta)
        self.refresh_flow()

    def action_cancel(self) -> None:
        self.orchestrator.cancel()
        self.refresh_flow()

    def action_help(self) -> None:
        self.push_screen(HelpScreen())

    def action_request_quit(self) -> None:
        if self.orchestrator.snapshot().can_quit:
            self.exit()
        else:
            self.notify("Cancel or finish the current operation first", severity="warning")
