"""Status panel showing the current flow phase and build progress."""

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import ProgressBar, Static

from kbflash.device.models import DeviceStatus
from kbflash.flow.models import FlowSnapshot, FlowState


HINTS = {
    FlowState.IDLE: "f flash · b build · r reset · j/k select · ? help · q quit",
    FlowState.BUILDING: "esc cancel build",
    FlowState.WAITING_DISCONNECT: "esc cancel",
    FlowState.WAITING_DEVICE: "esc cancel",
    FlowState.FLASHING: "flashing, do not unplug",
    FlowState.COMPLETE: "enter continue · q quit",
}


def describe_state(snapshot: FlowSnapshot) -> Text:
    """State-specific status text."""
    state = snapshot.state
    label = snapshot.target_label
    text = Text()

    if state == FlowState.IDLE:
        build = snapshot.selected_build
        if build is None:
            text.append("No firmware selected", style="dim")
        else:
            text.append("Ready to flash ", style="bold")
            text.append(build.display_date, style="cyan")
        if snapshot.last_build_success is False:
            text.append("\nLast build failed", style="red")
    elif state == FlowState.BUILDING:
        text.append(f"Building {snapshot.build_target}", style="bold yellow")
        if snapshot.build_output:
            text.append(f"\n{snapshot.build_output}", style="dim")
    elif state == FlowState.WAITING_DISCONNECT:
        text.append(f"Unplug device, then connect {label}", style="bold yellow")
    elif state == FlowState.WAITING_DEVICE:
        text.append(f"Connect {label} and double-tap reset", style="bold yellow")
    elif state == FlowState.FLASHING:
        text.append(f"Flashing {label}", style="bold magenta")
        if snapshot.flash_file:
            text.append(f"\n{snapshot.flash_file}", style="dim")
    elif state == FlowState.COMPLETE:
        text.append("Flash complete", style="bold green")

    for step in snapshot.completed_steps:
        text.append(f"\n✓ {step}", style="green")
    return text


def describe_device(snapshot: FlowSnapshot) -> str:
    if snapshot.device_status == DeviceStatus.CONNECTED:
        return f"{snapshot.device_name}: connected at {snapshot.device_path}"
    return f"{snapshot.device_name}: not connected"


class StatusPanel(Vertical):
    """Phase description, build progress bar and key hints."""

    def compose(self) -> ComposeResult:
        yield Static(id="status-text")
        yield ProgressBar(total=100, show_eta=False, id="build-progress")
        yield Static(id="status-hint", classes="hint")

    def update_from_snapshot(self, snapshot: FlowSnapshot) -> None:
        self.query_one("#status-text", Static).update(describe_state(snapshot))

        progress_bar = self.query_one("#build-progress", ProgressBar)
        progress_bar.display = snapshot.state == FlowState.BUILDING
        progress_bar.update(progress=snapshot.build_percent)

        hint = HINTS[snapshot.state]
        if not snapshot.is_split and snapshot.state == FlowState.IDLE:
            hint = hint.replace(" · r reset", "")
        self.query_one("#status-hint", Static).update(Text(hint, style="dim"))
