"""Firmware build list widget."""

from rich.text import Text
from textual.widgets import Static

from kbflash.firmware.models import format_size
from kbflash.flow.models import FlowSnapshot


class FirmwareList(Static):
    """Lists scanned builds with the selected one highlighted."""

    def update_from_snapshot(self, snapshot: FlowSnapshot) -> None:
        text = Text()
        if not snapshot.builds:
            text.append("No firmware found", style="dim")
            self.update(text)
            return

        for index, build in enumerate(snapshot.builds):
            selected = index == snapshot.selected_index
            marker = "▶ " if selected else "  "
            style = "bold cyan" if selected else ""
            text.append(f"{marker}{build.display_date}", style=style)
            text.append(f"  {len(build.files)} file(s), {format_size(build.total_size)}\n", style="dim")
            if selected:
                for firmware in build.files:
                    text.append(f"    {firmware.name} ", style="")
                    text.append(f"{firmware.display_size}\n", style="dim")
        self.update(text)
