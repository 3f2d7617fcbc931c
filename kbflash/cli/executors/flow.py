"""Headless flow executor for the `flash` and `build` commands."""

import logging
import time

from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from kbflash.cli.helpers.theme import ThemedConsole
from kbflash.flow.models import FlowState
from kbflash.flow.orchestrator import FlowOrchestrator


logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
STARTUP_TIMEOUT = 10.0
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


class FlowExecutor:
    """Drives a FlowOrchestrator without the TUI.

    The orchestrator's log is echoed to the console as it grows.
    """

    def __init__(
        self,
        orchestrator: FlowOrchestrator,
        console: ThemedConsole | None = None,
        poll_interval: float = POLL_INTERVAL,
        startup_timeout: float = STARTUP_TIMEOUT,
    ) -> None:
        self.orchestrator = orchestrator
        self.console = console or ThemedConsole()
        self.poll_interval = poll_interval
        self.startup_timeout = startup_timeout
        self._last_seq = 0

    def flash(self, build_date: str | None = None) -> int:
        """Flash the latest (or the named) build to every side in order.

        Returns:
            Process exit code
        """
        orchestrator = self.orchestrator
        try:
            orchestrator.start()
            self._wait_until_ready(need_device=True)

            if not orchestrator.builds:
                self.console.print_error("No firmware builds found")
                return EXIT_FAILED

            if build_date and not orchestrator.select_build_by_date(build_date):
                self.console.print_error(f"Build not found: {build_date}")
                return EXIT_FAILED

            build = orchestrator.selected_build
            if build is not None:
                self.console.print_info(
                    f"Using build {build.display_date} ({len(build.files)} file(s))"
                )

            if not orchestrator.request_flash():
                self._echo_log()
                return EXIT_FAILED

            while True:
                self._step()
                if orchestrator.state == FlowState.COMPLETE:
                    self.console.print_success("Flash complete!")
                    return EXIT_OK
                if orchestrator.state == FlowState.IDLE:
                    return EXIT_FAILED

        except KeyboardInterrupt:
            orchestrator.cancel()
            self._echo_log()
            self.console.print_warning("Interrupted")
            return EXIT_INTERRUPTED
        finally:
            orchestrator.stop()

    def build(self, target: str) -> int:
        """Build ``target`` with a progress bar.

        Returns:
            Process exit code
        """
        orchestrator = self.orchestrator
        try:
            orchestrator.start()
            self._wait_until_ready(need_device=False)

            if not orchestrator.request_build(target):
                self._echo_log()
                return EXIT_FAILED

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                console=self.console.console,
                transient=True,
            ) as progress:
                task = progress.add_task(f"Building {target}", total=100)
                while orchestrator.state == FlowState.BUILDING:
                    self._step()
                    snapshot = orchestrator.snapshot()
                    progress.update(
                        task,
                        completed=snapshot.build_percent,
                        description=_shorten(snapshot.build_output) or f"Building {target}",
                    )

            # pick up the rescan that follows a successful build
            self._step()
            return EXIT_OK if orchestrator.snapshot().last_build_success else EXIT_FAILED

        except KeyboardInterrupt:
            orchestrator.cancel()
            self._echo_log()
            self.console.print_warning("Interrupted")
            return EXIT_INTERRUPTED
        finally:
            orchestrator.stop()

    def _wait_until_ready(self, need_device: bool) -> None:
        """Wait for the first scan and, when needed, the first device report."""
        orchestrator = self.orchestrator
        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            device_ready = (
                not need_device
                or orchestrator.detector is None
                or orchestrator.device_known
            )
            if orchestrator.scan_done and device_ready:
                break
            self._step()
        else:
            logger.warning("Startup did not settle within %.1fs", self.startup_timeout)

    def _step(self) -> None:
        self.orchestrator.run_once(self.poll_interval)
        self._echo_log()

    def _echo_log(self) -> None:
        for entry in self.orchestrator.log_entries:
            if entry.seq <= self._last_seq:
                continue
            self._last_seq = entry.seq
            self.console.print_log_entry(entry.level, entry.message)


def _shorten(text: str, width: int = 50) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."
