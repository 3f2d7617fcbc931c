"""Flow orchestrator: sequences detection, builds and flashes.

All state lives on the loop thread. Detection, scanning, building and
flashing run through a WorkerRunner and report back by posting messages to
the inbox, which ``process_pending`` / ``run_once`` drain.
"""

import logging
import queue
import time
from collections import deque
from collections.abc import Callable, Sequence
from datetime import datetime

from kbflash.config.models import KbflashConfig
from kbflash.core.cancellation import CancellationToken
from kbflash.core.errors import OperationCancelledError
from kbflash.core.structlog_logger import get_struct_logger
from kbflash.device.models import DeviceStatus, VolumeEvent
from kbflash.device.worker import DetectionWorker
from kbflash.firmware.flasher import Flasher, create_flasher
from kbflash.firmware.models import (
    Build,
    BuildOutcome,
    BuildProgress,
    FirmwareFile,
    FlashOutcome,
    OutcomeStatus,
    format_size,
)
from kbflash.firmware.scanner import FirmwareScanner
from kbflash.flow.messages import (
    BuildFinished,
    BuildProgressed,
    FlashFinished,
    FlowMessage,
    ScanFinished,
    VolumeChanged,
)
from kbflash.flow.models import (
    DEFAULT_MAX_LOG_ENTRIES,
    FlowSnapshot,
    FlowState,
    LogEntry,
    LogLevel,
)
from kbflash.flow.workers import ThreadWorkerRunner, WorkerRunner
from kbflash.protocols.builder_protocol import FirmwareBuilderProtocol
from kbflash.protocols.volume_detector_protocol import VolumeDetectorProtocol


logger = get_struct_logger(__name__)

PROGRESS_QUEUE_SIZE = 10
ALL_TARGETS = "all"
MAX_ERROR_LINES = 10

Listener = Callable[[], None]


class FlowOrchestrator:
    """Owns the FlowState and the side cursor of a flashing session.

    Safety protocol for split keyboards: after a side is flashed the next
    side is only flashed once a disconnect has been observed and the device
    has connected again, so the same half is never flashed twice by mistake.
    """

    def __init__(
        self,
        config: KbflashConfig,
        scanner: FirmwareScanner | None = None,
        builder: FirmwareBuilderProtocol | None = None,
        flasher: Flasher | None = None,
        detector: VolumeDetectorProtocol | None = None,
        runner: WorkerRunner | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
    ) -> None:
        self.config = config
        self.scanner = scanner or FirmwareScanner(
            config.build.firmware_dir, config.build.file_pattern
        )
        self.builder = builder
        self.flasher = flasher or create_flasher()
        self.detector = detector
        self.runner = runner or ThreadWorkerRunner()
        self.clock = clock

        self.sides: tuple[str, ...] = tuple(config.keyboard.sides)

        self._inbox: queue.Queue[FlowMessage] = queue.Queue()
        self._progress: queue.Queue[BuildProgressed] = queue.Queue(
            maxsize=PROGRESS_QUEUE_SIZE
        )
        self._listeners: list[Listener] = []
        self._log: deque[LogEntry] = deque(maxlen=max_log_entries)
        self._log_seq = 0

        self._state = FlowState.IDLE
        self._device_status = DeviceStatus.DISCONNECTED
        self._device_path = ""
        self._device_known = False

        self._builds: tuple[Build, ...] = ()
        self._selected_index = 0
        self._scan_id = 0
        self._scan_token: CancellationToken | None = None
        self._scan_done = False
        self._select_latest_on_scan = False

        self._detection: DetectionWorker | None = None
        self._generation = 0

        self._build_run_id = 0
        self._build_token: CancellationToken | None = None
        self._build_percent = 0
        self._build_target = ""
        self._build_output = ""
        self._last_build_success: bool | None = None

        self._flash_id = 0
        self._flash_token: CancellationToken | None = None
        self._flash_file = ""
        self._disconnect_during_flash = False

        self._session_build: Build | None = None
        self._side_index = 0
        self._reset_mode = False
        self._reset_pending = False
        self._completed_steps: list[str] = []
        self._session_started: datetime | None = None
        self._wait_started: float | None = None

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        """Scan for firmware and start watching for the device."""
        self._log_entry(LogLevel.INFO, f"Started - {self.config.keyboard.name}")
        self.rescan()
        if self.detector is not None:
            self.restart_detection()

    def stop(self) -> None:
        """Stop detection and cancel any running work."""
        if self._detection is not None:
            self._detection.stop()
            self._detection = None
        for token in (self._build_token, self._flash_token, self._scan_token):
            if token is not None:
                token.cancel("shutting down")
        logger.debug("flow_stopped", state=self._state.value)

    def restart_detection(self) -> None:
        """Replace the detection worker; events from the old one are dropped."""
        if self.detector is None:
            raise RuntimeError("no volume detector configured")

        if self._detection is not None:
            self._detection.stop()

        self._generation += 1
        generation = self._generation
        self._device_known = False

        def sink(event: VolumeEvent) -> None:
            self._inbox.put(VolumeChanged(event=event, generation=generation))

        self._detection = DetectionWorker(
            self.detector,
            self.config.device.name,
            self.config.device.poll_interval,
            sink,
        )
        self._detection.start()
        logger.debug("detection_started", generation=generation)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` (on the loop thread) after every change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Loop

    def submit_volume_event(
        self, event: VolumeEvent, generation: int | None = None
    ) -> None:
        """Post a detector event as if it came from the active worker."""
        self._inbox.put(
            VolumeChanged(
                event=event,
                generation=self._generation if generation is None else generation,
            )
        )

    def process_pending(self) -> int:
        """Handle every queued message without blocking."""
        handled = self._drain_progress()
        while True:
            try:
                message = self._inbox.get_nowait()
            except queue.Empty:
                break
            handled += self._drain_progress()
            self._dispatch(message)
            handled += 1

        if self._check_wait_timeout():
            handled += 1
        if handled:
            self._notify()
        return handled

    def run_once(self, timeout: float | None = None) -> bool:
        """Block up to ``timeout`` for one message, then handle it.

        Returns:
            True if anything changed
        """
        try:
            message = self._inbox.get(timeout=timeout)
        except queue.Empty:
            changed = self._drain_progress() > 0
        else:
            self._drain_progress()
            self._dispatch(message)
            changed = True

        if self._check_wait_timeout():
            changed = True
        if changed:
            self._notify()
        return changed

    def _drain_progress(self) -> int:
        count = 0
        while True:
            try:
                message = self._progress.get_nowait()
            except queue.Empty:
                return count
            self._on_build_progressed(message)
            count += 1

    def _dispatch(self, message: FlowMessage) -> None:
        if isinstance(message, VolumeChanged):
            self._on_volume_changed(message)
        elif isinstance(message, BuildProgressed):
            self._on_build_progressed(message)
        elif isinstance(message, BuildFinished):
            self._on_build_finished(message)
        elif isinstance(message, FlashFinished):
            self._on_flash_finished(message)
        elif isinstance(message, ScanFinished):
            self._on_scan_finished(message)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                exc_info = logger.isEnabledFor(logging.DEBUG)
                logger.error("flow_listener_failed", error=str(e), exc_info=exc_info)

    # ------------------------------------------------------------------
    # Read access

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def device_known(self) -> bool:
        """True once the active detector has reported the initial state."""
        return self._device_known

    @property
    def scan_done(self) -> bool:
        return self._scan_done

    @property
    def builds(self) -> tuple[Build, ...]:
        return self._builds

    @property
    def selected_build(self) -> Build | None:
        if 0 <= self._selected_index < len(self._builds):
            return self._builds[self._selected_index]
        return None

    @property
    def log_entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._log)

    @property
    def current_side(self) -> str:
        if not self.sides:
            return ""
        side = self.sides[min(self._side_index, len(self.sides) - 1)]
        return f"{side} (reset)" if self._reset_mode else side

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            state=self._state,
            keyboard_name=self.config.keyboard.name,
            device_name=self.config.device.name,
            is_split=self.config.keyboard.is_split,
            build_enabled=self.builder is not None,
            sides=self.sides,
            device_status=self._device_status,
            device_path=self._device_path,
            builds=self._builds,
            selected_index=self._selected_index,
            current_side=self.current_side,
            side_index=self._side_index,
            flash_file=self._flash_file,
            build_percent=self._build_percent,
            build_target=self._build_target,
            build_output=self._build_output,
            last_build_success=self._last_build_success,
            completed_steps=tuple(self._completed_steps),
            session_started=self._session_started,
            factory_reset_pending=self._reset_pending,
            log=tuple(self._log),
        )

    # ------------------------------------------------------------------
    # Commands

    def select_build(self, index: int) -> bool:
        if self._state != FlowState.IDLE or not self._builds:
            return False
        self._selected_index = max(0, min(index, len(self._builds) - 1))
        self._notify()
        return True

    def move_selection(self, delta: int) -> bool:
        return self.select_build(self._selected_index + delta)

    def select_build_by_date(self, date: str) -> bool:
        """Select the build whose key or display date equals ``date``."""
        for index, build in enumerate(self._builds):
            if date in (build.date_key, build.display_date):
                return self.select_build(index)
        return False

    def rescan(self, select_latest: bool = False) -> bool:
        """Start a firmware scan; the result arrives as a message."""
        if self._scan_token is not None:
            self._scan_token.cancel("superseded")

        self._scan_id += 1
        scan_id = self._scan_id
        token = CancellationToken()
        self._scan_token = token
        self._select_latest_on_scan = select_latest

        def work() -> None:
            try:
                builds = tuple(self.scanner.scan(token))
            except OperationCancelledError:
                return
            except Exception as e:
                self._inbox.put(ScanFinished(scan_id=scan_id, builds=(), error=str(e)))
                return
            self._inbox.put(ScanFinished(scan_id=scan_id, builds=builds))

        self.runner.run("scan", work)
        return True

    def request_build(self, target: str) -> bool:
        """Build ``target`` (a side, or "all" for every side in order)."""
        if not self._accepts("build", FlowState.IDLE):
            return False
        if self.builder is None:
            self._log_entry(LogLevel.ERROR, "Build not enabled in config")
            return False
        if target != ALL_TARGETS and target not in self.sides:
            self._log_entry(LogLevel.ERROR, f"Unknown build target: {target}")
            return False

        targets: Sequence[str] = (
            self.sides if target == ALL_TARGETS and len(self.sides) > 1 else [target]
        )

        self._build_run_id += 1
        run_id = self._build_run_id
        token = CancellationToken()
        self._build_token = token
        self._build_percent = 0
        self._build_target = target
        self._build_output = ""
        self._session_started = datetime.now()
        self._set_state(FlowState.BUILDING)
        self._log_entry(LogLevel.INFO, f"Building: {target}")

        builder = self.builder

        def on_progress(progress: BuildProgress) -> None:
            try:
                self._progress.put_nowait(
                    BuildProgressed(run_id=run_id, progress=progress)
                )
            except queue.Full:
                pass

        def work() -> None:
            try:
                if len(targets) > 1:
                    outcomes = builder.build_all(targets, on_progress, token)
                else:
                    outcomes = [builder.build(targets[0], on_progress, token)]
            except Exception as e:
                exc_info = logger.isEnabledFor(logging.DEBUG)
                logger.error("build_worker_failed", error=str(e), exc_info=exc_info)
                outcomes = [BuildOutcome.failed(target, str(e))]
            self._inbox.put(BuildFinished(run_id=run_id, outcomes=tuple(outcomes)))

        self.runner.run("build", work)
        self._notify()
        return True

    def request_flash(self) -> bool:
        """Begin flashing the selected build to every side in order."""
        if not self._accepts("flash", FlowState.IDLE):
            return False
        if not self._device_settled("flash"):
            return False

        build = self.selected_build
        if build is None or not build.files:
            self._log_entry(LogLevel.ERROR, "No firmware files found")
            return False

        self._begin_session(build, reset_mode=False)

        label = self._target_label()
        if self._device_status == DeviceStatus.CONNECTED:
            self._set_state(FlowState.WAITING_DISCONNECT)
            self._log_entry(LogLevel.WARNING, f"Unplug device, then connect {label}")
        else:
            self._set_state(FlowState.WAITING_DEVICE)
            self._log_entry(LogLevel.INFO, f"Connect {label} and double-tap reset...")
        self._notify()
        return True

    def request_factory_reset(self) -> bool:
        """Ask for confirmation before flashing the settings-reset image."""
        if not self._accepts("factory reset", FlowState.IDLE):
            return False
        if not self._device_settled("factory reset"):
            return False
        if not self.config.keyboard.is_split:
            logger.warning("factory_reset_rejected", reason="not a split keyboard")
            return False
        if self.selected_build is None:
            self._log_entry(LogLevel.ERROR, "No firmware files found")
            return False

        self._reset_pending = True
        self._notify()
        return True

    def confirm_factory_reset(self) -> bool:
        if not self._reset_pending:
            logger.warning(
                "command_rejected", command="confirm reset", state=self._state.value
            )
            return False
        self._reset_pending = False

        build = self.selected_build
        reset_file = build.reset_file() if build is not None else None
        if build is None or reset_file is None:
            self._log_entry(LogLevel.ERROR, "No reset firmware found")
            self._notify()
            return False

        self._begin_session(build, reset_mode=True)
        self._log_entry(LogLevel.WARNING, "Factory reset started")

        if self._device_status == DeviceStatus.CONNECTED:
            self._start_flash()
        else:
            self._set_state(FlowState.WAITING_DEVICE)
            self._log_entry(
                LogLevel.INFO, f"Connect {self.sides[0]} and double-tap reset..."
            )
        self._notify()
        return True

    def decline_factory_reset(self) -> bool:
        if not self._reset_pending:
            return False
        self._reset_pending = False
        self._log_entry(LogLevel.INFO, "Factory reset cancelled")
        self._notify()
        return True

    def cancel(self) -> bool:
        """Abort waiting, cancel a build, or leave the complete screen."""
        if self._reset_pending:
            return self.decline_factory_reset()

        if self._state.is_waiting:
            self._end_session()
            self._set_state(FlowState.IDLE)
            self._log_entry(LogLevel.INFO, "Cancelled")
            self._notify()
            return True

        if self._state == FlowState.BUILDING:
            if self._build_token is not None and not self._build_token.is_cancelled:
                self._build_token.cancel("build cancelled by user")
                self._log_entry(LogLevel.INFO, "Cancelling build...")
                self._notify()
            return True

        if self._state == FlowState.COMPLETE:
            return self.acknowledge()

        logger.warning("command_rejected", command="cancel", state=self._state.value)
        return False

    def acknowledge(self) -> bool:
        """Return from COMPLETE to IDLE."""
        if not self._accepts("acknowledge", FlowState.COMPLETE):
            return False
        self._completed_steps = []
        self._session_started = None
        self._set_state(FlowState.IDLE)
        self._notify()
        return True

    def _device_settled(self, command: str) -> bool:
        """False until the active detector has reported whether a device is present.

        Without that first report an attached device would look disconnected
        and the unplug step would be skipped.
        """
        if self.detector is None or self._device_known:
            return True
        logger.warning("command_rejected", command=command, reason="device unknown")
        self._log_entry(LogLevel.WARNING, "Still detecting device, try again")
        self._notify()
        return False

    def _accepts(self, command: str, *states: FlowState) -> bool:
        if self._state in states and not self._reset_pending:
            return True
        logger.warning(
            "command_rejected",
            command=command,
            state=self._state.value,
            reset_pending=self._reset_pending,
        )
        return False

    # ------------------------------------------------------------------
    # Session helpers

    def _begin_session(self, build: Build, reset_mode: bool) -> None:
        self._session_build = build
        self._side_index = 0
        self._reset_mode = reset_mode
        self._completed_steps = []
        self._session_started = datetime.now()
        self._flash_file = ""

    def _end_session(self) -> None:
        self._session_build = None
        self._side_index = 0
        self._reset_mode = False
        self._flash_file = ""
        self._wait_started = None

    def _target_label(self) -> str:
        return self.current_side if self.config.keyboard.is_split else "keyboard"

    def _set_state(self, state: FlowState) -> None:
        if state == self._state:
            return
        logger.info(
            "flow_transition", from_state=self._state.value, to_state=state.value
        )
        self._state = state
        self._wait_started = self.clock() if state.is_waiting else None

    def _log_entry(self, level: LogLevel, message: str) -> None:
        self._log_seq += 1
        self._log.append(LogEntry(seq=self._log_seq, level=level, message=message))
        logger.debug("flow_log", level=level.value, message=message)

    def _check_wait_timeout(self) -> bool:
        if not self._state.is_waiting or self._wait_started is None:
            return False
        if self.clock() - self._wait_started < self.config.device.wait_timeout:
            return False

        self._log_entry(
            LogLevel.ERROR, f"Timed out waiting for {self.config.device.name}"
        )
        self._end_session()
        self._set_state(FlowState.IDLE)
        return True

    def _resolve_file(self, build: Build, side: str) -> FirmwareFile | None:
        if self._reset_mode:
            return build.reset_file()
        return build.file_for_side(side)

    def _start_flash(self) -> None:
        build = self._session_build
        side = self.sides[self._side_index]
        firmware = self._resolve_file(build, side) if build is not None else None
        if firmware is None:
            self._log_entry(
                LogLevel.ERROR, f"No firmware file for {self.current_side}"
            )
            self._end_session()
            self._set_state(FlowState.IDLE)
            return

        device_path = self._device_path
        self._flash_file = firmware.name
        self._disconnect_during_flash = False
        self._flash_id += 1
        flash_id = self._flash_id
        token = CancellationToken()
        self._flash_token = token
        self._set_state(FlowState.FLASHING)
        self._log_entry(LogLevel.INFO, f"Flashing {self.current_side}")

        flasher = self.flasher

        def work() -> None:
            try:
                outcome = flasher.flash(firmware.path, device_path, token)
            except Exception as e:
                exc_info = logger.isEnabledFor(logging.DEBUG)
                logger.error("flash_worker_failed", error=str(e), exc_info=exc_info)
                outcome = FlashOutcome(status=OutcomeStatus.FAILED, error=str(e))
            self._inbox.put(FlashFinished(flash_id=flash_id, outcome=outcome))

        self.runner.run("flash", work)

    # ------------------------------------------------------------------
    # Message handlers

    def _on_volume_changed(self, message: VolumeChanged) -> None:
        if message.generation != self._generation:
            logger.debug(
                "stale_volume_event_dropped",
                generation=message.generation,
                current=self._generation,
            )
            return

        event = message.event
        self._device_known = True
        status = DeviceStatus.from_event(event)
        changed = status != self._device_status
        self._device_status = status
        self._device_path = event.path if event.connected else ""

        if event.connected:
            if changed:
                self._log_entry(LogLevel.SUCCESS, "Device connected")
            if self._state == FlowState.WAITING_DEVICE:
                self._start_flash()
        else:
            if changed:
                self._log_entry(LogLevel.INFO, "Device disconnected")
            if self._state == FlowState.WAITING_DISCONNECT:
                self._set_state(FlowState.WAITING_DEVICE)
                self._log_entry(
                    LogLevel.INFO, f"Now connect {self._target_label()}..."
                )
            elif self._state == FlowState.FLASHING:
                self._disconnect_during_flash = True

    def _on_build_progressed(self, message: BuildProgressed) -> None:
        if message.run_id != self._build_run_id or self._state != FlowState.BUILDING:
            return
        progress = message.progress
        if progress.is_error:
            self._log_entry(LogLevel.WARNING, progress.message)
        elif progress.percent > self._build_percent:
            self._build_percent = min(progress.percent, 100)
        if progress.message:
            self._build_output = progress.message

    def _on_build_finished(self, message: BuildFinished) -> None:
        if message.run_id != self._build_run_id or self._state != FlowState.BUILDING:
            logger.debug("stale_build_result_dropped", run_id=message.run_id)
            return

        self._build_token = None
        outcomes = message.outcomes
        last = outcomes[-1] if outcomes else BuildOutcome.failed(
            self._build_target, "no build ran"
        )

        if outcomes and all(outcome.success for outcome in outcomes):
            self._last_build_success = True
            self._build_percent = 100
            for outcome in outcomes:
                if outcome.output_path is not None:
                    self._log_entry(LogLevel.INFO, f"Built {outcome.output_path.name}")
            duration = sum(outcome.duration_seconds for outcome in outcomes)
            self._log_entry(LogLevel.SUCCESS, f"Build complete ({duration:.0f}s)")
            self._set_state(FlowState.IDLE)
            self.rescan(select_latest=True)
            return

        self._last_build_success = False
        if last.status == OutcomeStatus.CANCELLED:
            self._log_entry(LogLevel.WARNING, "Build cancelled")
        else:
            lines = (last.error or "unknown error").splitlines()
            prefix = f"[{last.target}] " if len(outcomes) > 1 else ""
            self._log_entry(LogLevel.ERROR, f"Build failed: {prefix}{lines[0]}")
            for line in lines[1:][-MAX_ERROR_LINES:]:
                self._log_entry(LogLevel.ERROR, line)
        self._set_state(FlowState.IDLE)

    def _on_flash_finished(self, message: FlashFinished) -> None:
        if message.flash_id != self._flash_id or self._state != FlowState.FLASHING:
            logger.debug("stale_flash_result_dropped", flash_id=message.flash_id)
            return

        self._flash_token = None
        outcome = message.outcome
        label = self.current_side

        if outcome.status == OutcomeStatus.CANCELLED:
            self._log_entry(LogLevel.WARNING, "Flash cancelled")
            self._end_session()
            self._set_state(FlowState.IDLE)
            return

        if not outcome.success:
            self._log_entry(LogLevel.ERROR, f"Flash failed: {outcome.error}")
            self._end_session()
            self._set_state(FlowState.IDLE)
            return

        self._log_entry(
            LogLevel.SUCCESS,
            f"{label} flashed ({format_size(outcome.bytes_written)})",
        )
        self._completed_steps.append(f"{label} flashed")

        if self._reset_mode:
            self._set_state(FlowState.COMPLETE)
            self._log_entry(LogLevel.SUCCESS, "Factory reset complete")
            return

        self._side_index += 1
        if self._side_index < len(self.sides):
            next_label = self._target_label()
            if (
                self._disconnect_during_flash
                and self._device_status == DeviceStatus.DISCONNECTED
            ):
                self._set_state(FlowState.WAITING_DEVICE)
                self._log_entry(LogLevel.INFO, f"Now connect {next_label}...")
            else:
                self._set_state(FlowState.WAITING_DISCONNECT)
                self._log_entry(
                    LogLevel.WARNING, f"Unplug device, then connect {next_label}"
                )
            return

        self._set_state(FlowState.COMPLETE)
        self._log_entry(LogLevel.SUCCESS, "Flash complete")

    def _on_scan_finished(self, message: ScanFinished) -> None:
        if message.scan_id != self._scan_id:
            return
        self._scan_token = None
        self._scan_done = True

        if message.error is not None:
            self._log_entry(LogLevel.ERROR, f"Scan failed: {message.error}")
            return

        previous = self.selected_build
        self._builds = message.builds
        self._selected_index = 0
        if previous is not None and not self._select_latest_on_scan:
            for index, build in enumerate(self._builds):
                if build.date_key == previous.date_key:
                    self._selected_index = index
                    break
        self._log_entry(LogLevel.INFO, f"Found {len(self._builds)} build(s)")


def create_orchestrator(
    config: KbflashConfig,
    runner: WorkerRunner | None = None,
    detector: VolumeDetectorProtocol | None = None,
    builder: FirmwareBuilderProtocol | None = None,
) -> FlowOrchestrator:
    """Factory function wiring an orchestrator from configuration.

    The platform detector and, when builds are enabled, the configured build
    strategy are created unless supplied.

    Raises:
        UnsupportedPlatformError: No detector exists for this platform
        ConfigError: The build section is incomplete
    """
    from kbflash.device.detector import create_volume_detector
    from kbflash.firmware.build import create_builder

    if detector is None:
        detector = create_volume_detector(config.device.mount_roots)
    if builder is None and config.build.enabled:
        builder = create_builder(config.build)

    return FlowOrchestrator(config, builder=builder, detector=detector, runner=runner)
