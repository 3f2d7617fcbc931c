"""Flow state, log entries and the read-only snapshot used by displays."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from kbflash.device.models import DeviceStatus
from kbflash.firmware.models import Build


DEFAULT_MAX_LOG_ENTRIES = 200


class FlowState(str, Enum):
    """Phase of the flashing workflow; decides which commands are accepted."""

    IDLE = "idle"
    BUILDING = "building"
    WAITING_DISCONNECT = "waiting_disconnect"
    WAITING_DEVICE = "waiting_device"
    FLASHING = "flashing"
    COMPLETE = "complete"

    @property
    def is_waiting(self) -> bool:
        return self in (FlowState.WAITING_DISCONNECT, FlowState.WAITING_DEVICE)

    @property
    def is_busy(self) -> bool:
        return self in (FlowState.BUILDING, FlowState.FLASHING)


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    """One line of the user-facing activity log."""

    seq: int
    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class FlowSnapshot:
    """Everything a display needs to render the current flow."""

    state: FlowState
    keyboard_name: str
    device_name: str
    is_split: bool
    build_enabled: bool
    sides: tuple[str, ...]
    device_status: DeviceStatus = DeviceStatus.DISCONNECTED
    device_path: str = ""
    builds: tuple[Build, ...] = ()
    selected_index: int = 0
    current_side: str = ""
    side_index: int = 0
    flash_file: str = ""
    build_percent: int = 0
    build_target: str = ""
    build_output: str = ""
    last_build_success: bool | None = None
    completed_steps: tuple[str, ...] = ()
    session_started: datetime | None = None
    factory_reset_pending: bool = False
    log: tuple[LogEntry, ...] = ()

    @property
    def selected_build(self) -> Build | None:
        if 0 <= self.selected_index < len(self.builds):
            return self.builds[self.selected_index]
        return None

    @property
    def can_quit(self) -> bool:
        return self.state in (FlowState.IDLE, FlowState.COMPLETE)

    @property
    def target_label(self) -> str:
        """How the current flash target is addressed in prompts."""
        return self.current_side if self.is_split else "keyboard"
