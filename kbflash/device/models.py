"""Device presence models."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class VolumeEvent:
    """Presence of the bootloader volume as last observed."""

    connected: bool
    path: str


class DeviceStatus(str, Enum):
    """Display-only connection status."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"

    @classmethod
    def from_event(cls, event: VolumeEvent) -> "DeviceStatus":
        return cls.CONNECTED if event.connected else cls.DISCONNECTED
