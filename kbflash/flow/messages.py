"""Messages posted by worker threads to the flow loop."""

from dataclasses import dataclass

from kbflash.device.models import VolumeEvent
from kbflash.firmware.models import Build, BuildOutcome, BuildProgress, FlashOutcome


@dataclass(frozen=True)
class VolumeChanged:
    event: VolumeEvent
    generation: int


@dataclass(frozen=True)
class BuildProgressed:
    run_id: int
    progress: BuildProgress


@dataclass(frozen=True)
class BuildFinished:
    run_id: int
    outcomes: tuple[BuildOutcome, ...]


@dataclass(frozen=True)
class FlashFinished:
    flash_id: int
    outcome: FlashOutcome


@dataclass(frozen=True)
class ScanFinished:
    scan_id: int
    builds: tuple[Build, ...]
    error: str | None = None


FlowMessage = VolumeChanged | BuildProgressed | BuildFinished | FlashFinished | ScanFinished
