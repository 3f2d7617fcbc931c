"""Firmware discovery, building and flashing."""

from kbflash.firmware.flasher import Flasher, create_flasher
from kbflash.firmware.models import (
    Build,
    BuildOutcome,
    BuildProgress,
    FirmwareFile,
    FlashOutcome,
    OutcomeStatus,
    format_build_date,
    format_size,
)
from kbflash.firmware.scanner import FirmwareScanner, create_firmware_scanner


__all__ = [
    "Build",
    "BuildOutcome",
    "BuildProgress",
    "FirmwareFile",
    "FlashOutcome",
    "OutcomeStatus",
    "format_build_date",
    "format_size",
    "Flasher",
    "create_flasher",
    "FirmwareScanner",
    "create_firmware_scanner",
]
