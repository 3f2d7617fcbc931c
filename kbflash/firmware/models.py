"""Firmware domain models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import ConfigDict, Field

from kbflash.models.base import KbflashBaseModel


def format_build_date(date_key: str) -> str:
    """Format a YYYYMMDD key as YYYY-MM-DD, returning other input unchanged."""
    if len(date_key) != 8 or not date_key.isdigit():
        return date_key
    try:
        return datetime.strptime(date_key, "%Y%m%d").strftime("%Y-%m-%d")
    except ValueError:
        return date_key


def format_size(size_bytes: int) -> str:
    """Human-readable size using 1024 steps with one truncated decimal."""
    unit = 1024
    if size_bytes < unit:
        return f"{size_bytes} B"
    div, exp = unit, 0
    n = size_bytes // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    value = size_bytes / div
    tenths = int(value * 10) / 10
    return f"{tenths:.1f} {'KMGTPE'[exp]}B"


class FirmwareFile(KbflashBaseModel):
    """A firmware image discovered on disk."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path
    size_bytes: int = Field(ge=0)

    @property
    def display_size(self) -> str:
        return format_size(self.size_bytes)


class Build(KbflashBaseModel):
    """A set of firmware files sharing a directory.

    An empty ``date_key`` marks the flat build found directly in the
    firmware directory.
    """

    model_config = ConfigDict(frozen=True)

    date_key: str = ""
    path: Path
    files: tuple[FirmwareFile, ...] = ()

    @property
    def is_flat(self) -> bool:
        return self.date_key == ""

    @property
    def display_date(self) -> str:
        return "current" if self.is_flat else format_build_date(self.date_key)

    @property
    def total_size(self) -> int:
        return sum(f.size_bytes for f in self.files)

    def file_for_side(self, side: str) -> FirmwareFile | None:
        """First file whose name contains ``side`` (case-insensitive).

        Falls back to the only file when the build has exactly one.
        """
        needle = side.lower()
        for firmware in self.files:
            if needle in firmware.name.lower():
                return firmware
        if len(self.files) == 1:
            return self.files[0]
        return None

    def reset_file(self) -> FirmwareFile | None:
        """File that clears persisted bonds and settings, if the build has one."""
        for firmware in self.files:
            name = firmware.name.lower()
            if "reset" in name or "settings" in name:
                return firmware
        return None


@dataclass(frozen=True)
class BuildProgress:
    """One parsed line of build output.

    ``percent`` is -1 for an error line seen while the build keeps running.
    """

    current: int = 0
    total: int = 0
    percent: int = 0
    message: str = ""

    @property
    def is_error(self) -> bool:
        return self.percent < 0


class OutcomeStatus(str, Enum):
    """How a build or flash ended."""

    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BuildOutcome(KbflashBaseModel):
    """Result of building one target."""

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    target: str = ""
    error: str | None = None
    output_path: Path | None = None
    duration_seconds: float = Field(default=0.0, ge=0)

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @property
    def cancelled(self) -> bool:
        return self.status == OutcomeStatus.CANCELLED

    @classmethod
    def succeeded(
        cls, target: str, duration: float, output_path: Path | None = None
    ) -> "BuildOutcome":
        return cls(
            status=OutcomeStatus.SUCCESS,
            target=target,
            duration_seconds=duration,
            output_path=output_path,
        )

    @classmethod
    def failed(cls, target: str, error: str, duration: float = 0.0) -> "BuildOutcome":
        return cls(
            status=OutcomeStatus.FAILED,
            target=target,
            error=error,
            duration_seconds=duration,
        )

    @classmethod
    def was_cancelled(cls, target: str, duration: float = 0.0) -> "BuildOutcome":
        return cls(
            status=OutcomeStatus.CANCELLED,
            target=target,
            error="build cancelled",
            duration_seconds=duration,
        )


class FlashOutcome(KbflashBaseModel):
    """Result of copying one firmware file onto the device volume."""

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    bytes_written: int = Field(default=0, ge=0)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @property
    def cancelled(self) -> bool:
        return self.status == OutcomeStatus.CANCELLED
