"""Firmware scanner for discovering builds in the firmware directory."""

import fnmatch
import logging
import os
from pathlib import Path

from kbflash.core.cancellation import CancellationToken
from kbflash.firmware.models import Build, FirmwareFile


logger = logging.getLogger(__name__)


def is_date_dir(name: str) -> bool:
    """True for names made of exactly eight ASCII digits (YYYYMMDD)."""
    return len(name) == 8 and all("0" <= c <= "9" for c in name)


class FirmwareScanner:
    """Scan the firmware directory for dated and flat builds.

    Layout understood:

        firmware/
            corne_left.uf2          <- flat build (date key "")
            20250115/
                corne_left.uf2      <- dated build
                corne_right.uf2
    """

    def __init__(self, firmware_dir: Path | str, file_pattern: str = "*.uf2") -> None:
        self.firmware_dir = Path(firmware_dir)
        self.file_pattern = file_pattern

    def scan(self, cancel_token: CancellationToken | None = None) -> list[Build]:
        """Return builds with dated ones newest first and the flat build last.

        Raises:
            OperationCancelledError: If the token fired before or during the scan
            OSError: If the firmware directory exists but cannot be read
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        if not self.firmware_dir.is_dir():
            logger.debug("Firmware directory does not exist: %s", self.firmware_dir)
            return []

        builds: list[Build] = []

        flat_files = self._scan_directory(self.firmware_dir)
        flat_build = (
            Build(date_key="", path=self.firmware_dir, files=tuple(flat_files))
            if flat_files
            else None
        )

        with os.scandir(self.firmware_dir) as entries:
            subdirs = [
                entry
                for entry in entries
                if entry.is_dir() and is_date_dir(entry.name)
            ]

        for entry in subdirs:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            build_path = Path(entry.path)
            try:
                files = self._scan_directory(build_path)
            except OSError as e:
                logger.warning("Skipping unreadable build directory %s: %s", build_path, e)
                continue

            if files:
                builds.append(
                    Build(date_key=entry.name, path=build_path, files=tuple(files))
                )

        builds.sort(key=lambda b: b.date_key, reverse=True)
        if flat_build is not None:
            builds.append(flat_build)

        logger.debug("Found %d builds in %s", len(builds), self.firmware_dir)
        return builds

    def find_latest(self, cancel_token: CancellationToken | None = None) -> Build | None:
        """Most recent build, or None when nothing matches."""
        builds = self.scan(cancel_token)
        return builds[0] if builds else None

    def _scan_directory(self, directory: Path) -> list[FirmwareFile]:
        files = []
        with os.scandir(directory) as entries:
            for entry in entries:
                if not entry.is_file():
                    continue
                if not fnmatch.fnmatchcase(entry.name, self.file_pattern):
                    continue
                try:
                    size = entry.stat().st_size
                except OSError as e:
                    logger.debug("Cannot stat %s: %s", entry.path, e)
                    continue
                files.append(
                    FirmwareFile(name=entry.name, path=Path(entry.path), size_bytes=size)
                )
        files.sort(key=lambda f: f.name)
        return files


def create_firmware_scanner(
    firmware_dir: Path | str, file_pattern: str = "*.uf2"
) -> FirmwareScanner:
    """Factory function to create a FirmwareScanner."""
    return FirmwareScanner(firmware_dir, file_pattern)
