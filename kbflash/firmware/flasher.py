"""Copy firmware images onto a mounted bootloader volume."""

import logging
import os
from pathlib import Path

from kbflash.core.cancellation import CancellationToken
from kbflash.core.structlog_logger import get_struct_logger
from kbflash.firmware.models import FlashOutcome, OutcomeStatus


logger = get_struct_logger(__name__)

CHUNK_SIZE = 32 * 1024


class ShortWriteError(OSError):
    """The device accepted fewer bytes than were handed to it."""


class Flasher:
    """Copies one firmware file onto a device volume.

    The copy is chunked so cancellation is observed between chunks, verified
    against the source size and synced before success is reported. Failures
    are never retried.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size

    def flash(
        self,
        source_path: Path | str,
        device_dir: Path | str,
        cancel_token: CancellationToken,
    ) -> FlashOutcome:
        if cancel_token.is_cancelled:
            return FlashOutcome(status=OutcomeStatus.CANCELLED, error="flash cancelled")

        source = Path(source_path)
        destination = Path(device_dir) / source.name
        log = logger.bind(source=str(source), destination=str(destination))

        try:
            src = source.open("rb")
        except OSError as e:
            log.error("flash_open_source_failed", error=str(e))
            return self._failed(f"open source: {e}")

        with src:
            try:
                expected = os.fstat(src.fileno()).st_size
            except OSError as e:
                return self._failed(f"stat source: {e}")

            try:
                dst = open(destination, "wb", buffering=0)
            except OSError as e:
                log.error("flash_create_destination_failed", error=str(e))
                return self._failed(f"create destination: {e}")

            with dst:
                written = 0
                try:
                    while True:
                        if cancel_token.is_cancelled:
                            log.info("flash_cancelled", bytes_written=written)
                            return FlashOutcome(
                                status=OutcomeStatus.CANCELLED,
                                bytes_written=written,
                                error="flash cancelled",
                            )

                        chunk = src.read(self.chunk_size)
                        if not chunk:
                            break

                        count = dst.write(chunk) or 0
                        written += count
                        if count != len(chunk):
                            raise ShortWriteError(
                                f"short write: {count} of {len(chunk)} bytes"
                            )
                except OSError as e:
                    exc_info = log.isEnabledFor(logging.DEBUG)
                    log.error("flash_copy_failed", error=str(e), exc_info=exc_info)
                    return self._failed(f"copy: {e}", written)

                if written != expected:
                    return self._failed(
                        f"size mismatch: wrote {written}, expected {expected}", written
                    )

                try:
                    os.fsync(dst.fileno())
                except OSError as e:
                    log.error("flash_sync_failed", error=str(e))
                    return self._failed(f"sync: {e}", written)

        log.info("flash_completed", bytes_written=written)
        return FlashOutcome(status=OutcomeStatus.SUCCESS, bytes_written=written)

    @staticmethod
    def _failed(error: str, bytes_written: int = 0) -> FlashOutcome:
        return FlashOutcome(
            status=OutcomeStatus.FAILED, bytes_written=bytes_written, error=error
        )


def create_flasher() -> Flasher:
    """Factory function to create a Flasher."""
    return Flasher()
