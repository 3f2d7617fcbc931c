"""Platform-specific bootloader volume detection.

Detectors poll the filesystem for a named volume and report transitions only:
one event describing the current state, then one event per change.
"""

import abc
import logging
import os
import platform
from collections.abc import Iterator, Sequence
from pathlib import Path

from kbflash.core.cancellation import CancellationToken
from kbflash.core.errors import UnsupportedPlatformError
from kbflash.device.models import VolumeEvent
from kbflash.protocols.volume_detector_protocol import VolumeDetectorProtocol


logger = logging.getLogger(__name__)


def get_username() -> str:
    """Resolve the login name from $USER, $LOGNAME, then the user database."""
    for var in ("USER", "LOGNAME"):
        value = os.environ.get(var)
        if value:
            return value

    try:
        import pwd

        return pwd.getpwuid(os.getuid()).pw_name
    except (ImportError, KeyError) as e:
        logger.warning("Could not determine username: %s", e)
        return ""


class VolumeDetectorBase(abc.ABC):
    """Polls candidate mount points and yields presence transitions."""

    @abc.abstractmethod
    def candidate_paths(self, volume_name: str) -> list[str]:
        """Mount points where the volume may appear, in priority order."""

    def probe(self, paths: Sequence[str]) -> VolumeEvent:
        """Current presence across ``paths``.

        The reported path is the first existing candidate, or the first
        candidate (where the volume is expected to appear) when none exist.
        """
        for path in paths:
            if os.path.exists(path):
                return VolumeEvent(connected=True, path=path)
        return VolumeEvent(connected=False, path=paths[0] if paths else "")

    def detect(
        self,
        volume_name: str,
        poll_interval: float,
        cancel_token: CancellationToken,
    ) -> Iterator[VolumeEvent]:
        paths = self.candidate_paths(volume_name)
        logger.debug("Watching for volume %r at %s", volume_name, paths)

        last: VolumeEvent | None = None
        while True:
            event = self.probe(paths)
            if cancel_token.is_cancelled:
                return
            if event != last:
                last = event
                yield event
            if cancel_token.wait(poll_interval):
                return


class DarwinVolumeDetector(VolumeDetectorBase):
    """macOS mounts removable volumes under /Volumes."""

    def candidate_paths(self, volume_name: str) -> list[str]:
        return [str(Path("/Volumes") / volume_name)]


class LinuxVolumeDetector(VolumeDetectorBase):
    """udisks mounts under /run/media/<user>, older setups under /media/<user>."""

    def __init__(self, username: str | None = None) -> None:
        self.username = username if username is not None else get_username()

    def candidate_paths(self, volume_name: str) -> list[str]:
        return [
            str(Path("/run/media") / self.username / volume_name),
            str(Path("/media") / self.username / volume_name),
        ]


class MountRootDetector(VolumeDetectorBase):
    """Looks for the volume directly under explicitly configured roots."""

    def __init__(self, mount_roots: Sequence[str | Path]) -> None:
        if not mount_roots:
            raise ValueError("MountRootDetector needs at least one mount root")
        self.mount_roots = [Path(root) for root in mount_roots]

    def candidate_paths(self, volume_name: str) -> list[str]:
        return [str(root / volume_name) for root in self.mount_roots]


def create_volume_detector(
    mount_roots: Sequence[str | Path] | None = None,
    system: str | None = None,
) -> VolumeDetectorProtocol:
    """Factory function to create the volume detector for this platform.

    Args:
        mount_roots: Explicit roots that replace the platform defaults
        system: Platform name override, defaults to platform.system()

    Raises:
        UnsupportedPlatformError: No detector exists for the platform
    """
    if mount_roots:
        logger.debug("Creating mount root detector for %s", list(mount_roots))
        return MountRootDetector(mount_roots)

    system = system or platform.system()
    if system == "Darwin":
        return DarwinVolumeDetector()
    if system == "Linux":
        return LinuxVolumeDetector()

    raise UnsupportedPlatformError(
        f"Unsupported platform: {system} (set device.mount_roots to use kbflash here)",
        {"platform": system},
    )
