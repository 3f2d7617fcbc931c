"""Protocol definition for volume presence detection."""

from collections.abc import Iterator
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from kbflash.core.cancellation import CancellationToken


if TYPE_CHECKING:
    from kbflash.device.models import VolumeEvent


@runtime_checkable
class VolumeDetectorProtocol(Protocol):
    """Protocol for watching a named storage volume appear and disappear."""

    def candidate_paths(self, volume_name: str) -> list[str]:
        """Mount points where the volume may appear, in priority order."""
        ...

    def detect(
        self,
        volume_name: str,
        poll_interval: float,
        cancel_token: CancellationToken,
    ) -> Iterator["VolumeEvent"]:
        """Yield the current presence state, then every change.

        The stream ends once the token fires; nothing is yielded after
        cancellation has been observed.
        """
        ...
