"""Protocol definition for firmware build strategies."""

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Protocol, TypeAlias, runtime_checkable

from kbflash.core.cancellation import CancellationToken


if TYPE_CHECKING:
    from kbflash.firmware.models import BuildOutcome, BuildProgress


ProgressCallback: TypeAlias = Callable[["BuildProgress"], None]


@runtime_checkable
class FirmwareBuilderProtocol(Protocol):
    """Protocol for building firmware for one or more keyboard sides.

    Implementations never raise for tool failures: a failed or cancelled run
    is reported through the returned outcome.
    """

    def build(
        self,
        target: str,
        progress_callback: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> "BuildOutcome":
        """Build firmware for a single target (side, "main" or "all")."""
        ...

    def build_all(
        self,
        targets: Sequence[str],
        progress_callback: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> list["BuildOutcome"]:
        """Build targets in order, stopping at the first unsuccessful outcome.

        Returns:
            Outcomes produced so far, including the one that stopped the batch
        """
        ...
