"""Shared batch behaviour for firmware builders."""

import abc
import logging
from collections.abc import Sequence

from kbflash.core.cancellation import CancellationToken
from kbflash.firmware.models import BuildOutcome, BuildProgress
from kbflash.protocols.builder_protocol import ProgressCallback


logger = logging.getLogger(__name__)


class BuilderBase(abc.ABC):
    """Base class providing ``build_all`` on top of a single-target ``build``."""

    @abc.abstractmethod
    def build(
        self,
        target: str,
        progress_callback: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> BuildOutcome:
        """Build firmware for one target."""

    def build_all(
        self,
        targets: Sequence[str],
        progress_callback: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> list[BuildOutcome]:
        outcomes: list[BuildOutcome] = []
        count = len(targets)

        for index, target in enumerate(targets):
            base_percent = index * 100 // count

            def target_progress(
                progress: BuildProgress, target: str = target, base: int = base_percent
            ) -> None:
                percent = progress.percent
                if percent > 0:
                    percent = base + percent // count
                progress_callback(
                    BuildProgress(
                        current=progress.current,
                        total=progress.total,
                        percent=percent,
                        message=f"[{target}] {progress.message}",
                    )
                )

            outcome = self.build(target, target_progress, cancel_token)
            outcomes.append(outcome)
            if not outcome.success:
                logger.info(
                    "Stopping batch at %s (%s)", target, outcome.status.value
                )
                break

        return outcomes
