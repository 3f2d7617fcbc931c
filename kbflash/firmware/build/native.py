"""Build firmware by running a user-supplied command."""

import logging
import time
from pathlib import Path

from kbflash.core.cancellation import CancellationToken
from kbflash.core.errors import OperationCancelledError
from kbflash.core.structlog_logger import get_struct_logger
from kbflash.firmware.build.base import BuilderBase
from kbflash.firmware.build.progress import LINE_START_MARKER, ProgressMiddleware
from kbflash.firmware.models import BuildOutcome
from kbflash.protocols.builder_protocol import ProgressCallback
from kbflash.utils.stream_process import run_command


logger = get_struct_logger(__name__)

SIDE_PLACEHOLDER = "{{side}}"


class NativeBuilder(BuilderBase):
    """Runs ``command args...`` with ``{{side}}`` replaced by the target.

    stdout and stderr are read as one stream; lines starting with a
    ``[current/total]`` marker drive the progress percent and every other
    line is forwarded unchanged.
    """

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        working_dir: Path | str | None = None,
    ) -> None:
        self.command = command
        self.args = list(args or [])
        self.working_dir = Path(working_dir) if working_dir else None

    def command_for(self, target: str) -> list[str]:
        return [self.command, *(arg.replace(SIDE_PLACEHOLDER, target) for arg in self.args)]

    def build(
        self,
        target: str,
        progress_callback: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> BuildOutcome:
        start = time.monotonic()
        cmd = self.command_for(target)
        log = logger.bind(target=target, command=cmd)
        middleware = ProgressMiddleware(progress_callback, marker=LINE_START_MARKER)

        log.info("native_build_started", working_dir=str(self.working_dir or "."))
        try:
            return_code, _, _ = run_command(
                cmd,
                middleware,
                cwd=self.working_dir,
                cancel_token=cancel_token,
                merge_stderr=True,
            )
        except OperationCancelledError:
            log.info("native_build_cancelled")
            return BuildOutcome.was_cancelled(target, time.monotonic() - start)
        except OSError as e:
            exc_info = log.isEnabledFor(logging.DEBUG)
            log.error("native_build_start_failed", error=str(e), exc_info=exc_info)
            return BuildOutcome.failed(
                target, f"cannot run {self.command}: {e}", time.monotonic() - start
            )

        duration = time.monotonic() - start
        if return_code != 0:
            error = f"{self.command} exited with code {return_code}"
            tail = middleware.output_tail()
            if tail:
                error = f"{error}\n{tail}"
            log.error("native_build_failed", return_code=return_code)
            return BuildOutcome.failed(target, error, duration)

        log.info("native_build_completed", duration=round(duration, 1))
        return BuildOutcome.succeeded(target, duration)
