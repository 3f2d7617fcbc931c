"""Process execution and streaming output handling.

This module runs subprocesses and pushes every output line through a
middleware object as soon as it is read, so callers can parse progress while
the tool is still running.

Example:
    ```python
    from kbflash.utils.stream_process import run_command, OutputMiddleware

    class Upper(OutputMiddleware[str]):
        def process(self, line: str, stream_type: str) -> str:
            return line.upper()

    return_code, stdout, stderr = run_command(["ls", "-la"], Upper())
    ```
"""

import logging
import shlex
import subprocess
from pathlib import Path
from threading import Thread, Timer
from typing import IO, Any, Generic, TypeAlias, TypeVar, cast

from kbflash.core.cancellation import CancellationToken
from kbflash.core.errors import OperationCancelledError


logger = logging.getLogger(__name__)

T = TypeVar("T")  # Type of processed output

# (return_code, stdout, stderr); stderr is empty when streams are merged
ProcessResult: TypeAlias = tuple[int, list[T], list[T]]

TERMINATE_GRACE_SECONDS = 3.0


class OutputMiddleware(Generic[T]):
    """Base class for processing command output streams.

    Implementations can format, filter, or transform each line. Returning
    None drops the line from the captured output.
    """

    def process(self, line: str, stream_type: str) -> T:
        """Process a line of output from a subprocess stream.

        Args:
            line: A line of text from the process output, without newline
            stream_type: "stdout", "stderr", or "combined" for merged streams

        Returns:
            Processed output of type T
        """
        raise NotImplementedError()


class DefaultOutputMiddleware(OutputMiddleware[str]):
    """Middleware that logs each line at debug level and keeps it as-is."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def process(self, line: str, stream_type: str) -> str:
        logger.debug("%s[%s] %s", self.prefix, stream_type, line)
        return line


def terminate_process(process: "subprocess.Popen[Any]") -> None:
    """Terminate a child and reap it, escalating to kill if it ignores SIGTERM.

    Blocks up to TERMINATE_GRACE_SECONDS; only call it from the thread that
    owns the child.
    """
    if process.poll() is not None:
        return
    try:
        process.terminate()
        process.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        logger.warning("Process %s ignored terminate, killing", process.pid)
        process.kill()
        process.wait()
    except ProcessLookupError:
        pass


def _kill_if_running(process: "subprocess.Popen[Any]") -> None:
    if process.poll() is not None:
        return
    logger.warning("Process %s ignored terminate, killing", process.pid)
    try:
        process.kill()
    except ProcessLookupError:
        pass


def request_termination(process: "subprocess.Popen[Any]") -> None:
    """Send SIGTERM without waiting for the child to exit.

    Safe to call from any thread. A daemon timer kills the child if it is
    still running after the grace period, which unblocks the reader.
    """
    if process.poll() is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    escalation = Timer(TERMINATE_GRACE_SECONDS, _kill_if_running, args=(process,))
    escalation.daemon = True
    escalation.start()


def run_command(
    cmd: str | list[str],
    middleware: OutputMiddleware[T] | None = None,
    cwd: str | Path | None = None,
    cancel_token: CancellationToken | None = None,
    merge_stderr: bool = False,
) -> ProcessResult[T]:
    """Run a command and process its output through middleware.

    Args:
        cmd: Command to run, either as a string or list of arguments
        middleware: Optional middleware for processing output
        cwd: Working directory for the child process
        cancel_token: When it fires the child is terminated and
            OperationCancelledError is raised once the child is reaped
        merge_stderr: Read stderr through stdout as a single "combined"
            stream, preserving the interleaving the tool produced

    Returns:
        Tuple of return code, processed stdout lines, processed stderr lines

    Raises:
        FileNotFoundError: The executable does not exist
        OperationCancelledError: The token fired before the command finished
    """
    if middleware is None:
        middleware = cast(OutputMiddleware[T], DefaultOutputMiddleware())

    if isinstance(cmd, str):
        cmd = shlex.split(cmd)

    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    process = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
        text=True,
        bufsize=1,
        errors="replace",
    )

    unregister = (
        cancel_token.on_cancel(lambda: request_termination(process))
        if cancel_token is not None
        else None
    )

    def stream_output(stream: IO[str], stream_type: str) -> list[T]:
        captured: list[T] = []
        for line in iter(stream.readline, ""):
            if cancel_token is not None and cancel_token.is_cancelled:
                break
            processed = middleware.process(line.rstrip("\r\n"), stream_type)
            if processed is not None:
                captured.append(processed)
        return captured

    stdout_lines: list[T] = []
    stderr_lines: list[T] = []

    try:
        assert process.stdout is not None
        if merge_stderr:
            stdout_lines = stream_output(process.stdout, "combined")
        else:
            assert process.stderr is not None
            stderr_thread = Thread(
                target=lambda: stderr_lines.extend(
                    stream_output(process.stderr, "stderr")  # type: ignore[arg-type]
                ),
                daemon=True,
            )
            stderr_thread.start()
            stdout_lines = stream_output(process.stdout, "stdout")
            stderr_thread.join()

        if cancel_token is not None and cancel_token.is_cancelled:
            terminate_process(process)
            raise OperationCancelledError(cancel_token.reason or "command cancelled")

        return_code = process.wait()
    finally:
        if unregister is not None:
            unregister()
        # Never leave a child behind, whatever path got us here
        terminate_process(process)
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                stream.close()

    return return_code, stdout_lines, stderr_lines
