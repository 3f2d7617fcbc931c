"""Parsing of ninja-style ``[current/total]`` progress markers."""

import re
from collections import deque
from collections.abc import Callable

from kbflash.firmware.models import BuildProgress
from kbflash.utils.stream_process import OutputMiddleware


LINE_START_MARKER = re.compile(r"^\[(\d+)/(\d+)\]")
ANY_MARKER = re.compile(r"\[(\d+)/(\d+)\]")

OUTPUT_TAIL_LINES = 20


class ProgressTracker:
    """Maps step markers onto a percent band that never moves backwards.

    Ninja grows its step total as it discovers dependencies, so the largest
    total seen so far is used as the denominator.
    """

    def __init__(self, low: int = 0, high: int = 100) -> None:
        self.low = low
        self.high = high
        self.max_total = 0
        self.percent = low

    def update(self, current: int, total: int) -> int:
        self.max_total = max(self.max_total, total)
        if self.max_total <= 0:
            return self.percent
        raw = self.low + current * (self.high - self.low) // self.max_total
        self.percent = min(self.high, max(self.percent, raw))
        return self.percent


class ProgressMiddleware(OutputMiddleware[None]):
    """Turns build output lines into BuildProgress callbacks.

    Keeps the last lines of output so failures can quote the tool's own
    diagnostics.
    """

    def __init__(
        self,
        progress_callback: Callable[[BuildProgress], None],
        marker: re.Pattern[str] = LINE_START_MARKER,
        tracker: ProgressTracker | None = None,
        forward_raw: bool = True,
        flag_errors: bool = False,
    ) -> None:
        self.progress_callback = progress_callback
        self.marker = marker
        self.tracker = tracker or ProgressTracker()
        self.forward_raw = forward_raw
        self.flag_errors = flag_errors
        self.tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)

    def process(self, line: str, stream_type: str) -> None:
        self.tail.append(line)

        match = self.marker.search(line)
        if match:
            current, total = int(match.group(1)), int(match.group(2))
            percent = self.tracker.update(current, total)
            self.progress_callback(
                BuildProgress(
                    current=current,
                    total=self.tracker.max_total,
                    percent=percent,
                    message=line,
                )
            )
        elif self.flag_errors and ("error:" in line or "Error:" in line):
            self.progress_callback(BuildProgress(percent=-1, message=line))
        elif self.forward_raw:
            self.progress_callback(BuildProgress(message=line))
        return None

    def output_tail(self) -> str:
        return "\n".join(self.tail)
