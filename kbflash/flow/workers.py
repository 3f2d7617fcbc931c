"""Launchers for background work started by the flow loop."""

import logging
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class WorkerRunner(Protocol):
    """Runs a unit of blocking work away from (or, in tests, on) the loop."""

    def run(self, name: str, target: Callable[[], None]) -> None: ...


class ThreadWorkerRunner:
    """Runs each unit of work on its own daemon thread."""

    def __init__(self) -> None:
        self._threads: list[threading.Thread] = []

    def run(self, name: str, target: Callable[[], None]) -> None:
        thread = threading.Thread(target=target, name=f"kbflash-{name}", daemon=True)
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        thread.start()
        logger.debug("Started worker thread %s", thread.name)

    def join(self, timeout: float | None = None) -> None:
        for thread in list(self._threads):
            thread.join(timeout=timeout)


class InlineWorkerRunner:
    """Runs work synchronously on the caller's thread.

    Results are still posted to the loop's inbox, so behaviour only differs
    in timing.
    """

    def run(self, name: str, target: Callable[[], None]) -> None:
        logger.debug("Running worker %s inline", name)
        target()
