"""Cooperative cancellation shared between the flow loop and one worker."""

import logging
import threading
from collections.abc import Callable

from kbflash.core.errors import OperationCancelledError


logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe one-shot cancellation signal.

    Workers check the token at well-defined points (before each copy chunk,
    before each scanned line, at scan entry) and use ``wait`` instead of
    ``time.sleep`` so a cancel wakes them immediately. Callbacks registered
    with ``on_cancel`` run once, on the cancelling thread, and must not block.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self.reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Fire the token. Calling it again is a no-op."""
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error("Cancellation callback failed: %s", e)

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self.reason or "operation cancelled")

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run when the token fires.

        Runs immediately if the token already fired. Returns a function that
        unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister

        callback()
        return lambda: None
