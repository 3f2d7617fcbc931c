"""Background thread running one detection stream."""

import logging
import threading
from collections.abc import Callable

from kbflash.core.cancellation import CancellationToken
from kbflash.device.models import VolumeEvent
from kbflash.protocols.volume_detector_protocol import VolumeDetectorProtocol


logger = logging.getLogger(__name__)

EventSink = Callable[[VolumeEvent], None]


class DetectionWorker:
    """Runs ``detector.detect`` on a daemon thread and forwards each event.

    The worker owns its cancellation token; ``stop`` fires it so the poller
    wakes immediately and no further event reaches the sink.
    """

    def __init__(
        self,
        detector: VolumeDetectorProtocol,
        volume_name: str,
        poll_interval: float,
        sink: EventSink,
    ) -> None:
        self.detector = detector
        self.volume_name = volume_name
        self.poll_interval = poll_interval
        self.sink = sink
        self.token = CancellationToken()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="kbflash-detector", daemon=True
        )
        self._thread.start()
        logger.debug("Started volume detection for %r", self.volume_name)

    def stop(self, timeout: float | None = 1.0) -> None:
        self.token.cancel("detector stopped")
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        logger.debug("Stopped volume detection for %r", self.volume_name)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        try:
            for event in self.detector.detect(
                self.volume_name, self.poll_interval, self.token
            ):
                if self.token.is_cancelled:
                    break
                self.sink(event)
        except Exception as e:
            exc_info = logger.isEnabledFor(logging.DEBUG)
            logger.error("Volume detection stopped: %s", e, exc_info=exc_info)
