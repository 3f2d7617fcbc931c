"""Build ZMK firmware inside the upstream toolchain container."""

import logging
import shutil
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from kbflash.adapters.docker_adapter import create_docker_adapter
from kbflash.core.cancellation import CancellationToken
from kbflash.core.errors import DockerError, OperationCancelledError
from kbflash.core.structlog_logger import get_struct_logger
from kbflash.firmware.build.base import BuilderBase
from kbflash.firmware.build.progress import ANY_MARKER, ProgressMiddleware, ProgressTracker
from kbflash.firmware.models import BuildOutcome, BuildProgress
from kbflash.protocols.builder_protocol import ProgressCallback
from kbflash.protocols.docker_adapter_protocol import DockerAdapterProtocol
from kbflash.utils.stream_process import OutputMiddleware


logger = get_struct_logger(__name__)

CONTAINER_WORKDIR = "/workdir"
WHOLE_KEYBOARD_TARGETS = ("", "main", "all")
PULL_PROGRESS_MARKERS = ("Pulling", "Download", "Pull complete", "Already exists")

# Percent band of the west build itself, the remainder covers setup and copy
BUILD_PERCENT_LOW = 10
BUILD_PERCENT_HIGH = 95


class PullProgressMiddleware(OutputMiddleware[None]):
    """Forwards only the interesting lines of `docker pull` output."""

    def __init__(self, progress_callback: ProgressCallback) -> None:
        self.progress_callback = progress_callback

    def process(self, line: str, stream_type: str) -> None:
        if any(marker in line for marker in PULL_PROGRESS_MARKERS):
            self.progress_callback(BuildProgress(message=line))
        return None


class DockerBuilder(BuilderBase):
    """Runs `west build` in a throwaway container and collects the UF2.

    The zmk-config checkout in ``working_dir`` is mounted at /workdir, so
    build directories persist between runs. Artifacts are copied into a
    dated subdirectory of ``firmware_dir`` where the scanner finds them.
    """

    def __init__(
        self,
        image: str,
        board: str,
        shield: str,
        working_dir: Path | str = ".",
        firmware_dir: Path | str = "./firmware",
        docker_adapter: DockerAdapterProtocol | None = None,
        today: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.image = image
        self.board = board
        self.shield = shield
        self.working_dir = Path(working_dir)
        self.firmware_dir = Path(firmware_dir)
        self.docker_adapter = docker_adapter or create_docker_adapter()
        self.today = today

    @staticmethod
    def is_whole_keyboard(target: str) -> bool:
        return target in WHOLE_KEYBOARD_TARGETS

    def shield_name(self, target: str) -> str:
        if self.is_whole_keyboard(target):
            return self.shield
        return f"{self.shield}_{target}"

    def build_dir_name(self, target: str) -> str:
        return "main" if self.is_whole_keyboard(target) else target

    def artifact_name(self, target: str) -> str:
        if self.is_whole_keyboard(target):
            return f"{self.shield}.uf2"
        return f"{self.shield}_{target}.uf2"

    def west_command(self, target: str) -> list[str]:
        return [
            "west",
            "build",
            "-s",
            "zmk/app",
            "-p",
            "-b",
            self.board,
            "-d",
            f"{CONTAINER_WORKDIR}/build/{self.build_dir_name(target)}",
            "--",
            f"-DSHIELD={self.shield_name(target)}",
            f"-DZMK_CONFIG={CONTAINER_WORKDIR}/config",
        ]

    def ensure_image(
        self, progress_callback: ProgressCallback, cancel_token: CancellationToken
    ) -> None:
        """Pull the image unless it is already present locally.

        Raises:
            DockerError: If the pull fails
            OperationCancelledError: If the token fires during the pull
        """
        if not self.docker_adapter.image_exists(self.image):
            progress_callback(
                BuildProgress(
                    message=f"Pulling {self.image} (this may take a few minutes)..."
                )
            )
            return_code, _, _ = self.docker_adapter.pull_image(
                self.image,
                middleware=PullProgressMiddleware(progress_callback),
                cancel_token=cancel_token,
            )
            if return_code != 0:
                raise DockerError(
                    f"failed to pull image {self.image} (exit code {return_code})",
                    command=f"docker pull {self.image}",
                )

        progress_callback(BuildProgress(message=f"Image ready: {self.image}"))

    def build(
        self,
        target: str,
        progress_callback: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> BuildOutcome:
        start = time.monotonic()
        log = logger.bind(target=target, image=self.image, board=self.board)

        def elapsed() -> float:
            return time.monotonic() - start

        try:
            cancel_token.raise_if_cancelled()
            self.docker_adapter.ensure_available()
            self.ensure_image(progress_callback, cancel_token)

            work_dir = self.working_dir.expanduser().resolve()
            output_dir = self.firmware_dir.expanduser().resolve()
            output_dir.mkdir(parents=True, exist_ok=True)

            progress_callback(
                BuildProgress(percent=5, message=f"Starting Docker build for {target}")
            )
            middleware = ProgressMiddleware(
                progress_callback,
                marker=ANY_MARKER,
                tracker=ProgressTracker(BUILD_PERCENT_LOW, BUILD_PERCENT_HIGH),
                forward_raw=False,
                flag_errors=True,
            )
            log.info("docker_build_started", work_dir=str(work_dir))
            return_code, _, _ = self.docker_adapter.run_container(
                self.image,
                [(str(work_dir), CONTAINER_WORKDIR)],
                {},
                command=self.west_command(target),
                middleware=middleware,
                workdir=CONTAINER_WORKDIR,
                cancel_token=cancel_token,
            )

            if return_code != 0:
                error = f"build failed: docker exited with code {return_code}"
                tail = middleware.output_tail()
                if tail:
                    error = f"{error}\n{tail}"
                log.error("docker_build_failed", return_code=return_code)
                return BuildOutcome.failed(target, error, elapsed())

            progress_callback(
                BuildProgress(percent=BUILD_PERCENT_HIGH, message="Copying firmware...")
            )
            output_path = self.copy_artifact(work_dir, output_dir, target)

        except OperationCancelledError:
            log.info("docker_build_cancelled")
            return BuildOutcome.was_cancelled(target, elapsed())
        except DockerError as e:
            log.error("docker_unavailable", error=str(e))
            return BuildOutcome.failed(target, str(e), elapsed())
        except OSError as e:
            exc_info = log.isEnabledFor(logging.DEBUG)
            log.error("docker_build_io_failed", error=str(e), exc_info=exc_info)
            return BuildOutcome.failed(target, f"cannot collect firmware: {e}", elapsed())

        progress_callback(
            BuildProgress(percent=100, message=f"Build complete: {output_path.name}")
        )
        log.info("docker_build_completed", output=str(output_path))
        return BuildOutcome.succeeded(target, elapsed(), output_path=output_path)

    def copy_artifact(self, work_dir: Path, output_dir: Path, target: str) -> Path:
        """Copy build/<dir>/zephyr/zmk.uf2 into today's dated firmware directory."""
        built = work_dir / "build" / self.build_dir_name(target) / "zephyr" / "zmk.uf2"
        dated_dir = output_dir / self.today().strftime("%Y%m%d")
        dated_dir.mkdir(parents=True, exist_ok=True)
        destination = dated_dir / self.artifact_name(target)
        shutil.copyfile(built, destination)
        return destination
