"""Docker adapter for container operations."""

import logging
import shlex
import subprocess
from typing import cast

from kbflash.core.cancellation import CancellationToken
from kbflash.core.errors import create_docker_error
from kbflash.protocols.docker_adapter_protocol import (
    DockerAdapterProtocol,
    DockerEnv,
    DockerVolume,
)
from kbflash.utils.stream_process import (
    OutputMiddleware,
    ProcessResult,
    T,
    run_command,
)


logger = logging.getLogger(__name__)

DOCKER_PROBE_TIMEOUT = 30


class LoggerOutputMiddleware(OutputMiddleware[str]):
    """Middleware that logs each line with optional stream prefixes."""

    def __init__(
        self, logger: logging.Logger, stdout_prefix: str = "", stderr_prefix: str = ""
    ):
        self.logger = logger
        self.stderr_prefix = stderr_prefix
        self.stdout_prefix = stdout_prefix

    def process(self, line: str, stream_type: str) -> str:
        if stream_type == "stderr":
            self.logger.warning("%s%s", self.stderr_prefix, line)
        else:
            self.logger.debug("%s%s", self.stdout_prefix, line)
        return line


class DockerAdapter:
    """Implementation of Docker adapter on top of the docker CLI."""

    def _probe(self, docker_cmd: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            docker_cmd,
            check=True,
            capture_output=True,
            text=True,
            timeout=DOCKER_PROBE_TIMEOUT,
        )

    def ensure_available(self) -> None:
        """Raise DockerError unless the docker daemon answers `docker info`."""
        docker_cmd = ["docker", "info"]
        cmd_str = " ".join(docker_cmd)

        try:
            self._probe(docker_cmd)
        except FileNotFoundError as e:
            raise create_docker_error(
                "Docker executable not found in PATH", cmd_str, e
            ) from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip() or "unknown error"
            raise create_docker_error(
                "Docker is not running", cmd_str, e, {"stderr": stderr}
            ) from e
        except subprocess.TimeoutExpired as e:
            raise create_docker_error(
                "Docker did not respond in time", cmd_str, e
            ) from e

        logger.debug("Docker daemon is available")

    def is_available(self) -> bool:
        """Check if the Docker daemon is reachable."""
        try:
            self.ensure_available()
        except Exception as e:
            logger.warning("Docker unavailable: %s", e)
            return False
        return True

    def image_exists(self, image: str) -> bool:
        """Check if a Docker image exists locally."""
        docker_cmd = ["docker", "image", "inspect", image]

        try:
            self._probe(docker_cmd)
        except subprocess.CalledProcessError:
            # inspect exits non-zero for unknown images
            logger.debug("Docker image does not exist: %s", image)
            return False
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning("Could not inspect Docker image %s: %s", image, e)
            return False

        logger.debug("Docker image exists: %s", image)
        return True

    def pull_image(
        self,
        image: str,
        middleware: OutputMiddleware[T] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ProcessResult[T]:
        """Pull a Docker image from its registry."""
        docker_cmd = ["docker", "pull", image]
        cmd_str = " ".join(shlex.quote(arg) for arg in docker_cmd)
        logger.info("Pulling Docker image: %s", image)

        if middleware is None:
            middleware = cast(OutputMiddleware[T], LoggerOutputMiddleware(logger))

        try:
            return run_command(
                docker_cmd, middleware, cancel_token=cancel_token, merge_stderr=True
            )
        except FileNotFoundError as e:
            logger.error("Docker executable not found during image pull: %s", e)
            raise create_docker_error(
                f"Docker executable not found: {e}", cmd_str, e
            ) from e
        except subprocess.SubprocessError as e:
            logger.error("Docker subprocess error: %s", e)
            raise create_docker_error(
                f"Docker subprocess error: {e}", cmd_str, e, {"image": image}
            ) from e

    def run_container(
        self,
        image: str,
        volumes: list[DockerVolume],
        environment: DockerEnv,
        command: list[str] | None = None,
        middleware: OutputMiddleware[T] | None = None,
        workdir: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ProcessResult[T]:
        """Run a throwaway container, streaming merged output to middleware."""
        docker_cmd = ["docker", "run", "--rm"]

        for host_path, container_path in volumes:
            docker_cmd.extend(["-v", f"{host_path}:{container_path}"])

        for key, value in environment.items():
            docker_cmd.extend(["-e", f"{key}={value}"])

        if workdir:
            docker_cmd.extend(["-w", workdir])

        docker_cmd.append(image)

        if command:
            docker_cmd.extend(command)

        cmd_str = " ".join(shlex.quote(arg) for arg in docker_cmd)
        logger.debug("Docker command: %s", cmd_str)

        if middleware is None:
            middleware = cast(OutputMiddleware[T], LoggerOutputMiddleware(logger))

        try:
            return run_command(
                docker_cmd, middleware, cancel_token=cancel_token, merge_stderr=True
            )
        except FileNotFoundError as e:
            logger.error("Docker executable not found: %s", e)
            raise create_docker_error(
                f"Docker executable not found: {e}", cmd_str, e
            ) from e
        except subprocess.SubprocessError as e:
            logger.error("Docker subprocess error: %s", e)
            raise create_docker_error(
                f"Docker subprocess error: {e}",
                cmd_str,
                e,
                {"image": image, "volumes_count": len(volumes)},
            ) from e


def create_docker_adapter() -> DockerAdapterProtocol:
    """Factory function to create a DockerAdapter instance.

    Example:
        >>> adapter = create_docker_adapter()
        >>> if adapter.is_available():
        ...     adapter.run_container("ubuntu:latest", [], {})
    """
    logger.debug("Creating DockerAdapter")
    return DockerAdapter()
