"""Protocol definition for Docker operations."""

from typing import Any, Protocol, TypeAlias, runtime_checkable

from kbflash.core.cancellation import CancellationToken


# Type aliases for Docker operations
DockerVolume: TypeAlias = tuple[str, str]  # (host_path, container_path)
DockerEnv: TypeAlias = dict[str, str]  # Environment variables
DockerResult: TypeAlias = tuple[
    int, list[Any], list[Any]
]  # (return_code, stdout, stderr)


@runtime_checkable
class DockerAdapterProtocol(Protocol):
    """Protocol for Docker operations."""

    def is_available(self) -> bool:
        """Check if the Docker daemon is reachable.

        Returns:
            True if `docker info` succeeds, False otherwise
        """
        ...

    def ensure_available(self) -> None:
        """Raise DockerError explaining why Docker cannot be used."""
        ...

    def image_exists(self, image: str) -> bool:
        """Check if an image (``name:tag``) exists locally."""
        ...

    def pull_image(
        self,
        image: str,
        middleware: Any | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> DockerResult:
        """Pull an image from its registry.

        Raises:
            DockerError: If the docker executable cannot be run
        """
        ...

    def run_container(
        self,
        image: str,
        volumes: list[DockerVolume],
        environment: DockerEnv,
        command: list[str] | None = None,
        middleware: Any | None = None,
        workdir: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> DockerResult:
        """Run a throwaway container with specified configuration.

        Args:
            image: Docker image name/tag to run
            volumes: List of volume mounts (host_path, container_path)
            environment: Dictionary of environment variables
            command: Optional command to run in the container
            middleware: Optional middleware for processing output
            workdir: Working directory inside the container
            cancel_token: Terminates the docker client when it fires

        Returns:
            Tuple containing (return_code, output_lines, [])

        Raises:
            DockerError: If the container fails to start
            OperationCancelledError: If the token fired while running
        """
        ...
