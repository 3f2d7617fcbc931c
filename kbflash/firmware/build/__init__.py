"""Firmware build strategies."""

from kbflash.config.models import BuildConfig, BuildMode
from kbflash.core.errors import ConfigError
from kbflash.firmware.build.base import BuilderBase
from kbflash.firmware.build.docker import DockerBuilder
from kbflash.firmware.build.native import NativeBuilder
from kbflash.firmware.build.progress import ProgressMiddleware, ProgressTracker
from kbflash.protocols.builder_protocol import FirmwareBuilderProtocol
from kbflash.protocols.docker_adapter_protocol import DockerAdapterProtocol


def create_builder(
    build_config: BuildConfig,
    docker_adapter: DockerAdapterProtocol | None = None,
) -> FirmwareBuilderProtocol:
    """Factory function selecting the build strategy from configuration.

    Raises:
        ConfigError: If the selected mode lacks its required settings
    """
    if build_config.mode == BuildMode.NATIVE:
        if not build_config.command:
            raise ConfigError("build.command is required for native builds")
        return NativeBuilder(
            command=build_config.command,
            args=build_config.args,
            working_dir=build_config.working_dir,
        )

    if not build_config.board or not build_config.shield:
        raise ConfigError("build.board and build.shield are required for docker builds")
    return DockerBuilder(
        image=build_config.image,
        board=build_config.board,
        shield=build_config.shield,
        working_dir=build_config.working_dir,
        firmware_dir=build_config.firmware_dir,
        docker_adapter=docker_adapter,
    )


__all__ = [
    "BuilderBase",
    "DockerBuilder",
    "NativeBuilder",
    "ProgressMiddleware",
    "ProgressTracker",
    "create_builder",
]
