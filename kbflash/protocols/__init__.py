"""Protocol definitions for kbflash adapters and interfaces.

These protocols use typing.Protocol with @runtime_checkable so both static
type checkers and isinstance() checks can be used against them.
"""

from .builder_protocol import FirmwareBuilderProtocol, ProgressCallback
from .docker_adapter_protocol import (
    DockerAdapterProtocol,
    DockerEnv,
    DockerResult,
    DockerVolume,
)
from .volume_detector_protocol import VolumeDetectorProtocol


__all__ = [
    "DockerAdapterProtocol",
    "DockerEnv",
    "DockerResult",
    "DockerVolume",
    "FirmwareBuilderProtocol",
    "ProgressCallback",
    "VolumeDetectorProtocol",
]
