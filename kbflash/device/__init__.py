"""Bootloader volume presence detection."""

from .detector import (
    DarwinVolumeDetector,
    LinuxVolumeDetector,
    MountRootDetector,
    VolumeDetectorBase,
    create_volume_detector,
    get_username,
)
from .models import DeviceStatus, VolumeEvent
from .worker import DetectionWorker


__all__ = [
    "DarwinVolumeDetector",
    "LinuxVolumeDetector",
    "MountRootDetector",
    "VolumeDetectorBase",
    "create_volume_detector",
    "get_username",
    "DeviceStatus",
    "VolumeEvent",
    "DetectionWorker",
]
