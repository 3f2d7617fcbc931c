"""Configuration loading and models for kbflash."""

from .models import (
    BuildConfig,
    BuildMode,
    DeviceConfig,
    KbflashConfig,
    KeyboardConfig,
    KeyboardType,
    parse_duration,
)
from .user_config import (
    UserConfig,
    create_user_config,
    default_config_path,
    generate_example_config,
    load_config,
)


__all__ = [
    "BuildConfig",
    "BuildMode",
    "DeviceConfig",
    "KbflashConfig",
    "KeyboardConfig",
    "KeyboardType",
    "parse_duration",
    "UserConfig",
    "create_user_config",
    "default_config_path",
    "generate_example_config",
    "load_config",
]
