"""Configuration models for kbflash."""

import re
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kbflash.models.base import KbflashBaseModel


DEFAULT_DOCKER_IMAGE = "zmkfirmware/zmk-dev-arm:stable"
DEFAULT_FILE_PATTERN = "*.uf2"
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_WAIT_TIMEOUT = 300.0

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}


def parse_duration(value: Any) -> float:
    """Convert "500ms", "2s", "1m" or a bare number into seconds."""
    if isinstance(value, bool):
        raise ValueError("duration must be a number or a string like '500ms'")
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            number, unit = match.groups()
            return float(number) * _DURATION_UNITS[unit]
    raise ValueError(f"invalid duration {value!r} (expected e.g. '500ms', '2s')")


class KeyboardType(str, Enum):
    """Physical keyboard layout."""

    SPLIT = "split"
    UNI = "uni"


class BuildMode(str, Enum):
    """Firmware build strategy."""

    DOCKER = "docker"
    NATIVE = "native"


class KeyboardConfig(KbflashBaseModel):
    """Keyboard identification and side layout."""

    name: str = ""
    type: KeyboardType = KeyboardType.SPLIT
    sides: list[str] = Field(default_factory=list)

    @field_validator("sides")
    @classmethod
    def validate_sides(cls, v: list[str]) -> list[str]:
        sides = [side.strip() for side in v]
        if any(not side for side in sides):
            raise ValueError("side names cannot be empty")
        if len(set(sides)) != len(sides):
            raise ValueError("side names must be unique")
        return sides

    @model_validator(mode="after")
    def default_sides(self) -> "KeyboardConfig":
        if not self.sides:
            defaults = ["left", "right"] if self.is_split else ["main"]
            # bypass validate_assignment
            object.__setattr__(self, "sides", defaults)
        return self

    @property
    def is_split(self) -> bool:
        return self.type == KeyboardType.SPLIT


class BuildConfig(KbflashBaseModel):
    """Firmware build and discovery settings."""

    enabled: bool = False
    mode: BuildMode = BuildMode.DOCKER

    # Native mode
    command: str = ""
    args: list[str] = Field(default_factory=list)

    working_dir: Path = Path(".")
    firmware_dir: Path = Path("./firmware")
    file_pattern: str = DEFAULT_FILE_PATTERN

    # Docker mode
    image: str = DEFAULT_DOCKER_IMAGE
    board: str = ""
    shield: str = ""

    @field_validator("file_pattern")
    @classmethod
    def validate_file_pattern(cls, v: str) -> str:
        return v or DEFAULT_FILE_PATTERN


class DeviceConfig(KbflashBaseModel):
    """Bootloader volume detection settings."""

    name: str = ""
    poll_interval: float = DEFAULT_POLL_INTERVAL
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT
    mount_roots: list[Path] | None = None

    @field_validator("poll_interval", "wait_timeout", mode="before")
    @classmethod
    def parse_durations(cls, v: Any) -> float:
        return parse_duration(v)

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_interval must be positive")
        return v

    @field_validator("wait_timeout")
    @classmethod
    def validate_wait_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("wait_timeout must be positive")
        return v


class KbflashConfig(BaseSettings):
    """Complete kbflash configuration with environment variable support.

    Precedence order (highest to lowest):
    1. Environment variables (KBFLASH_DEVICE__NAME=...)
    2. Constructor arguments (file data)
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="KBFLASH_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
        validate_assignment=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Environment variables override values read from the config file."""
        return (env_settings, init_settings)

    keyboard: KeyboardConfig = Field(default_factory=KeyboardConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a recognized value."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper_v = v.strip().upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return upper_v

    @model_validator(mode="after")
    def validate_required(self) -> "KbflashConfig":
        problems = self.missing_fields()
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def missing_fields(self) -> list[str]:
        """Describe every required setting that is absent."""
        problems = []
        if not self.keyboard.name:
            problems.append("keyboard.name is required")
        if not self.device.name:
            problems.append("device.name is required")
        if self.build.enabled:
            if self.build.mode == BuildMode.NATIVE and not self.build.command:
                problems.append("build.command is required for native builds")
            if self.build.mode == BuildMode.DOCKER:
                if not self.build.board:
                    problems.append("build.board is required for docker builds")
                if not self.build.shield:
                    problems.append("build.shield is required for docker builds")
        return problems
