"""
User configuration management for kbflash.

This module locates and loads the YAML configuration with multiple sources:
1. Environment variables (highest precedence)
2. Command-line provided config file
3. Config file in current directory
4. User's XDG config directory
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from kbflash.config.defaults import EXAMPLE_CONFIG
from kbflash.config.models import KbflashConfig
from kbflash.core.errors import ConfigError
from kbflash.utils.xdg import get_xdg_config_dir


logger = logging.getLogger(__name__)

ENV_PREFIX = "KBFLASH_"
CONFIG_FILE_NAMES = ("kbflash.yaml", ".kbflash.yml")


def default_config_path() -> Path:
    """XDG location used when no path is given to `init`."""
    return get_xdg_config_dir() / "config.yaml"


def format_validation_error(error: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into "location: message" lines."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        if location:
            problems.extend(
                f"{location}: {part}" for part in message.split("; ") if part
            )
        else:
            problems.extend(part for part in message.split("; ") if part)
    return problems


class UserConfig:
    """Locates, reads and validates the kbflash configuration file."""

    def __init__(self, cli_config_path: str | Path | None = None):
        self._cli_config_path = cli_config_path
        self._config_paths = self._generate_config_paths(cli_config_path)
        self._config_file_path: Path | None = None
        self._config = self._load_config()

    @property
    def config(self) -> KbflashConfig:
        return self._config

    @property
    def config_file_path(self) -> Path | None:
        return self._config_file_path

    def _generate_config_paths(self, cli_config_path: str | Path | None) -> list[Path]:
        """Generate a list of config paths to search in order of precedence."""
        if cli_config_path:
            return [Path(cli_config_path).expanduser().resolve()]

        config_paths = [Path.cwd() / name for name in CONFIG_FILE_NAMES]
        config_paths.append(default_config_path())
        return config_paths

    def _find_config_file(self) -> Path:
        for path in self._config_paths:
            if path.is_file():
                return path

        if self._cli_config_path:
            raise ConfigError(
                f"Config file not found: {self._config_paths[0]}",
                {"path": str(self._config_paths[0])},
            )
        searched = ", ".join(str(p) for p in self._config_paths)
        raise ConfigError(
            "No configuration file found. Run 'kbflash init' to create one.",
            {"searched": searched},
        )

    def _read_yaml(self, path: Path) -> dict[str, Any]:
        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse config file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"Config file {path} must contain a mapping at the top level"
            )
        return data

    def _load_config(self) -> KbflashConfig:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Config search paths: %s", [str(p) for p in self._config_paths]
            )
            env_vars = sorted(k for k in os.environ if k.startswith(ENV_PREFIX))
            if env_vars:
                logger.debug("kbflash environment overrides: %s", env_vars)

        path = self._find_config_file()
        data = self._read_yaml(path)
        self._config_file_path = path
        logger.debug("Loading configuration from %s", path)

        try:
            config = KbflashConfig(**data)
        except ValidationError as e:
            problems = format_validation_error(e)
            raise ConfigError(
                f"Invalid config {path}:\n  " + "\n  ".join(problems),
                {"path": str(path), "problems": problems},
            ) from e

        logger.debug(
            "Configuration loaded: keyboard=%s device=%s build_enabled=%s",
            config.keyboard.name,
            config.device.name,
            config.build.enabled,
        )
        return config


def create_user_config(cli_config_path: str | Path | None = None) -> UserConfig:
    """Create a UserConfig, loading and validating the configuration file.

    Raises:
        ConfigError: If no file is found or its contents are invalid
    """
    return UserConfig(cli_config_path=cli_config_path)


def load_config(cli_config_path: str | Path | None = None) -> KbflashConfig:
    """Shortcut returning only the validated configuration."""
    return create_user_config(cli_config_path).config


def generate_example_config(path: str | Path | None = None) -> Path:
    """Write the documented example configuration.

    Args:
        path: Destination file, defaults to the XDG config location

    Returns:
        The path that was written

    Raises:
        ConfigError: If the file already exists or cannot be written
    """
    target = Path(path).expanduser() if path else default_config_path()

    if target.exists():
        raise ConfigError(
            f"Config file already exists: {target} (delete it first to regenerate)",
            {"path": str(target)},
        )

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(EXAMPLE_CONFIG, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write config file {target}: {e}") from e

    logger.info("Wrote example configuration to %s", target)
    return target
