"""CLI test fixtures."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml


@pytest.fixture(autouse=True)
def no_logging_setup() -> Iterator[None]:
    """Leave pytest's log handlers in place while commands run."""
    with patch("kbflash.cli.app.setup_logging"):
        yield


@pytest.fixture
def config_file(tmp_path: Path, firmware_dir: Path) -> Path:
    path = tmp_path / "kbflash.yaml"
    data = {
        "keyboard": {"name": "corne", "type": "split"},
        "device": {"name": "NICENANO", "poll_interval": "10ms"},
        "build": {"firmware_dir": str(firmware_dir)},
    }
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path
