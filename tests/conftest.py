"""Core test fixtures for the kbflash project."""

import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import Mock

import pytest
from typer.testing import CliRunner

from kbflash.config.models import KbflashConfig
from kbflash.core.logging import configure_structlog
from kbflash.device.models import VolumeEvent
from kbflash.firmware.flasher import Flasher
from kbflash.firmware.scanner import FirmwareScanner
from kbflash.flow.models import FlowState
from kbflash.flow.orchestrator import FlowOrchestrator
from kbflash.flow.workers import InlineWorkerRunner
from kbflash.protocols.builder_protocol import FirmwareBuilderProtocol


def pytest_configure(config: pytest.Config) -> None:
    configure_structlog(logging.DEBUG)


class DeferredWorkerRunner:
    """Queues work until the test runs it, exposing intermediate states."""

    def __init__(self) -> None:
        self.pending: list[tuple[str, Callable[[], None]]] = []

    def run(self, name: str, target: Callable[[], None]) -> None:
        self.pending.append((name, target))

    def run_next(self, name: str | None = None) -> None:
        for index, (pending_name, target) in enumerate(self.pending):
            if name is None or pending_name == name:
                del self.pending[index]
                target()
                return
        raise AssertionError(f"no pending worker named {name!r}")

    def run_all(self) -> None:
        while self.pending:
            self.run_next()


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SimulatedDevice:
    """Plays the user: unplugs and plugs the keyboard as the flow asks."""

    def __init__(self, orchestrator: FlowOrchestrator, path: Path) -> None:
        self.orchestrator = orchestrator
        self.path = path
        self.connected: bool | None = None
        self.remove = orchestrator.add_listener(self.on_change)

    def set_connected(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        self.orchestrator.submit_volume_event(
            VolumeEvent(connected=connected, path=str(self.path))
        )

    def on_change(self) -> None:
        state = self.orchestrator.state
        if state == FlowState.WAITING_DISCONNECT:
            self.set_connected(False)
        elif state == FlowState.WAITING_DEVICE:
            self.set_connected(True)


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    """Keep user config, state and KBFLASH_* variables out of every test."""
    import os

    for key in list(os.environ):
        if key.startswith("KBFLASH_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))
    yield


@pytest.fixture
def cli_runner() -> CliRunner:
    """Return a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def firmware_dir(tmp_path: Path) -> Path:
    path = tmp_path / "firmware"
    path.mkdir()
    return path


@pytest.fixture
def device_dir(tmp_path: Path) -> Path:
    path = tmp_path / "mnt" / "NICENANO"
    path.mkdir(parents=True)
    return path


def write_firmware(directory: Path, name: str, size: int = 4096) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(bytes(range(256)) * (size // 256) + b"\0" * (size % 256))
    return path


@pytest.fixture
def split_build(firmware_dir: Path) -> Path:
    """A dated build with left, right and settings-reset images."""
    build = firmware_dir / "20250115"
    write_firmware(build, "corne_left.uf2", 8192)
    write_firmware(build, "corne_right.uf2", 6144)
    write_firmware(build, "settings_reset.uf2", 1024)
    return build


@pytest.fixture
def make_config(firmware_dir: Path) -> Callable[..., KbflashConfig]:
    def factory(**overrides: object) -> KbflashConfig:
        data: dict[str, object] = {
            "keyboard": {"name": "corne", "type": "split"},
            "device": {"name": "NICENANO", "poll_interval": 0.01},
            "build": {"firmware_dir": str(firmware_dir)},
        }
        data.update(overrides)
        return KbflashConfig(**data)  # type: ignore[arg-type]

    return factory


@pytest.fixture
def config(make_config: Callable[..., KbflashConfig]) -> KbflashConfig:
    return make_config()


@pytest.fixture
def mock_builder() -> Mock:
    return Mock(spec=FirmwareBuilderProtocol)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_orchestrator(
    config: KbflashConfig, fake_clock: FakeClock
) -> Callable[..., FlowOrchestrator]:
    def factory(**kwargs: object) -> FlowOrchestrator:
        cfg = kwargs.pop("config", config)
        assert isinstance(cfg, KbflashConfig)
        kwargs.setdefault("runner", InlineWorkerRunner())
        kwargs.setdefault("flasher", Flasher(chunk_size=1024))
        kwargs.setdefault(
            "scanner",
            FirmwareScanner(cfg.build.firmware_dir, cfg.build.file_pattern),
        )
        kwargs.setdefault("clock", fake_clock)
        return FlowOrchestrator(cfg, **kwargs)  # type: ignore[arg-type]

    return factory


@pytest.fixture
def firmware_writer() -> Callable[..., Path]:
    return write_firmware


@pytest.fixture
def deferred_runner() -> DeferredWorkerRunner:
    return DeferredWorkerRunner()


@pytest.fixture
def simulated_device(
    device_dir: Path,
) -> Callable[[FlowOrchestrator], SimulatedDevice]:
    def factory(orchestrator: FlowOrchestrator) -> SimulatedDevice:
        return SimulatedDevice(orchestrator, device_dir)

    return factory
