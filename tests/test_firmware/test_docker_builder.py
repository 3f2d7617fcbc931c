"""Tests for the Docker firmware builder."""

from datetime import datetime
from unittest.mock import Mock

import pytest

from kbflash.core.cancellation import CancellationToken
from kbflash.core.errors import DockerError, OperationCancelledError
from kbflash.firmware.build.docker import DockerBuilder, PullProgressMiddleware
from kbflash.firmware.models import BuildProgress, OutcomeStatus
from kbflash.protocols.docker_adapter_protocol import DockerAdapterProtocol


@pytest.fixture
def zmk_config(tmp_path):
    path = tmp_path / "zmk-config"
    (path / "config").mkdir(parents=True)
    return path


@pytest.fixture
def docker_adapter():
    adapter = Mock(spec=DockerAdapterProtocol)
    adapter.image_exists.return_value = True
    adapter.pull_image.return_value = (0, [], [])
    adapter.run_container.return_value = (0, [], [])
    return adapter


@pytest.fixture
def make_builder(zmk_config, firmware_dir, docker_adapter):
    def factory(**kwargs):
        kwargs.setdefault("image", "zmkfirmware/zmk-dev-arm:stable")
        kwargs.setdefault("board", "nice_nano_v2")
        kwargs.setdefault("shield", "corne")
        kwargs.setdefault("working_dir", zmk_config)
        kwargs.setdefault("firmware_dir", firmware_dir)
        kwargs.setdefault("docker_adapter", docker_adapter)
        kwargs.setdefault("today", lambda: datetime(2025, 1, 15, 9, 30))
        return DockerBuilder(**kwargs)

    return factory


def emit_and_produce(zmk_config, build_dir, lines, return_code=0):
    """run_container side effect that prints lines and leaves a zmk.uf2 behind."""

    def run_container(image, volumes, environment, **kwargs):
        middleware = kwargs["middleware"]
        for line in lines:
            middleware.process(line, "combined")
        if return_code == 0:
            artifact = zmk_config / "build" / build_dir / "zephyr" / "zmk.uf2"
            artifact.parent.mkdir(parents=True, exist_ok=True)
            artifact.write_bytes(b"UF2" * 100)
        return return_code, [], []

    return run_container


class TestNaming:
    def test_side_target(self, make_builder):
        builder = make_builder()

        assert builder.shield_name("left") == "corne_left"
        assert builder.build_dir_name("left") == "left"
        assert builder.artifact_name("left") == "corne_left.uf2"

    @pytest.mark.parametrize("target", ["", "main", "all"])
    def test_whole_keyboard_targets(self, make_builder, target):
        builder = make_builder(shield="planck")

        assert builder.shield_name(target) == "planck"
        assert builder.build_dir_name(target) == "main"
        assert builder.artifact_name(target) == "planck.uf2"

    def test_west_command(self, make_builder):
        assert make_builder().west_command("right") == [
            "west",
            "build",
            "-s",
            "zmk/app",
            "-p",
            "-b",
            "nice_nano_v2",
            "-d",
            "/workdir/build/right",
            "--",
            "-DSHIELD=corne_right",
            "-DZMK_CONFIG=/workdir/config",
        ]


class TestDockerBuild:
    def test_successful_build_copies_into_dated_directory(
        self, make_builder, docker_adapter, zmk_config, firmware_dir
    ):
        docker_adapter.run_container.side_effect = emit_and_produce(
            zmk_config,
            "left",
            ["-- Zephyr version", "[1/2] Building", "[2/2] Linking zmk.elf"],
        )
        events: list[BuildProgress] = []

        outcome = make_builder().build("left", events.append, CancellationToken())

        expected = firmware_dir / "20250115" / "corne_left.uf2"
        assert outcome.success
        assert outcome.output_path == expected
        assert expected.read_bytes() == b"UF2" * 100

        percents = [e.percent for e in events if e.percent > 0]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert "Image ready: zmkfirmware/zmk-dev-arm:stable" in [
            e.message for e in events
        ]
        assert "-- Zephyr version" not in [e.message for e in events]

    def test_container_gets_mount_and_workdir(
        self, make_builder, docker_adapter, zmk_config
    ):
        docker_adapter.run_container.side_effect = emit_and_produce(
            zmk_config, "right", []
        )

        make_builder().build("right", lambda _: None, CancellationToken())

        args, kwargs = docker_adapter.run_container.call_args
        assert args[0] == "zmkfirmware/zmk-dev-arm:stable"
        assert args[1] == [(str(zmk_config.resolve()), "/workdir")]
        assert kwargs["workdir"] == "/workdir"
        assert kwargs["command"][-2] == "-DSHIELD=corne_right"

    def test_missing_image_is_pulled(self, make_builder, docker_adapter, zmk_config):
        docker_adapter.image_exists.return_value = False
        docker_adapter.run_container.side_effect = emit_and_produce(
            zmk_config, "left", []
        )
        events: list[BuildProgress] = []

        outcome = make_builder().build("left", events.append, CancellationToken())

        assert outcome.success
        docker_adapter.pull_image.assert_called_once()
        assert events[0].message.startswith("Pulling zmkfirmware/zmk-dev-arm:stable")

    def test_failed_pull(self, make_builder, docker_adapter):
        docker_adapter.image_exists.return_value = False
        docker_adapter.pull_image.return_value = (1, [], [])

        outcome = make_builder().build("left", lambda _: None, CancellationToken())

        assert outcome.status == OutcomeStatus.FAILED
        assert "failed to pull image" in outcome.error
        docker_adapter.run_container.assert_not_called()

    def test_docker_unavailable(self, make_builder, docker_adapter):
        docker_adapter.ensure_available.side_effect = DockerError(
            "Docker is not running"
        )

        outcome = make_builder().build("left", lambda _: None, CancellationToken())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == "Docker is not running"

    def test_non_zero_exit_quotes_errors(
        self, make_builder, docker_adapter, zmk_config
    ):
        docker_adapter.run_container.side_effect = emit_and_produce(
            zmk_config,
            "left",
            ["[1/9] Building", "corne.keymap:40: error: undefined node label"],
            return_code=1,
        )
        events: list[BuildProgress] = []

        outcome = make_builder().build("left", events.append, CancellationToken())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error.startswith("build failed: docker exited with code 1")
        assert "undefined node label" in outcome.error
        assert any(e.is_error for e in events)

    def test_missing_artifact_is_failure(self, make_builder, docker_adapter):
        outcome = make_builder().build("left", lambda _: None, CancellationToken())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error.startswith("cannot collect firmware")

    def test_cancelled_during_container(self, make_builder, docker_adapter):
        docker_adapter.run_container.side_effect = OperationCancelledError()

        outcome = make_builder().build("left", lambda _: None, CancellationToken())

        assert outcome.cancelled

    def test_pre_cancelled_never_touches_docker(self, make_builder, docker_adapter):
        token = CancellationToken()
        token.cancel()

        outcome = make_builder().build("left", lambda _: None, token)

        assert outcome.cancelled
        docker_adapter.ensure_available.assert_not_called()


def test_pull_middleware_filters_lines():
    events: list[BuildProgress] = []
    middleware = PullProgressMiddleware(events.append)

    middleware.process("stable: Pulling from zmkfirmware/zmk-dev-arm", "combined")
    middleware.process("Digest: sha256:abc", "combined")
    middleware.process("a1b2: Pull complete", "combined")

    assert [e.message for e in events] == [
        "stable: Pulling from zmkfirmware/zmk-dev-arm",
        "a1b2: Pull complete",
    ]
