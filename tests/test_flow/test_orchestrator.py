"""Tests for the flow orchestrator state machine."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from kbflash.core.cancellation import CancellationToken
from kbflash.device.detector import MountRootDetector
from kbflash.device.models import DeviceStatus, VolumeEvent
from kbflash.firmware.models import BuildOutcome, BuildProgress
from kbflash.flow.models import FlowState, LogLevel
from kbflash.flow.orchestrator import FlowOrchestrator


def connect(orchestrator: FlowOrchestrator, path: Path) -> None:
    orchestrator.submit_volume_event(VolumeEvent(connected=True, path=str(path)))
    orchestrator.process_pending()


def disconnect(orchestrator: FlowOrchestrator, path: Path) -> None:
    orchestrator.submit_volume_event(VolumeEvent(connected=False, path=str(path)))
    orchestrator.process_pending()


def messages(orchestrator: FlowOrchestrator) -> list[str]:
    return [entry.message for entry in orchestrator.log_entries]


@pytest.fixture
def started(make_orchestrator, split_build):
    """Orchestrator with the split build scanned, device not yet seen."""
    orchestrator = make_orchestrator()
    orchestrator.start()
    orchestrator.process_pending()
    return orchestrator


class TestStartup:
    def test_start_scans_and_logs(self, started):
        assert messages(started)[:2] == ["Started - corne", "Found 1 build(s)"]
        assert started.scan_done
        assert started.state == FlowState.IDLE
        assert started.selected_build is not None
        assert started.selected_build.date_key == "20250115"

    def test_snapshot_reflects_configuration(self, started):
        snapshot = started.snapshot()
        assert snapshot.keyboard_name == "corne"
        assert snapshot.device_name == "NICENANO"
        assert snapshot.is_split
        assert snapshot.sides == ("left", "right")
        assert snapshot.build_enabled is False
        assert snapshot.device_status == DeviceStatus.DISCONNECTED
        assert snapshot.can_quit

    def test_log_entries_have_increasing_sequence(self, started):
        seqs = [entry.seq for entry in started.log_entries]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == len(seqs)

    def test_log_is_bounded(self, make_orchestrator, split_build):
        orchestrator = make_orchestrator(max_log_entries=3)
        orchestrator.start()
        orchestrator.process_pending()
        for _ in range(5):
            orchestrator.rescan()
            orchestrator.process_pending()
        assert len(orchestrator.log_entries) == 3


class TestDeviceEvents:
    def test_connect_and_disconnect_update_status(self, started, device_dir):
        connect(started, device_dir)
        snapshot = started.snapshot()
        assert snapshot.device_status == DeviceStatus.CONNECTED
        assert snapshot.device_path == str(device_dir)
        assert "Device connected" in messages(started)

        disconnect(started, device_dir)
        assert started.snapshot().device_status == DeviceStatus.DISCONNECTED
        assert "Device disconnected" in messages(started)

    def test_stale_generation_is_ignored(self, started, device_dir):
        started.submit_volume_event(
            VolumeEvent(connected=True, path=str(device_dir)), generation=42
        )
        started.process_pending()
        assert started.snapshot().device_status == DeviceStatus.DISCONNECTED
        assert not started.device_known

    def test_detection_worker_reports_present_volume(
        self, make_orchestrator, split_build, device_dir
    ):
        detector = MountRootDetector([device_dir.parent])
        orchestrator = make_orchestrator(detector=detector)
        orchestrator.start()
        try:
            for _ in range(50):
                orchestrator.run_once(timeout=0.1)
                if orchestrator.device_known:
                    break
            assert orchestrator.device_known
            assert orchestrator.snapshot().device_status == DeviceStatus.CONNECTED
        finally:
            orchestrator.stop()

    def test_restart_detection_drops_old_generation(
        self, make_orchestrator, split_build, device_dir
    ):
        detector = MountRootDetector([device_dir.parent])
        orchestrator = make_orchestrator(detector=detector)
        try:
            orchestrator.restart_detection()
            orchestrator.restart_detection()
            orchestrator.submit_volume_event(
                VolumeEvent(connected=False, path=str(device_dir)), generation=1
            )
            orchestrator.process_pending()
            # only the event from generation 1 was queued by hand; it is dropped
            assert all(
                entry.message != "Device disconnected"
                for entry in orchestrator.log_entries
            )
        finally:
            orchestrator.stop()

    def test_restart_detection_requires_detector(self, started):
        with pytest.raises(RuntimeError):
            started.restart_detection()


class TestSplitFlashSession:
    def test_full_session_follows_safety_protocol(
        self, make_orchestrator, split_build, device_dir, deferred_runner
    ):
        orchestrator = make_orchestrator(runner=deferred_runner)
        orchestrator.start()
        deferred_runner.run_next("scan")
        orchestrator.process_pending()

        connect(orchestrator, device_dir)
        assert orchestrator.request_flash()
        assert orchestrator.state == FlowState.WAITING_DISCONNECT
        assert "Unplug device, then connect left" in messages(orchestrator)

        disconnect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.WAITING_DEVICE

        connect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.FLASHING
        assert orchestrator.current_side == "left"

        deferred_runner.run_next("flash")
        orchestrator.process_pending()
        assert orchestrator.state == FlowState.WAITING_DISCONNECT
        assert (device_dir / "corne_left.uf2").read_bytes() == (
            split_build / "corne_left.uf2"
        ).read_bytes()
        assert orchestrator.snapshot().side_index == 1

        disconnect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.WAITING_DEVICE
        assert "Now connect right..." in messages(orchestrator)

        connect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.FLASHING
        assert orchestrator.current_side == "right"

        deferred_runner.run_next("flash")
        orchestrator.process_pending()
        assert orchestrator.state == FlowState.COMPLETE
        assert orchestrator.snapshot().completed_steps == (
            "left flashed",
            "right flashed",
        )
        assert "Flash complete" in messages(orchestrator)
        assert (device_dir / "corne_right.uf2").exists()

        assert orchestrator.acknowledge()
        assert orchestrator.state == FlowState.IDLE
        assert orchestrator.snapshot().completed_steps == ()

    def test_flash_rejected_until_detector_reports(
        self, make_orchestrator, split_build, device_dir
    ):
        orchestrator = make_orchestrator(detector=MountRootDetector([device_dir.parent]))
        orchestrator.rescan()
        orchestrator.process_pending()

        assert not orchestrator.request_flash()
        assert orchestrator.state == FlowState.IDLE
        assert "Still detecting device, try again" in messages(orchestrator)
        assert not orchestrator.request_factory_reset()

        # the keyboard was already attached: the unplug step must not be skipped
        connect(orchestrator, device_dir)
        assert orchestrator.request_flash()
        assert orchestrator.state == FlowState.WAITING_DISCONNECT

    def test_flash_requested_while_disconnected_waits_for_device(
        self, started
    ):
        assert started.request_flash()
        assert started.state == FlowState.WAITING_DEVICE
        assert messages(started)[-1] == "Connect left and double-tap reset..."

    def test_repeated_connect_does_not_flash_next_side(self, started, device_dir):
        started.request_flash()
        connect(started, device_dir)
        # inline runner: left is flashed and the flow waits for an unplug
        assert started.state == FlowState.WAITING_DISCONNECT

        connect(started, device_dir)
        connect(started, device_dir.parent)
        assert started.state == FlowState.WAITING_DISCONNECT
        assert not (device_dir / "corne_right.uf2").exists()

    def test_disconnect_during_flash_skips_unplug_prompt(
        self, make_orchestrator, split_build, device_dir, deferred_runner
    ):
        orchestrator = make_orchestrator(runner=deferred_runner)
        orchestrator.start()
        deferred_runner.run_next("scan")
        orchestrator.process_pending()

        orchestrator.request_flash()
        connect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.FLASHING

        disconnect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.FLASHING

        deferred_runner.run_next("flash")
        orchestrator.process_pending()
        assert orchestrator.state == FlowState.WAITING_DEVICE
        assert orchestrator.current_side == "right"

    def test_reconnect_during_flash_still_requires_unplug(
        self, make_orchestrator, split_build, device_dir, deferred_runner
    ):
        orchestrator = make_orchestrator(runner=deferred_runner)
        orchestrator.start()
        deferred_runner.run_next("scan")
        orchestrator.process_pending()

        orchestrator.request_flash()
        connect(orchestrator, device_dir)
        disconnect(orchestrator, device_dir)
        connect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.FLASHING

        deferred_runner.run_next("flash")
        orchestrator.process_pending()
        assert orchestrator.state == FlowState.WAITING_DISCONNECT
        assert not (device_dir / "corne_right.uf2").exists()

    def test_flash_failure_returns_to_idle(self, started, tmp_path):
        missing = tmp_path / "not-mounted"
        started.request_flash()
        connect(started, missing)

        assert started.state == FlowState.IDLE
        assert any(m.startswith("Flash failed:") for m in messages(started))
        assert started.snapshot().side_index == 0
        assert started.log_entries[-1].level == LogLevel.ERROR

    def test_missing_side_file_returns_to_idle(
        self, make_orchestrator, firmware_dir, firmware_writer, device_dir
    ):
        firmware_writer(firmware_dir / "20250101", "a.uf2")
        firmware_writer(firmware_dir / "20250101", "b.uf2")
        orchestrator = make_orchestrator()
        orchestrator.start()
        orchestrator.process_pending()

        orchestrator.request_flash()
        connect(orchestrator, device_dir)

        assert orchestrator.state == FlowState.IDLE
        assert "No firmware file for left" in messages(orchestrator)

    def test_flash_without_builds_is_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator()
        orchestrator.start()
        orchestrator.process_pending()

        assert not orchestrator.request_flash()
        assert orchestrator.state == FlowState.IDLE
        assert "No firmware files found" in messages(orchestrator)

    def test_cancel_while_waiting(self, started):
        started.request_flash()
        assert started.cancel()
        assert started.state == FlowState.IDLE
        assert messages(started)[-1] == "Cancelled"

    def test_cancel_in_idle_is_rejected(self, started):
        assert not started.cancel()

    def test_wait_timeout_returns_to_idle(self, started, fake_clock):
        started.request_flash()
        fake_clock.advance(299)
        started.process_pending()
        assert started.state == FlowState.WAITING_DEVICE

        fake_clock.advance(2)
        started.process_pending()
        assert started.state == FlowState.IDLE
        assert "Timed out waiting for NICENANO" in messages(started)

    def test_commands_rejected_outside_idle(self, started):
        started.request_flash()
        assert not started.request_flash()
        assert not started.request_factory_reset()
        assert not started.select_build(0)
        assert not started.snapshot().can_quit


class TestSingleKeyboard:
    def test_uni_keyboard_flashes_once(
        self, make_config, make_orchestrator, firmware_dir, firmware_writer, device_dir
    ):
        firmware_writer(firmware_dir, "corne.uf2")
        config = make_config(keyboard={"name": "planck", "type": "uni"})
        orchestrator = make_orchestrator(config=config)
        orchestrator.start()
        orchestrator.process_pending()

        assert orchestrator.builds[0].display_date == "current"
        orchestrator.request_flash()
        assert "Connect keyboard and double-tap reset..." in messages(orchestrator)

        connect(orchestrator, device_dir)
        assert orchestrator.state == FlowState.COMPLETE
        assert (device_dir / "corne.uf2").exists()
        assert orchestrator.snapshot().target_label == "keyboard"

    def test_factory_reset_not_offered(
        self, make_config, make_orchestrator, firmware_dir, firmware_writer
    ):
        firmware_writer(firmware_dir, "settings_reset.uf2")
        config = make_config(keyboard={"name": "planck", "type": "uni"})
        orchestrator = make_orchestrator(config=config)
        orchestrator.start()
        orchestrator.process_pending()

        assert not orchestrator.request_factory_reset()


class TestFactoryReset:
    def test_confirmed_reset_flashes_first_side(self, started, device_dir):
        connect(started, device_dir)
        assert started.request_factory_reset()
        assert started.snapshot().factory_reset_pending
        assert not started.request_flash()

        assert started.confirm_factory_reset()
        started.process_pending()

        assert started.state == FlowState.COMPLETE
        assert (device_dir / "settings_reset.uf2").exists()
        assert not (device_dir / "corne_left.uf2").exists()
        assert "Factory reset started" in messages(started)
        assert started.snapshot().completed_steps == ("left (reset) flashed",)

    def test_reset_waits_for_device_when_disconnected(self, started, device_dir):
        started.request_factory_reset()
        started.confirm_factory_reset()
        assert started.state == FlowState.WAITING_DEVICE

        connect(started, device_dir)
        assert started.state == FlowState.COMPLETE

    def test_declined_reset(self, started):
        started.request_factory_reset()
        assert started.decline_factory_reset()
        assert started.state == FlowState.IDLE
        assert not started.snapshot().factory_reset_pending

    def test_cancel_declines_pending_reset(self, started):
        started.request_factory_reset()
        assert started.cancel()
        assert not started.snapshot().factory_reset_pending

    def test_missing_reset_file(
        self, make_orchestrator, firmware_dir, firmware_writer, device_dir
    ):
        firmware_writer(firmware_dir, "corne_left.uf2")
        orchestrator = make_orchestrator()
        orchestrator.start()
        orchestrator.process_pending()
        connect(orchestrator, device_dir)

        orchestrator.request_factory_reset()
        assert not orchestrator.confirm_factory_reset()
        assert orchestrator.state == FlowState.IDLE
        assert "No reset firmware found" in messages(orchestrator)

    def test_confirm_without_request(self, started):
        assert not started.confirm_factory_reset()


class TestBuilds:
    @pytest.fixture
    def build_orchestrator(self, make_orchestrator, split_build, mock_builder):
        orchestrator = make_orchestrator(builder=mock_builder)
        orchestrator.start()
        orchestrator.process_pending()
        return orchestrator

    def test_successful_build_rescans_and_selects_latest(
        self, build_orchestrator, mock_builder, firmware_dir, firmware_writer
    ):
        def fake_build(target, progress_callback, cancel_token):
            progress_callback(BuildProgress(1, 10, 10, "[1/10] compiling"))
            progress_callback(BuildProgress(5, 10, 50, "[5/10] compiling"))
            output = firmware_writer(firmware_dir / "20250201", "corne_left.uf2")
            return BuildOutcome.succeeded(target, 1.0, output_path=output)

        mock_builder.build.side_effect = fake_build

        assert build_orchestrator.request_build("left")
        build_orchestrator.process_pending()

        snapshot = build_orchestrator.snapshot()
        assert snapshot.state == FlowState.IDLE
        assert snapshot.last_build_success is True
        assert snapshot.build_percent == 100
        assert snapshot.builds[0].date_key == "20250201"
        assert snapshot.selected_index == 0
        assert any(m.startswith("Build complete") for m in messages(build_orchestrator))
        mock_builder.build.assert_called_once()
        assert mock_builder.build.call_args[0][0] == "left"

    def test_build_all_uses_every_side(self, build_orchestrator, mock_builder):
        mock_builder.build_all.return_value = [
            BuildOutcome.succeeded("left", 1.0),
            BuildOutcome.succeeded("right", 1.0),
        ]

        assert build_orchestrator.request_build("all")
        build_orchestrator.process_pending()

        assert list(mock_builder.build_all.call_args[0][0]) == ["left", "right"]
        assert build_orchestrator.snapshot().last_build_success is True

    def test_failed_build_logs_tool_output(self, build_orchestrator, mock_builder):
        mock_builder.build.return_value = BuildOutcome.failed(
            "right", "west exited with code 2\nerror: missing keymap", 3.0
        )

        build_orchestrator.request_build("right")
        build_orchestrator.process_pending()

        log = messages(build_orchestrator)
        assert "Build failed: west exited with code 2" in log
        assert "error: missing keymap" in log
        assert build_orchestrator.state == FlowState.IDLE
        assert build_orchestrator.snapshot().last_build_success is False

    def test_batch_failure_names_target(self, build_orchestrator, mock_builder):
        mock_builder.build_all.return_value = [
            BuildOutcome.succeeded("left", 1.0),
            BuildOutcome.failed("right", "boom"),
        ]

        build_orchestrator.request_build("all")
        build_orchestrator.process_pending()

        assert "Build failed: [right] boom" in messages(build_orchestrator)

    def test_error_lines_become_warnings(self, build_orchestrator, mock_builder):
        def fake_build(target, progress_callback, cancel_token):
            progress_callback(BuildProgress(percent=-1, message="error: oops"))
            return BuildOutcome.succeeded(target, 1.0)

        mock_builder.build.side_effect = fake_build
        build_orchestrator.request_build("left")
        build_orchestrator.process_pending()

        warnings = [
            e.message
            for e in build_orchestrator.log_entries
            if e.level == LogLevel.WARNING
        ]
        assert "error: oops" in warnings

    def test_progress_backpressure_drops_updates(
        self, build_orchestrator, mock_builder
    ):
        def chatty_build(target, progress_callback, cancel_token):
            for percent in range(1, 21):
                progress_callback(BuildProgress(percent=percent, message=f"{percent}"))
            return BuildOutcome.failed(target, "stopped")

        mock_builder.build.side_effect = chatty_build
        build_orchestrator.request_build("left")
        build_orchestrator.process_pending()

        assert build_orchestrator.snapshot().build_percent == 10

    def test_cancel_build(
        self, make_orchestrator, split_build, mock_builder, deferred_runner
    ):
        orchestrator = make_orchestrator(builder=mock_builder, runner=deferred_runner)
        orchestrator.start()
        deferred_runner.run_next("scan")
        orchestrator.process_pending()

        def cancellable_build(target, progress_callback, cancel_token):
            assert isinstance(cancel_token, CancellationToken)
            if cancel_token.is_cancelled:
                return BuildOutcome.was_cancelled(target)
            return BuildOutcome.succeeded(target, 1.0)

        mock_builder.build.side_effect = cancellable_build

        orchestrator.request_build("left")
        assert orchestrator.state == FlowState.BUILDING
        assert not orchestrator.request_flash()
        assert orchestrator.cancel()

        deferred_runner.run_next("build")
        orchestrator.process_pending()

        assert orchestrator.state == FlowState.IDLE
        assert "Build cancelled" in messages(orchestrator)

    def test_builder_exception_becomes_failed_outcome(
        self, build_orchestrator, mock_builder
    ):
        mock_builder.build.side_effect = RuntimeError("kaput")

        build_orchestrator.request_build("left")
        build_orchestrator.process_pending()

        assert "Build failed: kaput" in messages(build_orchestrator)
        assert build_orchestrator.state == FlowState.IDLE

    def test_unknown_target(self, build_orchestrator):
        assert not build_orchestrator.request_build("middle")
        assert "Unknown build target: middle" in messages(build_orchestrator)

    def test_build_disabled(self, started):
        assert not started.request_build("left")
        assert "Build not enabled in config" in messages(started)


class TestSelectionAndListeners:
    def test_move_selection_is_clamped(
        self, make_orchestrator, firmware_dir, firmware_writer
    ):
        firmware_writer(firmware_dir / "20250101", "left.uf2")
        firmware_writer(firmware_dir / "20250102", "left.uf2")
        firmware_writer(firmware_dir, "left.uf2")
        orchestrator = make_orchestrator()
        orchestrator.start()
        orchestrator.process_pending()

        assert [b.date_key for b in orchestrator.builds] == ["20250102", "20250101", ""]
        orchestrator.move_selection(1)
        assert orchestrator.selected_build.date_key == "20250101"
        orchestrator.move_selection(5)
        assert orchestrator.selected_build.is_flat
        orchestrator.move_selection(-10)
        assert orchestrator.snapshot().selected_index == 0

    def test_select_build_by_date(self, started):
        assert started.select_build_by_date("2025-01-15")
        assert started.select_build_by_date("20250115")
        assert not started.select_build_by_date("20240101")

    def test_listener_called_and_removable(self, started, device_dir):
        listener = Mock()
        remove = started.add_listener(listener)

        connect(started, device_dir)
        assert listener.called

        listener.reset_mock()
        remove()
        disconnect(started, device_dir)
        listener.assert_not_called()
