"""Tests for the installation orchestrator."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

GB = 1024 * 1024 * 1024


def _dual_boot(**overrides):
    from dualboot_deployer.installer.config import InstallationConfig, Strategy

    values = dict(
        strategy=Strategy.DUAL_BOOT,
        system_name="Windows 11 Test",
        disk_number=0,
        partition_size_mb=30000,
        create_new_partition=True,
    )
    values.update(overrides)
    return InstallationConfig(**values)


def _wsl(**overrides):
    from dualboot_deployer.installer.config import InstallationConfig, Strategy

    values = dict(
        strategy=Strategy.WSL,
        system_name="Ubuntu",
        distro_version="22.04",
        install_path="C:\\WSL\\Ubuntu",
        partition_size_mb=5000,
    )
    values.update(overrides)
    return InstallationConfig(**values)


def _vm(**overrides):
    from dualboot_deployer.installer.config import InstallationConfig, Strategy

    values = dict(
        strategy=Strategy.VIRTUAL_MACHINE,
        system_name="Dev VM",
        install_path="C:\\VMs\\Dev",
        vm_ram_mb=4096,
        vm_processor_count=2,
        partition_size_mb=40960,
    )
    values.update(overrides)
    return InstallationConfig(**values)


class _Recorder:
    """Collects notifications together with the active flag at that time."""

    def __init__(self, orchestrator):
        self.orchestrator = orchestrator
        self.progress = []
        self.active = []
        self.outcomes = []
        orchestrator.add_progress_listener(self.on_progress)
        orchestrator.add_completion_listener(self.outcomes.append)

    def on_progress(self, progress):
        self.progress.append(progress)
        self.active.append(self.orchestrator.is_installation_in_progress)

    @property
    def percents(self):
        return [p.percent_complete for p in self.progress]


class TestConstruction:
    """Test orchestrator construction and idle state."""

    def test_missing_collaborator(self, environment):
        """Test every collaborator is required."""
        from dualboot_deployer.installer.orchestrator import InstallationOrchestrator

        disk, boot, wsl, _ = environment.managers()
        with pytest.raises(ValueError):
            InstallationOrchestrator(disk, boot, wsl, None)

    def test_idle_state(self, orchestrator):
        """Test a fresh orchestrator."""
        from dualboot_deployer.installer.orchestrator import RunState

        assert orchestrator.state == RunState.IDLE
        assert orchestrator.is_installation_in_progress is False
        assert orchestrator.current_progress.current_operation == "No installation in progress"
        assert orchestrator.steps == []
        assert orchestrator.config is None

    def test_cancel_when_idle(self, orchestrator):
        """Test cancel without a run returns False and notifies nobody."""
        recorder = _Recorder(orchestrator)
        assert asyncio.run(orchestrator.cancel()) is False
        assert recorder.outcomes == []
        assert recorder.progress == []

    def test_start_without_config(self, orchestrator):
        """Test a missing configuration fails without notifications."""
        recorder = _Recorder(orchestrator)
        progress = asyncio.run(orchestrator.start(None))

        assert progress.is_completed is True
        assert progress.is_successful is False
        assert progress.error_message == "Installation configuration is not defined"
        assert recorder.progress == []
        assert recorder.outcomes == []


class TestDualBootScenario:
    """Test a complete dual boot install with a new partition."""

    def test_new_partition_success(self, orchestrator, environment, settings):
        """Test partition, format, boot entry and activation."""
        from dualboot_deployer.installer.orchestrator import RunState
        from dualboot_deployer.installer.progress import StepStatus

        recorder = _Recorder(orchestrator)
        progress = asyncio.run(orchestrator.start(_dual_boot()))

        assert progress.is_completed is True
        assert progress.is_successful is True
        assert progress.percent_complete == 100
        assert progress.error_message is None
        assert orchestrator.state == RunState.COMPLETED_SUCCESS

        ops = environment.operations()
        assert ops.index("create_partition") < ops.index("format_partition")
        assert ops.index("backup") < ops.index("configure_boot_entry")
        assert ops.index("configure_boot_entry") < ops.index("set_partition_active")
        assert ("disk", "format_partition", ("D", "NTFS", "Windows 11 Test")) in environment.calls
        assert ("disk", "set_partition_active", (0, 3)) in environment.calls
        assert ("boot", "set_timeout", (10,)) in environment.calls

        entry = environment.boot_entries[-1]
        assert entry.display_name == "Windows 11 Test"
        assert entry.path == "D:\\Windows\\System32\\winload.exe"
        assert entry.device == "partition=D:"

        assert [s.status for s in orchestrator.steps] == [StepStatus.COMPLETED] * 5
        assert len(recorder.outcomes) == 1
        assert recorder.outcomes[0].success is True
        assert recorder.outcomes[0].message == "Installation of Windows 11 Test completed successfully"

        backups = orchestrator.list_boot_backups()
        assert len(backups) == 1
        assert backups[0].parent == settings.backup_dir

    def test_percent_monotonic_and_active_flag(self, orchestrator):
        """Test progress never moves backwards and the flag brackets the run."""
        recorder = _Recorder(orchestrator)
        assert orchestrator.is_installation_in_progress is False
        asyncio.run(orchestrator.start(_dual_boot()))

        assert recorder.percents == sorted(recorder.percents)
        assert recorder.percents[-1] == 100
        for progress, active in zip(recorder.progress, recorder.active):
            assert active is (not progress.is_completed)
        assert orchestrator.is_installation_in_progress is False

    def test_insufficient_space(self, orchestrator, environment):
        """Test prerequisites fail before any partition is created."""
        from dualboot_deployer.installer.progress import StepStatus

        recorder = _Recorder(orchestrator)
        progress = asyncio.run(orchestrator.start(_dual_boot(partition_size_mb=300000)))

        assert progress.is_successful is False
        assert progress.error_message.startswith("Prerequisites not met: ")
        assert "Not enough free space on disk 0" in progress.error_message
        assert "create_partition" not in environment.operations()
        assert all(s.status == StepStatus.PENDING for s in orchestrator.steps)
        assert len(recorder.outcomes) == 1

    def test_existing_partition_is_left_alone(self, orchestrator, environment):
        """Test reusing a partition never formats or activates it."""
        from dualboot_deployer.installer.progress import StepStatus

        progress = asyncio.run(orchestrator.start(
            _dual_boot(create_new_partition=False, existing_partition_number=2)
        ))

        assert progress.is_successful is True
        operations = environment.operations()
        assert "create_partition" not in operations
        assert "format_partition" not in operations
        assert "set_partition_active" not in operations
        assert "configure_boot_entry" in operations
        assert environment.boot_entries[-1].device == "partition=C:"
        assert [s.status for s in orchestrator.steps] == [StepStatus.COMPLETED] * 5
        assert "not required" in orchestrator.steps[1].detailed_status

    def test_not_elevated(self, orchestrator, environment):
        """Test a process without administrator rights never touches the disk."""
        environment.elevated = False
        progress = asyncio.run(orchestrator.start(_dual_boot()))

        assert progress.is_successful is False
        assert "Administrator privileges are required" in progress.error_message
        assert "create_partition" not in environment.operations()

    def test_restore_boot_configuration(self, orchestrator, environment):
        """Test the backup made by the run restores the original entries."""
        asyncio.run(orchestrator.start(_dual_boot()))
        backup = str(orchestrator.list_boot_backups()[0])

        assert asyncio.run(orchestrator.restore_boot_configuration(backup)) is True
        assert [e.display_name for e in environment.boot_entries] == ["Windows Boot Manager"]
        assert asyncio.run(orchestrator.restore_boot_configuration(backup + "x")) is False


class TestWSLScenario:
    """Test WSL installs."""

    def test_install_distro_failure(self, orchestrator, environment):
        """Test the pipeline stops at the failing step."""
        from dualboot_deployer.installer.orchestrator import RunState
        from dualboot_deployer.installer.progress import StepStatus

        environment.wsl_installed = True
        environment.fail_operations = {"install_distro"}
        recorder = _Recorder(orchestrator)

        progress = asyncio.run(orchestrator.start(_wsl(additional_options={"SetAsDefault": "true"})))

        assert progress.is_successful is False
        assert progress.error_message == (
            "Installation of Ubuntu failed: Could not install distribution Ubuntu"
        )
        steps = orchestrator.steps
        assert [s.status for s in steps] == [
            StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.FAILED,
            StepStatus.SKIPPED, StepStatus.SKIPPED,
        ]
        assert steps[2].detailed_status == "Could not install distribution Ubuntu"
        assert "set_default_distro" not in environment.operations()
        assert orchestrator.state == RunState.COMPLETED_FAILURE
        assert len(recorder.outcomes) == 1
        assert recorder.outcomes[0].cancelled is False

    def test_wsl_success_sets_default(self, orchestrator, environment):
        """Test the distribution is installed and made default."""
        environment.wsl_installed = True
        progress = asyncio.run(orchestrator.start(_wsl(additional_options={"SetAsDefault": "TRUE"})))

        assert progress.is_successful is True
        assert environment.calls_to("WSL")[-1] == ("WSL", "set_default_distro", ("Ubuntu",))
        assert environment.distros[0].is_default is True

    def test_wsl_requires_installed_subsystem(self, orchestrator, environment):
        """Test a machine without WSL fails the prerequisites."""
        progress = asyncio.run(orchestrator.start(_wsl()))
        assert progress.is_successful is False
        assert "Windows Subsystem for Linux is not installed" in progress.error_message
        assert "install" not in environment.operations()

    def test_raising_collaborator_wrapped(self, orchestrator, environment):
        """Test an exception inside a step fails that step."""
        from dualboot_deployer.installer.progress import StepStatus

        environment.wsl_installed = True

        async def broken(*args):
            raise RuntimeError("wsl.exe crashed")

        orchestrator.wsl.install_distro = broken
        progress = asyncio.run(orchestrator.start(_wsl()))

        assert progress.is_successful is False
        assert "wsl.exe crashed" in progress.error_message
        assert orchestrator.steps[2].status == StepStatus.FAILED
        assert orchestrator.is_installation_in_progress is False


class TestVirtualMachineScenario:
    """Test virtual machine installs and cancellation."""

    def test_vm_success_with_iso(self, orchestrator, environment, tmp_path):
        """Test disk, VM and ISO attachment."""
        iso = tmp_path / "ubuntu.iso"
        iso.write_bytes(b"iso")

        progress = asyncio.run(orchestrator.start(_vm(source_path=str(iso))))

        assert progress.is_successful is True
        assert environment.vms[0].name == "Dev VM"
        assert environment.attached_isos == {environment.vms[0].id: str(iso)}

    def test_cancel_during_create_vm(self, orchestrator, environment, tmp_path):
        """Test steps after the running one never execute."""
        from dualboot_deployer.installer.orchestrator import RunState
        from dualboot_deployer.installer.progress import StepStatus

        iso = tmp_path / "ubuntu.iso"
        iso.write_bytes(b"iso")
        recorder = _Recorder(orchestrator)
        original = orchestrator.vm.create_vm

        async def scenario():
            entered = asyncio.Event()
            release = asyncio.Event()

            async def slow_create_vm(config):
                entered.set()
                await release.wait()
                return await original(config)

            orchestrator.vm.create_vm = slow_create_vm
            task = asyncio.create_task(orchestrator.start(_vm(source_path=str(iso))))
            await entered.wait()

            assert orchestrator.is_installation_in_progress is True
            cancelled = await orchestrator.cancel()
            assert orchestrator.is_installation_in_progress is False

            release.set()
            progress = await task
            return cancelled, progress

        cancelled, progress = asyncio.run(scenario())

        assert cancelled is True
        assert progress.is_completed is True
        assert progress.is_successful is False
        assert progress.error_message == "Installation cancelled by user"
        assert orchestrator.state == RunState.CANCELLED

        assert "attach_iso" not in environment.operations()
        steps = orchestrator.steps
        assert steps[0].status == StepStatus.COMPLETED
        assert steps[1].status == StepStatus.COMPLETED
        assert steps[3].status == StepStatus.PENDING
        assert steps[4].status == StepStatus.PENDING
        assert all(s.status != StepStatus.FAILED for s in steps)

        assert len(recorder.outcomes) == 1
        assert recorder.outcomes[0].cancelled is True
        assert recorder.outcomes[0].success is False

    def test_second_start_is_ignored(self, orchestrator, environment):
        """Test a start while running returns the live progress unchanged."""
        original = orchestrator.vm.create_virtual_disk

        async def scenario():
            entered = asyncio.Event()
            release = asyncio.Event()

            async def slow_disk(*args):
                entered.set()
                await release.wait()
                return await original(*args)

            orchestrator.vm.create_virtual_disk = slow_disk
            task = asyncio.create_task(orchestrator.start(_vm()))
            await entered.wait()

            live = orchestrator.current_progress
            second = await orchestrator.start(_wsl())
            assert second is live
            assert orchestrator.config.strategy.value == "virtual_machine"

            release.set()
            return await task

        progress = asyncio.run(scenario())
        assert progress.is_successful is True
        assert "install_distro" not in environment.operations()


class TestCancellationBeforeSteps:
    """Test cancels that land outside the step loop."""

    def test_cancel_during_prerequisite_check(self, orchestrator, environment):
        """Test the run closes as cancelled and the orchestrator is usable again."""
        from dualboot_deployer.installer.orchestrator import RunState
        from dualboot_deployer.installer.progress import StepStatus

        recorder = _Recorder(orchestrator)
        original = orchestrator.disk.has_free_space

        async def scenario():
            entered = asyncio.Event()
            release = asyncio.Event()

            async def slow_has_free_space(*args):
                entered.set()
                await release.wait()
                return await original(*args)

            orchestrator.disk.has_free_space = slow_has_free_space
            task = asyncio.create_task(orchestrator.start(_dual_boot()))
            await entered.wait()

            assert orchestrator.state == RunState.CHECKING_PREREQUISITES
            cancelled = await orchestrator.cancel()

            release.set()
            progress = await task
            return cancelled, progress

        cancelled, progress = asyncio.run(scenario())

        assert cancelled is True
        assert progress.error_message == "Installation cancelled by user"
        assert orchestrator.state == RunState.CANCELLED
        assert orchestrator.is_installation_in_progress is False
        assert "create_partition" not in environment.operations()
        assert all(s.status == StepStatus.PENDING for s in orchestrator.steps)
        assert len(recorder.outcomes) == 1
        assert recorder.outcomes[0].cancelled is True

        orchestrator.disk.has_free_space = original
        again = asyncio.run(orchestrator.start(_dual_boot()))
        assert again.is_successful is True
        assert orchestrator.state == RunState.COMPLETED_SUCCESS

    def test_task_cancellation_closes_the_run(self, orchestrator, environment):
        """Test cancelling the task running start() still emits one cancelled outcome."""
        from dualboot_deployer.installer.orchestrator import RunState
        from dualboot_deployer.installer.progress import StepStatus

        recorder = _Recorder(orchestrator)

        async def scenario():
            entered = asyncio.Event()

            async def stuck_create_partition(*args):
                entered.set()
                await asyncio.Event().wait()

            orchestrator.disk.create_partition = stuck_create_partition
            task = asyncio.create_task(orchestrator.start(_dual_boot()))
            await entered.wait()

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert orchestrator.state == RunState.CANCELLED
        assert orchestrator.is_installation_in_progress is False
        assert orchestrator.current_progress.is_completed is True
        assert orchestrator.current_progress.error_message == "Installation cancelled by user"
        assert [s.status for s in orchestrator.steps[1:]] == [StepStatus.PENDING] * 4
        assert len(recorder.outcomes) == 1
        assert recorder.outcomes[0].cancelled is True


class TestValidationAndDispatch:
    """Test failures before the pipeline runs."""

    def test_invalid_config_never_calls_collaborators(self, settings):
        """Test validation failures have no side effects."""
        from dualboot_deployer.installer.collaborators import (
            BootManager, DiskManager, VMManager, WSLManager
        )
        from dualboot_deployer.installer.orchestrator import InstallationOrchestrator

        disk = MagicMock(spec=DiskManager)
        boot = MagicMock(spec=BootManager)
        wsl = MagicMock(spec=WSLManager)
        vm = MagicMock(spec=VMManager)
        probe = MagicMock(return_value=100 * GB)
        orchestrator = InstallationOrchestrator(
            disk, boot, wsl, vm, settings=settings, free_space_probe=probe
        )
        recorder = _Recorder(orchestrator)

        for config in (_wsl(system_name=""), _dual_boot(partition_size_mb=100), _vm(vm_ram_mb=256)):
            progress = asyncio.run(orchestrator.start(config))
            assert progress.is_successful is False
            assert progress.error_message.startswith("Invalid configuration: ")

        for mock in (disk, boot, wsl, vm):
            assert mock.method_calls == []
        probe.assert_not_called()
        assert len(recorder.outcomes) == 3

    def test_unsupported_strategy(self, orchestrator, environment):
        """Test a strategy without a pipeline."""
        from dualboot_deployer.installer.config import Strategy
        from dualboot_deployer.installer.steps import PIPELINES

        environment.wsl_installed = True
        with patch.dict(PIPELINES):
            del PIPELINES[Strategy.WSL]
            progress = asyncio.run(orchestrator.start(_wsl()))

        assert progress.is_successful is False
        assert progress.error_message == "Unsupported installation strategy: wsl"
        assert progress.total_steps == 0
        assert "install_distro" not in environment.operations()

    def test_listener_errors_do_not_break_the_run(self, orchestrator):
        """Test a raising listener is logged and ignored."""
        def bad_listener(progress):
            raise RuntimeError("listener bug")

        orchestrator.add_progress_listener(bad_listener)
        orchestrator.add_completion_listener(bad_listener)
        recorder = _Recorder(orchestrator)

        progress = asyncio.run(orchestrator.start(_dual_boot()))
        assert progress.is_successful is True
        assert len(recorder.outcomes) == 1

    def test_removed_listener_not_called(self, orchestrator):
        """Test listeners can unsubscribe."""
        calls = []
        orchestrator.add_progress_listener(calls.append)
        orchestrator.remove_progress_listener(calls.append)
        asyncio.run(orchestrator.start(_dual_boot()))
        assert calls == []

    def test_runs_can_follow_each_other(self, orchestrator, environment):
        """Test a finished orchestrator accepts a new run with fresh progress."""
        first = asyncio.run(orchestrator.start(_dual_boot(partition_size_mb=300000)))
        second = asyncio.run(orchestrator.start(_dual_boot()))

        assert first.is_successful is False
        assert second.is_successful is True
        assert first is not second
