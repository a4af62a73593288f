"""Shared fixtures for the DualBoot Deployer tests."""

import pytest


@pytest.fixture
def settings(tmp_path):
    """Settings writing backups and logs under a temporary directory."""
    from dualboot_deployer.installer.settings import DeployerSettings

    return DeployerSettings(
        data_dir=tmp_path / "data",
        vm_root=tmp_path / "vms",
        cancel_grace_seconds=0,
    )


@pytest.fixture
def environment():
    """Default simulated machine: one disk, C: plus 200 GB unallocated."""
    from dualboot_deployer.installer.simulation import SimulatedEnvironment

    return SimulatedEnvironment.default()


@pytest.fixture
def orchestrator(environment, settings):
    """Orchestrator wired to the simulated environment."""
    from dualboot_deployer.installer.orchestrator import InstallationOrchestrator

    disk, boot, wsl, vm = environment.managers()
    return InstallationOrchestrator(
        disk, boot, wsl, vm,
        settings=settings,
        free_space_probe=environment.free_bytes,
        elevation_probe=environment.is_elevated,
    )
