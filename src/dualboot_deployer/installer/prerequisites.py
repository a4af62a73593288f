"""
Prerequisite Checks

Read-only checks run before an installation touches the machine.
"""

import ctypes
import os
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from dualboot_deployer.installer.collaborators import DiskManager, VMManager, WSLManager
from dualboot_deployer.installer.config import InstallationConfig, Strategy
from dualboot_deployer.installer.logging_config import get_logger

logger = get_logger(__name__)

FreeSpaceProbe = Callable[[str], int]
ElevationProbe = Callable[[], bool]

MB = 1024 * 1024


def drive_free_bytes(path: str) -> int:
    """Free bytes on the drive holding ``path``.

    The path itself may not exist yet, so the nearest existing ancestor is used.
    """
    candidate = Path(path).expanduser()
    while not candidate.exists() and candidate != candidate.parent:
        candidate = candidate.parent
    return shutil.disk_usage(str(candidate)).free


def is_elevated() -> bool:
    """Whether the process runs with administrator rights."""
    if os.name == "nt":
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


def _drive_name(path: str) -> str:
    anchor = Path(path).anchor
    return anchor or path


async def check_dual_boot(config: InstallationConfig, disk: DiskManager) -> List[str]:
    """Free space for a new partition, or a selected partition to reuse."""
    issues = []
    if config.create_new_partition:
        if not await disk.has_free_space(config.disk_number, config.partition_size_mb):
            issues.append(
                f"Not enough free space on disk {config.disk_number} to create "
                f"a partition of {config.partition_size_mb} MB"
            )
    elif not config.partition_letter.strip() and config.existing_partition_number < 0:
        issues.append("No existing partition selected")
    return issues


def check_destination_space(
    config: InstallationConfig,
    target: str,
    free_space_probe: FreeSpaceProbe,
) -> List[str]:
    """Free space on the destination drive must cover the requested size."""
    if not config.install_path:
        return [f"Installation path not specified for {target}"]

    required = config.partition_size_mb * MB
    available = free_space_probe(config.install_path)
    if available < required:
        return [
            f"Not enough free space on drive {_drive_name(config.install_path)} for {target} "
            f"({available // MB} MB free, {config.partition_size_mb} MB required)"
        ]
    return []


async def check_wsl(
    config: InstallationConfig,
    wsl: WSLManager,
    free_space_probe: FreeSpaceProbe,
) -> List[str]:
    issues = []
    if not await wsl.is_installed():
        issues.append("Windows Subsystem for Linux is not installed")
    issues.extend(check_destination_space(config, "WSL", free_space_probe))
    return issues


async def check_virtual_machine(
    config: InstallationConfig,
    vm: VMManager,
    free_space_probe: FreeSpaceProbe,
) -> List[str]:
    issues = []
    if not await vm.is_virtualization_supported():
        issues.append("Virtualization is not supported or not enabled on this system")
    issues.extend(check_destination_space(config, "the virtual machine", free_space_probe))
    return issues


async def check_prerequisites(
    config: Optional[InstallationConfig],
    disk: DiskManager,
    wsl: WSLManager,
    vm: VMManager,
    free_space_probe: FreeSpaceProbe = drive_free_bytes,
    elevation_probe: Optional[ElevationProbe] = None,
) -> List[str]:
    """Collect every reason the installation cannot start.

    Args:
        config: Requested installation
        disk: Disk backend
        wsl: WSL backend
        vm: VM backend
        free_space_probe: Returns free bytes for a destination path
        elevation_probe: Returns whether the process is elevated; not checked when None

    Returns:
        List of human readable issues; empty when ready
    """
    if config is None:
        return ["Installation configuration is not defined"]

    issues: List[str] = []
    if elevation_probe is not None and not elevation_probe():
        issues.append("Administrator privileges are required")

    if not config.system_name or not config.system_name.strip():
        issues.append("System name not specified")

    try:
        if config.strategy == Strategy.DUAL_BOOT:
            issues.extend(await check_dual_boot(config, disk))
        elif config.strategy == Strategy.WSL:
            issues.extend(await check_wsl(config, wsl, free_space_probe))
        elif config.strategy == Strategy.VIRTUAL_MACHINE:
            issues.extend(await check_virtual_machine(config, vm, free_space_probe))
    except Exception as e:
        logger.error("Error while checking prerequisites: %s", e, exc_info=True)
        issues.append(f"Error while checking prerequisites: {e}")

    return issues
