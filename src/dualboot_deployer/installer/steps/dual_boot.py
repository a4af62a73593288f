"""
Dual Boot Pipeline

Prepare a partition, register it with the boot manager and make it bootable.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dualboot_deployer.installer.collaborators import BootEntryInfo, PartitionInfo
from dualboot_deployer.installer.logging_config import get_logger
from dualboot_deployer.installer.steps.base import RunContext, StepDefinition, StepResult

logger = get_logger(__name__)


def get_backup_path(ctx: RunContext, now: Optional[datetime] = None) -> str:
    """Timestamped boot configuration backup path inside the backup directory."""
    now = now or datetime.now()
    return str(ctx.settings.backup_dir / f"bcd_backup_{now:%Y-%m-%d_%H-%M-%S}")


def find_boot_backups(backup_dir: Path) -> List[Path]:
    """Boot configuration backups in ``backup_dir``, newest first."""
    if not backup_dir.exists():
        return []
    return sorted(backup_dir.glob("bcd_backup_*"), reverse=True)


def build_boot_entry(system_name: str, letter: str) -> BootEntryInfo:
    """Boot entry pointing at the loader on the target partition."""
    return BootEntryInfo(
        display_name=system_name,
        path=f"{letter}:\\Windows\\System32\\winload.exe",
        device=f"partition={letter}:",
        is_created_by_us=True,
    )


async def _find_existing_partition(ctx: RunContext) -> Optional[PartitionInfo]:
    config = ctx.config
    disks = await ctx.disk.list_disks()
    disk = next((d for d in disks if d.disk_number == config.disk_number), None)
    if disk is None:
        return None
    if config.partition_drive_letter:
        return disk.find_partition(config.partition_drive_letter)
    return disk.find_partition_number(config.existing_partition_number)


async def resolve_partition(ctx: RunContext) -> StepResult:
    """Create the new partition, or look up the one being reused."""
    config = ctx.config

    if config.create_new_partition:
        logger.info(
            "Creating a %s MB partition on disk %s", config.partition_size_mb, config.disk_number
        )
        partition = await ctx.disk.create_partition(
            config.disk_number, config.partition_size_mb, ctx.settings.default_filesystem
        )
        if partition is None:
            return StepResult.failed(
                f"Could not create a {config.partition_size_mb} MB partition on disk {config.disk_number}"
            )
        message = f"Partition {partition.drive_letter}: created"
    else:
        selector = config.partition_drive_letter or f"#{config.existing_partition_number}"
        logger.info("Using existing partition %s on disk %s", selector, config.disk_number)
        partition = await _find_existing_partition(ctx)
        if partition is None:
            return StepResult.failed(
                f"Partition {selector} not found on disk {config.disk_number}"
            )
        message = f"Using existing partition {partition.drive_letter}:"

    ctx.set_data("partition", partition)
    ctx.set_data("partition_created", config.create_new_partition)
    ctx.set_data("letter", partition.drive_letter.rstrip(":").upper())
    return StepResult.ok(message)


async def format_partition(ctx: RunContext) -> StepResult:
    """Format the partition, only when this run created it."""
    letter = ctx.get_data("letter")
    if not ctx.get_data("partition_created"):
        return StepResult.ok(f"Formatting not required for existing partition {letter}:")

    filesystem = ctx.settings.default_filesystem
    ctx.report(50, f"Formatting {letter}: as {filesystem}")
    if not await ctx.disk.format_partition(letter, filesystem, ctx.config.system_name):
        return StepResult.failed(f"Could not format partition {letter}:")
    return StepResult.ok(f"Partition {letter}: formatted as {filesystem}")


async def stage_media(ctx: RunContext) -> StepResult:
    """Placeholder: copying the installation media happens outside the deployer."""
    source = ctx.config.source_path or "no source media"
    logger.info("Staging installation media from %s (not performed by the deployer)", source)
    await asyncio.sleep(0)
    return StepResult.ok(f"Installation media staged from {source}")


async def configure_boot(ctx: RunContext) -> StepResult:
    """Back up the boot configuration, then add the new entry and set the timeout.

    The backup is kept whatever happens next; restoring it is up to the user.
    """
    config = ctx.config
    letter = ctx.get_data("letter")

    ctx.settings.backup_dir.mkdir(parents=True, exist_ok=True)
    backup_path = get_backup_path(ctx)
    ctx.report(10, f"Backing up boot configuration to {backup_path}")
    if not await ctx.boot.backup(backup_path):
        return StepResult.failed(f"Could not back up the boot configuration to {backup_path}")
    ctx.set_data("boot_backup", backup_path)
    logger.info("Boot configuration backed up to %s", backup_path)

    entry = build_boot_entry(config.system_name, letter)
    for existing in await ctx.boot.get_boot_entries():
        if existing.is_created_by_us and existing.display_name == config.system_name:
            # Update our own entry from a previous run instead of duplicating it
            entry.id = existing.id
            break

    ctx.report(50, f"Creating boot entry '{config.system_name}'")
    if not await ctx.boot.configure_boot_entry(entry):
        return StepResult.failed("Could not create the boot entry")
    ctx.set_data("boot_entry", entry)

    timeout = ctx.settings.boot_timeout_seconds
    if not await ctx.boot.set_timeout(timeout):
        return StepResult.failed(f"Could not set the boot timeout to {timeout} seconds")

    return StepResult.ok(f"Boot entry '{config.system_name}' added, backup at {backup_path}")


async def finalize(ctx: RunContext) -> StepResult:
    """Mark a newly created partition active."""
    partition = ctx.get_data("partition")
    if ctx.get_data("partition_created"):
        if not await ctx.disk.set_partition_active(
            ctx.config.disk_number, partition.partition_number
        ):
            return StepResult.failed(
                f"Could not mark partition {partition.partition_number} active"
            )
    return StepResult.ok(f"{ctx.config.system_name} is ready to boot from {ctx.get_data('letter')}:")


DUAL_BOOT_STEPS = [
    StepDefinition("partition", "Preparing the partition", resolve_partition, 10),
    StepDefinition("format", "Formatting the partition", format_partition, 20),
    StepDefinition("media", "Preparing the installation media", stage_media, 30),
    StepDefinition("boot", "Configuring the boot manager", configure_boot, 70),
    StepDefinition("finalize", "Finalizing the installation", finalize, 90),
]
