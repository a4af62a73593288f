"""
Virtual Machine Pipeline

Create a virtual disk and a VM, then attach the installation ISO.
"""

from pathlib import Path

from dualboot_deployer.installer.collaborators import VMConfig
from dualboot_deployer.installer.logging_config import get_logger
from dualboot_deployer.installer.steps.base import RunContext, StepDefinition, StepResult

logger = get_logger(__name__)


def get_storage_path(ctx: RunContext) -> Path:
    """Explicit install path, else ``<vm_root>/<system name>``."""
    if ctx.config.install_path:
        return Path(ctx.config.install_path)
    return ctx.settings.vm_root / ctx.config.system_name


def disk_size_gb(ctx: RunContext) -> int:
    return ctx.config.partition_size_mb // 1024


async def check_virtualization(ctx: RunContext) -> StepResult:
    if not await ctx.vm.is_virtualization_supported():
        return StepResult.failed("Virtualization is not supported or not enabled on this system")
    return StepResult.ok("Virtualization supported")


async def create_disk(ctx: RunContext) -> StepResult:
    storage = get_storage_path(ctx)
    vhd_path = storage / f"{ctx.config.system_name}.vhdx"
    size_gb = disk_size_gb(ctx)

    logger.info("Creating a %s GB virtual disk at %s", size_gb, vhd_path)
    created = await ctx.vm.create_virtual_disk(str(vhd_path), size_gb, True)
    if not created:
        return StepResult.failed(f"Could not create the virtual disk {vhd_path}")

    ctx.set_data("storage_path", str(storage))
    ctx.set_data("vhd_path", created)
    return StepResult.ok(f"Virtual disk created at {created}")


async def create_machine(ctx: RunContext) -> StepResult:
    config = ctx.config
    vm_config = VMConfig(
        name=config.system_name,
        memory_mb=config.vm_ram_mb if config.vm_ram_mb > 0 else ctx.settings.default_vm_memory_mb,
        processor_count=(
            config.vm_processor_count if config.vm_processor_count > 0
            else ctx.settings.default_vm_processors
        ),
        storage_path=ctx.get_data("storage_path"),
        disk_size_gb=disk_size_gb(ctx),
        installation_iso_path=config.source_path,
    )
    vm_id = await ctx.vm.create_vm(vm_config)
    if not vm_id:
        return StepResult.failed(f"Could not create virtual machine {config.system_name}")

    ctx.set_data("vm_id", vm_id)
    ctx.set_data("vm_config", vm_config)
    return StepResult.ok(f"Virtual machine {config.system_name} created ({vm_id})")


async def attach_media(ctx: RunContext) -> StepResult:
    """Attach the ISO, when the source path points at an existing file."""
    source = ctx.config.source_path
    if not source or not Path(source).is_file():
        return StepResult.ok("No installation media to attach")

    if not await ctx.vm.attach_iso(ctx.get_data("vm_id"), source):
        return StepResult.failed(f"Could not attach {source} to the virtual machine")
    return StepResult.ok(f"Installation media {Path(source).name} attached")


async def finalize(ctx: RunContext) -> StepResult:
    return StepResult.ok(f"Virtual machine {ctx.config.system_name} created successfully")


VIRTUAL_MACHINE_STEPS = [
    StepDefinition("virtualization", "Checking virtualization support", check_virtualization, 10),
    StepDefinition("disk", "Creating the virtual disk", create_disk, 30),
    StepDefinition("machine", "Creating the virtual machine", create_machine, 50),
    StepDefinition("media", "Configuring the virtual machine", attach_media, 80),
    StepDefinition("finalize", "Finalizing the installation", finalize, 95),
]
