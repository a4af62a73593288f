"""
WSL Pipeline

Install a Linux distribution under Windows Subsystem for Linux.
"""

import asyncio

from dualboot_deployer.installer.logging_config import get_logger
from dualboot_deployer.installer.steps.base import RunContext, StepDefinition, StepResult

logger = get_logger(__name__)


def _distro_name(ctx: RunContext) -> str:
    return ctx.config.distro_name or ctx.config.system_name


async def ensure_wsl(ctx: RunContext) -> StepResult:
    """Install WSL on demand."""
    if await ctx.wsl.is_installed():
        return StepResult.ok("WSL is installed")

    logger.info("WSL is not installed, installing it")
    ctx.report(30, "Installing Windows Subsystem for Linux")
    if not await ctx.wsl.install():
        return StepResult.failed("Could not install Windows Subsystem for Linux")
    return StepResult.ok("WSL installed")


async def stage_distribution(ctx: RunContext) -> StepResult:
    """Placeholder: downloading the distribution image happens outside the deployer."""
    logger.info("Preparing distribution %s (not performed by the deployer)", _distro_name(ctx))
    await asyncio.sleep(0)
    return StepResult.ok(f"Distribution {_distro_name(ctx)} prepared")


async def install_distribution(ctx: RunContext) -> StepResult:
    config = ctx.config
    name = _distro_name(ctx)
    logger.info("Installing %s %s into %s", name, config.distro_version, config.install_path)
    if not await ctx.wsl.install_distro(name, config.distro_version, config.install_path):
        return StepResult.failed(f"Could not install distribution {name}")
    return StepResult.ok(f"{name} installed in {config.install_path}")


async def configure_distribution(ctx: RunContext) -> StepResult:
    """Placeholder for distro-level post configuration."""
    await asyncio.sleep(0)
    return StepResult.ok("No additional configuration required")


async def finalize(ctx: RunContext) -> StepResult:
    """Make the distribution the default one when SetAsDefault is 'true'."""
    name = _distro_name(ctx)
    if ctx.config.option_enabled("SetAsDefault"):
        if not await ctx.wsl.set_default_distro(name):
            return StepResult.failed(f"Could not make {name} the default distribution")
        return StepResult.ok(f"{name} installed and set as default")
    return StepResult.ok(f"{name} installed")


WSL_STEPS = [
    StepDefinition("wsl", "Checking WSL", ensure_wsl, 10),
    StepDefinition("download", "Preparing the distribution", stage_distribution, 30),
    StepDefinition("install", "Installing the distribution", install_distribution, 50),
    StepDefinition("configure", "Configuring the distribution", configure_distribution, 80),
    StepDefinition("finalize", "Finalizing the installation", finalize, 95),
]
