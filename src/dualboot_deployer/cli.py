"""
DualBoot Deployer Command Line Interface

Main entry point for the dualboot-deployer CLI.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.live import Live

from dualboot_deployer.installer.config import InstallationConfig, Strategy
from dualboot_deployer.installer.exceptions import (
    CancellationError,
    CollaboratorError,
    ConfigurationError,
    DeployerError,
    PrerequisiteError,
    StepExecutionError,
    get_error_code,
)
from dualboot_deployer.installer.progress import InstallationOutcome, StepStatus
from dualboot_deployer.installer.settings import DeployerSettings, load_settings
from dualboot_deployer.installer.simulation import SimulatedEnvironment
from dualboot_deployer.installer.steps.dual_boot import find_boot_backups
from dualboot_deployer.installer.ui import InstallerUI

console = Console()


def load_template(path: Path) -> Tuple[InstallationConfig, SimulatedEnvironment]:
    """Read an installation template.

    Args:
        path: YAML file with an ``install:`` section and an optional
            ``environment:`` section describing the simulated machine

    Returns:
        Tuple of (config, environment)
    """
    try:
        data = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Template is not valid YAML: {path}", details=str(e))

    if not isinstance(data, dict) or "install" not in data:
        raise ConfigurationError(
            f"Template has no 'install' section: {path}",
            field="install",
            remediation="Describe the installation under a top-level 'install:' key",
        )

    config = InstallationConfig.from_dict(data["install"])
    environment = SimulatedEnvironment.from_dict(data.get("environment"))
    return config, environment


def build_orchestrator(environment: SimulatedEnvironment, settings: DeployerSettings):
    """Orchestrator driving the simulated backends of ``environment``."""
    from dualboot_deployer.installer.orchestrator import InstallationOrchestrator

    disk, boot, wsl, vm = environment.managers()
    return InstallationOrchestrator(
        disk, boot, wsl, vm,
        settings=settings,
        free_space_probe=environment.free_bytes,
        elevation_probe=environment.is_elevated,
    )


def _exit_with_error(ui: InstallerUI, error: DeployerError):
    ui.print_error(str(error))
    sys.exit(get_error_code(error))


def _outcome_error(outcome: InstallationOutcome) -> Optional[DeployerError]:
    """Exception matching a finished run, None on success."""
    if outcome.success:
        return None
    if outcome.cancelled:
        return CancellationError()
    failed = next((s for s in outcome.steps if s.status == StepStatus.FAILED), None)
    if failed is None:
        return DeployerError(outcome.message)
    return StepExecutionError(outcome.message, step=failed.step_number)


@click.group()
@click.version_option(package_name="dualboot-deployer")
def main():
    """DualBoot Deployer: install a second system next to Windows"""
    pass


@main.command()
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in Strategy]),
    help="Only list systems installed with this strategy",
)
def systems(strategy: str):
    """List the systems the deployer can install."""
    from dualboot_deployer.installer.catalog import list_options

    ui = InstallerUI(console)
    options = list_options(Strategy(strategy) if strategy else None)
    if not options:
        ui.print_warning("No systems available")
        return
    ui.show_systems(options)


@main.command()
@click.argument("template", type=click.Path(exists=True, dir_okay=False))
def validate(template: str):
    """Validate an installation template."""
    from dualboot_deployer.installer.validators import require_valid_config

    ui = InstallerUI(console)
    try:
        config, _ = load_template(Path(template))
        require_valid_config(config)
    except DeployerError as e:
        _exit_with_error(ui, e)

    ui.show_config_summary(config)
    ui.print_success("Configuration is valid")


@main.command()
@click.argument("template", type=click.Path(exists=True, dir_okay=False))
@click.option("--settings", "settings_file", type=click.Path(exists=True, dir_okay=False),
              help="YAML settings file")
def check(template: str, settings_file: Optional[str]):
    """Check the prerequisites of an installation template."""
    from dualboot_deployer.installer.validators import require_valid_config

    ui = InstallerUI(console)
    try:
        settings = load_settings(Path(settings_file) if settings_file else None)
        config, environment = load_template(Path(template))
        require_valid_config(config)
        orchestrator = build_orchestrator(environment, settings)
        issues = asyncio.run(orchestrator.check_prerequisites(config))
    except DeployerError as e:
        _exit_with_error(ui, e)

    console.print(f"[bold]Prerequisites for {config.system_name} ({config.strategy.value}):[/bold]")
    ui.show_checklist(issues)
    if issues:
        sys.exit(get_error_code(PrerequisiteError("Prerequisites not met", issues=issues)))


async def run_install(
    orchestrator, config: InstallationConfig, ui: InstallerUI, outcomes: List[InstallationOutcome]
) -> InstallationOutcome:
    """Run one installation, rendering the step table live.

    The outcome is also appended to ``outcomes`` so it survives an interrupted event loop.
    """
    orchestrator.add_completion_listener(outcomes.append)

    with Live(ui.render_steps([]), console=ui.console, refresh_per_second=8) as live:
        def on_progress(progress):
            live.update(ui.render_steps(orchestrator.steps, progress))

        orchestrator.add_progress_listener(on_progress)
        try:
            await orchestrator.start(config)
        finally:
            orchestrator.remove_progress_listener(on_progress)
            orchestrator.remove_completion_listener(outcomes.append)

    return outcomes[-1]


@main.command()
@click.argument("template", type=click.Path(exists=True, dir_okay=False))
@click.option("--settings", "settings_file", type=click.Path(exists=True, dir_okay=False),
              help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
def install(template: str, settings_file: Optional[str], verbose: bool):
    """Run an installation template against its simulated environment.

    Examples:
        dualboot-deployer install ubuntu-wsl.yaml
        dualboot-deployer install windows.yaml --settings settings.yaml -v
    """
    from dualboot_deployer.installer.logging_config import get_log_path, setup_logging
    from dualboot_deployer.installer.validators import require_valid_config

    ui = InstallerUI(console)
    try:
        settings = load_settings(Path(settings_file) if settings_file else None)
        log_path = get_log_path(settings.log_dir)
        setup_logging(
            level=logging.DEBUG if verbose or settings.debug else logging.WARNING,
            log_file=log_path,
        )

        config, environment = load_template(Path(template))
        require_valid_config(config)
        orchestrator = build_orchestrator(environment, settings)
    except DeployerError as e:
        _exit_with_error(ui, e)

    ui.print_header(f"Installing {config.system_name}")
    ui.show_config_summary(config)

    issues = asyncio.run(orchestrator.check_prerequisites(config))
    if issues:
        ui.show_checklist(issues)
        _exit_with_error(ui, PrerequisiteError("Prerequisites not met", issues=issues))

    outcomes: List[InstallationOutcome] = []
    try:
        asyncio.run(run_install(orchestrator, config, ui, outcomes))
    except KeyboardInterrupt:
        # asyncio.run cancels the install task, which closes the run as cancelled
        ui.print_warning("Installation interrupted")
        if not outcomes:
            sys.exit(get_error_code(CancellationError()))
    outcome = outcomes[-1]

    backups = [str(path) for path in orchestrator.list_boot_backups()]
    ui.show_outcome(outcome, backups)
    if verbose:
        ui.print_info(f"Log file: {log_path}")

    error = _outcome_error(outcome)
    sys.exit(get_error_code(error) if error else 0)


@main.command(name="restore-boot")
@click.argument("template", type=click.Path(exists=True, dir_okay=False))
@click.argument("backup_path", type=click.Path())
def restore_boot(template: str, backup_path: str):
    """Restore a boot configuration backup made by a dual boot install."""
    ui = InstallerUI(console)
    try:
        _, environment = load_template(Path(template))
        orchestrator = build_orchestrator(environment, load_settings())
    except DeployerError as e:
        _exit_with_error(ui, e)

    if not asyncio.run(orchestrator.restore_boot_configuration(backup_path)):
        _exit_with_error(ui, CollaboratorError(
            f"Could not restore the boot configuration from {backup_path}",
            capability="boot",
        ))
    ui.print_success(f"Boot configuration restored from {backup_path}")


@main.command()
@click.option("--settings", "settings_file", type=click.Path(exists=True, dir_okay=False),
              help="YAML settings file")
def backups(settings_file: Optional[str]):
    """List boot configuration backups, newest first."""
    ui = InstallerUI(console)
    try:
        settings = load_settings(Path(settings_file) if settings_file else None)
    except DeployerError as e:
        _exit_with_error(ui, e)

    found = find_boot_backups(settings.backup_dir)
    if not found:
        ui.print_info(f"No boot configuration backups in {settings.backup_dir}")
        return
    for path in found:
        console.print(f"  {path}", soft_wrap=True)


if __name__ == "__main__":
    main()
