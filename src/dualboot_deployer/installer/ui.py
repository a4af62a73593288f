"""
DualBoot Deployer UI Components

Terminal output for the CLI using the rich library.
"""

from typing import Iterable, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dualboot_deployer.installer.catalog import SystemOption
from dualboot_deployer.installer.config import InstallationConfig, Strategy
from dualboot_deployer.installer.progress import (
    InstallationOutcome, InstallationProgress, InstallationStep, StepStatus
)

STATUS_ICONS = {
    StepStatus.PENDING: "[dim]○[/dim]",
    StepStatus.IN_PROGRESS: "[yellow]▶[/yellow]",
    StepStatus.COMPLETED: "[green]✓[/green]",
    StepStatus.FAILED: "[red]✗[/red]",
    StepStatus.SKIPPED: "[dim]○[/dim]",
}

# Fields shown in the summary for each strategy
SUMMARY_FIELDS = {
    Strategy.DUAL_BOOT: [
        "disk_number", "create_new_partition", "partition_size_mb",
        "partition_letter", "existing_partition_number",
    ],
    Strategy.WSL: ["distro_name", "distro_version", "install_path"],
    Strategy.VIRTUAL_MACHINE: [
        "install_path", "vm_ram_mb", "vm_processor_count", "partition_size_mb",
    ],
}


class InstallerUI:
    """UI components for the deployer CLI."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_header(self, title: str = "DualBoot Deployer"):
        """Print the header panel."""
        self.console.print()
        self.console.print(Panel(
            f"[bold blue]{title}[/bold blue]",
            border_style="blue",
            padding=(0, 2)
        ))
        self.console.print()

    def print_success(self, message: str):
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str):
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str):
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str):
        self.console.print(f"[blue]ℹ[/blue] {message}")

    def show_checklist(self, issues: List[str], passed_message: str = "All prerequisites met"):
        """Show prerequisite issues, or a single success line when there are none."""
        if not issues:
            self.print_success(passed_message)
            return
        for issue in issues:
            self.print_error(issue)

    def show_systems(self, options: Iterable[SystemOption]):
        table = Table(title="Available systems", border_style="blue")
        table.add_column("Id", style="cyan")
        table.add_column("System")
        table.add_column("Strategy")
        table.add_column("Required space", justify="right")
        table.add_column("Description", style="dim")

        for option in options:
            name = f"{option.name} {option.version}"
            if option.is_advanced:
                name = f"{name} [yellow](advanced)[/yellow]"
            table.add_row(
                option.id,
                name,
                option.strategy.value,
                option.formatted_required_space,
                option.description,
            )
        self.console.print(table)

    def show_config_summary(self, config: InstallationConfig):
        """Show the fields relevant to the configured strategy."""
        table = Table(title="Installation", border_style="blue")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="white")

        data = config.to_dict()
        rows = ["strategy", "system_name", "system_version", "source_path"]
        rows += SUMMARY_FIELDS.get(config.strategy, [])
        for key in rows:
            value = data.get(key)
            display = str(value) if value not in ("", None) else "[dim]not set[/dim]"
            table.add_row(key, display)
        for key, value in config.additional_options.items():
            table.add_row(key, value)

        self.console.print(table)

    def render_steps(
        self,
        steps: List[InstallationStep],
        progress: Optional[InstallationProgress] = None,
    ) -> Table:
        """Render a step tracker snapshot as a table."""
        title = None
        if progress is not None:
            title = f"{progress.percent_complete}% - {progress.current_operation}"
        table = Table(title=title, show_header=False, box=None)
        table.add_column("Status", width=3)
        table.add_column("Name")
        table.add_column("Message", style="dim")

        for step in steps:
            icon = STATUS_ICONS.get(step.status, "?")
            name = f"{step.step_number}. {step.description}"
            message = step.detailed_status or ""

            if step.status == StepStatus.IN_PROGRESS:
                name = f"[bold]{name}[/bold]"
            elif step.status == StepStatus.SKIPPED:
                name = f"[dim]{name}[/dim]"
                message = f"[dim]{message}[/dim]"

            if step.is_finished and step.start_time is not None:
                message = f"{message} ({step.duration.total_seconds():.1f}s)"

            table.add_row(icon, name, message)

        return table

    def show_outcome(self, outcome: InstallationOutcome, backups: Optional[List[str]] = None):
        """Show the final panel of a run."""
        self.console.print()
        if outcome.success:
            self.console.print(Panel(
                f"[bold green]Installation complete[/bold green]\n\n{outcome.message}",
                border_style="green",
                padding=(1, 2)
            ))
            return

        if outcome.cancelled:
            self.console.print(Panel(
                f"[bold yellow]Installation cancelled[/bold yellow]\n\n{outcome.message}",
                border_style="yellow",
                padding=(1, 2)
            ))
        else:
            self.console.print(Panel(
                f"[bold red]Installation failed[/bold red]\n\n{outcome.message}",
                border_style="red",
                padding=(1, 2)
            ))

        if backups:
            self.console.print()
            self.console.print("[bold]Boot configuration backups:[/bold]")
            for path in backups:
                self.console.print(f"  {path}", soft_wrap=True)
            self.console.print(
                "[dim]Restore one with: dualboot-deployer restore-boot TEMPLATE BACKUP_PATH[/dim]"
            )
