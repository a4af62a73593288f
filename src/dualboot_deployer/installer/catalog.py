"""
System Catalog

Systems the deployer knows how to install.
"""

from dataclasses import dataclass
from typing import List, Optional

from dualboot_deployer.installer.collaborators import format_size
from dualboot_deployer.installer.config import Strategy


@dataclass(frozen=True)
class SystemOption:
    id: str
    name: str
    version: str
    description: str
    strategy: Strategy
    required_space_mb: int
    is_advanced: bool = False

    @property
    def formatted_required_space(self) -> str:
        return format_size(self.required_space_mb * 1024 * 1024)


SYSTEM_OPTIONS: List[SystemOption] = [
    SystemOption(
        id="dualboot-windows",
        name="Windows",
        version="11",
        description="Install a second Windows system on its own partition with a boot menu entry",
        strategy=Strategy.DUAL_BOOT,
        required_space_mb=20000,
        is_advanced=True,
    ),
    SystemOption(
        id="wsl",
        name="Ubuntu (WSL)",
        version="22.04",
        description="Install a Linux distribution under Windows Subsystem for Linux",
        strategy=Strategy.WSL,
        required_space_mb=5000,
    ),
    SystemOption(
        id="vm",
        name="Virtual Machine",
        version="Hyper-V",
        description="Create a Hyper-V virtual machine and attach the installation media",
        strategy=Strategy.VIRTUAL_MACHINE,
        required_space_mb=20000,
    ),
]


def get_option(option_id: str) -> Optional[SystemOption]:
    """Look up a catalog entry by id (case-insensitive)."""
    wanted = option_id.strip().lower()
    return next((option for option in SYSTEM_OPTIONS if option.id == wanted), None)


def list_options(strategy: Optional[Strategy] = None) -> List[SystemOption]:
    if strategy is None:
        return list(SYSTEM_OPTIONS)
    return [option for option in SYSTEM_OPTIONS if option.strategy == strategy]
