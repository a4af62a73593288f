"""
DualBoot Deployer Installer

Installation orchestration for dual boot, WSL and virtual machine installs.
"""

from dualboot_deployer.installer.config import InstallationConfig, Strategy
from dualboot_deployer.installer.orchestrator import InstallationOrchestrator, RunState
from dualboot_deployer.installer.ui import InstallerUI

__all__ = ["InstallationConfig", "InstallationOrchestrator", "InstallerUI", "RunState", "Strategy"]
