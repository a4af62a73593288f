"""
Pipeline Step Base Types

Shared types for the per-strategy step pipelines.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from dualboot_deployer.installer.collaborators import (
    BootManager, DiskManager, VMManager, WSLManager
)
from dualboot_deployer.installer.config import InstallationConfig
from dualboot_deployer.installer.settings import DeployerSettings


@dataclass
class StepResult:
    """Result of one pipeline step."""
    success: bool
    message: str

    @classmethod
    def ok(cls, message: str = "Done") -> "StepResult":
        return cls(True, message)

    @classmethod
    def failed(cls, message: str) -> "StepResult":
        return cls(False, message)


def _ignore_report(percent: int, detail: Optional[str] = None) -> None:
    return None


@dataclass
class RunContext:
    """Everything a step can see during one run.

    ``data`` carries values between steps (target partition, VM id, ...).
    """
    config: InstallationConfig
    disk: DiskManager
    boot: BootManager
    wsl: WSLManager
    vm: VMManager
    settings: DeployerSettings
    report: Callable[[int, Optional[str]], None] = _ignore_report
    data: Dict[str, Any] = field(default_factory=dict)

    def get_data(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set_data(self, key: str, value: Any):
        self.data[key] = value


StepHandler = Callable[[RunContext], Awaitable[StepResult]]


@dataclass(frozen=True)
class StepDefinition:
    """Definition of a pipeline step.

    ``percent`` is the overall progress shown once the step starts.
    """
    name: str
    description: str
    handler: StepHandler
    percent: int
