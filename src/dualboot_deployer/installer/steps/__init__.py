"""
DualBoot Deployer Pipelines

Step sequences for each installation strategy.
"""

from typing import Dict, List

from dualboot_deployer.installer.config import Strategy
from dualboot_deployer.installer.steps.base import (
    RunContext, StepDefinition, StepResult
)
from dualboot_deployer.installer.steps.dual_boot import DUAL_BOOT_STEPS
from dualboot_deployer.installer.steps.virtual_machine import VIRTUAL_MACHINE_STEPS
from dualboot_deployer.installer.steps.wsl import WSL_STEPS

# One pipeline per strategy
PIPELINES: Dict[Strategy, List[StepDefinition]] = {
    Strategy.DUAL_BOOT: DUAL_BOOT_STEPS,
    Strategy.WSL: WSL_STEPS,
    Strategy.VIRTUAL_MACHINE: VIRTUAL_MACHINE_STEPS,
}


def get_step_descriptions(strategy: Strategy) -> List[str]:
    """Descriptions of the steps a strategy runs, in order."""
    return [step.description for step in PIPELINES.get(strategy, [])]


__all__ = [
    "PIPELINES",
    "RunContext",
    "StepDefinition",
    "StepResult",
    "DUAL_BOOT_STEPS",
    "WSL_STEPS",
    "VIRTUAL_MACHINE_STEPS",
    "get_step_descriptions",
]
