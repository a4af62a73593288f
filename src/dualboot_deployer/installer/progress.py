"""
Installation Progress

Progress snapshot, per-step tracking and the final outcome of a run.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence

from dualboot_deployer.installer.exceptions import StepTransitionError


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# Allowed moves; anything else is a programmer error
_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.IN_PROGRESS, StepStatus.SKIPPED},
    StepStatus.IN_PROGRESS: {StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
    StepStatus.SKIPPED: set(),
}


@dataclass
class InstallationProgress:
    """Live state of the current (or last) run."""
    current_step: int = 0
    total_steps: int = 5
    percent_complete: int = 0
    current_operation: str = "No installation in progress"
    detailed_status: Optional[str] = None
    is_completed: bool = False
    is_successful: bool = False
    error_message: Optional[str] = None

    def snapshot(self) -> "InstallationProgress":
        """Copy handed out to observers."""
        return copy.copy(self)

    @classmethod
    def failed(cls, message: str) -> "InstallationProgress":
        """Terminal failed progress for a run that never started."""
        return cls(
            current_step=0,
            total_steps=0,
            percent_complete=0,
            current_operation=message,
            detailed_status=message,
            is_completed=True,
            is_successful=False,
            error_message=message,
        )


@dataclass
class InstallationStep:
    """One pipeline stage as seen by observers."""
    step_number: int
    description: str
    status: StepStatus = StepStatus.PENDING
    progress_percentage: int = 0
    detailed_status: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def duration(self) -> timedelta:
        if self.start_time is None:
            return timedelta(0)
        if self.end_time is not None:
            return self.end_time - self.start_time
        return datetime.now() - self.start_time

    @property
    def is_finished(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)

    def _move(self, status: StepStatus):
        if status not in _TRANSITIONS[self.status]:
            raise StepTransitionError(
                f"Step {self.step_number} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def start(self, detailed_status: Optional[str] = None):
        self._move(StepStatus.IN_PROGRESS)
        self.detailed_status = detailed_status
        self.start_time = datetime.now()

    def complete(self, detailed_status: Optional[str] = None):
        self._move(StepStatus.COMPLETED)
        self.progress_percentage = 100
        self.detailed_status = detailed_status or "Done"
        self.end_time = datetime.now()

    def fail(self, error_message: str):
        self._move(StepStatus.FAILED)
        self.detailed_status = error_message
        self.end_time = datetime.now()

    def skip(self, reason: Optional[str] = None):
        self._move(StepStatus.SKIPPED)
        self.detailed_status = reason

    def update_progress(self, percentage: int, detailed_status: Optional[str] = None):
        # Never move backwards within a step
        self.progress_percentage = max(self.progress_percentage, min(100, max(0, percentage)))
        if detailed_status is not None:
            self.detailed_status = detailed_status


class StepTracker:
    """Ordered list of steps for the active strategy.

    Observational only: the pipelines decide what runs next, never the tracker.
    """

    def __init__(self):
        self._steps: List[InstallationStep] = []

    def initialize(self, descriptions: Sequence[str]):
        """Reset to one PENDING step per description."""
        self._steps = [
            InstallationStep(step_number=i, description=description)
            for i, description in enumerate(descriptions, 1)
        ]

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self):
        return iter(self._steps)

    def get(self, step: int) -> InstallationStep:
        """Get a step by its 1-based number."""
        if step < 1 or step > len(self._steps):
            raise IndexError(f"No step {step} (tracking {len(self._steps)} steps)")
        return self._steps[step - 1]

    def start(self, step: int, detail: Optional[str] = None):
        self.get(step).start(detail)

    def complete(self, step: int, detail: Optional[str] = None):
        self.get(step).complete(detail)

    def fail(self, step: int, error: str):
        self.get(step).fail(error)

    def skip(self, step: int, reason: Optional[str] = None):
        self.get(step).skip(reason)

    def update_progress(self, step: int, percent: int, detail: Optional[str] = None):
        self.get(step).update_progress(percent, detail)

    def skip_pending(self, reason: Optional[str] = None) -> int:
        """Mark every step still pending as skipped. Returns how many were skipped."""
        count = 0
        for step in self._steps:
            if step.status == StepStatus.PENDING:
                step.skip(reason)
                count += 1
        return count

    def snapshot(self) -> List[InstallationStep]:
        return [copy.copy(step) for step in self._steps]


@dataclass
class InstallationOutcome:
    """Terminal result of a run, delivered once through the completion notification."""
    success: bool
    message: str
    progress: InstallationProgress
    steps: List[InstallationStep] = field(default_factory=list)
    cancelled: bool = False

    @property
    def error_message(self) -> Optional[str]:
        return None if self.success else self.message
