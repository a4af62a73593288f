"""
DualBoot Deployer Exceptions

Custom exception types for installation errors and remediation suggestions.
"""

from typing import Optional, List


class DeployerError(Exception):
    """Base exception for all deployer errors."""

    def __init__(
        self,
        message: str,
        remediation: Optional[str] = None,
        details: Optional[str] = None
    ):
        """Initialize the error.

        Args:
            message: Human-readable error message
            remediation: Suggested fix for the user
            details: Technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.remediation = remediation
        self.details = details

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.remediation:
            parts.append(f"To fix: {self.remediation}")
        return "\n".join(parts)


class ConfigurationError(DeployerError):
    """The installation configuration is invalid. Raised before any side effect."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        remediation: Optional[str] = None,
        details: Optional[str] = None
    ):
        self.field = field
        if not remediation and field:
            remediation = f"Check the value of '{field}' in your installation template"
        super().__init__(message, remediation, details)


class PrerequisiteError(DeployerError):
    """The machine is not ready for the requested installation."""

    def __init__(
        self,
        message: str,
        issues: Optional[List[str]] = None,
        remediation: Optional[str] = None,
        details: Optional[str] = None
    ):
        self.issues = issues or []
        if not remediation and self.issues:
            remediation = "Resolve the listed issues, then run 'dualboot-deployer check' again"
        if not details and self.issues:
            details = "; ".join(self.issues)
        super().__init__(message, remediation, details)


class StepExecutionError(DeployerError):
    """A collaborator failed in the middle of a pipeline.

    Effects of earlier steps are not rolled back.
    """

    def __init__(
        self,
        message: str,
        step: Optional[int] = None,
        remediation: Optional[str] = None,
        details: Optional[str] = None
    ):
        self.step = step
        if not remediation and step is not None:
            remediation = (
                "Earlier steps were not rolled back. Restore the boot configuration with "
                "'dualboot-deployer restore-boot' if the machine no longer starts correctly"
            )
        super().__init__(message, remediation, details)


class CancellationError(DeployerError):
    """The user cancelled the installation. Not reported as a failure."""

    def __init__(
        self,
        message: str = "Installation cancelled by user",
        remediation: Optional[str] = None,
        details: Optional[str] = None
    ):
        super().__init__(message, remediation, details)


class CollaboratorError(DeployerError):
    """A capability backend (disk, boot, WSL, VM) reported an error."""

    def __init__(
        self,
        message: str,
        capability: Optional[str] = None,
        remediation: Optional[str] = None,
        details: Optional[str] = None
    ):
        self.capability = capability
        if not remediation and capability:
            remediation = f"Check that the {capability} tooling is available and run as administrator"
        super().__init__(message, remediation, details)


class StepTransitionError(DeployerError):
    """An installation step was moved backwards in its lifecycle."""


# Error code mapping for CLI exit codes
ERROR_CODES = {
    ConfigurationError: 10,
    PrerequisiteError: 11,
    StepExecutionError: 12,
    CollaboratorError: 13,
    StepTransitionError: 14,
    CancellationError: 130,
    DeployerError: 1,
}


def get_error_code(error: Exception) -> int:
    """Get the exit code for an error type."""
    for error_type, code in ERROR_CODES.items():
        if isinstance(error, error_type):
            return code
    return 1
