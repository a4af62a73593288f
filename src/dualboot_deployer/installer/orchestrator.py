"""
DualBoot Deployer Installation Orchestrator

Runs one installation at a time: validation, prerequisite checks, the strategy
pipeline, progress notifications and cancellation.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from dualboot_deployer.installer.collaborators import (
    BootManager, DiskManager, VMManager, WSLManager
)
from dualboot_deployer.installer.config import InstallationConfig
from dualboot_deployer.installer.exceptions import (
    CancellationError, DeployerError, StepExecutionError
)
from dualboot_deployer.installer.logging_config import get_logger
from dualboot_deployer.installer.prerequisites import (
    ElevationProbe, FreeSpaceProbe, check_prerequisites, drive_free_bytes, is_elevated
)
from dualboot_deployer.installer.progress import (
    InstallationOutcome, InstallationProgress, InstallationStep, StepStatus, StepTracker
)
from dualboot_deployer.installer.settings import DeployerSettings
from dualboot_deployer.installer.steps import PIPELINES, RunContext, StepDefinition, StepResult
from dualboot_deployer.installer.steps.dual_boot import find_boot_backups
from dualboot_deployer.installer.validators import validate_config

logger = get_logger(__name__)

ProgressListener = Callable[[InstallationProgress], None]
CompletionListener = Callable[[InstallationOutcome], None]

CANCELLED_MESSAGE = CancellationError().message


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CHECKING_PREREQUISITES = "checking_prerequisites"
    RUNNING = "running"
    COMPLETED_SUCCESS = "completed_success"
    COMPLETED_FAILURE = "completed_failure"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (
            RunState.VALIDATING, RunState.CHECKING_PREREQUISITES, RunState.RUNNING
        )


class PipelineStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class _Run:
    """State owned by one run. A new object is created for every start()."""
    run_id: int
    config: InstallationConfig
    progress: InstallationProgress
    tracker: StepTracker = field(default_factory=StepTracker)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    finalized: bool = False
    cancelled: bool = False
    last_error: Optional[str] = None


class InstallationOrchestrator:
    """Drives the disk, boot, WSL and VM backends through one installation."""

    def __init__(
        self,
        disk: DiskManager,
        boot: BootManager,
        wsl: WSLManager,
        vm: VMManager,
        settings: Optional[DeployerSettings] = None,
        free_space_probe: FreeSpaceProbe = drive_free_bytes,
        elevation_probe: Optional[ElevationProbe] = is_elevated,
    ):
        for name, collaborator in (("disk", disk), ("boot", boot), ("wsl", wsl), ("vm", vm)):
            if collaborator is None:
                raise ValueError(f"The {name} collaborator is required")

        self.disk = disk
        self.boot = boot
        self.wsl = wsl
        self.vm = vm
        self.settings = settings or DeployerSettings()
        self.free_space_probe = free_space_probe
        self.elevation_probe = elevation_probe

        self._progress_listeners: List[ProgressListener] = []
        self._completion_listeners: List[CompletionListener] = []
        self._run: Optional[_Run] = None
        self._run_counter = 0
        self._state = RunState.IDLE
        self._idle_progress = InstallationProgress()

        logger.debug("Installation orchestrator initialized")

    # ----- observers -------------------------------------------------------

    def add_progress_listener(self, listener: ProgressListener):
        """Register a callback receiving a progress snapshot after every change."""
        self._progress_listeners.append(listener)

    def remove_progress_listener(self, listener: ProgressListener):
        if listener in self._progress_listeners:
            self._progress_listeners.remove(listener)

    def add_completion_listener(self, listener: CompletionListener):
        """Register a callback receiving the outcome once per run."""
        self._completion_listeners.append(listener)

    def remove_completion_listener(self, listener: CompletionListener):
        if listener in self._completion_listeners:
            self._completion_listeners.remove(listener)

    def _emit_progress(self, run: _Run):
        snapshot = run.progress.snapshot()
        for listener in list(self._progress_listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Progress listener %r raised: %s", listener, e, exc_info=True)

    def _emit_completed(self, outcome: InstallationOutcome):
        for listener in list(self._completion_listeners):
            try:
                listener(outcome)
            except Exception as e:
                logger.error("Completion listener %r raised: %s", listener, e, exc_info=True)

    # ----- read-only state -------------------------------------------------

    @property
    def current_progress(self) -> InstallationProgress:
        """The live progress of the current or last run."""
        return self._run.progress if self._run else self._idle_progress

    @property
    def is_installation_in_progress(self) -> bool:
        return self._state.is_active

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def config(self) -> Optional[InstallationConfig]:
        return self._run.config if self._run else None

    @property
    def steps(self) -> List[InstallationStep]:
        """Snapshot of the step tracker of the current or last run."""
        return self._run.tracker.snapshot() if self._run else []

    # ----- commands --------------------------------------------------------

    async def check_prerequisites(self, config: Optional[InstallationConfig]) -> List[str]:
        """List every reason ``config`` cannot be installed right now."""
        return await check_prerequisites(
            config, self.disk, self.wsl, self.vm, self.free_space_probe,
            elevation_probe=self.elevation_probe,
        )

    async def start(self, config: Optional[InstallationConfig]) -> InstallationProgress:
        """Run an installation to completion.

        Args:
            config: The requested installation

        Returns:
            The final progress of the run. While another run is active the
            current progress is returned untouched.
        """
        if self.is_installation_in_progress:
            logger.warning("An installation is already in progress")
            return self.current_progress

        if config is None:
            logger.error("Cannot start the installation: no configuration")
            return InstallationProgress.failed("Installation configuration is not defined")

        run = self._begin_run(config)
        try:
            logger.info(
                "Starting installation: %s, system: %s", config.strategy.value, config.system_name
            )

            error = validate_config(config)
            if error:
                logger.error("Invalid configuration: %s", error)
                self._finalize(run, False, f"Invalid configuration: {error}")
                return run.progress

            self._set_state(run, RunState.CHECKING_PREREQUISITES)
            self._update_progress(run, 0, "Checking prerequisites")
            issues = await self.check_prerequisites(config)
            if run.finalized:
                logger.info("Run %s was cancelled during the prerequisite check", run.run_id)
                return run.progress
            if issues:
                message = f"Prerequisites not met: {', '.join(issues)}"
                logger.error(message)
                self._finalize(run, False, message)
                return run.progress

            pipeline = PIPELINES.get(config.strategy)
            if pipeline is None:
                self._finalize(run, False, f"Unsupported installation strategy: {config.strategy.value}")
                return run.progress

            self._set_state(run, RunState.RUNNING)
            status = await self._run_pipeline(run, pipeline)

            if status == PipelineStatus.CANCELLED:
                self._finalize(run, False, CANCELLED_MESSAGE, cancelled=True)
            elif status == PipelineStatus.SUCCEEDED:
                self._finalize(
                    run, True, f"Installation of {config.system_name} completed successfully"
                )
            else:
                message = f"Installation of {config.system_name} failed"
                if run.last_error:
                    message = f"{message}: {run.last_error}"
                self._finalize(run, False, message)

        except asyncio.CancelledError:
            # The task itself was cancelled (Ctrl+C, shutdown): close the run before unwinding
            logger.warning("Installation task cancelled")
            run.cancel_event.set()
            self._finalize(run, False, CANCELLED_MESSAGE, cancelled=True)
            raise

        except Exception as e:
            message = f"Error during installation: {e}"
            logger.error(message, exc_info=True)
            self._finalize(run, False, message)

        return run.progress

    async def cancel(self) -> bool:
        """Cancel the active run.

        The step currently executing is not interrupted; no further step starts.

        Returns:
            True if the run ended as cancelled, False when nothing was running
        """
        run = self._run
        if not self.is_installation_in_progress or run is None or run.finalized:
            logger.warning("Cancel requested while no installation is in progress")
            return False

        logger.info("Cancelling the installation")
        run.cancel_event.set()

        # Give the running step a chance to notice
        await asyncio.sleep(self.settings.cancel_grace_seconds)

        self._finalize(run, False, CANCELLED_MESSAGE, cancelled=True)
        return run.cancelled

    async def restore_boot_configuration(self, backup_path: str) -> bool:
        """Restore a boot configuration backup written by a dual boot run."""
        if self.is_installation_in_progress:
            logger.warning("Cannot restore the boot configuration during an installation")
            return False
        logger.info("Restoring boot configuration from %s", backup_path)
        restored = await self.boot.restore(backup_path)
        if not restored:
            logger.error("Could not restore the boot configuration from %s", backup_path)
        return restored

    def list_boot_backups(self) -> List[Path]:
        """Boot configuration backups in the backup directory, newest first."""
        return find_boot_backups(self.settings.backup_dir)

    # ----- internals -------------------------------------------------------

    def _begin_run(self, config: InstallationConfig) -> _Run:
        self._run_counter += 1
        pipeline = PIPELINES.get(config.strategy, [])
        run = _Run(
            run_id=self._run_counter,
            config=config,
            progress=InstallationProgress(
                current_step=0,
                total_steps=len(pipeline),
                percent_complete=0,
                current_operation="Starting installation",
            ),
        )
        run.tracker.initialize([step.description for step in pipeline])
        self._run = run
        self._state = RunState.VALIDATING
        self._emit_progress(run)
        return run

    def _set_state(self, run: _Run, state: RunState):
        """Move the orchestrator state, unless ``run`` is closed or superseded."""
        if run is self._run and not run.finalized:
            self._state = state

    def _update_progress(
        self,
        run: _Run,
        step: int,
        operation: str,
        percent: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        progress = run.progress
        progress.current_step = step
        progress.current_operation = operation
        if percent is not None:
            progress.percent_complete = max(progress.percent_complete, min(100, percent))
        if detail is not None:
            progress.detailed_status = detail
        logger.info("Progress: %s%% - %s", progress.percent_complete, operation)
        self._emit_progress(run)

    def _make_reporter(self, run: _Run, number: int, step: StepDefinition):
        def report(percent: int, detail: Optional[str] = None):
            if run.finalized:
                return
            run.tracker.update_progress(number, percent, detail)
            self._update_progress(run, number, step.description, detail=detail)
        return report

    async def _run_pipeline(self, run: _Run, pipeline: List[StepDefinition]) -> PipelineStatus:
        ctx = RunContext(
            config=run.config,
            disk=self.disk,
            boot=self.boot,
            wsl=self.wsl,
            vm=self.vm,
            settings=self.settings,
        )

        for number, step in enumerate(pipeline, 1):
            if run.cancel_event.is_set():
                logger.info("Cancellation observed before step %s (%s)", number, step.name)
                return PipelineStatus.CANCELLED

            run.tracker.start(number)
            self._update_progress(run, number, step.description, percent=step.percent)

            ctx.report = self._make_reporter(run, number, step)
            result = await self._execute_step(number, step, ctx)

            if run.finalized:
                # Cancelled while the step was in flight; record silently
                self._record_step(run, number, result)
                return PipelineStatus.CANCELLED

            self._record_step(run, number, result)
            next_percent = pipeline[number].percent if number < len(pipeline) else 100
            if result.success:
                self._update_progress(
                    run, number, step.description, percent=next_percent, detail=result.message
                )
            else:
                run.last_error = result.message
                self._update_progress(run, number, step.description, detail=result.message)
                return PipelineStatus.FAILED

        return PipelineStatus.SUCCEEDED

    async def _execute_step(
        self, number: int, step: StepDefinition, ctx: RunContext
    ) -> StepResult:
        logger.debug("Running step %s (%s)", number, step.name)
        try:
            return await step.handler(ctx)
        except DeployerError as e:
            logger.error("Step %s (%s) failed: %s", number, step.name, e.message, exc_info=True)
            return StepResult.failed(e.message)
        except Exception as e:
            error = StepExecutionError(
                f"{step.description} failed: {e}", step=number, details=type(e).__name__
            )
            logger.error("%s", error.message, exc_info=True)
            return StepResult.failed(error.message)

    def _record_step(self, run: _Run, number: int, result: StepResult):
        if result.success:
            run.tracker.complete(number, result.message)
        else:
            logger.error("Step %s failed: %s", number, result.message)
            run.tracker.fail(number, result.message)

    def _finalize(
        self, run: _Run, success: bool, message: str, cancelled: bool = False
    ) -> bool:
        """Close the run. Only the first call for a run has any effect."""
        if run.finalized:
            return False
        run.finalized = True
        run.cancelled = cancelled

        progress = run.progress
        progress.is_completed = True
        progress.is_successful = success
        progress.current_operation = message
        progress.detailed_status = message
        progress.error_message = None if success else message
        if success:
            progress.percent_complete = 100
            run.tracker.skip_pending("Not required")
        elif any(step.status == StepStatus.FAILED for step in run.tracker):
            run.tracker.skip_pending("Not run after an earlier failure")

        # A stale run finishing after a newer start() must not touch the state
        if run is self._run:
            if cancelled:
                self._state = RunState.CANCELLED
            else:
                self._state = RunState.COMPLETED_SUCCESS if success else RunState.COMPLETED_FAILURE

        if success:
            logger.info("Installation finished: success - %s", message)
        else:
            logger.warning("Installation finished: %s - %s",
                           "cancelled" if cancelled else "failure", message)

        self._emit_progress(run)
        self._emit_completed(InstallationOutcome(
            success=success,
            message=message,
            progress=progress.snapshot(),
            steps=run.tracker.snapshot(),
            cancelled=cancelled,
        ))
        return True
