"""Tests for step tracking and progress snapshots."""

from datetime import timedelta

import pytest


class TestInstallationStep:
    """Test the step lifecycle."""

    def test_forward_lifecycle(self):
        """Test pending -> in progress -> completed."""
        from dualboot_deployer.installer.progress import InstallationStep, StepStatus

        step = InstallationStep(step_number=1, description="Preparing the partition")
        assert step.duration == timedelta(0)

        step.start()
        assert step.status == StepStatus.IN_PROGRESS
        assert step.start_time is not None
        assert step.end_time is None

        step.complete()
        assert step.status == StepStatus.COMPLETED
        assert step.progress_percentage == 100
        assert step.detailed_status == "Done"
        assert step.duration == step.end_time - step.start_time
        assert step.is_finished

    def test_fail_keeps_error(self):
        """Test a failed step carries the error text."""
        from dualboot_deployer.installer.progress import InstallationStep, StepStatus

        step = InstallationStep(step_number=3, description="Installing")
        step.start()
        step.fail("Could not install distribution Ubuntu")
        assert step.status == StepStatus.FAILED
        assert step.detailed_status == "Could not install distribution Ubuntu"

    def test_cannot_move_backwards(self):
        """Test finished steps cannot restart."""
        from dualboot_deployer.installer.exceptions import StepTransitionError
        from dualboot_deployer.installer.progress import InstallationStep

        step = InstallationStep(step_number=1, description="x")
        step.start()
        step.complete()
        with pytest.raises(StepTransitionError):
            step.start()
        with pytest.raises(StepTransitionError):
            step.fail("late")

    def test_skip_only_from_pending(self):
        """Test a running step cannot be skipped."""
        from dualboot_deployer.installer.exceptions import StepTransitionError
        from dualboot_deployer.installer.progress import InstallationStep

        step = InstallationStep(step_number=1, description="x")
        step.start()
        with pytest.raises(StepTransitionError):
            step.skip()

    def test_cannot_complete_pending(self):
        """Test completing a step that never started."""
        from dualboot_deployer.installer.exceptions import StepTransitionError
        from dualboot_deployer.installer.progress import InstallationStep

        with pytest.raises(StepTransitionError):
            InstallationStep(step_number=1, description="x").complete()

    def test_update_progress_is_monotonic(self):
        """Test step progress never decreases and is clamped."""
        from dualboot_deployer.installer.progress import InstallationStep

        step = InstallationStep(step_number=1, description="x")
        step.start()
        step.update_progress(40, "Formatting")
        step.update_progress(10)
        assert step.progress_percentage == 40
        assert step.detailed_status == "Formatting"
        step.update_progress(250)
        assert step.progress_percentage == 100


class TestStepTracker:
    """Test the ordered step list."""

    def test_initialize_all_pending(self):
        """Test initialize creates numbered pending steps."""
        from dualboot_deployer.installer.progress import StepStatus, StepTracker

        tracker = StepTracker()
        tracker.initialize(["a", "b", "c"])
        assert len(tracker) == 3
        assert [s.step_number for s in tracker] == [1, 2, 3]
        assert all(s.status == StepStatus.PENDING for s in tracker)

    def test_initialize_resets(self):
        """Test a second initialize replaces previous steps."""
        from dualboot_deployer.installer.progress import StepTracker

        tracker = StepTracker()
        tracker.initialize(["a", "b"])
        tracker.start(1)
        tracker.initialize(["c"])
        assert len(tracker) == 1
        assert tracker.get(1).description == "c"

    def test_get_out_of_range(self):
        """Test step numbers are 1-based."""
        from dualboot_deployer.installer.progress import StepTracker

        tracker = StepTracker()
        tracker.initialize(["a"])
        with pytest.raises(IndexError):
            tracker.get(0)
        with pytest.raises(IndexError):
            tracker.get(2)

    def test_skip_pending(self):
        """Test only pending steps are skipped."""
        from dualboot_deployer.installer.progress import StepStatus, StepTracker

        tracker = StepTracker()
        tracker.initialize(["a", "b", "c"])
        tracker.start(1)
        tracker.fail(1, "boom")

        assert tracker.skip_pending("Not run") == 2
        assert [s.status for s in tracker] == [
            StepStatus.FAILED, StepStatus.SKIPPED, StepStatus.SKIPPED,
        ]

    def test_snapshot_is_a_copy(self):
        """Test snapshots do not follow later changes."""
        from dualboot_deployer.installer.progress import StepStatus, StepTracker

        tracker = StepTracker()
        tracker.initialize(["a"])
        snapshot = tracker.snapshot()
        tracker.start(1)
        assert snapshot[0].status == StepStatus.PENDING


class TestInstallationProgress:
    """Test the progress record."""

    def test_idle_defaults(self):
        """Test the idle progress."""
        from dualboot_deployer.installer.progress import InstallationProgress

        progress = InstallationProgress()
        assert progress.current_operation == "No installation in progress"
        assert progress.is_completed is False
        assert progress.is_successful is False
        assert progress.error_message is None

    def test_failed_factory(self):
        """Test the terminal failed progress."""
        from dualboot_deployer.installer.progress import InstallationProgress

        progress = InstallationProgress.failed("Installation configuration is not defined")
        assert progress.is_completed is True
        assert progress.is_successful is False
        assert progress.error_message == "Installation configuration is not defined"

    def test_outcome_error_message(self):
        """Test the outcome exposes an error only on failure."""
        from dualboot_deployer.installer.progress import InstallationOutcome, InstallationProgress

        ok = InstallationOutcome(True, "done", InstallationProgress())
        failed = InstallationOutcome(False, "broken", InstallationProgress())
        assert ok.error_message is None
        assert failed.error_message == "broken"
