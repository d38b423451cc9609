"""Automated test runs for goals.

Bridges a goal to the external job runner and records the outcome as a
``test-run`` task on the goal.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from app.core.config import get_settings
from app.core.errors import GoalError, GoalNotFoundError, GoalValidationError
from app.core.events import emit_test_run
from app.core.logging import get_logger
from app.core.state import GoalTask, TaskStatus, TaskType
from infra.goal_store import GoalStore
from infra.jobs import JobRequest, JobRunner, JobStatus

logger = get_logger("core.verification")

TEST_RUN_TITLE = "Automated test run"


class TestRunCoordinator:
    """Runs a goal's test command and stores the result."""

    def __init__(self, store: GoalStore, job_runner: JobRunner | None = None) -> None:
        self._store = store
        self._job_runner = job_runner

    def record_test_run(
        self,
        goal_id: str,
        status: str,
        summary: str | None = None,
        logs: Sequence[str] | None = None,
    ) -> GoalTask:
        """Attach a finished test run to *goal_id* as a ``test-run`` task."""
        if not goal_id:
            raise GoalValidationError("goal_id is required")
        if not status:
            raise GoalValidationError("status is required")
        if self._store.get_goal(goal_id) is None:
            raise GoalNotFoundError(goal_id=goal_id)

        task = self._store.create_goal_task(goal_id, TaskType.TEST_RUN, TEST_RUN_TITLE, None)
        updated = self._store.update_goal_task_status(
            task.id,
            str(status),
            {"summary": summary or None, "logs": list(logs or [])},
        )
        emit_test_run(str(goal_id), str(status), summary or "")
        return updated

    def run_tests_for_goal(
        self,
        goal_id: str,
        cwd: str,
        command: str,
        args: Sequence[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> GoalTask:
        """Run *command* in *cwd*, wait for it, and record pass/fail."""
        if not goal_id:
            raise GoalValidationError("goal_id is required")
        if not cwd or not command:
            raise GoalValidationError("cwd and command are required to run tests")

        goal = self._store.get_goal(goal_id)
        if goal is None:
            raise GoalNotFoundError(goal_id=goal_id)
        if self._job_runner is None:
            raise GoalError("No job runner configured")

        job = self._job_runner.start_job(JobRequest(
            project_id=goal.project_id,
            type=TaskType.TEST_RUN,
            display_name="Agent test run",
            command=command,
            args=list(args or []),
            cwd=cwd,
            env=dict(env or {}),
        ))
        logger.info("Started test job %s for goal %s: %s", job.id, goal.id, command)

        completed = self._job_runner.wait_for_job_completion(job.id)
        passed = completed.status == JobStatus.SUCCEEDED
        status = TaskStatus.PASSED if passed else TaskStatus.FAILED

        lines = [entry.format() for entry in completed.logs]
        limit = get_settings().test_log_excerpt_lines
        excerpt = lines[-limit:] if limit > 0 else lines

        logger.info("Test job %s finished: %s (%d log lines)", job.id, completed.status, len(lines))
        return self.record_test_run(
            goal.id,
            status,
            "Tests passed" if passed else "Tests failed",
            excerpt,
        )
