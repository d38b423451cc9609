"""Tests for automated test runs recorded on goals."""

import pytest

from app.core import events
from app.core.errors import GoalError, GoalNotFoundError, GoalValidationError
from app.core.state import TaskStatus, TaskType
from infra.jobs import Job, JobLogEntry, JobStatus


class FakeJobRunner:
    def __init__(self, status=JobStatus.SUCCEEDED, lines=()):
        self.status = status
        self.lines = list(lines)
        self.requests = []

    def start_job(self, request):
        self.requests.append(request)
        return Job(
            id="job-1",
            project_id=request.project_id,
            type=request.type,
            command=request.command,
            args=request.args,
            cwd=request.cwd,
            status=JobStatus.RUNNING,
        )

    def wait_for_job_completion(self, job_id):
        return Job(
            id=job_id,
            project_id="p1",
            type="test-run",
            command="npm",
            status=self.status,
            exit_code=0 if self.status == JobStatus.SUCCEEDED else 1,
            logs=[JobLogEntry(stream=stream, message=message) for stream, message in self.lines],
        )


@pytest.fixture
def goal(make_orchestrator):
    orch, _ = make_orchestrator()
    return orch.create_goal_from_prompt("p1", "Build a dashboard").goal


class TestRunTestsForGoal:
    def test_passing_run(self, make_orchestrator, goal):
        runner = FakeJobRunner(lines=[("stdout", "12 passed"), ("stderr", "warning: slow test")])
        orch, _ = make_orchestrator(job_runner=runner)

        task = orch.run_tests_for_goal(goal.id, "/srv/shop", "npm", ["test"], {"CI": "1"})

        assert task.type == TaskType.TEST_RUN
        assert task.title == "Automated test run"
        assert task.status == TaskStatus.PASSED
        assert task.metadata == {
            "summary": "Tests passed",
            "logs": ["stdout: 12 passed", "stderr: warning: slow test"],
        }

        request = runner.requests[0]
        assert request.project_id == "p1"
        assert request.type == "test-run"
        assert request.display_name == "Agent test run"
        assert request.args == ["test"]
        assert request.env == {"CI": "1"}
        assert request.cwd == "/srv/shop"

    @pytest.mark.parametrize("status", [JobStatus.FAILED, JobStatus.CANCELLED])
    def test_non_success_is_failure(self, make_orchestrator, goal, status):
        orch, _ = make_orchestrator(job_runner=FakeJobRunner(status=status))
        task = orch.run_tests_for_goal(goal.id, "/srv/shop", "npm")
        assert task.status == TaskStatus.FAILED
        assert task.metadata["summary"] == "Tests failed"

    def test_log_excerpt_keeps_tail(self, make_orchestrator, goal, isolated_settings):
        isolated_settings.test_log_excerpt_lines = 2
        runner = FakeJobRunner(lines=[("stdout", f"line {i}") for i in range(5)])
        orch, _ = make_orchestrator(job_runner=runner)
        task = orch.run_tests_for_goal(goal.id, "/srv/shop", "npm")
        assert task.metadata["logs"] == ["stdout: line 3", "stdout: line 4"]

    def test_task_is_attached_to_goal(self, make_orchestrator, goal):
        orch, _ = make_orchestrator(job_runner=FakeJobRunner())
        orch.run_tests_for_goal(goal.id, "/srv/shop", "npm")
        tasks = orch.get_goal_with_tasks(goal.id).tasks
        assert [t.type for t in tasks] == [TaskType.ANALYSIS, TaskType.TEST_RUN]

    @pytest.mark.parametrize("goal_id, cwd, command, message", [
        ("", "/srv/shop", "npm", "goal_id is required"),
        ("1", "", "npm", "cwd and command are required to run tests"),
        ("1", "/srv/shop", "", "cwd and command are required to run tests"),
    ])
    def test_validation(self, make_orchestrator, goal_id, cwd, command, message):
        runner = FakeJobRunner()
        orch, _ = make_orchestrator(job_runner=runner)
        with pytest.raises(GoalValidationError, match=message):
            orch.run_tests_for_goal(goal_id, cwd, command)
        assert runner.requests == []

    def test_missing_goal(self, make_orchestrator):
        orch, _ = make_orchestrator(job_runner=FakeJobRunner())
        with pytest.raises(GoalNotFoundError):
            orch.run_tests_for_goal("999", "/srv/shop", "npm")

    def test_no_runner(self, make_orchestrator, goal):
        orch, _ = make_orchestrator()
        with pytest.raises(GoalError, match="No job runner configured"):
            orch.run_tests_for_goal(goal.id, "/srv/shop", "npm")


class TestRecordTestRun:
    def test_records_result(self, make_orchestrator, goal):
        orch, _ = make_orchestrator()
        task = orch.record_test_run_for_goal(goal.id, "passed", "", ["ok"])
        assert task.status == "passed"
        assert task.payload is None
        assert task.metadata == {"summary": None, "logs": ["ok"]}

    def test_emits_event(self, make_orchestrator, goal):
        orch, _ = make_orchestrator()
        received = []
        events.subscribe(received.append)
        orch.record_test_run_for_goal(goal.id, "failed", "2 failing")

        assert received[0].category == events.EventCategory.TEST_RUN
        assert received[0].metadata == {"goal_id": goal.id, "status": "failed"}
        assert received[0].detail == "2 failing"

    def test_validation(self, make_orchestrator, goal):
        orch, _ = make_orchestrator()
        with pytest.raises(GoalValidationError, match="status is required"):
            orch.record_test_run_for_goal(goal.id, "")
        with pytest.raises(GoalNotFoundError):
            orch.record_test_run_for_goal("999", "passed")


def test_orchestrator_owns_a_coordinator(make_orchestrator):
    from app.core import verification

    runner = FakeJobRunner()
    orch, _ = make_orchestrator(job_runner=runner)
    assert isinstance(orch.test_runs, verification.TestRunCoordinator)
    assert "__test__" not in vars(verification.TestRunCoordinator)
