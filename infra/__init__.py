"""goalsmith infrastructure layer: collaborator contracts and reference implementations.

Everything the orchestrator talks to outside its own process goes through
this package: goal persistence, the job runner, git, and project context.

Quick start::

    from infra import InMemoryGoalStore
    from app.core.orchestrator import GoalOrchestrator

    orchestrator = GoalOrchestrator(InMemoryGoalStore())
    result = orchestrator.plan_goal_from_prompt("shop", "Add a login page with validation")
"""

from infra.git import GitClient
from infra.goal_store import DeleteResult, GoalStore, InMemoryGoalStore, build_branch_name
from infra.jobs import Job, JobLogEntry, JobRequest, JobRunner, JobStatus
from infra.project_context import (
    FileSystemProjectContextProvider,
    ProjectContextProvider,
    ProjectRecord,
)

__all__ = [
    # Goal persistence
    "GoalStore",
    "InMemoryGoalStore",
    "DeleteResult",
    "build_branch_name",
    # Jobs
    "JobRunner",
    "JobRequest",
    "Job",
    "JobLogEntry",
    "JobStatus",
    # Git
    "GitClient",
    # Project context
    "ProjectContextProvider",
    "FileSystemProjectContextProvider",
    "ProjectRecord",
]
