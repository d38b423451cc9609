"""Job runner contract and job records.

Test commands are executed by an external job runner; the orchestrator only
starts a job, blocks until it finishes, and reads its status and logs.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobLogEntry(BaseModel):
    stream: str = "stdout"
    message: str = ""
    timestamp: datetime | None = None

    def format(self) -> str:
        return f"{self.stream}: {self.message}"


class JobRequest(BaseModel):
    """Payload for :meth:`JobRunner.start_job`."""

    project_id: str
    type: str
    command: str
    args: list[str] = Field(default_factory=list)
    cwd: str
    env: dict[str, str] = Field(default_factory=dict)
    display_name: str = ""


class Job(BaseModel):
    id: str
    project_id: str
    type: str
    command: str
    args: list[str] = Field(default_factory=list)
    cwd: str = ""
    status: JobStatus = JobStatus.PENDING
    exit_code: int | None = None
    logs: list[JobLogEntry] = Field(default_factory=list)


@runtime_checkable
class JobRunner(Protocol):
    """Executes shell commands on behalf of a project."""

    def start_job(self, request: JobRequest) -> Job:
        """Start a job and return it immediately (usually ``pending``/``running``)."""
        ...

    def wait_for_job_completion(self, job_id: str) -> Job:
        """Block until the job is terminal and return its final record."""
        ...
