"""Goal records, plan nodes, and the LangGraph planning state."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class GoalPhase(StrEnum):
    """Legacy linear workflow field (``Goal.status``)."""
    PLANNING = "planning"
    TESTING = "testing"
    IMPLEMENTING = "implementing"
    VERIFYING = "verifying"
    READY = "ready"
    FAILED = "failed"


class GoalLifecycleState(StrEnum):
    """Richer workflow field (``Goal.lifecycle_state``) used by progress views."""
    DRAFT = "draft"
    PLANNED = "planned"
    EXECUTING = "executing"
    NEEDS_USER_INPUT = "needs-user-input"
    VERIFYING = "verifying"
    READY_TO_MERGE = "ready-to-merge"
    MERGED = "merged"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskType(StrEnum):
    CLARIFICATION = "clarification"
    ANALYSIS = "analysis"
    TEST_RUN = "test-run"


class TaskStatus(StrEnum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _coerce_id(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


# ── Metadata ──────────────────────────────────────────────────────────

# Wire keys (camelCase, as stored) → field names.
_METADATA_KEYS: dict[str, str] = {
    "acceptanceCriteria": "acceptance_criteria",
    "acceptance_criteria": "acceptance_criteria",
    "clarifyingQuestions": "clarifying_questions",
    "clarifying_questions": "clarifying_questions",
    "styleOnly": "style_only",
    "style_only": "style_only",
}

# Caller flags that force the clarifying-question list to empty.
SUPPRESSION_FLAGS = ("suppressClarifyingQuestions", "testFailure", "uncoveredLines")


class GoalMetadata(BaseModel):
    """Well-known metadata fields plus an open ``extra`` map for caller keys."""

    acceptance_criteria: list[str] = Field(default_factory=list)
    clarifying_questions: list[str] = Field(default_factory=list)
    style_only: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | GoalMetadata | None) -> GoalMetadata:
        """Build from a stored/caller map.  Only keys present are marked as set."""
        if isinstance(data, GoalMetadata):
            return data.model_copy(deep=True)
        if not data:
            return cls()
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            field_name = _METADATA_KEYS.get(key)
            if field_name is None:
                extra[key] = value
            elif field_name == "style_only":
                known[field_name] = bool(value)
            else:
                if isinstance(value, str):
                    value = [value] if value.strip() else []
                known[field_name] = [v for v in (value or []) if isinstance(v, str)]
        if extra:
            known["extra"] = extra
        return cls(**known)

    def to_mapping(self) -> dict[str, Any]:
        """Serialise to the camelCase open map the goal store persists."""
        data: dict[str, Any] = dict(self.extra)
        if self.acceptance_criteria:
            data["acceptanceCriteria"] = list(self.acceptance_criteria)
        if self.clarifying_questions:
            data["clarifyingQuestions"] = list(self.clarifying_questions)
        if self.style_only:
            data["styleOnly"] = True
        return data

    @property
    def suppresses_clarifying_questions(self) -> bool:
        return any(bool(self.extra.get(flag)) for flag in SUPPRESSION_FLAGS)


# ── Goals & tasks ─────────────────────────────────────────────────────

class Goal(BaseModel):
    """A unit of requested work, one node of a per-project forest."""

    id: str
    project_id: str
    parent_goal_id: str | None = None
    prompt: str
    title: str = ""
    status: GoalPhase = GoalPhase.PLANNING
    lifecycle_state: GoalLifecycleState = GoalLifecycleState.DRAFT
    metadata: GoalMetadata = Field(default_factory=GoalMetadata)
    branch_name: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @field_validator("id", "project_id", "parent_goal_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _coerce_id(value)


class GoalTreeNode(Goal):
    children: list[GoalTreeNode] = Field(default_factory=list)


class GoalTask(BaseModel):
    """A sub-step attached to a goal (clarification, analysis, test-run)."""

    id: str
    goal_id: str
    type: str
    title: str
    status: str = TaskStatus.PENDING
    payload: Any = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @field_validator("id", "goal_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _coerce_id(value)


# ── Planning ──────────────────────────────────────────────────────────

class PlanNode(BaseModel):
    """Ephemeral tree node between LLM-response recovery and persistence."""
    prompt: str
    title: str
    children: list[PlanNode] = Field(default_factory=list)


class GoalWithTasks(BaseModel):
    goal: Goal
    tasks: list[GoalTask] = Field(default_factory=list)


class GoalTree(BaseModel):
    parent: Goal
    children: list[GoalTreeNode] = Field(default_factory=list)


class PlanResult(GoalTree):
    questions: list[str] = Field(default_factory=list)


class PlanningState(BaseModel):
    """Shared state passed between the planning graph nodes."""

    # ── Request ───────────────────────────────────────────────────────
    project_id: str
    prompt: str
    goal_id: str | None = None
    metadata_overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)

    # ── Resolved parent / idempotent re-entry ─────────────────────────
    parent: Goal | None = None
    existing_children: list[GoalTreeNode] = Field(default_factory=list)

    # ── Context ───────────────────────────────────────────────────────
    style_only: bool = False
    project_context: str = ""
    project_snapshot: str = ""

    # ── Plan ──────────────────────────────────────────────────────────
    parent_title: str = ""
    questions: list[str] = Field(default_factory=list)
    plan: list[PlanNode] = Field(default_factory=list)
    used_fallback_plan: bool = False

    # ── Result ────────────────────────────────────────────────────────
    children: list[GoalTreeNode] = Field(default_factory=list)
    stop_reason: str = ""   # "" | "existing_children" | "cancelled"


GoalTreeNode.model_rebuild()
PlanNode.model_rebuild()
