"""Goal store contract and a thread-safe in-memory implementation.

The orchestrator talks to durable storage exclusively through the
:class:`GoalStore` protocol.  :class:`InMemoryGoalStore` is the reference
implementation used by tests and single-process deployments.
"""

from __future__ import annotations

import itertools
import re
import threading
import uuid
from collections import deque
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from app.core.logging import get_logger
from app.core.state import (
    Goal,
    GoalLifecycleState,
    GoalMetadata,
    GoalPhase,
    GoalTask,
    TaskStatus,
)

logger = get_logger("infra.goal_store")

ARCHIVED_STATES = frozenset({
    GoalLifecycleState.READY_TO_MERGE,
    GoalLifecycleState.MERGED,
    GoalLifecycleState.CANCELLED,
})


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class DeleteResult(BaseModel):
    """Outcome of :meth:`GoalStore.delete_goal`."""

    deleted: bool
    deleted_goal_ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class GoalStore(Protocol):
    """Minimal goal / task persistence required by the orchestrator.

    All methods are synchronous.  Implementations must return fresh copies so
    callers never mutate stored state in place, and must offer
    read-your-writes consistency (the idempotency re-check relies on it).
    """

    def create_goal(
        self,
        project_id: str,
        prompt: str,
        title: str | None = None,
        parent_goal_id: str | None = None,
        metadata: GoalMetadata | None = None,
        branch_name: str | None = None,
        lifecycle_state: GoalLifecycleState = GoalLifecycleState.DRAFT,
    ) -> Goal:
        """Persist a new goal at phase ``planning`` and return it with its id."""
        ...

    def get_goal(self, goal_id: str) -> Goal | None:
        ...

    def list_goals(self, project_id: str, include_archived: bool = True) -> list[Goal]:
        """Goals of a project, newest first (``created_at`` desc, then id desc).

        With ``include_archived=False`` goals that are ready-to-merge, merged,
        cancelled, or at phase ``ready`` are left out.
        """
        ...

    def update_goal_status(self, goal_id: str, status: GoalPhase, metadata: GoalMetadata | None = None) -> Goal:
        ...

    def update_goal_lifecycle_state(
        self,
        goal_id: str,
        lifecycle_state: GoalLifecycleState,
        metadata: GoalMetadata | None = None,
    ) -> Goal:
        ...

    def delete_goal(self, goal_id: str, include_children: bool = True) -> DeleteResult:
        ...

    def create_goal_task(self, goal_id: str, type: str, title: str, payload: Any = None) -> GoalTask:
        ...

    def list_goal_tasks(self, goal_id: str) -> list[GoalTask]:
        """Tasks of a goal, oldest first."""
        ...

    def update_goal_task_status(
        self,
        task_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> GoalTask:
        ...


# ---------------------------------------------------------------------------
# Branch names
# ---------------------------------------------------------------------------

_BRANCH_STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "can", "could",
    "do", "does", "for", "from", "have", "has", "had", "how", "i", "if",
    "in", "into", "is", "it", "it's", "its", "let", "let's", "make",
    "of", "on", "or", "our", "please", "should", "so", "some", "that",
    "the", "their", "then", "there", "this", "to", "up", "we",
    "with", "would", "you", "your",
})


def build_branch_name(prompt: str) -> str:
    """``agent/<slug>-<8 hex>`` where the slug keeps the meaningful words.

    "let's have a navigation bar at the top" → ``agent/navigation-bar-top-1a2b3c4d``
    """
    words = re.sub(r"[^a-z0-9]+", " ", (prompt or "").lower()).split()
    tokens = [w for w in words if len(w) > 1 and w not in _BRANCH_STOPWORDS]
    slug = "-".join(tokens or words)[:32].strip("-")
    return f"agent/{slug or 'goal'}-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryGoalStore:
    """Dict-backed :class:`GoalStore` guarded by a single lock.

    Ids are increasing integers rendered as strings.  Concurrent writes to
    the same goal are serialised; the last write wins.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._goals: dict[str, Goal] = {}
        self._tasks: dict[str, GoalTask] = {}
        self._goal_ids = itertools.count(1)
        self._task_ids = itertools.count(1)

    # ── Goals ─────────────────────────────────────────────────────────

    def create_goal(
        self,
        project_id: str,
        prompt: str,
        title: str | None = None,
        parent_goal_id: str | None = None,
        metadata: GoalMetadata | None = None,
        branch_name: str | None = None,
        lifecycle_state: GoalLifecycleState = GoalLifecycleState.DRAFT,
    ) -> Goal:
        if not project_id:
            raise ValueError("project_id is required")
        if not prompt or not isinstance(prompt, str):
            raise ValueError("prompt is required")

        with self._lock:
            goal = Goal(
                id=str(next(self._goal_ids)),
                project_id=project_id,
                parent_goal_id=parent_goal_id,
                prompt=prompt.strip(),
                title=(title or "").strip()[:200],
                status=GoalPhase.PLANNING,
                lifecycle_state=lifecycle_state,
                metadata=GoalMetadata.from_mapping(metadata),
                branch_name=branch_name or build_branch_name(prompt),
            )
            self._goals[goal.id] = goal
            logger.debug("Stored goal %s (project=%s, parent=%s)", goal.id, project_id, parent_goal_id)
            return goal.model_copy(deep=True)

    def get_goal(self, goal_id: str) -> Goal | None:
        with self._lock:
            goal = self._goals.get(str(goal_id))
            return goal.model_copy(deep=True) if goal else None

    def list_goals(self, project_id: str, include_archived: bool = True) -> list[Goal]:
        with self._lock:
            goals = [g for g in self._goals.values() if g.project_id == str(project_id)]
        if not include_archived:
            goals = [
                g for g in goals
                if g.lifecycle_state not in ARCHIVED_STATES and g.status != GoalPhase.READY
            ]
        goals.sort(key=lambda g: (g.created_at, int(g.id)), reverse=True)
        return [g.model_copy(deep=True) for g in goals]

    def _update_goal(self, goal_id: str, **changes: Any) -> Goal:
        with self._lock:
            goal = self._goals.get(str(goal_id))
            if goal is None:
                raise KeyError(f"Goal {goal_id} does not exist")
            updated = goal.model_copy(update={**changes, "updated_at": datetime.now(UTC)}, deep=True)
            self._goals[updated.id] = updated
            return updated.model_copy(deep=True)

    def update_goal_status(self, goal_id: str, status: GoalPhase, metadata: GoalMetadata | None = None) -> Goal:
        return self._update_goal(
            goal_id, status=GoalPhase(status), metadata=GoalMetadata.from_mapping(metadata)
        )

    def update_goal_lifecycle_state(
        self,
        goal_id: str,
        lifecycle_state: GoalLifecycleState,
        metadata: GoalMetadata | None = None,
    ) -> Goal:
        return self._update_goal(
            goal_id,
            lifecycle_state=GoalLifecycleState(lifecycle_state),
            metadata=GoalMetadata.from_mapping(metadata),
        )

    def set_branch_name(self, goal_id: str, branch_name: str) -> Goal:
        return self._update_goal(goal_id, branch_name=branch_name)

    def delete_goal(self, goal_id: str, include_children: bool = True) -> DeleteResult:
        root = str(goal_id)
        with self._lock:
            if root not in self._goals:
                return DeleteResult(deleted=False)

            to_delete = [root]
            if include_children:
                queue = deque([root])
                seen = {root}
                while queue:
                    current = queue.popleft()
                    for child in self._goals.values():
                        if child.parent_goal_id == current and child.id not in seen:
                            seen.add(child.id)
                            to_delete.append(child.id)
                            queue.append(child.id)

            doomed = set(to_delete)
            for task_id in [t.id for t in self._tasks.values() if t.goal_id in doomed]:
                del self._tasks[task_id]
            for gid in to_delete:
                del self._goals[gid]

        logger.debug("Deleted goals %s", to_delete)
        return DeleteResult(deleted=True, deleted_goal_ids=to_delete)

    # ── Tasks ─────────────────────────────────────────────────────────

    def create_goal_task(self, goal_id: str, type: str, title: str, payload: Any = None) -> GoalTask:
        if not type:
            raise ValueError("type is required")
        if not title:
            raise ValueError("title is required")
        with self._lock:
            if str(goal_id) not in self._goals:
                raise KeyError(f"Goal {goal_id} does not exist")
            task = GoalTask(
                id=str(next(self._task_ids)),
                goal_id=goal_id,
                type=type,
                title=title,
                status=TaskStatus.PENDING,
                payload=payload,
            )
            self._tasks[task.id] = task
            return task.model_copy(deep=True)

    def get_goal_task(self, task_id: str) -> GoalTask | None:
        with self._lock:
            task = self._tasks.get(str(task_id))
            return task.model_copy(deep=True) if task else None

    def list_goal_tasks(self, goal_id: str) -> list[GoalTask]:
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.goal_id == str(goal_id)]
        tasks.sort(key=lambda t: (t.created_at, int(t.id)))
        return [t.model_copy(deep=True) for t in tasks]

    def update_goal_task_status(
        self,
        task_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> GoalTask:
        if not status:
            raise ValueError("status is required")
        with self._lock:
            task = self._tasks.get(str(task_id))
            if task is None:
                raise KeyError(f"Task {task_id} does not exist")
            updated = task.model_copy(
                update={"status": str(status), "metadata": metadata, "updated_at": datetime.now(UTC)},
                deep=True,
            )
            self._tasks[updated.id] = updated
            return updated.model_copy(deep=True)
