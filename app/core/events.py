"""Event bus for goal activity: decouples the orchestrator from any UI layer.

The orchestrator calls the ``emit_*`` helpers to publish structured events.
Front-ends (progress views, audit logs) subscribe via `subscribe()`.

Event categories:
  goal_created  a goal was persisted (root or child)
  plan          a plan was normalized and is about to be persisted
  status        planning progress (context gathered, retry, fallback)
  transition    a goal changed phase or lifecycle state
  test_run      an automated test run finished
  error         something went wrong
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from app.core.logging import get_logger

logger = get_logger("core.events")


class EventCategory(str, Enum):
    GOAL_CREATED = "goal_created"
    PLAN = "plan"
    STATUS = "status"
    TRANSITION = "transition"
    TEST_RUN = "test_run"
    ERROR = "error"


@dataclass
class WorkflowEvent:
    """A single event emitted during goal orchestration."""
    category: EventCategory
    agent: str                      # "orchestrator", "planner", "clarifier", "tester"
    title: str                      # short human-readable headline
    detail: str = ""
    metadata: dict = field(default_factory=dict)  # goal_id, project_id, phase, ...
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "agent": self.agent,
            "title": self.title,
            "detail": self.detail,
            "metadata": self.metadata,
            "ts": self.timestamp,
        }


# ── Singleton event bus ──────────────────────────────────────────────────

_listeners: list[Callable[[WorkflowEvent], Any]] = []
_history: deque[WorkflowEvent] = deque(maxlen=1000)


def emit(event: WorkflowEvent) -> None:
    """Emit an event synchronously. Listener failures are logged, never raised."""
    _history.append(event)
    logger.debug("EVENT | %s | %s | %s", event.category.value, event.agent, event.title)

    for listener in list(_listeners):
        try:
            listener(event)
        except Exception as e:
            logger.warning("Event listener error: %s", e)


def subscribe(listener: Callable[[WorkflowEvent], Any]) -> None:
    """Register a synchronous event listener."""
    _listeners.append(listener)


def unsubscribe(listener: Callable[[WorkflowEvent], Any]) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def get_history(limit: int = 200, goal_id: str | None = None) -> list[dict]:
    """Recent events as dicts, optionally only those about *goal_id*."""
    items = [e for e in _history if goal_id is None or e.metadata.get("goal_id") == goal_id]
    return [e.to_dict() for e in items[-limit:]]


def clear_listeners() -> None:
    """Remove all listeners and history (useful for testing)."""
    _listeners.clear()
    _history.clear()


# ── Convenience emitters (called from the orchestrator) ──────────────────

def emit_goal_created(goal_id: str, project_id: str, title: str, parent_goal_id: str | None = None) -> None:
    emit(WorkflowEvent(
        category=EventCategory.GOAL_CREATED,
        agent="orchestrator",
        title=f"🎯 Goal created: {title}",
        metadata={"goal_id": goal_id, "project_id": project_id, "parent_goal_id": parent_goal_id},
    ))


def emit_plan(agent: str, plan_text: str, items_count: int = 0, **extra) -> None:
    emit(WorkflowEvent(
        category=EventCategory.PLAN,
        agent=agent,
        title=f"📋 Plan created: {items_count} goals",
        detail=plan_text,
        metadata={"items_count": items_count, **extra},
    ))


def emit_status(agent: str, message: str, goal_id: str = "", **extra) -> None:
    emit(WorkflowEvent(
        category=EventCategory.STATUS,
        agent=agent,
        title=message,
        metadata={"goal_id": goal_id, **extra},
    ))


def emit_transition(goal_id: str, field_name: str, from_value: str, to_value: str) -> None:
    emit(WorkflowEvent(
        category=EventCategory.TRANSITION,
        agent="orchestrator",
        title=f"🔀 {field_name}: {from_value} → {to_value}",
        metadata={"goal_id": goal_id, "field": field_name, "from": from_value, "to": to_value},
    ))


def emit_test_run(goal_id: str, status: str, summary: str = "") -> None:
    icon = "✅" if status == "passed" else "❌"
    emit(WorkflowEvent(
        category=EventCategory.TEST_RUN,
        agent="tester",
        title=f"{icon} Test run {status}",
        detail=summary,
        metadata={"goal_id": goal_id, "status": status},
    ))


def emit_error(agent: str, error: str, **extra) -> None:
    emit(WorkflowEvent(
        category=EventCategory.ERROR,
        agent=agent,
        title=f"❌ Error in {agent}",
        detail=error,
        metadata=dict(extra),
    ))
