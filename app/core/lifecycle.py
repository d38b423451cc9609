"""Goal lifecycle state machines.

A goal carries two independent workflow fields:

- ``status``: the legacy linear *phase* (planning → testing → implementing
  → verifying → ready, with ``failed`` reachable from the middle phases)
- ``lifecycle_state``: the richer graph read by progress views

Both machines only validate; persisting the new value is the caller's job.
"""

from __future__ import annotations

from app.core.errors import (
    InvalidGoalTransitionError,
    InvalidPhaseTransitionError,
    UnknownGoalStateError,
    UnknownPhaseError,
)
from app.core.state import GoalLifecycleState, GoalPhase

P = GoalPhase
S = GoalLifecycleState

_PHASE_VALUES = frozenset(p.value for p in GoalPhase)
_STATE_VALUES = frozenset(s.value for s in GoalLifecycleState)

PHASE_TRANSITIONS: dict[GoalPhase, frozenset[GoalPhase]] = {
    P.PLANNING: frozenset({P.TESTING}),
    P.TESTING: frozenset({P.IMPLEMENTING, P.FAILED}),
    P.IMPLEMENTING: frozenset({P.VERIFYING, P.FAILED}),
    P.VERIFYING: frozenset({P.READY, P.FAILED}),
    P.READY: frozenset(),
    P.FAILED: frozenset(),
}

GOAL_STATE_TRANSITIONS: dict[GoalLifecycleState, frozenset[GoalLifecycleState]] = {
    S.DRAFT: frozenset({S.PLANNED, S.CANCELLED}),
    S.PLANNED: frozenset({S.EXECUTING, S.CANCELLED}),
    S.EXECUTING: frozenset({S.VERIFYING, S.NEEDS_USER_INPUT, S.FAILED, S.CANCELLED}),
    S.NEEDS_USER_INPUT: frozenset({S.EXECUTING, S.FAILED, S.CANCELLED}),
    S.VERIFYING: frozenset({S.READY_TO_MERGE, S.FAILED, S.CANCELLED}),
    S.READY_TO_MERGE: frozenset({S.MERGED, S.CANCELLED}),
    S.FAILED: frozenset({S.EXECUTING, S.CANCELLED}),
    S.MERGED: frozenset(),
    S.CANCELLED: frozenset(),
}


# ── Phase ─────────────────────────────────────────────────────────────

def is_goal_phase(value: object) -> bool:
    return isinstance(value, str) and value in _PHASE_VALUES


def allowed_phase_transitions(current: str | GoalPhase) -> list[GoalPhase]:
    """Successor phases of *current*; empty for unknown or terminal phases."""
    if not is_goal_phase(current):
        return []
    return sorted(PHASE_TRANSITIONS[GoalPhase(current)], key=list(GoalPhase).index)


def assert_phase_transition(current: str | GoalPhase, target: str | GoalPhase) -> GoalPhase:
    """Validate ``current -> target`` and return the target as a :class:`GoalPhase`."""
    if not is_goal_phase(target):
        raise UnknownPhaseError(target)
    if not is_goal_phase(current):
        raise UnknownPhaseError(current)
    source, destination = GoalPhase(current), GoalPhase(target)
    if destination not in PHASE_TRANSITIONS[source]:
        raise InvalidPhaseTransitionError(source.value, destination.value)
    return destination


# ── Lifecycle state ───────────────────────────────────────────────────

def is_goal_state(value: object) -> bool:
    return isinstance(value, str) and value in _STATE_VALUES


def allowed_goal_transitions(current: str | GoalLifecycleState) -> list[GoalLifecycleState]:
    if not is_goal_state(current):
        return []
    return sorted(GOAL_STATE_TRANSITIONS[GoalLifecycleState(current)], key=list(GoalLifecycleState).index)


def assert_goal_transition(
    current: str | GoalLifecycleState,
    target: str | GoalLifecycleState,
) -> GoalLifecycleState:
    """Validate ``current -> target`` for the lifecycle graph."""
    if not is_goal_state(current):
        raise UnknownGoalStateError(current)
    if not is_goal_state(target):
        raise UnknownGoalStateError(target)
    source, destination = GoalLifecycleState(current), GoalLifecycleState(target)
    if destination not in GOAL_STATE_TRANSITIONS[source]:
        raise InvalidGoalTransitionError(source.value, destination.value)
    return destination
