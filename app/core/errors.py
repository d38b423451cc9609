"""Exception taxonomy for goal planning and lifecycle operations.

Every error raised by this package derives from :class:`GoalError`, so
callers can catch the whole family in one place.  Collaborator errors
(goal store, job runner, git) are never wrapped.
"""

from __future__ import annotations


class GoalError(Exception):
    """Base class for all goal planning / lifecycle errors."""


class GoalValidationError(GoalError, ValueError):
    """A required argument is missing or invalid."""


class GoalNotFoundError(GoalError, LookupError):
    """A goal (or parent goal) could not be resolved."""

    def __init__(self, message: str = "Goal not found", goal_id: str | None = None) -> None:
        super().__init__(message)
        self.goal_id = goal_id


class ProjectMismatchError(GoalError):
    """A child goal was requested under a parent from another project."""


class GoalTransitionError(GoalError):
    """Base class for phase / lifecycle-state transition failures."""


class UnknownPhaseError(GoalTransitionError):
    def __init__(self, phase: object) -> None:
        super().__init__(f"Unknown phase: {phase}")
        self.phase = phase


class InvalidPhaseTransitionError(GoalTransitionError):
    def __init__(self, from_phase: str, to_phase: str) -> None:
        super().__init__(f"Invalid phase transition: {from_phase} -> {to_phase}")
        self.from_phase = from_phase
        self.to_phase = to_phase


class UnknownGoalStateError(GoalTransitionError):
    def __init__(self, state: object) -> None:
        super().__init__(f"Unknown goal state: {state}")
        self.state = state


class InvalidGoalTransitionError(GoalTransitionError):
    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(f"Invalid goal transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class PlanningResponseError(GoalError):
    """The language model's planning reply could not be turned into a plan."""


class PlanningCancelledError(GoalError):
    """The caller cancelled planning before the plan was persisted."""


class GoalBranchError(GoalError):
    """No branch name could be resolved for a goal."""
