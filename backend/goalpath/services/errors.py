"""Domain errors raised by the plan engine."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID


class PlanError(Exception):
    """Base class for every plan engine failure."""


class InvalidRangeError(PlanError):
    """The requested planning window ends before it starts."""


class PlanValidationError(PlanError):
    """A candidate plan broke a structural rule that cannot be repaired."""

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "invalid plan")


class GenerationFailed(PlanError):
    """The language model could not produce a usable plan."""

    def __init__(self, reason: str, *, cause: Optional[BaseException] = None):
        self.reason = reason
        self.cause = cause
        super().__init__(reason)


class PlanAlreadyExists(PlanError):
    """The goal already has yearly objectives."""

    def __init__(self, goal_id: UUID):
        self.goal_id = goal_id
        super().__init__(f"Goal {goal_id} already has a plan; delete the existing plan first")


class PersistenceError(PlanError):
    """Storing the plan failed and the transaction was rolled back."""


class PlanInvariantError(PlanError):
    """A manual edit would break the plan hierarchy rules."""


class PlanConflictError(PlanInvariantError):
    """A manual edit collides with an objective that already exists."""


class KeyResultUpdateError(PlanError):
    """A key result value change was rejected."""


class LanguageModelError(Exception):
    """The language-model service errored or timed out."""
