"""Goal intake: owners, due-date horizon, listing and edits."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from goalpath.core.config import settings
from goalpath.db.models.goal import Goal
from goalpath.db.models.user import User
from goalpath.services import plan_repository
from goalpath.services.errors import PlanInvariantError

logger = logging.getLogger(__name__)

GOAL_STATUSES = ("active", "completed", "archived", "paused")


def get_or_create_owner(db: Session, user_id: UUID) -> User:
    """Return the goal owner, inserting the user row on first contact."""
    user = db.get(User, user_id)
    if user:
        return user

    user = User(id=user_id)
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        user = db.get(User, user_id)
        if user is None:
            raise
    return user


def earliest_due_date(today: date, years: Optional[int] = None) -> date:
    """``today`` moved forward by the minimum horizon; Feb 29 falls back to Feb 28."""
    years = settings.min_goal_horizon_years if years is None else years
    try:
        return today.replace(year=today.year + years)
    except ValueError:
        return today.replace(year=today.year + years, day=28)


def create_goal(
    db: Session,
    user_id: UUID,
    title: str,
    due_date: date,
    description: Optional[str] = None,
    today: Optional[date] = None,
) -> Goal:
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise PlanInvariantError("title must not be empty")
    minimum = earliest_due_date(today or date.today())
    if due_date < minimum:
        raise PlanInvariantError(f"due date must be on or after {minimum.isoformat()}")

    get_or_create_owner(db, user_id)
    goal = Goal(
        user_id=user_id,
        title=cleaned_title,
        description=(description or "").strip() or None,
        due_date=due_date,
        status="active",
    )
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return goal


def list_goals(db: Session, user_id: UUID) -> List[Goal]:
    stmt = select(Goal).where(Goal.user_id == user_id).order_by(Goal.created_at, Goal.id)
    return list(db.execute(stmt).scalars())


def get_goal(db: Session, goal_id: UUID, user_id: Optional[UUID] = None) -> Goal:
    """Load a goal, optionally scoped to its owner; a foreign goal reads as missing."""
    goal = db.get(Goal, goal_id)
    if goal is None or (user_id is not None and goal.user_id != user_id):
        raise LookupError(f"Goal {goal_id} not found")
    return goal


def update_goal(
    db: Session,
    goal_id: UUID,
    user_id: UUID,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    due_date: Optional[date] = None,
    status: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Goal:
    """Edit goal fields in place.

    A new due date must keep the minimum horizon counted from when the goal
    was created. An empty description clears it.
    """
    goal = get_goal(db, goal_id, user_id)
    changes: Dict[str, Any] = {}
    if title is not None:
        cleaned_title = title.strip()
        if not cleaned_title:
            raise PlanInvariantError("title must not be empty")
        changes["title"] = cleaned_title
    if description is not None:
        changes["description"] = description.strip() or None
    if due_date is not None:
        created_on = goal.created_at.date() if goal.created_at else date.today()
        minimum = earliest_due_date(created_on)
        if due_date < minimum:
            raise PlanInvariantError(f"due date must be on or after {minimum.isoformat()}")
        changes["due_date"] = due_date
    if status is not None:
        if status not in GOAL_STATUSES:
            raise PlanInvariantError(f"status must be one of {', '.join(GOAL_STATUSES)}")
        changes["status"] = status
    if not changes:
        raise PlanInvariantError("no changes requested")

    for field_name, value in changes.items():
        setattr(goal, field_name, value)
    audit = {key: value.isoformat() if isinstance(value, date) else value for key, value in changes.items()}
    plan_repository.record_action(db, goal.id, "goal_updated", audit, request_id)
    db.commit()
    db.refresh(goal)
    return goal


def delete_goal(db: Session, goal_id: UUID, user_id: UUID) -> None:
    """Remove a goal together with its whole plan and audit trail."""
    goal = get_goal(db, goal_id, user_id)
    db.delete(goal)
    db.commit()
    logger.info("Goal %s deleted", goal_id)
