"""Manual creation, editing and removal of objectives and key results."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from goalpath.db.models.goal import Goal
from goalpath.db.models.key_result import KeyResult
from goalpath.db.models.quarterly_objective import QuarterlyObjective
from goalpath.db.models.yearly_objective import YearlyObjective
from goalpath.services import plan_repository
from goalpath.services.errors import PersistenceError, PlanConflictError, PlanInvariantError
from goalpath.services.key_result_update import owning_goal_id
from goalpath.services.plan_schema import MAX_METRIC_VALUE, MIN_TARGET_VALUE
from goalpath.services.progress_service import refresh_progress_snapshot

logger = logging.getLogger(__name__)

MIN_TARGET_YEAR = 2000
MAX_TARGET_YEAR = 2100

T = TypeVar("T")


def create_yearly_objective(
    db: Session,
    goal_id: UUID,
    year: int,
    objective: str,
    request_id: Optional[str] = None,
) -> YearlyObjective:
    if db.get(Goal, goal_id) is None:
        raise LookupError(f"Goal {goal_id} not found")
    if not MIN_TARGET_YEAR <= year <= MAX_TARGET_YEAR:
        raise PlanInvariantError(f"target year must be between {MIN_TARGET_YEAR} and {MAX_TARGET_YEAR}")
    text = _require_text(objective, "objective")
    existing = db.execute(
        select(YearlyObjective.id).where(YearlyObjective.goal_id == goal_id, YearlyObjective.target_year == year)
    ).first()
    if existing:
        raise PlanConflictError(f"goal already has a yearly objective for {year}")

    def _write() -> YearlyObjective:
        sort_order = _count(db, select(func.count(YearlyObjective.id)).where(YearlyObjective.goal_id == goal_id))
        yearly = plan_repository.insert_yearly_objective(db, goal_id, year, text, sort_order=sort_order)
        plan_repository.record_action(db, goal_id, "yearly_objective_created", {"year": year}, request_id)
        refresh_progress_snapshot(db, goal_id, request_id)
        return yearly

    return _commit(db, _write, f"goal already has a yearly objective for {year}")


def create_quarterly_objective(
    db: Session,
    yearly_objective_id: UUID,
    quarter: int,
    objective: str,
    year: Optional[int] = None,
    request_id: Optional[str] = None,
) -> QuarterlyObjective:
    yearly = db.get(YearlyObjective, yearly_objective_id)
    if yearly is None:
        raise LookupError(f"Yearly objective {yearly_objective_id} not found")
    if not 1 <= quarter <= 4:
        raise PlanInvariantError("quarter must be between 1 and 4")
    if year is not None and year != yearly.target_year:
        raise PlanInvariantError(f"quarterly objective year {year} does not match its yearly objective ({yearly.target_year})")
    text = _require_text(objective, "objective")
    existing = db.execute(
        select(QuarterlyObjective.id).where(
            QuarterlyObjective.yearly_objective_id == yearly.id,
            QuarterlyObjective.target_quarter == quarter,
        )
    ).first()
    if existing:
        raise PlanConflictError(f"{yearly.target_year} Q{quarter} already has an objective")

    def _write() -> QuarterlyObjective:
        quarterly = plan_repository.insert_quarterly_objective(db, yearly, quarter, text, sort_order=quarter - 1)
        plan_repository.record_action(
            db,
            yearly.goal_id,
            "quarterly_objective_created",
            {"year": yearly.target_year, "quarter": quarter},
            request_id,
        )
        refresh_progress_snapshot(db, yearly.goal_id, request_id)
        return quarterly

    return _commit(db, _write, f"{yearly.target_year} Q{quarter} already has an objective")


def create_key_result(
    db: Session,
    *,
    description: str,
    target_value: float,
    current_value: float = 0,
    unit: Optional[str] = None,
    yearly_objective_id: Optional[UUID] = None,
    quarterly_objective_id: Optional[UUID] = None,
    request_id: Optional[str] = None,
) -> KeyResult:
    """Attach a key result to exactly one objective and refresh progress."""
    if (yearly_objective_id is None) == (quarterly_objective_id is None):
        raise PlanInvariantError("a key result needs exactly one parent objective")
    text = _require_text(description, "description")
    if target_value is None or not target_value > 0:
        raise PlanInvariantError("target_value must be greater than 0")
    if target_value < MIN_TARGET_VALUE:
        raise PlanInvariantError(f"target_value must be at least {MIN_TARGET_VALUE}")
    target = min(float(target_value), float(MAX_METRIC_VALUE))
    current = min(max(float(current_value or 0), 0.0), float(MAX_METRIC_VALUE))

    if yearly_objective_id is not None:
        parent = db.get(YearlyObjective, yearly_objective_id)
        sibling_filter = KeyResult.yearly_objective_id == yearly_objective_id
    else:
        parent = db.get(QuarterlyObjective, quarterly_objective_id)
        sibling_filter = KeyResult.quarterly_objective_id == quarterly_objective_id
    if parent is None:
        raise LookupError("Parent objective not found")

    def _write() -> KeyResult:
        sort_order = _count(db, select(func.count(KeyResult.id)).where(sibling_filter))
        key_result = plan_repository.insert_key_result(
            db,
            description=text,
            target_value=target,
            current_value=current,
            unit=unit,
            sort_order=sort_order,
            yearly_objective_id=yearly_objective_id,
            quarterly_objective_id=quarterly_objective_id,
        )
        goal_id = owning_goal_id(db, key_result)
        plan_repository.record_action(db, goal_id, "key_result_created", {"key_result_id": str(key_result.id)}, request_id)
        refresh_progress_snapshot(db, goal_id, request_id)
        return key_result

    return _commit(db, _write, "key result breaks a storage constraint")


def update_yearly_objective(
    db: Session,
    yearly_objective_id: UUID,
    objective: Optional[str] = None,
    year: Optional[int] = None,
    request_id: Optional[str] = None,
) -> YearlyObjective:
    """Rename a yearly objective or move it to another year.

    Moving the year carries its quarterly objectives along.
    """
    yearly = db.get(YearlyObjective, yearly_objective_id)
    if yearly is None:
        raise LookupError(f"Yearly objective {yearly_objective_id} not found")
    if objective is None and year is None:
        raise PlanInvariantError("no changes requested")
    changes: Dict[str, Any] = {}
    if objective is not None:
        changes["objective"] = _require_text(objective, "objective")
    if year is not None and year != yearly.target_year:
        if not MIN_TARGET_YEAR <= year <= MAX_TARGET_YEAR:
            raise PlanInvariantError(f"target year must be between {MIN_TARGET_YEAR} and {MAX_TARGET_YEAR}")
        clash = db.execute(
            select(YearlyObjective.id).where(
                YearlyObjective.goal_id == yearly.goal_id,
                YearlyObjective.target_year == year,
                YearlyObjective.id != yearly.id,
            )
        ).first()
        if clash:
            raise PlanConflictError(f"goal already has a yearly objective for {year}")
        changes["target_year"] = year

    def _write() -> YearlyObjective:
        if "objective" in changes:
            yearly.objective = changes["objective"]
        if "target_year" in changes:
            yearly.target_year = changes["target_year"]
            for quarterly in yearly.quarterly_objectives:
                quarterly.target_year = changes["target_year"]
        db.flush()
        plan_repository.record_action(
            db,
            yearly.goal_id,
            "yearly_objective_updated",
            {"yearly_objective_id": str(yearly.id), **changes},
            request_id,
        )
        return yearly

    return _commit(db, _write, f"goal already has a yearly objective for {year}")


def update_quarterly_objective(
    db: Session,
    quarterly_objective_id: UUID,
    objective: Optional[str] = None,
    quarter: Optional[int] = None,
    request_id: Optional[str] = None,
) -> QuarterlyObjective:
    quarterly = db.get(QuarterlyObjective, quarterly_objective_id)
    if quarterly is None:
        raise LookupError(f"Quarterly objective {quarterly_objective_id} not found")
    if objective is None and quarter is None:
        raise PlanInvariantError("no changes requested")
    changes: Dict[str, Any] = {}
    if objective is not None:
        changes["objective"] = _require_text(objective, "objective")
    if quarter is not None and quarter != quarterly.target_quarter:
        if not 1 <= quarter <= 4:
            raise PlanInvariantError("quarter must be between 1 and 4")
        clash = db.execute(
            select(QuarterlyObjective.id).where(
                QuarterlyObjective.yearly_objective_id == quarterly.yearly_objective_id,
                QuarterlyObjective.target_quarter == quarter,
                QuarterlyObjective.id != quarterly.id,
            )
        ).first()
        if clash:
            raise PlanConflictError(f"{quarterly.target_year} Q{quarter} already has an objective")
        changes["target_quarter"] = quarter

    goal_id = quarterly.yearly_objective.goal_id

    def _write() -> QuarterlyObjective:
        if "objective" in changes:
            quarterly.objective = changes["objective"]
        if "target_quarter" in changes:
            quarterly.target_quarter = changes["target_quarter"]
            quarterly.sort_order = changes["target_quarter"] - 1
        db.flush()
        plan_repository.record_action(
            db,
            goal_id,
            "quarterly_objective_updated",
            {"quarterly_objective_id": str(quarterly.id), **changes},
            request_id,
        )
        return quarterly

    return _commit(db, _write, f"{quarterly.target_year} Q{quarter} already has an objective")


def delete_yearly_objective(db: Session, yearly_objective_id: UUID, request_id: Optional[str] = None) -> None:
    yearly = db.get(YearlyObjective, yearly_objective_id)
    if yearly is None:
        raise LookupError(f"Yearly objective {yearly_objective_id} not found")
    goal_id = yearly.goal_id
    _delete(db, yearly, goal_id, "yearly_objective_deleted", {"year": yearly.target_year}, request_id)


def delete_quarterly_objective(db: Session, quarterly_objective_id: UUID, request_id: Optional[str] = None) -> None:
    quarterly = db.get(QuarterlyObjective, quarterly_objective_id)
    if quarterly is None:
        raise LookupError(f"Quarterly objective {quarterly_objective_id} not found")
    goal_id = quarterly.yearly_objective.goal_id
    payload = {"year": quarterly.target_year, "quarter": quarterly.target_quarter}
    _delete(db, quarterly, goal_id, "quarterly_objective_deleted", payload, request_id)


def delete_key_result(db: Session, key_result_id: UUID, request_id: Optional[str] = None) -> None:
    key_result = db.get(KeyResult, key_result_id)
    if key_result is None:
        raise LookupError(f"Key result {key_result_id} not found")
    goal_id = owning_goal_id(db, key_result)
    _delete(db, key_result, goal_id, "key_result_deleted", {"key_result_id": str(key_result_id)}, request_id)


def _delete(db: Session, row, goal_id: UUID, action_type: str, payload: dict, request_id: Optional[str]) -> None:
    def _write() -> None:
        db.delete(row)
        db.flush()
        plan_repository.record_action(db, goal_id, action_type, payload, request_id)
        refresh_progress_snapshot(db, goal_id, request_id)

    _commit(db, _write, "delete violates a storage constraint")


def _commit(db: Session, write: Callable[[], T], conflict_message: str) -> T:
    try:
        result = write()
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise PlanConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Manual plan edit failed")
        raise PersistenceError("Failed to store plan change") from exc
    if result is not None:
        db.refresh(result)
    return result


def _count(db: Session, stmt) -> int:
    return int(db.execute(stmt).scalar_one())


def _require_text(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise PlanInvariantError(f"{field_name} must not be empty")
    return cleaned
