"""SQLAlchemy storage for goal plans."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from threading import Lock
from typing import Any, Dict, Iterator, List, Optional
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from goalpath.db.models.goal import Goal
from goalpath.db.models.key_result import KeyResult
from goalpath.db.models.plan_action_log import PlanActionLog
from goalpath.db.models.quarterly_objective import QuarterlyObjective
from goalpath.db.models.yearly_objective import YearlyObjective
from goalpath.services.errors import PersistenceError, PlanAlreadyExists
from goalpath.services.plan_schema import CandidateKeyResult, PlanCandidate
from goalpath.services.progress_aggregator import (
    HierarchySnapshot,
    KeyResultSnapshot,
    ProgressReport,
    QuarterlySnapshot,
    YearlySnapshot,
    display_percentage,
    key_result_progress,
)

logger = logging.getLogger(__name__)


class _GoalLock:
    """Process-local lock for one goal plus the number of runs using it."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.users = 0


_goal_locks: Dict[UUID, _GoalLock] = {}
_goal_locks_guard = Lock()


@contextmanager
def goal_lock(db: Session, goal_id: UUID) -> Iterator[None]:
    """Serialise plan writers for one goal.

    Holds a process-local lock and, on PostgreSQL, a transaction-scoped
    advisory lock so other workers queue behind the current run. The
    process-local entry is dropped once no run is waiting on it.
    """
    with _goal_locks_guard:
        entry = _goal_locks.get(goal_id)
        if entry is None:
            entry = _goal_locks[goal_id] = _GoalLock()
        entry.users += 1
    try:
        with entry.lock:
            if db.get_bind().dialect.name == "postgresql":
                db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_key(goal_id)})
            yield
    finally:
        with _goal_locks_guard:
            entry.users -= 1
            if not entry.users:
                del _goal_locks[goal_id]


def _advisory_key(goal_id: UUID) -> int:
    # pg advisory keys are signed 64-bit integers.
    value = goal_id.int & 0xFFFFFFFFFFFFFFFF
    return value - (1 << 64) if value >= (1 << 63) else value


def has_plan(db: Session, goal_id: UUID) -> bool:
    stmt = select(YearlyObjective.id).where(YearlyObjective.goal_id == goal_id).limit(1)
    return db.execute(stmt).first() is not None


def list_yearly_objectives(db: Session, goal_id: UUID) -> List[YearlyObjective]:
    stmt = (
        select(YearlyObjective)
        .where(YearlyObjective.goal_id == goal_id)
        .order_by(YearlyObjective.target_year, YearlyObjective.sort_order)
    )
    return list(db.execute(stmt).scalars())


def list_quarterly_objectives(db: Session, goal_id: UUID) -> List[QuarterlyObjective]:
    stmt = (
        select(QuarterlyObjective)
        .join(YearlyObjective, QuarterlyObjective.yearly_objective_id == YearlyObjective.id)
        .where(YearlyObjective.goal_id == goal_id)
        .order_by(QuarterlyObjective.target_year, QuarterlyObjective.target_quarter)
    )
    return list(db.execute(stmt).scalars())


def list_key_results(db: Session, goal_id: UUID) -> List[KeyResult]:
    """Every key result under the goal, whichever level it hangs from."""
    yearly_ids = select(YearlyObjective.id).where(YearlyObjective.goal_id == goal_id)
    quarterly_ids = select(QuarterlyObjective.id).where(QuarterlyObjective.yearly_objective_id.in_(yearly_ids))
    stmt = (
        select(KeyResult)
        .where(
            KeyResult.yearly_objective_id.in_(yearly_ids) | KeyResult.quarterly_objective_id.in_(quarterly_ids)
        )
        .order_by(KeyResult.sort_order, KeyResult.created_at)
    )
    return list(db.execute(stmt).scalars())


def insert_yearly_objective(
    db: Session,
    goal_id: UUID,
    year: int,
    objective: str,
    sort_order: int = 0,
) -> YearlyObjective:
    yearly = YearlyObjective(goal_id=goal_id, target_year=year, objective=objective, sort_order=sort_order)
    db.add(yearly)
    db.flush()
    return yearly


def insert_quarterly_objective(
    db: Session,
    yearly: YearlyObjective,
    quarter: int,
    objective: str,
    sort_order: int = 0,
) -> QuarterlyObjective:
    quarterly = QuarterlyObjective(
        yearly_objective_id=yearly.id,
        target_year=yearly.target_year,
        target_quarter=quarter,
        objective=objective,
        sort_order=sort_order,
    )
    db.add(quarterly)
    db.flush()
    return quarterly


def insert_key_result(
    db: Session,
    *,
    description: str,
    target_value: float,
    current_value: float = 0,
    unit: Optional[str] = None,
    sort_order: int = 0,
    yearly_objective_id: Optional[UUID] = None,
    quarterly_objective_id: Optional[UUID] = None,
) -> KeyResult:
    key_result = KeyResult(
        description=description,
        target_value=to_decimal(target_value),
        current_value=to_decimal(current_value),
        unit=unit,
        achievement_rate=to_decimal(key_result_progress(current_value, target_value)),
        sort_order=sort_order,
        yearly_objective_id=yearly_objective_id,
        quarterly_objective_id=quarterly_objective_id,
    )
    db.add(key_result)
    db.flush()
    return key_result


def record_action(
    db: Session,
    goal_id: UUID,
    action_type: str,
    payload: Dict[str, Any],
    request_id: Optional[str] = None,
) -> PlanActionLog:
    entry = PlanActionLog(goal_id=goal_id, action_type=action_type, action_payload=payload, request_id=request_id)
    db.add(entry)
    return entry


def persist_plan(
    db: Session,
    goal_id: UUID,
    plan: PlanCandidate,
    *,
    audit_payload: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> List[YearlyObjective]:
    """Write the whole hierarchy in one transaction, parents first.

    A unique-constraint clash from a concurrent run surfaces as
    PlanAlreadyExists; any other storage failure as PersistenceError.
    Nothing is left behind in either case.
    """
    try:
        by_year: Dict[int, YearlyObjective] = {}
        for index, entry in enumerate(plan.yearly_objectives):
            yearly = insert_yearly_objective(db, goal_id, entry.year, entry.objective, sort_order=index)
            by_year[entry.year] = yearly
            _insert_key_results(db, entry.key_results, yearly_objective_id=yearly.id)

        for index, entry in enumerate(plan.quarterly_objectives):
            quarterly = insert_quarterly_objective(db, by_year[entry.year], entry.quarter, entry.objective, sort_order=index)
            _insert_key_results(db, entry.key_results, quarterly_objective_id=quarterly.id)

        record_action(db, goal_id, "plan_generated", audit_payload or {}, request_id)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if has_plan(db, goal_id):
            raise PlanAlreadyExists(goal_id) from exc
        logger.exception("Plan insert violated a storage constraint")
        raise PersistenceError("Failed to store plan") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Plan insert failed")
        raise PersistenceError("Failed to store plan") from exc

    return list_yearly_objectives(db, goal_id)


def _insert_key_results(db: Session, key_results: List[CandidateKeyResult], **parent: Any) -> None:
    for index, kr in enumerate(key_results):
        insert_key_result(
            db,
            description=kr.description,
            target_value=kr.target_value,
            current_value=kr.current_value,
            unit=kr.unit,
            sort_order=index,
            **parent,
        )


def delete_plan(db: Session, goal_id: UUID, request_id: Optional[str] = None) -> int:
    """Remove every objective of the goal; key results go with them."""
    yearly_rows = list_yearly_objectives(db, goal_id)
    for yearly in yearly_rows:
        db.delete(yearly)
    goal = db.get(Goal, goal_id)
    if goal is not None:
        goal.progress_percentage = to_decimal(0)
    record_action(db, goal_id, "plan_deleted", {"yearly_objectives": len(yearly_rows)}, request_id)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to delete plan") from exc
    return len(yearly_rows)


def load_hierarchy(db: Session, goal_id: UUID) -> HierarchySnapshot:
    """Read the goal's objectives and key results as one consistent snapshot."""
    yearly_rows = list_yearly_objectives(db, goal_id)
    quarterly_rows = list_quarterly_objectives(db, goal_id)
    key_result_rows = list_key_results(db, goal_id)

    by_yearly: Dict[UUID, List[KeyResultSnapshot]] = {}
    by_quarterly: Dict[UUID, List[KeyResultSnapshot]] = {}
    for row in key_result_rows:
        snapshot = KeyResultSnapshot(
            id=row.id,
            target_value=float(row.target_value),
            current_value=float(row.current_value or 0),
        )
        if row.quarterly_objective_id is not None:
            by_quarterly.setdefault(row.quarterly_objective_id, []).append(snapshot)
        else:
            by_yearly.setdefault(row.yearly_objective_id, []).append(snapshot)

    quarters_of: Dict[UUID, List[QuarterlySnapshot]] = {}
    for row in quarterly_rows:
        quarters_of.setdefault(row.yearly_objective_id, []).append(
            QuarterlySnapshot(id=row.id, quarter=row.target_quarter, key_results=by_quarterly.get(row.id, []))
        )

    return HierarchySnapshot(
        goal_id=goal_id,
        yearly=[
            YearlySnapshot(
                id=row.id,
                year=row.target_year,
                key_results=by_yearly.get(row.id, []),
                quarterly=quarters_of.get(row.id, []),
            )
            for row in yearly_rows
        ],
    )


def store_progress_snapshot(db: Session, report: ProgressReport) -> None:
    """Copy rounded percentages onto the rows for cheap listing; not committed here."""
    goal = db.get(Goal, report.goal_id)
    if goal is not None:
        goal.progress_percentage = to_decimal(display_percentage(report.overall))
    for yearly_id, value in report.per_yearly.items():
        yearly = db.get(YearlyObjective, yearly_id)
        if yearly is not None:
            yearly.progress_percentage = to_decimal(display_percentage(value))
    for quarterly_id, value in report.per_quarterly.items():
        quarterly = db.get(QuarterlyObjective, quarterly_id)
        if quarterly is not None:
            quarterly.progress_percentage = to_decimal(display_percentage(value))


def to_decimal(value: float) -> Decimal:
    return Decimal(str(round(float(value), 2)))
