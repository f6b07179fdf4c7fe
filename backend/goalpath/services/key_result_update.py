"""Apply new values to a key result and roll the change up the hierarchy."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from goalpath.db.models.key_result import KeyResult
from goalpath.db.models.quarterly_objective import QuarterlyObjective
from goalpath.db.models.yearly_objective import YearlyObjective
from goalpath.observability.metrics import log_metric
from goalpath.services import plan_repository
from goalpath.services.errors import KeyResultUpdateError, PersistenceError
from goalpath.services.plan_schema import MAX_METRIC_VALUE, MIN_TARGET_VALUE
from goalpath.services.progress_aggregator import ProgressReport, key_result_progress
from goalpath.services.progress_service import refresh_progress_snapshot

logger = logging.getLogger(__name__)


@dataclass
class KeyResultUpdateResult:
    key_result: KeyResult
    goal_id: UUID
    progress: ProgressReport
    adjustments: List[str]


def apply_key_result_update(
    db: Session,
    key_result_id: UUID,
    new_current: Optional[float] = None,
    new_target: Optional[float] = None,
    request_id: Optional[str] = None,
    *,
    description: Optional[str] = None,
    unit: Optional[str] = None,
) -> KeyResultUpdateResult:
    """Store the new values, recompute achievement and refresh goal progress.

    Values above the storage ceiling are clamped and negative current values
    become 0; both are reported back as adjustments. A target that is not
    positive, or too small to survive two-decimal storage, is rejected.
    Omitted values keep what is stored.
    """
    key_result = db.get(KeyResult, key_result_id)
    if key_result is None:
        raise LookupError(f"Key result {key_result_id} not found")
    if new_current is None and new_target is None and description is None and unit is None:
        raise KeyResultUpdateError("no changes requested")

    adjustments: List[str] = []
    target = float(key_result.target_value) if new_target is None else float(new_target)
    if not target > 0:
        raise KeyResultUpdateError("target_value must be greater than 0")
    if target < MIN_TARGET_VALUE:
        raise KeyResultUpdateError(f"target_value must be at least {MIN_TARGET_VALUE}")
    if target > MAX_METRIC_VALUE:
        adjustments.append(f"target_value clamped to {MAX_METRIC_VALUE}")
        target = float(MAX_METRIC_VALUE)

    current = float(key_result.current_value) if new_current is None else float(new_current)
    if math.isnan(current):
        raise KeyResultUpdateError("current_value must be a number")
    if current < 0:
        adjustments.append("current_value raised to 0")
        current = 0.0
    if current > MAX_METRIC_VALUE:
        adjustments.append(f"current_value clamped to {MAX_METRIC_VALUE}")
        current = float(MAX_METRIC_VALUE)

    audit_payload: Dict[str, Any] = {
        "key_result_id": str(key_result_id),
        "current_value": current,
        "target_value": target,
        "adjustments": adjustments,
    }
    if description is not None:
        cleaned = description.strip()
        if not cleaned:
            raise KeyResultUpdateError("description must not be empty")
        key_result.description = audit_payload["description"] = cleaned
    if unit is not None:
        key_result.unit = audit_payload["unit"] = unit.strip() or None

    goal_id = owning_goal_id(db, key_result)
    key_result.target_value = plan_repository.to_decimal(target)
    key_result.current_value = plan_repository.to_decimal(current)
    key_result.achievement_rate = plan_repository.to_decimal(key_result_progress(current, target))
    plan_repository.record_action(db, goal_id, "key_result_updated", audit_payload, request_id)

    try:
        db.flush()
        report = refresh_progress_snapshot(db, goal_id, request_id)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to store key result update") from exc
    db.refresh(key_result)

    for note in adjustments:
        logger.info("Key result %s adjusted: %s", key_result_id, note)
    log_metric("key_result.update.achievement_rate", float(key_result.achievement_rate), metadata={"goal_id": str(goal_id)})
    return KeyResultUpdateResult(key_result=key_result, goal_id=goal_id, progress=report, adjustments=adjustments)


def owning_goal_id(db: Session, key_result: KeyResult) -> UUID:
    if key_result.yearly_objective_id is not None:
        yearly = db.get(YearlyObjective, key_result.yearly_objective_id)
    else:
        quarterly = db.get(QuarterlyObjective, key_result.quarterly_objective_id)
        yearly = db.get(YearlyObjective, quarterly.yearly_objective_id)
    return yearly.goal_id
