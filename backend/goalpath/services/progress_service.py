"""Progress recomputation against stored plans."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from goalpath.observability.tracing import annotate, trace
from goalpath.services import plan_repository
from goalpath.services.progress_aggregator import ProgressReport, recompute

logger = logging.getLogger(__name__)


def recompute_goal_progress(db: Session, goal_id: UUID, request_id: str | None = None) -> ProgressReport:
    """Load the goal's hierarchy once and recompute every percentage from it."""
    with trace("progress.recompute", goal_id=str(goal_id), request_id=request_id) as span:
        snapshot = plan_repository.load_hierarchy(db, goal_id)
        report = recompute(snapshot)
        annotate(span, overall=report.overall, yearly=len(report.per_yearly), key_results=len(report.per_key_result))
    logger.debug("Goal progress recomputed: %.2f%%", report.overall)
    return report


def refresh_progress_snapshot(db: Session, goal_id: UUID, request_id: str | None = None) -> ProgressReport:
    """Recompute and store the rounded display values; the caller commits."""
    report = recompute_goal_progress(db, goal_id, request_id)
    plan_repository.store_progress_snapshot(db, report)
    return report
