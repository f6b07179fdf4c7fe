"""Plan generation, retrieval and progress endpoints."""
from __future__ import annotations

from datetime import date
from time import perf_counter
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from goalpath.api.schemas.plan import (
    PlanDeleteResponse,
    PlanGenerationRequest,
    PlanGenerationResponse,
    PlanResponse,
    ProgressResponse,
)
from goalpath.db.deps import get_db
from goalpath.db.models.goal import Goal
from goalpath.observability.metrics import log_metric
from goalpath.observability.tracing import trace
from goalpath.services import plan_repository
from goalpath.services.errors import InvalidRangeError, PersistenceError, PlanAlreadyExists
from goalpath.services.oracle_client import OracleGenerationClient, get_oracle_client
from goalpath.services.plan_pipeline import PipelineRequest, PlanGenerationPipeline
from goalpath.services.plan_views import serialize_plan
from goalpath.services.progress_aggregator import display_percentage
from goalpath.services.progress_service import recompute_goal_progress

router = APIRouter()


@router.post(
    "/goals/{goal_id}/plan",
    response_model=PlanGenerationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["plans"],
)
def generate_plan_endpoint(
    goal_id: UUID,
    http_request: Request,
    payload: PlanGenerationRequest | None = None,
    db: Session = Depends(get_db),
    oracle: OracleGenerationClient = Depends(get_oracle_client),
) -> PlanGenerationResponse:
    """Generate and store the yearly/quarterly plan for a goal."""
    params = payload or PlanGenerationRequest()
    goal = _require_goal(db, goal_id)
    request_id = getattr(http_request.state, "request_id", None)
    start_date = params.start_date or date.today()

    base_metadata: Dict[str, Any] = {
        "route": f"/goals/{goal_id}/plan",
        "chat_messages": len(params.chat_history),
        "start_date": start_date.isoformat(),
        "due_date": goal.due_date.isoformat(),
        "oracle_available": oracle.available,
    }

    start_time = perf_counter()
    success = False
    fallback_used = False
    try:
        with trace("plan.generation", metadata=base_metadata, goal_id=str(goal_id), request_id=request_id):
            pipeline = PlanGenerationPipeline(db, oracle)
            result = pipeline.run(
                PipelineRequest(
                    goal_id=goal_id,
                    goal_title=goal.title,
                    goal_description=goal.description or "",
                    due_date=goal.due_date,
                    chat_history=[message.model_dump() for message in params.chat_history],
                    start_date=start_date,
                    request_id=request_id,
                )
            )
            fallback_used = result.fallback_used
            report = recompute_goal_progress(db, goal_id, request_id)
            success = True
    except PlanAlreadyExists as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except InvalidRangeError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except PersistenceError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    finally:
        latency_ms = (perf_counter() - start_time) * 1000
        metric_metadata = {"goal_id": str(goal_id), "fallback_used": fallback_used}
        log_metric("plan.generation.success", 1 if success else 0, metadata=metric_metadata)
        log_metric("plan.generation.latency_ms", latency_ms, metadata=metric_metadata)

    return PlanGenerationResponse(
        goal_id=goal_id,
        progress=display_percentage(report.overall),
        yearly_objectives=serialize_plan(result.yearly_objectives, report),
        analysis=result.analysis,
        metadata=result.metadata,
        repairs=result.repairs,
        fallback_used=result.fallback_used,
        fallback_reason=result.fallback_reason,
        review_status=result.review_status,
        trail=result.trail,
        request_id=request_id or "",
    )


@router.get("/goals/{goal_id}/plan", response_model=PlanResponse, tags=["plans"])
def get_plan_endpoint(
    goal_id: UUID,
    http_request: Request,
    db: Session = Depends(get_db),
) -> PlanResponse:
    """Return the stored plan with freshly recomputed progress."""
    _require_goal(db, goal_id)
    request_id = getattr(http_request.state, "request_id", None)
    with trace("plan.fetch", goal_id=str(goal_id), request_id=request_id):
        report = recompute_goal_progress(db, goal_id, request_id)
        yearly_rows = plan_repository.list_yearly_objectives(db, goal_id)

    return PlanResponse(
        goal_id=goal_id,
        progress=display_percentage(report.overall),
        yearly_objectives=serialize_plan(yearly_rows, report),
        request_id=request_id or "",
    )


@router.delete("/goals/{goal_id}/plan", response_model=PlanDeleteResponse, tags=["plans"])
def delete_plan_endpoint(
    goal_id: UUID,
    http_request: Request,
    db: Session = Depends(get_db),
) -> PlanDeleteResponse:
    """Drop every objective of the goal so a new plan can be generated."""
    _require_goal(db, goal_id)
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("plan.delete", goal_id=str(goal_id), request_id=request_id):
            deleted = plan_repository.delete_plan(db, goal_id, request_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    log_metric("plan.delete.yearly_objectives", deleted, metadata={"goal_id": str(goal_id)})
    return PlanDeleteResponse(goal_id=goal_id, deleted_yearly_objectives=deleted, request_id=request_id or "")


@router.get("/goals/{goal_id}/progress", response_model=ProgressResponse, tags=["plans"])
def get_progress_endpoint(
    goal_id: UUID,
    http_request: Request,
    db: Session = Depends(get_db),
) -> ProgressResponse:
    _require_goal(db, goal_id)
    request_id = getattr(http_request.state, "request_id", None)
    report = recompute_goal_progress(db, goal_id, request_id)
    rounded = report.rounded()
    return ProgressResponse(
        goal_id=goal_id,
        overall=rounded["overall"],
        per_yearly=rounded["per_yearly"],
        per_quarterly=rounded["per_quarterly"],
        per_key_result=rounded["per_key_result"],
        request_id=request_id or "",
    )


def _require_goal(db: Session, goal_id: UUID) -> Goal:
    goal = db.get(Goal, goal_id)
    if not goal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Goal not found")
    return goal
