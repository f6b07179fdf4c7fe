"""Goal intake and editing API routes."""
from __future__ import annotations

from time import perf_counter
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from goalpath.api.schemas.goal import (
    GoalCreateRequest,
    GoalListResponse,
    GoalResponse,
    GoalSummary,
    GoalUpdateRequest,
)
from goalpath.db.deps import get_db
from goalpath.db.models.goal import Goal
from goalpath.observability.metrics import log_metric
from goalpath.observability.tracing import trace
from goalpath.services.errors import PlanInvariantError
from goalpath.services.goal_service import create_goal, delete_goal, get_goal, list_goals, update_goal

router = APIRouter()


@router.post("/goals", response_model=GoalResponse, status_code=status.HTTP_201_CREATED, tags=["goals"])
def create_goal_endpoint(
    payload: GoalCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> GoalResponse:
    """Register a long-horizon goal for a user."""
    request_id = getattr(http_request.state, "request_id", None)
    base_metadata: Dict[str, Any] = {
        "route": "/goals",
        "user_id": str(payload.user_id),
        "due_date": payload.due_date.isoformat(),
    }

    success = False
    try:
        with trace("goal.intake", metadata=base_metadata, request_id=request_id):
            try:
                goal = create_goal(
                    db,
                    payload.user_id,
                    payload.title,
                    payload.due_date,
                    description=payload.description,
                )
            except PlanInvariantError as exc:
                db.rollback()
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Failed to save goal",
                ) from exc
            success = True
    finally:
        log_metric("goal.intake.success", 1 if success else 0, metadata={"user_id": str(payload.user_id)})

    return GoalResponse(**_serialize_goal(goal), request_id=request_id or "")


@router.get("/goals", response_model=GoalListResponse, tags=["goals"])
def list_goals_endpoint(
    http_request: Request,
    user_id: UUID = Query(..., description="Goal owner"),
    db: Session = Depends(get_db),
) -> GoalListResponse:
    request_id = getattr(http_request.state, "request_id", None)
    start = perf_counter()
    with trace("goal.list", metadata={"user_id": str(user_id)}, request_id=request_id):
        goals = list_goals(db, user_id)

    latency_ms = (perf_counter() - start) * 1000
    log_metric("goal.list.count", len(goals), metadata={"user_id": str(user_id)})
    log_metric("goal.list.latency_ms", latency_ms, metadata={"user_id": str(user_id)})
    return GoalListResponse(
        user_id=user_id,
        goals=[GoalSummary(**_serialize_goal(goal)) for goal in goals],
        request_id=request_id or "",
    )


@router.get("/goals/{goal_id}", response_model=GoalResponse, tags=["goals"])
def get_goal_endpoint(
    goal_id: UUID,
    http_request: Request,
    user_id: UUID = Query(..., description="Goal owner"),
    db: Session = Depends(get_db),
) -> GoalResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("goal.get", metadata={"user_id": str(user_id)}, goal_id=str(goal_id), request_id=request_id):
        try:
            goal = get_goal(db, goal_id, user_id)
        except LookupError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return GoalResponse(**_serialize_goal(goal), request_id=request_id or "")


@router.patch("/goals/{goal_id}", response_model=GoalResponse, tags=["goals"])
def update_goal_endpoint(
    goal_id: UUID,
    payload: GoalUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> GoalResponse:
    """Edit title, description, due date or status of an owned goal."""
    request_id = getattr(http_request.state, "request_id", None)
    success = False
    try:
        with trace("goal.update", metadata={"user_id": str(payload.user_id)}, goal_id=str(goal_id), request_id=request_id):
            try:
                goal = update_goal(
                    db,
                    goal_id,
                    payload.user_id,
                    title=payload.title,
                    description=payload.description,
                    due_date=payload.due_date,
                    status=payload.status,
                    request_id=request_id,
                )
            except LookupError as exc:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
            except PlanInvariantError as exc:
                db.rollback()
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Failed to update goal",
                ) from exc
            success = True
    finally:
        log_metric("goal.update.success", 1 if success else 0, metadata={"goal_id": str(goal_id)})

    return GoalResponse(**_serialize_goal(goal), request_id=request_id or "")


@router.delete("/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["goals"])
def delete_goal_endpoint(
    goal_id: UUID,
    http_request: Request,
    user_id: UUID = Query(..., description="Goal owner"),
    db: Session = Depends(get_db),
) -> Response:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("goal.delete", metadata={"user_id": str(user_id)}, goal_id=str(goal_id), request_id=request_id):
        try:
            delete_goal(db, goal_id, user_id)
        except LookupError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to delete goal",
            ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _serialize_goal(goal: Goal) -> Dict[str, Any]:
    return {
        "id": goal.id,
        "user_id": goal.user_id,
        "title": goal.title,
        "description": goal.description,
        "due_date": goal.due_date,
        "status": goal.status,
        "progress_percentage": int(round(float(goal.progress_percentage or 0))),
    }
