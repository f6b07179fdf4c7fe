"""Manual objective and key result endpoints."""
from __future__ import annotations

from typing import Callable, TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from goalpath.api.schemas.okr import (
    KeyResultCreateRequest,
    KeyResultResponse,
    KeyResultUpdateRequest,
    KeyResultUpdateResponse,
    QuarterlyObjectiveCreateRequest,
    QuarterlyObjectiveResponse,
    QuarterlyObjectiveUpdateRequest,
    YearlyObjectiveCreateRequest,
    YearlyObjectiveResponse,
    YearlyObjectiveUpdateRequest,
)
from goalpath.db.deps import get_db
from goalpath.observability.metrics import log_metric
from goalpath.observability.tracing import trace
from goalpath.services import okr_service
from goalpath.services.errors import (
    KeyResultUpdateError,
    PersistenceError,
    PlanConflictError,
    PlanInvariantError,
)
from goalpath.services.key_result_update import apply_key_result_update
from goalpath.services.plan_views import serialize_key_result, serialize_quarterly, serialize_yearly
from goalpath.services.progress_aggregator import display_percentage

router = APIRouter()

T = TypeVar("T")


@router.post(
    "/goals/{goal_id}/yearly-objectives",
    response_model=YearlyObjectiveResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["objectives"],
)
def create_yearly_objective_endpoint(
    goal_id: UUID,
    payload: YearlyObjectiveCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> YearlyObjectiveResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("objective.yearly.create", metadata={"year": payload.target_year}, goal_id=str(goal_id), request_id=request_id):
        yearly = _run(
            db,
            lambda: okr_service.create_yearly_objective(db, goal_id, payload.target_year, payload.objective, request_id),
        )
    return YearlyObjectiveResponse(**serialize_yearly(yearly), request_id=request_id or "")


@router.post(
    "/yearly-objectives/{yearly_objective_id}/quarterly-objectives",
    response_model=QuarterlyObjectiveResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["objectives"],
)
def create_quarterly_objective_endpoint(
    yearly_objective_id: UUID,
    payload: QuarterlyObjectiveCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> QuarterlyObjectiveResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("objective.quarterly.create", metadata={"quarter": payload.target_quarter}, request_id=request_id):
        quarterly = _run(
            db,
            lambda: okr_service.create_quarterly_objective(
                db,
                yearly_objective_id,
                payload.target_quarter,
                payload.objective,
                year=payload.target_year,
                request_id=request_id,
            ),
        )
    return QuarterlyObjectiveResponse(**serialize_quarterly(quarterly), request_id=request_id or "")


@router.post(
    "/key-results",
    response_model=KeyResultResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["key-results"],
)
def create_key_result_endpoint(
    payload: KeyResultCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> KeyResultResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("key_result.create", request_id=request_id):
        key_result = _run(
            db,
            lambda: okr_service.create_key_result(
                db,
                description=payload.description,
                target_value=payload.target_value,
                current_value=payload.current_value,
                unit=payload.unit,
                yearly_objective_id=payload.yearly_objective_id,
                quarterly_objective_id=payload.quarterly_objective_id,
                request_id=request_id,
            ),
        )
    return KeyResultResponse(**serialize_key_result(key_result), request_id=request_id or "")


@router.patch("/yearly-objectives/{yearly_objective_id}", response_model=YearlyObjectiveResponse, tags=["objectives"])
def update_yearly_objective_endpoint(
    yearly_objective_id: UUID,
    payload: YearlyObjectiveUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> YearlyObjectiveResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("objective.yearly.update", metadata={"year": payload.target_year}, request_id=request_id):
        yearly = _run(
            db,
            lambda: okr_service.update_yearly_objective(
                db,
                yearly_objective_id,
                objective=payload.objective,
                year=payload.target_year,
                request_id=request_id,
            ),
        )
    return YearlyObjectiveResponse(**serialize_yearly(yearly), request_id=request_id or "")


@router.patch(
    "/quarterly-objectives/{quarterly_objective_id}",
    response_model=QuarterlyObjectiveResponse,
    tags=["objectives"],
)
def update_quarterly_objective_endpoint(
    quarterly_objective_id: UUID,
    payload: QuarterlyObjectiveUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> QuarterlyObjectiveResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("objective.quarterly.update", metadata={"quarter": payload.target_quarter}, request_id=request_id):
        quarterly = _run(
            db,
            lambda: okr_service.update_quarterly_objective(
                db,
                quarterly_objective_id,
                objective=payload.objective,
                quarter=payload.target_quarter,
                request_id=request_id,
            ),
        )
    return QuarterlyObjectiveResponse(**serialize_quarterly(quarterly), request_id=request_id or "")


@router.patch("/key-results/{key_result_id}", response_model=KeyResultUpdateResponse, tags=["key-results"])
def update_key_result_endpoint(
    key_result_id: UUID,
    payload: KeyResultUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> KeyResultUpdateResponse:
    """Edit a key result's values or wording and refresh goal progress."""
    request_id = getattr(http_request.state, "request_id", None)
    success = False
    try:
        with trace("key_result.update", metadata={"key_result_id": str(key_result_id)}, request_id=request_id):
            result = _run(
                db,
                lambda: apply_key_result_update(
                    db,
                    key_result_id,
                    payload.current_value,
                    new_target=payload.target_value,
                    request_id=request_id,
                    description=payload.description,
                    unit=payload.unit,
                ),
            )
            success = True
    finally:
        log_metric("key_result.update.success", 1 if success else 0, metadata={"key_result_id": str(key_result_id)})

    return KeyResultUpdateResponse(
        key_result=serialize_key_result(result.key_result),
        goal_id=result.goal_id,
        goal_progress=display_percentage(result.progress.overall),
        adjustments=result.adjustments,
        request_id=request_id or "",
    )


@router.delete("/yearly-objectives/{yearly_objective_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["objectives"])
def delete_yearly_objective_endpoint(yearly_objective_id: UUID, http_request: Request, db: Session = Depends(get_db)) -> Response:
    request_id = getattr(http_request.state, "request_id", None)
    _run(db, lambda: okr_service.delete_yearly_objective(db, yearly_objective_id, request_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/quarterly-objectives/{quarterly_objective_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["objectives"])
def delete_quarterly_objective_endpoint(
    quarterly_objective_id: UUID,
    http_request: Request,
    db: Session = Depends(get_db),
) -> Response:
    request_id = getattr(http_request.state, "request_id", None)
    _run(db, lambda: okr_service.delete_quarterly_objective(db, quarterly_objective_id, request_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/key-results/{key_result_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["key-results"])
def delete_key_result_endpoint(key_result_id: UUID, http_request: Request, db: Session = Depends(get_db)) -> Response:
    request_id = getattr(http_request.state, "request_id", None)
    _run(db, lambda: okr_service.delete_key_result(db, key_result_id, request_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _run(db: Session, operation: Callable[[], T]) -> T:
    try:
        return operation()
    except LookupError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PlanConflictError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PlanInvariantError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except KeyResultUpdateError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
