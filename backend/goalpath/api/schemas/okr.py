"""Schemas for manual objective and key result edits."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, FiniteFloat

from goalpath.api.schemas.plan import KeyResultPayload, QuarterlyObjectivePayload, YearlyObjectivePayload


class YearlyObjectiveCreateRequest(BaseModel):
    target_year: int
    objective: str = Field(..., max_length=1000)


class QuarterlyObjectiveCreateRequest(BaseModel):
    target_quarter: int
    objective: str = Field(..., max_length=1000)
    target_year: Optional[int] = None


class KeyResultCreateRequest(BaseModel):
    description: str = Field(..., max_length=1000)
    target_value: FiniteFloat
    current_value: FiniteFloat = 0
    unit: Optional[str] = Field(default=None, max_length=50)
    yearly_objective_id: Optional[UUID] = None
    quarterly_objective_id: Optional[UUID] = None


class YearlyObjectiveUpdateRequest(BaseModel):
    objective: Optional[str] = Field(default=None, max_length=1000)
    target_year: Optional[int] = None


class QuarterlyObjectiveUpdateRequest(BaseModel):
    objective: Optional[str] = Field(default=None, max_length=1000)
    target_quarter: Optional[int] = None


class KeyResultUpdateRequest(BaseModel):
    current_value: Optional[FiniteFloat] = None
    target_value: Optional[FiniteFloat] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    unit: Optional[str] = Field(default=None, max_length=50)


class YearlyObjectiveResponse(YearlyObjectivePayload):
    request_id: str


class QuarterlyObjectiveResponse(QuarterlyObjectivePayload):
    request_id: str


class KeyResultResponse(KeyResultPayload):
    request_id: str


class KeyResultUpdateResponse(BaseModel):
    key_result: KeyResultPayload
    goal_id: UUID
    goal_progress: int
    adjustments: List[str]
    request_id: str
