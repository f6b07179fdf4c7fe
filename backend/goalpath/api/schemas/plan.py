"""Schemas for plan generation, retrieval and progress."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class PlanGenerationRequest(BaseModel):
    chat_history: List[ChatMessage] = Field(default_factory=list)
    start_date: Optional[date] = Field(default=None, description="Defaults to today.")


class KeyResultPayload(BaseModel):
    id: UUID
    description: str
    target_value: float
    current_value: float
    unit: Optional[str]
    achievement_rate: float
    sort_order: int


class QuarterlyObjectivePayload(BaseModel):
    id: UUID
    year: int
    quarter: int
    objective: str
    progress: int
    key_results: List[KeyResultPayload] = Field(default_factory=list)


class YearlyObjectivePayload(BaseModel):
    id: UUID
    year: int
    objective: str
    progress: int
    key_results: List[KeyResultPayload] = Field(default_factory=list)
    quarterly_objectives: List[QuarterlyObjectivePayload] = Field(default_factory=list)


class PlanResponse(BaseModel):
    goal_id: UUID
    progress: int
    yearly_objectives: List[YearlyObjectivePayload]
    request_id: str


class PlanGenerationResponse(PlanResponse):
    analysis: Dict[str, Any]
    metadata: Dict[str, Any]
    repairs: List[str]
    fallback_used: bool
    fallback_reason: Optional[str]
    review_status: Optional[str]
    trail: List[str]


class PlanDeleteResponse(BaseModel):
    goal_id: UUID
    deleted_yearly_objectives: int
    request_id: str


class ProgressResponse(BaseModel):
    goal_id: UUID
    overall: int
    per_yearly: Dict[str, int]
    per_quarterly: Dict[str, int]
    per_key_result: Dict[str, int]
    request_id: str
