"""Schemas for goal intake API."""
from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class GoalCreateRequest(BaseModel):
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    due_date: date

    @field_validator("title")
    @classmethod
    def trim_title(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("title must not be blank")
        return cleaned


GoalStatus = Literal["active", "completed", "archived", "paused"]


class GoalUpdateRequest(BaseModel):
    user_id: UUID
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    due_date: Optional[date] = None
    status: Optional[GoalStatus] = None


class GoalSummary(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    description: Optional[str]
    due_date: date
    status: GoalStatus
    progress_percentage: int


class GoalResponse(GoalSummary):
    request_id: str


class GoalListResponse(BaseModel):
    user_id: UUID
    goals: List[GoalSummary]
    request_id: str
