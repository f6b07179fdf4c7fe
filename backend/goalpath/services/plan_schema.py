"""Typed shapes for generated plan candidates and conversation insights."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

MAX_METRIC_VALUE = 99_999_999
# Smallest target that survives two-decimal storage.
MIN_TARGET_VALUE = 0.01

Frequency = Literal["daily", "weekly", "monthly", "quarterly", "annually", "once"]


class CandidateKeyResult(BaseModel):
    """Measurable outcome attached to a yearly or quarterly objective."""

    description: str = Field(..., min_length=1)
    target_value: float = Field(..., ge=MIN_TARGET_VALUE, le=MAX_METRIC_VALUE)
    current_value: float = Field(default=0, ge=0, le=MAX_METRIC_VALUE)
    baseline_value: Optional[float] = Field(default=None, le=MAX_METRIC_VALUE)
    unit: Optional[str] = None
    measurement_method: Optional[str] = None
    frequency: Optional[Frequency] = None


class Milestone(BaseModel):
    month: int = Field(..., ge=1, le=12)
    milestone: str = Field(..., min_length=1)


class CandidateQuarterlyObjective(BaseModel):
    year: int
    quarter: int = Field(..., ge=1, le=4)
    objective: str = Field(..., min_length=1)
    key_results: List[CandidateKeyResult] = Field(default_factory=list)


class CandidateYearlyObjective(BaseModel):
    year: int
    objective: str = Field(..., min_length=1)
    rationale: Optional[str] = None
    months_in_year: Optional[int] = Field(default=None, ge=1, le=12)
    start_month: Optional[int] = Field(default=None, ge=1, le=12)
    end_month: Optional[int] = Field(default=None, ge=1, le=12)
    is_partial_year: Optional[bool] = None
    key_milestones: List[Milestone] = Field(default_factory=list)
    key_results: List[CandidateKeyResult] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)


class PlanCandidate(BaseModel):
    """Whole plan as proposed by the oracle or the fallback generator."""

    yearly_objectives: List[CandidateYearlyObjective] = Field(..., min_length=1)
    quarterly_objectives: List[CandidateQuarterlyObjective] = Field(default_factory=list)
    overall_strategy: Optional[str] = None
    success_criteria: List[str] = Field(default_factory=list)
    total_estimated_effort: Optional[str] = None
    key_success_factors: List[str] = Field(default_factory=list)

    def oracle_metadata(self) -> Dict[str, Any]:
        """Fields returned to the caller but never persisted."""
        return {
            "overall_strategy": self.overall_strategy,
            "success_criteria": list(self.success_criteria),
            "total_estimated_effort": self.total_estimated_effort,
            "key_success_factors": list(self.key_success_factors),
            "yearly": {
                str(entry.year): {
                    "rationale": entry.rationale,
                    "key_milestones": [milestone.model_dump() for milestone in entry.key_milestones],
                    "dependencies": list(entry.dependencies),
                    "risk_factors": list(entry.risk_factors),
                }
                for entry in self.yearly_objectives
            },
        }


class ChatInsights(BaseModel):
    """What the conversation revealed about the person behind the goal."""

    motivation: Optional[str] = None
    current_skills: Optional[str] = None
    available_resources: Optional[str] = None
    constraints: Optional[str] = None
    values: Optional[str] = None


@dataclass
class GeneratedPlan:
    candidate: PlanCandidate
    repairs: List[str] = field(default_factory=list)
    source: Literal["oracle", "fallback"] = "oracle"

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "repairs": list(self.repairs),
            "candidate": self.candidate.model_dump(),
        }
