"""Deterministic plan used when the language model is unavailable or unusable."""
from __future__ import annotations

from typing import Any, Dict

from goalpath.services.period_calculator import PeriodBreakdown, YearSlice
from goalpath.services.plan_schema import GeneratedPlan
from goalpath.services.plan_validator import validate_candidate

FALLBACK_RATIONALE = "Generated without AI assistance; refine the objectives as the goal takes shape."


def generate_fallback(goal_title: str, breakdown: PeriodBreakdown) -> GeneratedPlan:
    """Build one yearly objective per calendar year with a single monthly key result."""
    title = (goal_title or "").strip() or "Goal"
    candidate: Dict[str, Any] = {
        "yearly_objectives": [_yearly_entry(title, record) for record in breakdown.years],
        "quarterly_objectives": [],
        "overall_strategy": f"Advance '{title}' one month at a time across {breakdown.total_months} months.",
        "success_criteria": [f"Every planned month of {title} closes with a tangible result"],
        "total_estimated_effort": f"{breakdown.total_months} months",
        "key_success_factors": ["Steady monthly progress", "Regular review of the plan"],
    }
    outcome = validate_candidate(candidate, breakdown)
    return GeneratedPlan(candidate=outcome.plan, repairs=outcome.repairs, source="fallback")


def _yearly_entry(title: str, record: YearSlice) -> Dict[str, Any]:
    months = record.months_in_year
    if record.is_partial_year:
        objective = f"{title}: staged execution ({months} months)"
    else:
        objective = f"{title}: annual goal"
    return {
        "year": record.year,
        "objective": objective,
        "rationale": FALLBACK_RATIONALE,
        "months_in_year": months,
        "start_month": record.start_month,
        "end_month": record.end_month,
        "is_partial_year": record.is_partial_year,
        "key_milestones": [],
        "key_results": [
            {
                "description": f"Deliver a concrete result in each of the {months} planned months",
                "target_value": months,
                "current_value": 0,
                "unit": "milestones",
                "measurement_method": "Count of months closed with a completed milestone",
                "frequency": "monthly",
            }
        ],
        "dependencies": [],
        "risk_factors": ["Plan generated without AI assistance"],
    }
