"""Shape stored plans into API payloads."""
from __future__ import annotations

from typing import Any, Dict, List

from goalpath.db.models.key_result import KeyResult
from goalpath.db.models.quarterly_objective import QuarterlyObjective
from goalpath.db.models.yearly_objective import YearlyObjective
from goalpath.services.progress_aggregator import ProgressReport, display_percentage


def serialize_key_result(key_result: KeyResult) -> Dict[str, Any]:
    return {
        "id": key_result.id,
        "description": key_result.description,
        "target_value": float(key_result.target_value),
        "current_value": float(key_result.current_value or 0),
        "unit": key_result.unit,
        "achievement_rate": float(key_result.achievement_rate or 0),
        "sort_order": key_result.sort_order or 0,
    }


def serialize_quarterly(quarterly: QuarterlyObjective, report: ProgressReport | None = None) -> Dict[str, Any]:
    progress = report.per_quarterly.get(quarterly.id) if report else float(quarterly.progress_percentage or 0)
    return {
        "id": quarterly.id,
        "year": quarterly.target_year,
        "quarter": quarterly.target_quarter,
        "objective": quarterly.objective,
        "progress": display_percentage(progress),
        "key_results": [serialize_key_result(kr) for kr in quarterly.key_results],
    }


def serialize_yearly(yearly: YearlyObjective, report: ProgressReport | None = None) -> Dict[str, Any]:
    progress = report.per_yearly.get(yearly.id) if report else float(yearly.progress_percentage or 0)
    return {
        "id": yearly.id,
        "year": yearly.target_year,
        "objective": yearly.objective,
        "progress": display_percentage(progress),
        "key_results": [serialize_key_result(kr) for kr in yearly.key_results],
        "quarterly_objectives": [serialize_quarterly(q, report) for q in yearly.quarterly_objectives],
    }


def serialize_plan(yearly_rows: List[YearlyObjective], report: ProgressReport) -> List[Dict[str, Any]]:
    return [serialize_yearly(yearly, report) for yearly in yearly_rows]
