"""Bottom-up completion math for a goal's objective hierarchy."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID


@dataclass(frozen=True)
class KeyResultSnapshot:
    id: UUID
    target_value: float
    current_value: float


@dataclass(frozen=True)
class QuarterlySnapshot:
    id: UUID
    quarter: int
    key_results: List[KeyResultSnapshot] = field(default_factory=list)


@dataclass(frozen=True)
class YearlySnapshot:
    id: UUID
    year: int
    key_results: List[KeyResultSnapshot] = field(default_factory=list)
    quarterly: List[QuarterlySnapshot] = field(default_factory=list)


@dataclass(frozen=True)
class HierarchySnapshot:
    goal_id: UUID
    yearly: List[YearlySnapshot] = field(default_factory=list)


@dataclass
class ProgressReport:
    """Full-precision percentages; round only through ``rounded``."""

    goal_id: UUID
    per_key_result: Dict[UUID, float] = field(default_factory=dict)
    per_quarterly: Dict[UUID, float] = field(default_factory=dict)
    per_yearly: Dict[UUID, float] = field(default_factory=dict)
    overall: float = 0.0

    def rounded(self) -> Dict[str, Any]:
        return {
            "goal_id": str(self.goal_id),
            "overall": display_percentage(self.overall),
            "per_yearly": {str(key): display_percentage(value) for key, value in self.per_yearly.items()},
            "per_quarterly": {str(key): display_percentage(value) for key, value in self.per_quarterly.items()},
            "per_key_result": {str(key): display_percentage(value) for key, value in self.per_key_result.items()},
        }


def key_result_progress(current_value: float, target_value: float) -> float:
    """Completion of one key result, capped at 100."""
    if target_value <= 0:
        return 0.0
    return max(0.0, min(100.0, current_value / target_value * 100))


def recompute(hierarchy: HierarchySnapshot) -> ProgressReport:
    """Recompute every level of the hierarchy from its key results.

    A yearly objective averages whichever of its direct key results and its
    quarterly objectives exist; an empty level counts as 0.
    """
    report = ProgressReport(goal_id=hierarchy.goal_id)

    yearly_values: List[float] = []
    for yearly in hierarchy.yearly:
        parts: List[float] = []

        direct = [_record_key_result(report, kr) for kr in yearly.key_results]
        if direct:
            parts.append(_mean(direct))

        quarterly_values: List[float] = []
        for quarterly in yearly.quarterly:
            values = [_record_key_result(report, kr) for kr in quarterly.key_results]
            quarter_progress = _mean(values) if values else 0.0
            report.per_quarterly[quarterly.id] = quarter_progress
            quarterly_values.append(quarter_progress)
        if quarterly_values:
            parts.append(_mean(quarterly_values))

        yearly_progress = _mean(parts) if parts else 0.0
        report.per_yearly[yearly.id] = yearly_progress
        yearly_values.append(yearly_progress)

    report.overall = _mean(yearly_values) if yearly_values else 0.0
    return report


def display_percentage(value: Optional[float]) -> int:
    """Nearest whole percent, halves rounded up."""
    if value is None:
        return 0
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _record_key_result(report: ProgressReport, kr: KeyResultSnapshot) -> float:
    value = key_result_progress(kr.current_value, kr.target_value)
    report.per_key_result[kr.id] = value
    return value


def _mean(values: List[float]) -> float:
    return sum(values) / len(values)
