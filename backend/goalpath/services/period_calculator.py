"""Split a planning window into calendar-year slices with month precision."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List

from goalpath.services.errors import InvalidRangeError


@dataclass(frozen=True)
class YearSlice:
    year: int
    months_in_year: int
    start_month: int
    end_month: int
    is_partial_year: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "months_in_year": self.months_in_year,
            "start_month": self.start_month,
            "end_month": self.end_month,
            "is_partial_year": self.is_partial_year,
        }


@dataclass(frozen=True)
class PeriodBreakdown:
    total_months: int
    total_years: int
    years: List[YearSlice] = field(default_factory=list)

    def for_year(self, year: int) -> YearSlice | None:
        for record in self.years:
            if record.year == year:
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_months": self.total_months,
            "total_years": self.total_years,
            "years": [record.to_dict() for record in self.years],
        }


def compute_breakdown(start: date, end: date) -> PeriodBreakdown:
    """Return one record per calendar year touched by ``start``..``end``.

    Both endpoints count as whole months, so 2025-03-15 to 2025-03-16 is one
    month. Raises InvalidRangeError when ``end`` precedes ``start``.
    """
    if end < start:
        raise InvalidRangeError(f"end date {end.isoformat()} is before start date {start.isoformat()}")

    total_months = (end.year - start.year) * 12 + (end.month - start.month) + 1
    total_years = math.ceil(total_months / 12)

    years: List[YearSlice] = []
    for year in range(start.year, end.year + 1):
        start_month = start.month if year == start.year else 1
        end_month = end.month if year == end.year else 12
        years.append(
            YearSlice(
                year=year,
                months_in_year=end_month - start_month + 1,
                start_month=start_month,
                end_month=end_month,
                is_partial_year=start_month != 1 or end_month != 12,
            )
        )

    return PeriodBreakdown(total_months=total_months, total_years=total_years, years=years)


def quarter_for_month(month: int) -> int:
    """Map a calendar month (1-12) onto its quarter (1-4)."""
    return (month - 1) // 3 + 1
