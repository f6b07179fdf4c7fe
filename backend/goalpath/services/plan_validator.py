"""Structural checks and automatic repairs for candidate plans."""
from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from goalpath.services.errors import PlanValidationError
from goalpath.services.period_calculator import PeriodBreakdown
from goalpath.services.plan_schema import MAX_METRIC_VALUE, MIN_TARGET_VALUE, PlanCandidate

logger = logging.getLogger(__name__)

FREQUENCIES = {"daily", "weekly", "monthly", "quarterly", "annually", "once"}

FREQUENCY_SYNONYMS: Dict[str, str] = {
    "annual": "annually",
    "yearly": "annually",
    "per year": "annually",
    "every year": "annually",
    "quarter": "quarterly",
    "per quarter": "quarterly",
    "every quarter": "quarterly",
    "month": "monthly",
    "per month": "monthly",
    "every month": "monthly",
    "week": "weekly",
    "per week": "weekly",
    "every week": "weekly",
    "day": "daily",
    "per day": "daily",
    "every day": "daily",
    "one-time": "once",
    "one time": "once",
    "one-off": "once",
    "single": "once",
}


@dataclass
class ValidationOutcome:
    plan: PlanCandidate
    repairs: List[str] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)


def validate_candidate(candidate: Any, breakdown: Optional[PeriodBreakdown] = None) -> ValidationOutcome:
    """Check a raw candidate plan and repair what can be repaired.

    Repairs (clamped values, negative progress, frequency synonyms) are
    recorded on the outcome and logged. Anything else that breaks the
    hierarchy rules raises PlanValidationError listing every violation.
    When ``breakdown`` is given, yearly objectives must fall inside it.
    """
    if not isinstance(candidate, dict):
        raise PlanValidationError(["candidate plan must be a JSON object"])

    data = copy.deepcopy(candidate)
    violations: List[str] = []
    repairs: List[str] = []

    yearly_entries = data.get("yearly_objectives")
    if not isinstance(yearly_entries, list) or not yearly_entries:
        raise PlanValidationError(["yearly_objectives must be a non-empty list"])
    quarterly_entries = data.setdefault("quarterly_objectives", [])
    if quarterly_entries is None:
        quarterly_entries = data["quarterly_objectives"] = []
    if not isinstance(quarterly_entries, list):
        raise PlanValidationError(["quarterly_objectives must be a list"])

    known_years = _check_yearly_years(yearly_entries, breakdown, violations)
    _check_quarterly_slots(quarterly_entries, known_years, violations)

    for entry in yearly_entries:
        if not isinstance(entry, dict):
            continue
        label = f"{entry.get('year')}"
        _check_key_results(entry, label, violations, repairs)
        _drop_bad_milestones(entry, label, repairs)
    for entry in quarterly_entries:
        if not isinstance(entry, dict):
            continue
        label = f"{entry.get('year')} Q{entry.get('quarter')}"
        _check_key_results(entry, label, violations, repairs)

    if violations:
        raise PlanValidationError(violations)

    try:
        plan = PlanCandidate.model_validate(data)
    except ValidationError as exc:
        raise PlanValidationError([_format_pydantic_error(err) for err in exc.errors()]) from exc

    for repair in repairs:
        logger.info("Plan repair applied: %s", repair)
    return ValidationOutcome(plan=plan, repairs=repairs)


def _check_yearly_years(
    entries: List[Any],
    breakdown: Optional[PeriodBreakdown],
    violations: List[str],
) -> Set[int]:
    seen: Set[int] = set()
    allowed = {record.year for record in breakdown.years} if breakdown else None
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            violations.append(f"yearly objective #{index + 1} is not an object")
            continue
        year = _as_int(entry.get("year"))
        if year is None:
            violations.append(f"yearly objective #{index + 1} has no integer year")
            continue
        entry["year"] = year
        if year in seen:
            violations.append(f"duplicate yearly objective for {year}")
            continue
        if allowed is not None and year not in allowed:
            violations.append(f"yearly objective {year} falls outside the planning window")
        seen.add(year)
    return seen


def _check_quarterly_slots(entries: List[Any], known_years: Set[int], violations: List[str]) -> None:
    seen: Set[Tuple[int, int]] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            violations.append(f"quarterly objective #{index + 1} is not an object")
            continue
        year = _as_int(entry.get("year"))
        quarter = _as_int(entry.get("quarter"))
        if year is None or quarter is None:
            violations.append(f"quarterly objective #{index + 1} needs integer year and quarter")
            continue
        entry["year"], entry["quarter"] = year, quarter
        if not 1 <= quarter <= 4:
            violations.append(f"quarterly objective {year} Q{quarter} has a quarter outside 1-4")
            continue
        if (year, quarter) in seen:
            violations.append(f"duplicate quarterly objective for {year} Q{quarter}")
            continue
        seen.add((year, quarter))
        if year not in known_years:
            violations.append(f"quarterly objective {year} Q{quarter} has no yearly objective to belong to")


def _check_key_results(owner: Dict[str, Any], label: str, violations: List[str], repairs: List[str]) -> None:
    key_results = owner.get("key_results")
    if key_results is None:
        owner["key_results"] = []
        return
    if not isinstance(key_results, list):
        violations.append(f"key_results of {label} must be a list")
        return

    for index, kr in enumerate(key_results):
        kr_label = f"{label} KR#{index + 1}"
        if not isinstance(kr, dict):
            violations.append(f"{kr_label} is not an object")
            continue
        if kr.get("yearly_objective_id") and kr.get("quarterly_objective_id"):
            violations.append(f"{kr_label} names two parents")
            continue

        target = _as_number(kr.get("target_value"))
        if target is None or target <= 0:
            violations.append(f"{kr_label} target_value must be a positive number")
            continue
        if target < MIN_TARGET_VALUE:
            repairs.append(f"{kr_label} target_value {target:g} raised to {MIN_TARGET_VALUE}")
            target = MIN_TARGET_VALUE
        kr["target_value"] = _clamp(target, "target_value", kr_label, repairs)

        current_raw = kr.get("current_value")
        if current_raw is None:
            kr["current_value"] = 0
        else:
            current = _as_number(current_raw)
            if current is None:
                violations.append(f"{kr_label} current_value must be numeric")
                continue
            if current < 0:
                repairs.append(f"{kr_label} current_value {current:g} raised to 0")
                current = 0
            kr["current_value"] = _clamp(current, "current_value", kr_label, repairs)

        baseline_raw = kr.get("baseline_value")
        if baseline_raw is not None:
            baseline = _as_number(baseline_raw)
            if baseline is None:
                repairs.append(f"{kr_label} non-numeric baseline_value dropped")
                kr["baseline_value"] = None
            else:
                kr["baseline_value"] = _clamp(baseline, "baseline_value", kr_label, repairs)

        frequency = kr.get("frequency")
        if frequency is not None:
            normalized = _normalize_frequency(frequency)
            if normalized is None:
                violations.append(f"{kr_label} has unknown frequency {frequency!r}")
                continue
            if normalized != frequency:
                repairs.append(f"{kr_label} frequency {frequency!r} mapped to {normalized!r}")
                kr["frequency"] = normalized


def _drop_bad_milestones(entry: Dict[str, Any], label: str, repairs: List[str]) -> None:
    milestones = entry.get("key_milestones")
    if milestones is None:
        entry["key_milestones"] = []
        return
    if not isinstance(milestones, list):
        repairs.append(f"{label} key_milestones was not a list and was dropped")
        entry["key_milestones"] = []
        return
    kept: List[Dict[str, Any]] = []
    for milestone in milestones:
        month = _as_int(milestone.get("month")) if isinstance(milestone, dict) else None
        text = milestone.get("milestone") if isinstance(milestone, dict) else None
        if month is None or not 1 <= month <= 12 or not isinstance(text, str) or not text.strip():
            repairs.append(f"{label} dropped malformed milestone {milestone!r}")
            continue
        kept.append({"month": month, "milestone": text.strip()})
    entry["key_milestones"] = kept


def _normalize_frequency(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    if lowered in FREQUENCIES:
        return lowered
    return FREQUENCY_SYNONYMS.get(lowered)


def _clamp(value: float, field_name: str, label: str, repairs: List[str]) -> float:
    if value > MAX_METRIC_VALUE:
        repairs.append(f"{label} {field_name} {value:g} clamped to {MAX_METRIC_VALUE}")
        return MAX_METRIC_VALUE
    return value


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _format_pydantic_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg')}"
