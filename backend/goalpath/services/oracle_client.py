"""Language-model backed plan generation and review."""
from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, List, Optional, Protocol

import openai

from goalpath.core.config import Settings, settings
from goalpath.observability.metrics import log_metric
from goalpath.observability.tracing import annotate, trace
from goalpath.services.errors import GenerationFailed, LanguageModelError, PlanValidationError
from goalpath.services.period_calculator import PeriodBreakdown, quarter_for_month
from goalpath.services.plan_schema import MAX_METRIC_VALUE, ChatInsights, GeneratedPlan
from goalpath.services.plan_validator import validate_candidate

logger = logging.getLogger(__name__)

APPROVED_SENTINEL = "APPROVED"
MAX_QUARTERLY_KEY_RESULTS = 4

SYSTEM_PROMPT = (
    "You are an OKR (Objectives and Key Results) planning expert. "
    "You turn long-horizon personal goals into realistic yearly and quarterly objectives "
    "with measurable key results. Always answer with a single valid JSON object."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class LanguageModel(Protocol):
    def invoke(self, prompt: str) -> str:
        """Send one prompt and return the raw text answer."""


class OpenAIChatModel:
    """Chat-completions adapter with JSON output and a hard request timeout."""

    def __init__(self, api_key: str, *, model: str = "gpt-4o", timeout: float = 60.0):
        self.model = model
        self._client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=1)

    def invoke(self, prompt: str) -> str:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except openai.OpenAIError as exc:
            raise LanguageModelError(f"{type(exc).__name__}: {exc}") from exc
        return completion.choices[0].message.content or ""


def build_language_model(config: Settings | None = None) -> Optional[OpenAIChatModel]:
    """Return the configured model, or None when no API key is set."""
    config = config or settings
    if not config.openai_api_key:
        logger.warning("OPENAI_API_KEY missing; plans will come from the fallback generator.")
        return None
    return OpenAIChatModel(
        config.openai_api_key,
        model=config.openai_model,
        timeout=config.oracle_timeout_seconds,
    )


@dataclass
class GenerationRequest:
    goal_title: str
    goal_description: str
    breakdown: PeriodBreakdown
    insights: ChatInsights = field(default_factory=ChatInsights)
    request_id: Optional[str] = None


@dataclass
class ReviewOutcome:
    plan: GeneratedPlan
    revised: bool = False
    note: Optional[str] = None

    @property
    def status(self) -> str:
        return "revised" if self.revised else "approved"


class OracleGenerationClient:
    """Primary generation plus an independent review pass over one language model."""

    def __init__(self, model: Optional[LanguageModel]):
        self.model = model

    @property
    def available(self) -> bool:
        return self.model is not None

    def draft(self, request: GenerationRequest) -> Dict[str, Any]:
        """Ask the model for a plan and return the parsed, unvalidated candidate."""
        if self.model is None:
            raise GenerationFailed("no language model configured")

        prompt = build_generation_prompt(request)
        metadata = {
            "goal_title": request.goal_title[:120],
            "total_months": request.breakdown.total_months,
            "years": [record.year for record in request.breakdown.years],
        }
        started = perf_counter()
        success = False
        try:
            with trace("oracle.generate", metadata=metadata, request_id=request.request_id) as span:
                try:
                    raw = self.model.invoke(prompt)
                except LanguageModelError as exc:
                    raise GenerationFailed("language model call failed", cause=exc) from exc
                candidate = parse_oracle_json(raw)
                derived = derive_quarterly_objectives(candidate)
                annotate(span, response_chars=len(raw), derived_quarterlies=derived)
                success = True
                return candidate
        finally:
            latency_ms = (perf_counter() - started) * 1000
            log_metric("oracle.generate.success", 1 if success else 0, metadata=metadata)
            log_metric("oracle.generate.latency_ms", latency_ms, metadata=metadata)

    def generate(self, request: GenerationRequest) -> GeneratedPlan:
        """Draft a plan and run it through the validator.

        Raises GenerationFailed for model errors, unparseable output and
        unrepairable plans alike.
        """
        candidate = self.draft(request)
        try:
            outcome = validate_candidate(candidate, request.breakdown)
        except PlanValidationError as exc:
            raise GenerationFailed(f"generated plan rejected: {exc}", cause=exc) from exc
        return GeneratedPlan(candidate=outcome.plan, repairs=outcome.repairs, source="oracle")

    def review(
        self,
        plan: GeneratedPlan,
        breakdown: Optional[PeriodBreakdown] = None,
        request_id: Optional[str] = None,
    ) -> ReviewOutcome:
        """Let a second call approve or revise the plan; problems keep the original."""
        if self.model is None:
            return ReviewOutcome(plan=plan, note="review skipped: no language model")

        with trace("oracle.review", metadata={"source": plan.source}, request_id=request_id) as span:
            outcome = self._review(plan, breakdown)
            annotate(span, status=outcome.status, note=outcome.note)
        log_metric("oracle.review.revised", 1 if outcome.revised else 0, metadata={"note": outcome.note})
        return outcome

    def _review(self, plan: GeneratedPlan, breakdown: Optional[PeriodBreakdown]) -> ReviewOutcome:
        try:
            raw = self.model.invoke(build_review_prompt(plan))
        except LanguageModelError as exc:
            logger.warning("Plan review call failed, keeping original plan: %s", exc)
            return ReviewOutcome(plan=plan, note=f"review call failed: {exc}")

        if _is_approval(raw):
            return ReviewOutcome(plan=plan)

        try:
            candidate = parse_oracle_json(raw)
            if _is_approval_payload(candidate):
                return ReviewOutcome(plan=plan)
            derive_quarterly_objectives(candidate)
            outcome = validate_candidate(candidate, breakdown)
        except (GenerationFailed, PlanValidationError) as exc:
            logger.warning("Discarding plan revision: %s", exc)
            return ReviewOutcome(plan=plan, note=f"revision discarded: {exc}")

        revised = GeneratedPlan(candidate=outcome.plan, repairs=outcome.repairs, source=plan.source)
        return ReviewOutcome(plan=revised, revised=True)


def parse_oracle_json(raw: str) -> Dict[str, Any]:
    """Decode model output as a JSON object, tolerating markdown code fences."""
    text = _FENCE_RE.sub("", (raw or "").strip()).strip()
    if not text:
        raise GenerationFailed("language model returned an empty answer")
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError):
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise GenerationFailed("language model answer is not JSON")
        try:
            payload = json.loads(text[start : end + 1])
        except (ValueError, RecursionError) as exc:
            raise GenerationFailed("language model answer is not JSON", cause=exc) from exc
    if not isinstance(payload, dict):
        raise GenerationFailed("language model answer is not a JSON object")
    return payload


def derive_quarterly_objectives(candidate: Dict[str, Any]) -> int:
    """Fill in quarterly objectives from yearly milestones when none were given.

    Each quarter with at least one milestone gets an objective, a share of
    every yearly key result (a quarter of the target, at least 1) and a key
    result counting its milestones, capped at four key results. Returns the
    number of quarterly objectives added.
    """
    if candidate.get("quarterly_objectives"):
        return 0
    yearly_entries = candidate.get("yearly_objectives")
    if not isinstance(yearly_entries, list):
        return 0

    derived: List[Dict[str, Any]] = []
    for entry in yearly_entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("key_milestones"), list):
            continue
        by_quarter: Dict[int, List[str]] = {}
        for milestone in entry["key_milestones"]:
            if not isinstance(milestone, dict):
                continue
            month, text = milestone.get("month"), milestone.get("milestone")
            if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
                continue
            if not isinstance(text, str) or not text.strip():
                continue
            by_quarter.setdefault(quarter_for_month(month), []).append(text.strip())

        for quarter in sorted(by_quarter):
            milestones = by_quarter[quarter]
            key_results = _quarterly_share(entry.get("key_results"), quarter)
            key_results = key_results[: MAX_QUARTERLY_KEY_RESULTS - 1]
            key_results.append(
                {
                    "description": f"Reach the Q{quarter} milestones",
                    "target_value": len(milestones),
                    "current_value": 0,
                    "unit": "milestones",
                    "measurement_method": "Milestones completed this quarter",
                    "frequency": "quarterly",
                }
            )
            derived.append(
                {
                    "year": entry.get("year"),
                    "quarter": quarter,
                    "objective": "; ".join(milestones),
                    "key_results": key_results,
                }
            )

    candidate["quarterly_objectives"] = derived
    return len(derived)


def _quarterly_share(yearly_key_results: Any, quarter: int) -> List[Dict[str, Any]]:
    shares: List[Dict[str, Any]] = []
    if not isinstance(yearly_key_results, list):
        return shares
    for kr in yearly_key_results:
        if not isinstance(kr, dict):
            continue
        target = kr.get("target_value")
        if isinstance(target, bool) or not isinstance(target, (int, float)) or not target > 0:
            continue
        shares.append(
            {
                "description": f"{kr.get('description') or 'Key result'} (Q{quarter} share)",
                "target_value": max(1, math.ceil(min(target, MAX_METRIC_VALUE) / 4)),
                "current_value": 0,
                "unit": kr.get("unit"),
                "measurement_method": kr.get("measurement_method"),
                "frequency": kr.get("frequency"),
            }
        )
    return shares


def _is_approval(raw: str) -> bool:
    return _FENCE_RE.sub("", (raw or "").strip()).strip().strip('".').upper() == APPROVED_SENTINEL


def _is_approval_payload(payload: Dict[str, Any]) -> bool:
    verdict = payload.get("verdict") or payload.get("status")
    return isinstance(verdict, str) and verdict.strip().upper() == APPROVED_SENTINEL and "yearly_objectives" not in payload


def build_generation_prompt(request: GenerationRequest) -> str:
    breakdown = request.breakdown
    insights = request.insights
    year_lines = []
    for record in breakdown.years:
        span = f" (months {record.start_month}-{record.end_month})" if record.is_partial_year else ""
        year_lines.append(f"- {record.year}: {record.months_in_year} months{span}")

    example = {
        "yearly_objectives": [
            {
                "year": breakdown.years[0].year if breakdown.years else 2025,
                "months_in_year": 12,
                "start_month": 1,
                "end_month": 12,
                "is_partial_year": False,
                "objective": "Concrete, measurable objective for the year (no year or quarter labels)",
                "rationale": "Why this objective matters this year",
                "key_milestones": [{"month": 3, "milestone": "Milestone reached by this month"}],
                "key_results": [
                    {
                        "description": "Measurable outcome",
                        "target_value": 100,
                        "unit": "items",
                        "measurement_method": "How it is measured",
                        "frequency": "monthly",
                        "baseline_value": 0,
                    }
                ],
                "dependencies": ["Prerequisite"],
                "risk_factors": ["Risk"],
            }
        ],
        "overall_strategy": "Overall approach",
        "success_criteria": ["How success is judged"],
        "total_estimated_effort": "Estimated effort, e.g. hours per week x months",
        "key_success_factors": ["Factor"],
    }

    return (
        "### GOAL\n"
        f"- Title: {request.goal_title}\n"
        f"- Description: {request.goal_description or 'Not provided'}\n"
        f"- Period: {breakdown.total_years} years ({breakdown.total_months} months)\n\n"
        "### YEARS\n"
        f"{chr(10).join(year_lines)}\n\n"
        "### USER INSIGHTS\n"
        f"- Motivation: {insights.motivation or 'Not provided'}\n"
        f"- Current skills: {insights.current_skills or 'Not provided'}\n"
        f"- Available resources: {insights.available_resources or 'Not provided'}\n"
        f"- Constraints: {insights.constraints or 'Not provided'}\n"
        f"- Values: {insights.values or 'Not provided'}\n\n"
        "### RULES\n"
        "1. Exactly one yearly objective per listed year; never repeat a year.\n"
        "2. Partial years get objectives sized to the months available.\n"
        "3. Give each year 3-5 measurable key results with numeric targets.\n"
        "4. Build continuity and gradual growth from year to year.\n"
        "5. Reflect the user's motivation and values; note risks and dependencies.\n"
        "6. Add monthly milestones for each year.\n"
        f"7. target_value must be a positive number no larger than {MAX_METRIC_VALUE}.\n"
        '8. frequency must be one of "daily", "weekly", "monthly", "quarterly", "annually", "once".\n'
        "9. Objectives must not contain period labels such as '2025:' or 'Q1:'.\n\n"
        "### OUTPUT\n"
        "Return strictly valid JSON shaped like this example:\n"
        f"{json.dumps(example, indent=2)}"
    )


def build_review_prompt(plan: GeneratedPlan) -> str:
    return (
        "Review the OKR plan below and improve it if needed.\n\n"
        f"{json.dumps(plan.candidate.model_dump(), indent=2)}\n\n"
        "### HARD CONSTRAINTS\n"
        "- Never create more than one yearly objective for the same year.\n"
        "- To add detail, enrich the key results instead of adding objectives.\n\n"
        "### REVIEW CRITERIA\n"
        "1. Objectives are specific and measurable.\n"
        "2. Years build on each other.\n"
        "3. Targets are realistic.\n"
        "4. Risks are analysed sensibly.\n"
        "5. Milestones are well placed.\n"
        "6. Every year appears once.\n\n"
        'If the plan needs changes, return the full revised plan as JSON in the same shape. '
        f'If it is fine, return the JSON object {{"verdict": "{APPROVED_SENTINEL}"}}.'
    )


def get_oracle_client() -> OracleGenerationClient:
    """FastAPI dependency returning a client bound to the configured model."""
    return OracleGenerationClient(build_language_model())
