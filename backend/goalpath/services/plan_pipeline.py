"""End-to-end plan generation: check, analyse, generate, review, persist."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from time import perf_counter
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from goalpath.core.config import settings
from goalpath.core.context import goal_id_ctx_var
from goalpath.db.models.yearly_objective import YearlyObjective
from goalpath.observability.metrics import log_metric
from goalpath.observability.tracing import annotate, trace
from goalpath.services import plan_repository
from goalpath.services.conversation_analysis import (
    ConversationAnalysis,
    ConversationAnalyzer,
    ConversationDepth,
    HeuristicConversationAnalyzer,
    analyze_goal_depth,
    extract_chat_insights,
)
from goalpath.services.errors import GenerationFailed, PlanAlreadyExists, PlanValidationError
from goalpath.services.fallback_generator import generate_fallback
from goalpath.services.oracle_client import GenerationRequest, OracleGenerationClient
from goalpath.services.period_calculator import PeriodBreakdown, compute_breakdown
from goalpath.services.plan_schema import ChatInsights, GeneratedPlan
from goalpath.services.plan_validator import validate_candidate

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    CHECK_EXISTING = "check_existing"
    ANALYZE = "analyze"
    GENERATE = "generate"
    VALIDATE = "validate"
    REVIEW = "review"
    FALLBACK = "fallback"
    PERSIST = "persist"
    DONE = "done"
    REJECTED = "rejected"


@dataclass
class PipelineRequest:
    goal_id: UUID
    goal_title: str
    goal_description: str
    due_date: date
    chat_history: Sequence[Mapping[str, Any]] = field(default_factory=list)
    start_date: Optional[date] = None
    request_id: Optional[str] = None


@dataclass
class PipelineContext:
    """Everything one run has learned so far; passed explicitly between steps."""

    request: PipelineRequest
    state: PipelineState = PipelineState.CHECK_EXISTING
    trail: List[str] = field(default_factory=list)
    breakdown: Optional[PeriodBreakdown] = None
    analysis: Optional[ConversationAnalysis] = None
    depth: Optional[ConversationDepth] = None
    insights: Optional[ChatInsights] = None
    raw_candidate: Optional[Dict[str, Any]] = None
    plan: Optional[GeneratedPlan] = None
    fallback_reason: Optional[str] = None
    review_status: Optional[str] = None
    review_note: Optional[str] = None

    def enter(self, state: PipelineState) -> None:
        self.state = state
        self.trail.append(state.value)
        logger.debug("Plan pipeline -> %s", state.value)


@dataclass
class PersistedPlan:
    goal_id: UUID
    yearly_objectives: List[YearlyObjective]
    analysis: Dict[str, Any]
    metadata: Dict[str, Any]
    repairs: List[str]
    fallback_used: bool
    fallback_reason: Optional[str]
    review_status: Optional[str]
    trail: List[str]

    @property
    def review_revised(self) -> bool:
        return self.review_status == "revised"


class PlanGenerationPipeline:
    """Turns a goal and its conversation into a stored yearly/quarterly plan.

    Runs at most once per goal: an existing plan makes the run fail with
    PlanAlreadyExists before any model call is made. Model calls run
    without the goal lock, which is only held to re-check and store.
    """

    def __init__(
        self,
        db: Session,
        oracle: OracleGenerationClient,
        analyzer: Optional[ConversationAnalyzer] = None,
        review_enabled: Optional[bool] = None,
    ):
        self.db = db
        self.oracle = oracle
        self.analyzer = analyzer or HeuristicConversationAnalyzer()
        self.review_enabled = settings.plan_review_enabled if review_enabled is None else review_enabled

    def run(self, request: PipelineRequest) -> PersistedPlan:
        ctx = PipelineContext(request=request)
        token = goal_id_ctx_var.set(str(request.goal_id))
        started = perf_counter()
        success = False
        try:
            with trace(
                "plan.pipeline",
                metadata={"goal_title": request.goal_title[:120]},
                goal_id=str(request.goal_id),
                request_id=request.request_id,
            ) as span:
                self._check_existing(ctx)
                self._analyze(ctx)
                self._generate(ctx)
                if ctx.plan is not None:
                    self._review(ctx)
                else:
                    self._fallback(ctx)
                with plan_repository.goal_lock(self.db, request.goal_id):
                    yearly_rows = self._persist(ctx)
                ctx.enter(PipelineState.DONE)
                annotate(span, trail=ctx.trail, fallback_used=ctx.plan.source == "fallback", repairs=len(ctx.plan.repairs))
                success = True
        finally:
            goal_id_ctx_var.reset(token)
            metric_metadata = {"goal_id": str(request.goal_id), "final_state": ctx.state.value}
            log_metric("plan.pipeline.success", 1 if success else 0, metadata=metric_metadata)
            log_metric("plan.pipeline.latency_ms", (perf_counter() - started) * 1000, metadata=metric_metadata)

        return PersistedPlan(
            goal_id=request.goal_id,
            yearly_objectives=yearly_rows,
            analysis=self._analysis_summary(ctx),
            metadata=ctx.plan.candidate.oracle_metadata(),
            repairs=list(ctx.plan.repairs),
            fallback_used=ctx.plan.source == "fallback",
            fallback_reason=ctx.fallback_reason,
            review_status=ctx.review_status,
            trail=list(ctx.trail),
        )

    def _check_existing(self, ctx: PipelineContext) -> None:
        ctx.enter(PipelineState.CHECK_EXISTING)
        self._reject_if_planned(ctx)

    def _reject_if_planned(self, ctx: PipelineContext) -> None:
        if plan_repository.has_plan(self.db, ctx.request.goal_id):
            ctx.enter(PipelineState.REJECTED)
            logger.info("Goal already has a plan; refusing to store another")
            raise PlanAlreadyExists(ctx.request.goal_id)

    def _analyze(self, ctx: PipelineContext) -> None:
        ctx.enter(PipelineState.ANALYZE)
        request = ctx.request
        start = request.start_date or date.today()
        ctx.breakdown = compute_breakdown(start, request.due_date)
        ctx.analysis = self.analyzer.analyze(request.chat_history)
        ctx.depth = analyze_goal_depth(request.chat_history)
        ctx.insights = extract_chat_insights(request.chat_history, ctx.analysis)
        logger.info(
            "Planning %s months across %s calendar years (readiness %s)",
            ctx.breakdown.total_months,
            len(ctx.breakdown.years),
            ctx.analysis.readiness_level,
        )

    def _generate(self, ctx: PipelineContext) -> None:
        ctx.enter(PipelineState.GENERATE)
        request = ctx.request
        generation_request = GenerationRequest(
            goal_title=request.goal_title,
            goal_description=request.goal_description,
            breakdown=ctx.breakdown,
            insights=ctx.insights or ChatInsights(),
            request_id=request.request_id,
        )
        try:
            ctx.raw_candidate = self.oracle.draft(generation_request)
        except GenerationFailed as exc:
            ctx.fallback_reason = f"generation failed: {exc.reason}"
            logger.warning("Plan generation failed, using fallback: %s", exc.reason)
            return

        ctx.enter(PipelineState.VALIDATE)
        try:
            outcome = validate_candidate(ctx.raw_candidate, ctx.breakdown)
        except PlanValidationError as exc:
            ctx.fallback_reason = f"validation failed: {exc}"
            logger.warning("Generated plan rejected, using fallback: %s", exc)
            log_metric("plan.validation.rejected", 1, metadata={"violations": len(exc.violations)})
            return
        ctx.plan = GeneratedPlan(candidate=outcome.plan, repairs=outcome.repairs, source="oracle")
        log_metric("plan.validation.repairs", len(outcome.repairs))

    def _review(self, ctx: PipelineContext) -> None:
        ctx.enter(PipelineState.REVIEW)
        if not self.review_enabled:
            ctx.review_status = "skipped"
            return
        outcome = self.oracle.review(ctx.plan, ctx.breakdown, request_id=ctx.request.request_id)
        ctx.plan = outcome.plan
        ctx.review_status = outcome.status
        ctx.review_note = outcome.note

    def _fallback(self, ctx: PipelineContext) -> None:
        ctx.enter(PipelineState.FALLBACK)
        ctx.plan = generate_fallback(ctx.request.goal_title, ctx.breakdown)
        log_metric("plan.fallback.used", 1, metadata={"reason": ctx.fallback_reason})

    def _persist(self, ctx: PipelineContext) -> List[YearlyObjective]:
        # Runs under the goal lock; another run may have stored a plan meanwhile.
        ctx.enter(PipelineState.PERSIST)
        self._reject_if_planned(ctx)
        audit_payload = {
            "source": ctx.plan.source,
            "fallback_reason": ctx.fallback_reason,
            "review_status": ctx.review_status,
            "repairs": list(ctx.plan.repairs),
            "years": [entry.year for entry in ctx.plan.candidate.yearly_objectives],
            "quarterly_objectives": len(ctx.plan.candidate.quarterly_objectives),
        }
        return plan_repository.persist_plan(
            self.db,
            ctx.request.goal_id,
            ctx.plan.candidate,
            audit_payload=audit_payload,
            request_id=ctx.request.request_id,
        )

    @staticmethod
    def _analysis_summary(ctx: PipelineContext) -> Dict[str, Any]:
        summary: Dict[str, Any] = ctx.analysis.to_dict() if ctx.analysis else {}
        if ctx.depth is not None:
            summary["completion_percentage"] = ctx.depth.completion_percentage
            summary["missing_aspects"] = list(ctx.depth.missing_aspects)
        if ctx.breakdown is not None:
            summary["period"] = ctx.breakdown.to_dict()
        return summary
