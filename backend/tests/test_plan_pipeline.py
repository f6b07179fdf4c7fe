"""End-to-end tests for the plan generation pipeline against SQLite."""
from __future__ import annotations

import json
from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from goalpath.db.models.key_result import KeyResult
from goalpath.db.models.plan_action_log import PlanActionLog
from goalpath.services import goal_service, plan_repository
from goalpath.services.errors import InvalidRangeError, PersistenceError, PlanAlreadyExists
from goalpath.services.oracle_client import OracleGenerationClient
from goalpath.services.plan_pipeline import PipelineRequest, PlanGenerationPipeline

START = date(2025, 3, 15)
DUE = date(2027, 6, 10)
YEARS = [2025, 2026, 2027]


@pytest.fixture()
def goal(db):
    return goal_service.create_goal(
        db,
        uuid4(),
        "Write a novel",
        DUE,
        description="A family saga",
        today=date(2022, 1, 1),
    )


def _request(goal, start: date = START, chat=()) -> PipelineRequest:
    return PipelineRequest(
        goal_id=goal.id,
        goal_title=goal.title,
        goal_description=goal.description or "",
        due_date=goal.due_date,
        chat_history=list(chat),
        start_date=start,
        request_id="req-pipeline",
    )


def _targets(db, goal_id):
    return [
        [float(kr.target_value) for kr in yearly.key_results]
        for yearly in plan_repository.list_yearly_objectives(db, goal_id)
    ]


def test_without_model_the_fallback_plan_is_stored(db, goal) -> None:
    result = PlanGenerationPipeline(db, OracleGenerationClient(None)).run(_request(goal))

    assert result.fallback_used is True
    assert result.fallback_reason == "generation failed: no language model configured"
    assert [row.target_year for row in result.yearly_objectives] == YEARS
    assert _targets(db, goal.id) == [[10.0], [12.0], [6.0]]
    assert plan_repository.list_quarterly_objectives(db, goal.id) == []
    assert result.trail == ["check_existing", "analyze", "generate", "fallback", "persist", "done"]


def test_model_plan_approved_by_review(db, goal, scripted_model, candidate) -> None:
    model = scripted_model(candidate(YEARS), "APPROVED")

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=True).run(_request(goal))

    assert result.fallback_used is False
    assert result.review_status == "approved"
    assert len(model.prompts) == 2
    assert result.trail == ["check_existing", "analyze", "generate", "validate", "review", "persist", "done"]
    assert [row.objective for row in result.yearly_objectives] == ["Build a steady writing practice"] * 3
    assert result.metadata["overall_strategy"] == "Write a little every week"


def test_review_revision_is_stored(db, goal, scripted_model, candidate) -> None:
    revision = candidate(YEARS)
    revision["yearly_objectives"][0]["objective"] = "Finish the first draft"
    model = scripted_model(candidate(YEARS), revision)

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=True).run(_request(goal))

    assert result.review_status == "revised"
    assert result.review_revised is True
    assert result.yearly_objectives[0].objective == "Finish the first draft"


def test_revision_with_duplicate_year_keeps_original(db, goal, scripted_model, candidate) -> None:
    model = scripted_model(candidate(YEARS), candidate([2025, 2025, 2026, 2027]))

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=True).run(_request(goal))

    assert result.review_revised is False
    years = [row.target_year for row in plan_repository.list_yearly_objectives(db, goal.id)]
    assert years == YEARS


def test_unparseable_model_output_falls_back(db, goal, scripted_model) -> None:
    model = scripted_model("Sorry, I cannot help with that.")

    result = PlanGenerationPipeline(db, OracleGenerationClient(model)).run(_request(goal))

    assert result.fallback_used is True
    assert result.fallback_reason.startswith("generation failed")
    assert _targets(db, goal.id) == [[10.0], [12.0], [6.0]]


def test_invalid_model_plan_falls_back(db, goal, scripted_model, candidate) -> None:
    model = scripted_model(candidate([2025, 2025, 2026]))

    result = PlanGenerationPipeline(db, OracleGenerationClient(model)).run(_request(goal))

    assert result.fallback_used is True
    assert result.fallback_reason.startswith("validation failed")
    assert "validate" in result.trail
    assert "review" not in result.trail
    assert len(model.prompts) == 1


def test_second_run_is_rejected_before_any_model_call(db, goal, scripted_model) -> None:
    PlanGenerationPipeline(db, OracleGenerationClient(None)).run(_request(goal))
    before = _targets(db, goal.id)
    model = scripted_model()

    with pytest.raises(PlanAlreadyExists, match="delete the existing plan first"):
        PlanGenerationPipeline(db, OracleGenerationClient(model)).run(_request(goal))

    assert model.prompts == []
    assert _targets(db, goal.id) == before


def test_oversized_target_is_clamped_and_reported(db, goal, scripted_model, candidate) -> None:
    model = scripted_model(candidate(YEARS, target_value=500_000_000))

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=False).run(_request(goal))

    assert result.repairs
    assert all(target == [99_999_999.0] for target in _targets(db, goal.id))


def test_storage_failure_leaves_nothing_behind(db, goal, monkeypatch) -> None:
    def _broken_record_action(*args, **kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(plan_repository, "record_action", _broken_record_action)

    with pytest.raises(PersistenceError):
        PlanGenerationPipeline(db, OracleGenerationClient(None)).run(_request(goal))

    assert plan_repository.has_plan(db, goal.id) is False
    assert db.execute(select(KeyResult)).scalars().all() == []


def test_review_can_be_switched_off(db, goal, scripted_model, candidate) -> None:
    model = scripted_model(candidate(YEARS))

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=False).run(_request(goal))

    assert result.review_status == "skipped"
    assert len(model.prompts) == 1


def test_milestones_become_stored_quarterly_objectives(db, goal, scripted_model, candidate) -> None:
    plan = candidate(YEARS)
    plan["yearly_objectives"][1]["key_milestones"] = [
        {"month": 2, "milestone": "Outline finished"},
        {"month": 10, "milestone": "Second draft done"},
    ]
    model = scripted_model(plan)

    PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=False).run(_request(goal))

    quarterly = plan_repository.list_quarterly_objectives(db, goal.id)
    assert [(q.target_year, q.target_quarter) for q in quarterly] == [(2026, 1), (2026, 4)]
    assert quarterly[0].objective == "Outline finished"
    assert [float(kr.target_value) for kr in quarterly[0].key_results] == [3.0, 1.0]


def test_due_date_before_start_is_rejected(db, goal) -> None:
    with pytest.raises(InvalidRangeError):
        PlanGenerationPipeline(db, OracleGenerationClient(None)).run(_request(goal, start=date(2030, 1, 1)))

    assert plan_repository.has_plan(db, goal.id) is False


def test_analysis_summary_and_audit_entry(db, goal) -> None:
    chat = [{"role": "user", "content": "I want to write the book my grandmother never could."}]

    result = PlanGenerationPipeline(db, OracleGenerationClient(None)).run(_request(goal, chat=chat))

    assert result.analysis["readiness_level"] == 5
    assert result.analysis["completion_percentage"] == 20.0
    assert result.analysis["period"]["total_months"] == 28
    entries = db.execute(select(PlanActionLog).where(PlanActionLog.goal_id == goal.id)).scalars().all()
    assert [entry.action_type for entry in entries] == ["plan_generated"]
    assert entries[0].action_payload["source"] == "fallback"
    assert entries[0].request_id == "req-pipeline"


class _CompetingRunModel:
    """Answers with a plan, but only after another run has stored one for the goal."""

    def __init__(self, db, goal, answer):
        self.db, self.goal, self.answer = db, goal, answer
        self.prompts = []

    def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        PlanGenerationPipeline(self.db, OracleGenerationClient(None)).run(_request(self.goal))
        return json.dumps(self.answer)


def test_plan_stored_during_generation_is_not_overwritten(db, goal, candidate) -> None:
    model = _CompetingRunModel(db, goal, candidate(YEARS, target_value=40))

    with pytest.raises(PlanAlreadyExists):
        PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=False).run(_request(goal))

    assert len(model.prompts) == 1
    assert _targets(db, goal.id) == [[10.0], [12.0], [6.0]]
    assert plan_repository._goal_locks == {}


def test_unrepresentable_model_target_falls_back(db, goal, scripted_model, candidate) -> None:
    plan = candidate(YEARS, target_value=10**400)
    plan["yearly_objectives"][0]["key_milestones"] = [{"month": 5, "milestone": "First chapter"}]
    model = scripted_model(plan)

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=False).run(_request(goal))

    assert result.fallback_used is True
    assert result.fallback_reason.startswith("validation failed")
    assert _targets(db, goal.id) == [[10.0], [12.0], [6.0]]


def test_target_below_storage_precision_is_stored_as_minimum(db, goal, scripted_model, candidate) -> None:
    model = scripted_model(candidate(YEARS, target_value=0.004))

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=False).run(_request(goal))

    assert result.fallback_used is False
    assert any("raised to 0.01" in repair for repair in result.repairs)
    assert _targets(db, goal.id) == [[0.01], [0.01], [0.01]]


def test_review_answer_with_unrepresentable_target_keeps_the_plan(db, goal, scripted_model, candidate) -> None:
    model = scripted_model(candidate(YEARS), candidate(YEARS, target_value=10**400))

    result = PlanGenerationPipeline(db, OracleGenerationClient(model), review_enabled=True).run(_request(goal))

    assert result.fallback_used is False
    assert result.review_status == "approved"
    assert _targets(db, goal.id) == [[12.0], [12.0], [12.0]]


def test_constraint_clash_from_a_concurrent_commit_is_reported_as_existing_plan(db, goal, monkeypatch) -> None:
    PlanGenerationPipeline(db, OracleGenerationClient(None)).run(_request(goal))
    real_has_plan = plan_repository.has_plan
    calls = []

    def has_plan_missing_the_commit(session, goal_id):
        # The first two checks run before the other run's commit becomes visible.
        calls.append(goal_id)
        return False if len(calls) <= 2 else real_has_plan(session, goal_id)

    monkeypatch.setattr(plan_repository, "has_plan", has_plan_missing_the_commit)

    with pytest.raises(PlanAlreadyExists):
        PlanGenerationPipeline(db, OracleGenerationClient(None)).run(_request(goal))

    assert len(calls) == 3
    assert _targets(db, goal.id) == [[10.0], [12.0], [6.0]]
