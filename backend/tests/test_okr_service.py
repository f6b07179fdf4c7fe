"""Tests for manual objective and key result edits."""
from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select

from goalpath.db.models.goal import Goal
from goalpath.db.models.key_result import KeyResult
from goalpath.db.models.plan_action_log import PlanActionLog
from goalpath.db.models.quarterly_objective import QuarterlyObjective
from goalpath.db.models.yearly_objective import YearlyObjective
from goalpath.services import goal_service, okr_service
from goalpath.services.errors import PlanConflictError, PlanInvariantError


@pytest.fixture()
def goal(db):
    return goal_service.create_goal(db, uuid4(), "Learn Japanese", date(2032, 4, 1), today=date(2026, 1, 1))


@pytest.fixture()
def yearly(db, goal):
    return okr_service.create_yearly_objective(db, goal.id, 2027, "Pass JLPT N3", request_id="req-okr")


def test_yearly_objective_is_created_and_audited(db, goal, yearly) -> None:
    assert yearly.target_year == 2027
    assert yearly.sort_order == 0
    entry = db.execute(select(PlanActionLog).where(PlanActionLog.goal_id == goal.id)).scalar_one()
    assert entry.action_type == "yearly_objective_created"
    assert entry.request_id == "req-okr"


def test_second_yearly_objective_for_same_year_conflicts(db, goal, yearly) -> None:
    with pytest.raises(PlanConflictError):
        okr_service.create_yearly_objective(db, goal.id, 2027, "Another objective")


@pytest.mark.parametrize("year", [1999, 2101])
def test_yearly_objective_year_must_be_plausible(db, goal, year) -> None:
    with pytest.raises(PlanInvariantError) as excinfo:
        okr_service.create_yearly_objective(db, goal.id, year, "Too far")

    assert not isinstance(excinfo.value, PlanConflictError)


def test_blank_objective_is_rejected(db, goal) -> None:
    with pytest.raises(PlanInvariantError, match="objective must not be empty"):
        okr_service.create_yearly_objective(db, goal.id, 2028, "   ")


def test_yearly_objective_for_unknown_goal(db) -> None:
    with pytest.raises(LookupError):
        okr_service.create_yearly_objective(db, uuid4(), 2027, "Orphan")


def test_quarterly_objective_inherits_the_year(db, yearly) -> None:
    quarterly = okr_service.create_quarterly_objective(db, yearly.id, 2, "Finish the N4 textbook")

    assert quarterly.target_year == 2027
    assert quarterly.target_quarter == 2
    assert quarterly.yearly_objective_id == yearly.id


@pytest.mark.parametrize("quarter", [0, 5])
def test_quarter_must_be_one_to_four(db, yearly, quarter) -> None:
    with pytest.raises(PlanInvariantError, match="between 1 and 4"):
        okr_service.create_quarterly_objective(db, yearly.id, quarter, "Bad quarter")


def test_quarterly_year_must_match_parent(db, yearly) -> None:
    with pytest.raises(PlanInvariantError, match="does not match"):
        okr_service.create_quarterly_objective(db, yearly.id, 1, "Wrong year", year=2028)


def test_duplicate_quarter_conflicts(db, yearly) -> None:
    okr_service.create_quarterly_objective(db, yearly.id, 3, "Kanji drills")

    with pytest.raises(PlanConflictError):
        okr_service.create_quarterly_objective(db, yearly.id, 3, "More kanji drills")


def test_quarterly_for_unknown_yearly(db) -> None:
    with pytest.raises(LookupError):
        okr_service.create_quarterly_objective(db, uuid4(), 1, "Orphan")


def test_key_result_needs_exactly_one_parent(db, yearly) -> None:
    quarterly = okr_service.create_quarterly_objective(db, yearly.id, 1, "Hiragana")

    with pytest.raises(PlanInvariantError, match="exactly one parent"):
        okr_service.create_key_result(
            db,
            description="Both parents",
            target_value=10,
            yearly_objective_id=yearly.id,
            quarterly_objective_id=quarterly.id,
        )
    with pytest.raises(PlanInvariantError, match="exactly one parent"):
        okr_service.create_key_result(db, description="No parent", target_value=10)


@pytest.mark.parametrize("target", [0, -1])
def test_key_result_target_must_be_positive(db, yearly, target) -> None:
    with pytest.raises(PlanInvariantError, match="greater than 0"):
        okr_service.create_key_result(db, description="Words", target_value=target, yearly_objective_id=yearly.id)


def test_key_result_values_are_clamped(db, yearly) -> None:
    key_result = okr_service.create_key_result(
        db,
        description="Flashcards reviewed",
        target_value=2_000_000_000,
        current_value=-3,
        yearly_objective_id=yearly.id,
    )

    assert float(key_result.target_value) == 99_999_999.0
    assert float(key_result.current_value) == 0.0


def test_key_result_on_unknown_parent(db) -> None:
    with pytest.raises(LookupError):
        okr_service.create_key_result(db, description="Orphan", target_value=5, quarterly_objective_id=uuid4())


def test_quarterly_key_result_rolls_up_to_goal(db, goal, yearly) -> None:
    quarterly = okr_service.create_quarterly_objective(db, yearly.id, 1, "Hiragana")

    okr_service.create_key_result(
        db,
        description="Characters memorised",
        target_value=46,
        current_value=23,
        quarterly_objective_id=quarterly.id,
    )

    db.expire_all()
    assert float(db.get(QuarterlyObjective, quarterly.id).progress_percentage) == 50.0
    assert float(db.get(YearlyObjective, yearly.id).progress_percentage) == 50.0
    assert float(db.get(Goal, goal.id).progress_percentage) == 50.0


def test_key_results_are_ordered_as_added(db, yearly) -> None:
    first = okr_service.create_key_result(db, description="Read", target_value=10, yearly_objective_id=yearly.id)
    second = okr_service.create_key_result(db, description="Write", target_value=10, yearly_objective_id=yearly.id)

    assert (first.sort_order, second.sort_order) == (0, 1)


def test_deleting_yearly_objective_removes_its_subtree(db, goal, yearly) -> None:
    quarterly = okr_service.create_quarterly_objective(db, yearly.id, 1, "Hiragana")
    okr_service.create_key_result(db, description="Chars", target_value=46, current_value=46, quarterly_objective_id=quarterly.id)
    okr_service.create_key_result(db, description="Lessons", target_value=10, current_value=10, yearly_objective_id=yearly.id)

    okr_service.delete_yearly_objective(db, yearly.id)

    db.expire_all()
    assert db.execute(select(QuarterlyObjective)).scalars().all() == []
    assert db.execute(select(KeyResult)).scalars().all() == []
    assert float(db.get(Goal, goal.id).progress_percentage) == 0.0


def test_deleting_key_result_refreshes_progress(db, goal, yearly) -> None:
    done = okr_service.create_key_result(db, description="Done", target_value=10, current_value=10, yearly_objective_id=yearly.id)
    okr_service.create_key_result(db, description="Open", target_value=10, yearly_objective_id=yearly.id)
    assert float(db.get(Goal, goal.id).progress_percentage) == 50.0

    okr_service.delete_key_result(db, done.id)

    db.expire_all()
    assert float(db.get(Goal, goal.id).progress_percentage) == 0.0


def test_deleting_quarterly_objective(db, yearly) -> None:
    quarterly = okr_service.create_quarterly_objective(db, yearly.id, 4, "Mock exam")

    okr_service.delete_quarterly_objective(db, quarterly.id)

    assert db.get(QuarterlyObjective, quarterly.id) is None


@pytest.mark.parametrize(
    "delete",
    [okr_service.delete_yearly_objective, okr_service.delete_quarterly_objective, okr_service.delete_key_result],
)
def test_deleting_unknown_rows(db, delete) -> None:
    with pytest.raises(LookupError):
        delete(db, uuid4())


def test_key_result_target_below_storage_precision_is_rejected(db, yearly) -> None:
    with pytest.raises(PlanInvariantError, match="at least 0.01"):
        okr_service.create_key_result(db, description="Tiny", target_value=0.004, yearly_objective_id=yearly.id)

    db.rollback()
    assert db.execute(select(KeyResult)).scalars().all() == []


def test_yearly_objective_can_be_renamed_and_moved(db, goal, yearly) -> None:
    quarterly = okr_service.create_quarterly_objective(db, yearly.id, 2, "Finish the N4 textbook")

    updated = okr_service.update_yearly_objective(db, yearly.id, objective="Pass JLPT N2", year=2029, request_id="req-move")

    assert (updated.objective, updated.target_year) == ("Pass JLPT N2", 2029)
    db.expire_all()
    assert db.get(QuarterlyObjective, quarterly.id).target_year == 2029
    entry = db.execute(
        select(PlanActionLog).where(PlanActionLog.action_type == "yearly_objective_updated")
    ).scalar_one()
    assert entry.action_payload["target_year"] == 2029
    assert entry.request_id == "req-move"


def test_yearly_objective_cannot_move_onto_a_taken_year(db, goal, yearly) -> None:
    okr_service.create_yearly_objective(db, goal.id, 2028, "Read a novel in Japanese")

    with pytest.raises(PlanConflictError):
        okr_service.update_yearly_objective(db, yearly.id, year=2028)

    db.rollback()
    assert db.get(YearlyObjective, yearly.id).target_year == 2027


@pytest.mark.parametrize(
    "changes,message",
    [
        ({"year": 1999}, "between 2000 and 2100"),
        ({"objective": "  "}, "objective must not be empty"),
        ({}, "no changes requested"),
    ],
)
def test_bad_yearly_objective_edits_are_rejected(db, yearly, changes, message) -> None:
    with pytest.raises(PlanInvariantError, match=message):
        okr_service.update_yearly_objective(db, yearly.id, **changes)


def test_keeping_the_same_year_is_not_a_conflict(db, yearly) -> None:
    updated = okr_service.update_yearly_objective(db, yearly.id, objective="Pass JLPT N3 comfortably", year=2027)

    assert updated.target_year == 2027
    assert updated.objective == "Pass JLPT N3 comfortably"


def test_quarterly_objective_can_be_renamed_and_moved(db, yearly) -> None:
    quarterly = okr_service.create_quarterly_objective(db, yearly.id, 1, "Hiragana")

    updated = okr_service.update_quarterly_objective(db, quarterly.id, objective="Hiragana and katakana", quarter=3)

    assert (updated.objective, updated.target_quarter, updated.target_year) == ("Hiragana and katakana", 3, 2027)
    assert updated.sort_order == 2


def test_quarterly_objective_edits_respect_quarter_rules(db, yearly) -> None:
    first = okr_service.create_quarterly_objective(db, yearly.id, 1, "Hiragana")
    okr_service.create_quarterly_objective(db, yearly.id, 2, "Katakana")

    with pytest.raises(PlanConflictError):
        okr_service.update_quarterly_objective(db, first.id, quarter=2)
    with pytest.raises(PlanInvariantError, match="between 1 and 4"):
        okr_service.update_quarterly_objective(db, first.id, quarter=5)


@pytest.mark.parametrize(
    "update",
    [okr_service.update_yearly_objective, okr_service.update_quarterly_objective],
)
def test_updating_unknown_objectives(db, update) -> None:
    with pytest.raises(LookupError):
        update(db, uuid4(), objective="Anything")
