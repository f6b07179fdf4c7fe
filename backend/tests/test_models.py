from goalpath.db import models  # noqa: F401  ensure models are loaded
from goalpath.db.base import Base


def test_metadata_contains_plan_tables() -> None:
    table_names = set(Base.metadata.tables.keys())
    expected = {
        "users",
        "goals",
        "yearly_objectives",
        "quarterly_objectives",
        "key_results",
        "plan_action_log",
    }

    assert expected.issubset(table_names)


def test_hierarchy_constraints_are_declared() -> None:
    constraint_names = {
        constraint.name
        for table in Base.metadata.tables.values()
        for constraint in table.constraints
        if constraint.name
    }

    assert {
        "uq_yearly_objectives_goal_year",
        "uq_quarterly_objectives_yearly_quarter",
        "ck_quarterly_objectives_quarter_range",
        "ck_key_results_single_parent",
        "ck_key_results_target_positive",
    }.issubset(constraint_names)
