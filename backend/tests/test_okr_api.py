from __future__ import annotations

from datetime import date
from typing import Tuple
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from goalpath.db.models.key_result import KeyResult


def _create_goal(test_client: TestClient) -> UUID:
    response = test_client.post(
        "/goals",
        json={
            "user_id": str(uuid4()),
            "title": "Sail around the world",
            "due_date": date(date.today().year + 7, 6, 30).isoformat(),
        },
    )
    assert response.status_code == 201
    return UUID(response.json()["id"])


@pytest.fixture()
def objective(client) -> Tuple[UUID, str]:
    test_client, _ = client
    goal_id = _create_goal(test_client)
    response = test_client.post(
        f"/goals/{goal_id}/yearly-objectives",
        json={"target_year": 2027, "objective": "Earn an offshore skipper certificate"},
    )
    assert response.status_code == 201
    return goal_id, response.json()["id"]


def test_manual_hierarchy_and_progress(client, objective) -> None:
    test_client, _ = client
    goal_id, yearly_id = objective

    quarterly = test_client.post(
        f"/yearly-objectives/{yearly_id}/quarterly-objectives",
        json={"target_quarter": 2, "objective": "Log 500 sea miles"},
    )
    assert quarterly.status_code == 201
    assert quarterly.json()["year"] == 2027

    key_result = test_client.post(
        "/key-results",
        json={
            "description": "Sea miles logged",
            "target_value": 500,
            "current_value": 125,
            "unit": "nm",
            "quarterly_objective_id": quarterly.json()["id"],
        },
    )
    assert key_result.status_code == 201
    assert key_result.json()["achievement_rate"] == 25.0
    assert key_result.json()["request_id"]

    plan = test_client.get(f"/goals/{goal_id}/plan").json()
    assert plan["progress"] == 25
    stored_quarter = plan["yearly_objectives"][0]["quarterly_objectives"][0]
    assert stored_quarter["progress"] == 25
    assert stored_quarter["key_results"][0]["description"] == "Sea miles logged"


def test_duplicate_year_conflicts(client, objective) -> None:
    test_client, _ = client
    goal_id, _ = objective

    response = test_client.post(
        f"/goals/{goal_id}/yearly-objectives",
        json={"target_year": 2027, "objective": "Second objective for the same year"},
    )

    assert response.status_code == 409


def test_yearly_objective_for_unknown_goal(client) -> None:
    test_client, _ = client

    response = test_client.post(f"/goals/{uuid4()}/yearly-objectives", json={"target_year": 2027, "objective": "x"})

    assert response.status_code == 404


def test_invalid_quarter_and_duplicate_quarter(client, objective) -> None:
    test_client, _ = client
    _, yearly_id = objective
    url = f"/yearly-objectives/{yearly_id}/quarterly-objectives"

    assert test_client.post(url, json={"target_quarter": 5, "objective": "Q5"}).status_code == 422
    assert test_client.post(url, json={"target_quarter": 1, "objective": "Wrong year", "target_year": 2030}).status_code == 422
    assert test_client.post(url, json={"target_quarter": 1, "objective": "Crew training"}).status_code == 201
    assert test_client.post(url, json={"target_quarter": 1, "objective": "Crew training again"}).status_code == 409


def test_key_result_parent_rules(client, objective) -> None:
    test_client, _ = client
    _, yearly_id = objective

    no_parent = test_client.post("/key-results", json={"description": "Orphan", "target_value": 3})
    zero_target = test_client.post(
        "/key-results",
        json={"description": "Nothing", "target_value": 0, "yearly_objective_id": yearly_id},
    )
    missing_parent = test_client.post(
        "/key-results",
        json={"description": "Ghost", "target_value": 3, "yearly_objective_id": str(uuid4())},
    )

    assert no_parent.status_code == 422
    assert zero_target.status_code == 422
    assert missing_parent.status_code == 404


def test_key_result_update_reports_adjustments(client, objective) -> None:
    test_client, session_factory = client
    goal_id, yearly_id = objective
    created = test_client.post(
        "/key-results",
        json={"description": "Night passages", "target_value": 10, "yearly_objective_id": yearly_id},
    ).json()

    response = test_client.patch(f"/key-results/{created['id']}", json={"current_value": -4})

    assert response.status_code == 200
    body = response.json()
    assert body["adjustments"] == ["current_value raised to 0"]
    assert body["goal_id"] == str(goal_id)
    assert body["goal_progress"] == 0

    rejected = test_client.patch(f"/key-results/{created['id']}", json={"current_value": 1, "target_value": 0})
    assert rejected.status_code == 422
    with session_factory() as db:
        assert float(db.get(KeyResult, UUID(created["id"])).target_value) == 10.0


def test_update_unknown_key_result(client) -> None:
    test_client, _ = client

    assert test_client.patch(f"/key-results/{uuid4()}", json={"current_value": 1}).status_code == 404


def test_deletes_return_no_content(client, objective) -> None:
    test_client, _ = client
    goal_id, yearly_id = objective
    quarterly = test_client.post(
        f"/yearly-objectives/{yearly_id}/quarterly-objectives",
        json={"target_quarter": 3, "objective": "Atlantic crossing"},
    ).json()
    key_result = test_client.post(
        "/key-results",
        json={"description": "Crossing done", "target_value": 1, "quarterly_objective_id": quarterly["id"]},
    ).json()

    assert test_client.delete(f"/key-results/{key_result['id']}").status_code == 204
    assert test_client.delete(f"/quarterly-objectives/{quarterly['id']}").status_code == 204
    assert test_client.delete(f"/yearly-objectives/{yearly_id}").status_code == 204
    assert test_client.get(f"/goals/{goal_id}/plan").json()["yearly_objectives"] == []
    assert test_client.delete(f"/yearly-objectives/{yearly_id}").status_code == 404


def test_objectives_can_be_edited(client, objective) -> None:
    test_client, _ = client
    goal_id, yearly_id = objective
    quarterly = test_client.post(
        f"/yearly-objectives/{yearly_id}/quarterly-objectives",
        json={"target_quarter": 1, "objective": "Crew training"},
    ).json()

    moved = test_client.patch(f"/yearly-objectives/{yearly_id}", json={"target_year": 2028, "objective": "Skipper exam"})
    assert moved.status_code == 200
    assert moved.json()["year"] == 2028
    assert moved.json()["quarterly_objectives"][0]["year"] == 2028

    renamed = test_client.patch(f"/quarterly-objectives/{quarterly['id']}", json={"target_quarter": 2, "objective": "Crew drills"})
    assert renamed.status_code == 200
    assert (renamed.json()["quarter"], renamed.json()["objective"]) == (2, "Crew drills")

    plan = test_client.get(f"/goals/{goal_id}/plan").json()
    assert plan["yearly_objectives"][0]["year"] == 2028


def test_objective_edit_errors(client, objective) -> None:
    test_client, _ = client
    goal_id, yearly_id = objective
    test_client.post(f"/goals/{goal_id}/yearly-objectives", json={"target_year": 2029, "objective": "Ocean passage"})

    assert test_client.patch(f"/yearly-objectives/{yearly_id}", json={"target_year": 2029}).status_code == 409
    assert test_client.patch(f"/yearly-objectives/{yearly_id}", json={"target_year": 1850}).status_code == 422
    assert test_client.patch(f"/yearly-objectives/{yearly_id}", json={}).status_code == 422
    assert test_client.patch(f"/yearly-objectives/{uuid4()}", json={"objective": "x"}).status_code == 404
    assert test_client.patch(f"/quarterly-objectives/{uuid4()}", json={"objective": "x"}).status_code == 404


def test_key_result_wording_can_be_edited(client, objective) -> None:
    test_client, _ = client
    _, yearly_id = objective
    created = test_client.post(
        "/key-results",
        json={"description": "Night passages", "target_value": 10, "current_value": 5, "yearly_objective_id": yearly_id},
    ).json()

    response = test_client.patch(f"/key-results/{created['id']}", json={"description": "Solo night passages", "unit": "nights"})

    assert response.status_code == 200
    body = response.json()["key_result"]
    assert (body["description"], body["unit"]) == ("Solo night passages", "nights")
    assert body["current_value"] == 5.0
    assert body["achievement_rate"] == 50.0


def test_targets_below_storage_precision_are_unprocessable(client, objective) -> None:
    test_client, session_factory = client
    _, yearly_id = objective
    created = test_client.post(
        "/key-results",
        json={"description": "Fuel margin", "target_value": 10, "yearly_objective_id": yearly_id},
    ).json()

    tiny_create = test_client.post(
        "/key-results",
        json={"description": "Tiny", "target_value": 0.004, "yearly_objective_id": yearly_id},
    )
    tiny_update = test_client.patch(f"/key-results/{created['id']}", json={"current_value": 1, "target_value": 0.001})

    assert tiny_create.status_code == 422
    assert tiny_update.status_code == 422
    assert "at least 0.01" in tiny_update.json()["detail"]
    with session_factory() as db:
        assert float(db.get(KeyResult, UUID(created["id"])).target_value) == 10.0
