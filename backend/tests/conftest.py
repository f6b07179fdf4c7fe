"""Shared fixtures: in-memory SQLite, the API client and scripted language models."""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from goalpath.db import Base
from goalpath.db.deps import get_db
from goalpath.main import app
from goalpath.observability import metrics, tracing
from goalpath.services.errors import LanguageModelError
from goalpath.services.oracle_client import OracleGenerationClient, get_oracle_client


class ScriptedModel:
    """Language model double that replays canned answers in order."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.prompts: List[str] = []

    def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise LanguageModelError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


def make_candidate(
    years: Iterable[int],
    quarterly: Optional[List[Dict[str, Any]]] = None,
    **key_result_fields: Any,
) -> Dict[str, Any]:
    key_result = {
        "description": "Publish long-form essays",
        "target_value": 12,
        "current_value": 0,
        "unit": "essays",
        "measurement_method": "Count of published essays",
        "frequency": "monthly",
    }
    key_result.update(key_result_fields)
    return {
        "yearly_objectives": [
            {
                "year": year,
                "objective": "Build a steady writing practice",
                "rationale": "Consistency compounds",
                "key_milestones": [],
                "key_results": [dict(key_result)],
                "dependencies": ["Protected writing time"],
                "risk_factors": ["Travel season"],
            }
            for year in years
        ],
        "quarterly_objectives": quarterly or [],
        "overall_strategy": "Write a little every week",
        "success_criteria": ["A finished manuscript"],
        "total_estimated_effort": "5 hours per week",
        "key_success_factors": ["Routine"],
    }


@pytest.fixture(autouse=True)
def disable_opik(monkeypatch):
    monkeypatch.setattr(tracing, "get_opik_client", lambda: None)
    monkeypatch.setattr(metrics, "get_opik_client", lambda: None)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_oracle_client] = lambda: OracleGenerationClient(None)
    with TestClient(app) as test_client:
        yield test_client, session_factory
    app.dependency_overrides.clear()


@pytest.fixture()
def use_oracle():
    """Route plan generation requests through the given scripted model."""

    def _install(model: ScriptedModel) -> ScriptedModel:
        app.dependency_overrides[get_oracle_client] = lambda: OracleGenerationClient(model)
        return model

    return _install


@pytest.fixture()
def scripted_model():
    return ScriptedModel


@pytest.fixture()
def candidate():
    return make_candidate
