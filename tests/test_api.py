import time

import pytest
from fastapi.testclient import TestClient

from app import create_app
from app.core.session import SessionRegistry, get_registry
from conftest import FailingGenerationClient, StaticGenerationClient


PREFIX = "/api/assessment/sessions"


def _make_client(generation_client):
    app = create_app()
    registry = SessionRegistry(client_factory=lambda: generation_client)
    app.dependency_overrides[get_registry] = lambda: registry
    return TestClient(app)


@pytest.fixture
def failing_api():
    with _make_client(FailingGenerationClient()) as client:
        yield client


@pytest.fixture
def static_api():
    with _make_client(StaticGenerationClient()) as client:
        yield client


def _wait_ready(client: TestClient, session_id: str) -> dict:
    for _ in range(100):
        state = client.get(f"{PREFIX}/{session_id}").json()
        if state["status"] == "ready":
            return state
        time.sleep(0.01)
    raise AssertionError("generation never finished")


def _start(client: TestClient) -> str:
    response = client.post(PREFIX)
    assert response.status_code == 201
    return response.json()["session_id"]


def _fill_personal_info(client: TestClient, session_id: str) -> None:
    for field, value in (("age", 35), ("weight", 70), ("height", 175)):
        response = client.patch(f"{PREFIX}/{session_id}/personal-info", json={"field": field, "value": value})
        assert response.status_code == 200


def test_full_flow_with_failing_generation(failing_api):
    session_id = _start(failing_api)

    blocked = failing_api.post(f"{PREFIX}/{session_id}/advance").json()
    assert blocked["moved"] is False
    assert blocked["state"]["can_proceed_personal_info"] is False

    _fill_personal_info(failing_api, session_id)
    state = failing_api.post(f"{PREFIX}/{session_id}/advance").json()["state"]
    assert state["stage"] == "lifestyle"
    assert state["derived"]["bmi"] == 22.9
    assert state["derived"]["bmi_category"] == "Normal"

    failing_api.post(f"{PREFIX}/{session_id}/dietary-preferences/toggle", json={"value": "vegan"})
    failing_api.post(f"{PREFIX}/{session_id}/advance")
    failing_api.patch(f"{PREFIX}/{session_id}/family-history", json={"field": "heartDisease", "value": True})
    failing_api.post(f"{PREFIX}/{session_id}/advance")

    state = _wait_ready(failing_api, session_id)
    assert state["stage"] == "clarification"
    assert state["family_condition_count"] == 1
    questions = state["profile"]["clarificationQuestions"]
    assert [q["id"] for q in questions] == ["1", "2", "3"]
    assert questions[0]["min"] == 1 and questions[0]["max"] == 10

    assert failing_api.put(f"{PREFIX}/{session_id}/answers/1", json={"value": 4}).status_code == 200
    state = failing_api.put(f"{PREFIX}/{session_id}/answers/2", json={"value": True}).json()
    assert state["can_proceed_clarification"] is True

    failing_api.post(f"{PREFIX}/{session_id}/advance")
    state = _wait_ready(failing_api, session_id)
    assert state["stage"] == "results"
    assert state["profile"]["riskAssessment"]["overallRiskScore"] == 25
    assert state["derived"]["risk_tier"] == "Moderate Risk"
    assert state["used_fallback"] == {"clarification": True, "results": True}

    state = failing_api.post(f"{PREFIX}/{session_id}/reset").json()["state"]
    assert state["stage"] == "personal_info"
    assert state["profile"]["personalInfo"]["age"] == 0
    assert state["profile"]["lifestyleFactors"]["dietaryPreferences"] == []


def test_generated_content_is_served(static_api):
    session_id = _start(static_api)
    _fill_personal_info(static_api, session_id)
    for _ in range(3):
        static_api.post(f"{PREFIX}/{session_id}/advance")

    state = _wait_ready(static_api, session_id)
    assert [q["id"] for q in state["profile"]["clarificationQuestions"]] == ["sleep", "pain", "notes"]
    assert state["used_fallback"] == {"clarification": False}


def test_invalid_field_value_is_rejected(failing_api):
    session_id = _start(failing_api)
    response = failing_api.patch(f"{PREFIX}/{session_id}/lifestyle", json={"field": "sleepHours", "value": 20})
    assert response.status_code == 422
    state = failing_api.get(f"{PREFIX}/{session_id}").json()
    assert state["profile"]["lifestyleFactors"]["sleepHours"] == 8


def test_null_dietary_preferences_is_rejected(failing_api):
    session_id = _start(failing_api)
    response = failing_api.patch(
        f"{PREFIX}/{session_id}/lifestyle", json={"field": "dietaryPreferences", "value": None}
    )
    assert response.status_code == 422
    state = failing_api.get(f"{PREFIX}/{session_id}").json()
    assert state["profile"]["lifestyleFactors"]["dietaryPreferences"] == []


def test_invalid_answer_is_rejected(failing_api):
    session_id = _start(failing_api)
    response = failing_api.put(f"{PREFIX}/{session_id}/answers/1", json={"value": 5})
    assert response.status_code == 422


def test_retreat_from_first_stage_does_not_move(failing_api):
    session_id = _start(failing_api)
    body = failing_api.post(f"{PREFIX}/{session_id}/retreat").json()
    assert body["moved"] is False
    assert body["state"]["step"] == 1


def test_unknown_session(failing_api):
    assert failing_api.get(f"{PREFIX}/missing").status_code == 404
    assert failing_api.post(f"{PREFIX}/missing/advance").status_code == 404
    assert failing_api.delete(f"{PREFIX}/missing").status_code == 404


def test_delete_session(failing_api):
    session_id = _start(failing_api)
    assert failing_api.delete(f"{PREFIX}/{session_id}").status_code == 204
    assert failing_api.get(f"{PREFIX}/{session_id}").status_code == 404
