import pytest
from fastapi.testclient import TestClient

from dayli_agent.application.api.api_server import create_app
from dayli_agent.application.container import AgentContainer
from dayli_agent.infrastructure.config import Settings


@pytest.fixture
def client(chat_model, plan_json, clock):
    model = chat_model(plan_json("task_createTask", {"title": "Write report"}))
    container = AgentContainer(Settings(log_format="console"), model=model, clock=clock)
    return TestClient(create_app(container=container))


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["capabilities"] == 9
        assert "cache" in body


class TestChat:
    def test_chat_executes_plan(self, client):
        response = client.post("/api/v1/chat", json={
            "user_id": "user_1",
            "messages": [{"role": "user", "content": "Add a task to write the report"}],
            "viewing_date": "2024-07-04",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Done: task_createTask."
        assert body["needs_clarification"] is False
        assert body["plan"]["execution"]["capability"] == "task_createTask"
        assert body["execution"]["success"] is True
        assert list(body["execution"]["operation"]["affected_entities"]) == ["tasks"]

    def test_requires_a_user_message(self, client):
        response = client.post("/api/v1/chat", json={
            "user_id": "user_1",
            "messages": [{"role": "assistant", "content": "hello"}],
        })

        assert response.status_code == 422

    def test_rejects_empty_messages(self, client):
        response = client.post("/api/v1/chat", json={"user_id": "user_1", "messages": []})

        assert response.status_code == 422

    def test_rejects_bad_viewing_date(self, client):
        response = client.post("/api/v1/chat", json={
            "user_id": "user_1",
            "messages": [{"role": "user", "content": "hi"}],
            "viewing_date": "not-a-date",
        })

        assert response.status_code == 422
