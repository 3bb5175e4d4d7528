"""Tests for the HTTP API."""
import time

import pytest
from fastapi.testclient import TestClient

from canvasgen.main import app
from canvasgen.models.provider import ProviderConfig
from canvasgen.providers.resolver import GENERATE_CONTENT_TEMPLATES, expand_template
from canvasgen.session import GenerationSession, set_session
from canvasgen.store.kv import InMemoryKeyValueStore

from conftest import GEMINI_BASE, PIXEL, FakeProvider, gemini_image_body, gemini_text_body, respond

IMAGE_MODEL = "gemini-2.5-flash-image-preview"
PROMPT_MODEL = "gemini-2.5-flash"


def gemini_url(model: str) -> str:
    return expand_template(GENERATE_CONTENT_TEMPLATES[0], GEMINI_BASE, model)


def wait_for_terminal(client: TestClient, task_id: str, attempts: int = 200) -> dict:
    for _ in range(attempts):
        task = client.get(f"/api/tasks/{task_id}").json()
        if task["status"] in ("completed", "error"):
            return task
        time.sleep(0.01)
    raise AssertionError(f"task {task_id} did not finish")


class TestApi:
    """Test suite for the FastAPI routes."""

    @pytest.fixture
    def provider(self):
        return FakeProvider({
            gemini_url(IMAGE_MODEL): respond(200, gemini_image_body()),
            gemini_url(PROMPT_MODEL): respond(200, gemini_text_body("A detailed fox")),
        })

    @pytest.fixture
    def session(self, settings, provider):
        session = GenerationSession(
            settings=settings,
            kv_store=InMemoryKeyValueStore(),
            http_client=provider.client(),
        )
        session.config_store.save(ProviderConfig(api_key="key-abcd", base_url=GEMINI_BASE))
        set_session(session)
        yield session
        set_session(None)

    @pytest.fixture
    def client(self, session):
        with TestClient(app) as client:
            yield client

    # =========================================================================
    # Health and settings
    # =========================================================================

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["provider"] == "gemini"
        assert data["api_key_configured"] is True

    def test_settings_are_masked(self, client):
        data = client.get("/api/settings").json()

        assert data["api_key"] == "****abcd"
        assert data["base_url"] == GEMINI_BASE

    def test_update_settings_keeps_omitted_fields(self, client, session):
        response = client.put("/api/settings", json={"image_model": "other-image-model"})

        assert response.status_code == 200
        config = session.config_store.load()
        assert config.image_model == "other-image-model"
        assert config.api_key == "key-abcd"

    # =========================================================================
    # Generation
    # =========================================================================

    def test_generate_runs_to_completion(self, client):
        response = client.post("/api/generate", json={"prompt": "a fox"})

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"
        assert body["placeholder_node_id"]

        task = wait_for_terminal(client, body["task_id"])
        assert task["status"] == "completed"
        assert task["result_artifact_uri"] == f"data:image/png;base64,{PIXEL}"
        assert task["progress"] == 1.0

        nodes = client.get("/api/canvas/nodes").json()
        assert [node["role"] for node in nodes] == ["artifact"]

    def test_generate_with_data_uri_image(self, client, provider):
        response = client.post("/api/generate", json={
            "prompt": "make it blue",
            "images": [{"uri": "data:image/jpeg;base64,QUJD"}],
        })

        wait_for_terminal(client, response.json()["task_id"])
        parts = provider.bodies()[0]["contents"][0]["parts"]
        assert parts[0] == {"inline_data": {"mime_type": "image/jpeg", "data": "QUJD"}}
        assert parts[1]["text"].startswith("Transform the provided images")

    def test_generate_rejects_image_without_payload(self, client):
        response = client.post("/api/generate", json={
            "prompt": "x",
            "images": [{"uri": "https://img.example.com/a.png"}],
        })

        assert response.status_code == 422

    def test_list_and_filter_tasks(self, client):
        task_id = client.post("/api/generate", json={"prompt": "a fox"}).json()["task_id"]
        wait_for_terminal(client, task_id)

        completed = client.get("/api/tasks", params={"status": "completed"}).json()
        pending = client.get("/api/tasks", params={"status": "pending"}).json()

        assert [t["id"] for t in completed["tasks"]] == [task_id]
        assert pending["tasks"] == []

    def test_unknown_task_is_404(self, client):
        assert client.get("/api/tasks/ai-gen-0-0").status_code == 404
        assert client.delete("/api/tasks/ai-gen-0-0").status_code == 404

    def test_delete_task(self, client):
        task_id = client.post("/api/generate", json={"prompt": "a fox"}).json()["task_id"]
        wait_for_terminal(client, task_id)

        assert client.delete(f"/api/tasks/{task_id}").status_code == 200
        assert client.get(f"/api/tasks/{task_id}").status_code == 404

    # =========================================================================
    # Prompt tools
    # =========================================================================

    def test_optimize_prompt(self, client):
        response = client.post("/api/prompt/optimize", json={"prompt": "fox"})

        assert response.status_code == 200
        assert response.json() == {"prompt": "A detailed fox"}

    def test_optimize_prompt_provider_error_is_502(self, client, provider):
        provider.routes[gemini_url(PROMPT_MODEL)] = respond(429, {"error": {"message": "slow down"}})

        response = client.post("/api/prompt/optimize", json={"prompt": "fox"})

        assert response.status_code == 502
        assert response.json()["detail"]["kind"] == "RateLimited"

    def test_model_check_defaults_to_configured_model(self, client):
        response = client.post("/api/models/check", json={"model_type": "image"})

        assert response.status_code == 200
        data = response.json()
        assert data["model"] == IMAGE_MODEL
        assert data["available"] is True
