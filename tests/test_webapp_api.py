"""Tests for the FastAPI surface over the workflow engine."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import StubProviders, build_settings
from core import ProviderResult
from orchestrator import WorkflowEngine
from providers import Endpoint, EndpointBinding
from utils.exceptions import ArtifactNotFoundError, FailureKind, StageError
from webapp.app import create_app
from webapp.runtime import Runtime


@pytest.fixture
def runtime(tmp_path, store, clock) -> Runtime:
    settings = build_settings(str(tmp_path / "artifacts"))
    gateway = StubProviders().gateway()
    engine = WorkflowEngine(store, gateway, settings, clock=clock)
    return Runtime(settings=settings, store=store, gateway=gateway, engine=engine)


@pytest.fixture
def client(runtime) -> TestClient:
    return TestClient(create_app(lambda: runtime))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["service"] == "article-pipeline"
    assert body["timestamp"]


def test_process_runs_term_and_status_reports_it(client):
    response = client.post("/process", json={"keyword": "Antique Lamps"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["state"] == "completed"
    assert body["data"]["term"]["slug"] == "antique-lamps"

    status = client.get("/status/antique-lamps")
    assert status.status_code == 200
    assert status.json()["workflow_id"] == body["data"]["workflow_id"]
    assert status.json()["stages"]["render"]["status"] == "completed"


@pytest.mark.parametrize("payload", [{}, {"keyword": "   "}, {"keyword": "!!!"}])
def test_process_requires_keyword(client, payload):
    assert client.post("/process", json=payload).status_code == 400


def test_status_of_unknown_slug_is_404(client):
    assert client.get("/status/never-seen").status_code == 404


def test_content_round_trip(client):
    stored = client.post(
        "/content/notes/antique-lamps.json",
        json={"content": {"draft": True}, "metadata": {"author": "editor"}},
    )
    assert stored.status_code == 200
    sidecar = stored.json()["data"]
    assert sidecar["path"] == "notes/antique-lamps.json"
    assert sidecar["author"] == "editor"

    fetched = client.get("/content/notes/antique-lamps.json")
    assert fetched.status_code == 200
    assert fetched.json()["payload"] == {"draft": True}
    assert fetched.json()["metadata"]["media_type"] == "application/json"


def test_content_missing_is_404(client):
    assert client.get("/content/nothing/here.json").status_code == 404


def test_content_rejects_escaping_paths(client):
    assert client.get("/content/a/%2E%2E/%2E%2E/etc/passwd").status_code in (400, 404)
    response = client.post("/content/notes/..%2F..%2Fescape.json", json={"content": "x"})
    assert response.status_code == 400


def test_publish_requires_rendered_article(runtime):
    with pytest.raises(ArtifactNotFoundError):
        asyncio.run(runtime.publish("antique-lamps"))


def test_publish_is_never_mocked(runtime):
    async def _scenario():
        await runtime.engine.run_term("antique lamps")
        await runtime.publish("antique-lamps")

    with pytest.raises(StageError) as excinfo:
        asyncio.run(_scenario())
    assert excinfo.value.kind == FailureKind.CONFIG


def test_publish_posts_rendered_article(runtime):
    posted = []

    async def _publish(request, *, deadline=None, idempotency_token=None) -> ProviderResult:
        posted.append(request)
        return ProviderResult.success({"id": 7, "link": "https://blog.test/antique-lamps", "status": request.status})

    runtime.gateway.bind(Endpoint.CMS_PUBLISH, EndpointBinding(handler=_publish, credential_required=True))

    async def _scenario():
        await runtime.engine.run_term("antique lamps")
        return await runtime.publish("antique-lamps", status="publish")

    result = asyncio.run(_scenario())
    assert result == {"id": 7, "link": "https://blog.test/antique-lamps", "status": "publish"}
    assert posted[0].slug == "antique-lamps"
    assert posted[0].content.startswith("---\ntitle: ")
    assert "antique lamps" in posted[0].title.lower()
