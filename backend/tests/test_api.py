from __future__ import annotations

import pytest
from conftest import FakeLLM
from fastapi.testclient import TestClient

from lorekeeper.app import create_app
from lorekeeper.sync.pipeline import SyncReport, SyncState

RUNBOOK = "Deployments run every Tuesday after the release review"


class DoneConnector:
    def sync(self, ctx, data_source):
        return SyncReport(source_type=data_source.type.value, state=SyncState.DONE, items_seen=1, documents_ingested=1)


@pytest.fixture
def client(settings):
    app = create_app(settings, llm=FakeLLM(), connector_factory=lambda *args: DoneConnector())
    with TestClient(app) as test_client:
        yield test_client


def _create_source(client: TestClient) -> dict:
    response = client.post(
        "/sources",
        json={
            "instance_id": "inst-1",
            "name": "Team chat",
            "type": "chat_channels",
            "config": {"token": "xoxb-secret", "channels": ["C1"]},
        },
    )
    assert response.status_code == 201
    return response.json()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_source_crud_masks_credentials(client: TestClient) -> None:
    source = _create_source(client)
    assert source["status"] == "inactive"
    assert source["config"]["token"] == "****"
    assert source["config"]["channels"] == ["C1"]

    listed = client.get("/sources", params={"instance_id": "inst-1"}).json()
    assert [item["id"] for item in listed] == [source["id"]]

    renamed = client.patch(f"/sources/{source['id']}", json={"name": "Support chat"}).json()
    assert renamed["name"] == "Support chat"

    assert client.delete(f"/sources/{source['id']}").json() == {"status": "ok", "deleted": 1}
    assert client.get(f"/sources/{source['id']}").status_code == 404


def test_invalid_source_config_is_bad_request(client: TestClient) -> None:
    response = client.post(
        "/sources",
        json={"instance_id": "inst-1", "name": "x", "type": "chat_channels", "config": {"bogus": True}},
    )
    assert response.status_code == 400
    assert "chat_channels" in response.json()["detail"]


def test_sync_job_lifecycle(client: TestClient) -> None:
    source = _create_source(client)
    response = client.post(f"/sources/{source['id']}/sync")
    assert response.status_code == 202
    job = response.json()
    assert job["data_source_id"] == source["id"]

    client.app.state.container.sources.wait_job(job["id"], timeout=5)
    finished = client.get(f"/jobs/{job['id']}").json()
    assert finished["status"] == "completed"
    assert finished["stats"]["documents_ingested"] == 1
    assert client.get(f"/sources/{source['id']}").json()["status"] == "active"
    assert client.get("/jobs/missing").status_code == 404


def test_document_routes(client: TestClient) -> None:
    response = client.post(
        "/documents",
        json={
            "instance_id": "inst-1",
            "title": "Runbook",
            "content": RUNBOOK,
            "type": "markdown",
            "author": "ops",
            "tags": ["deploy"],
        },
    )
    assert response.status_code == 201
    document = response.json()
    assert document["chunk_count"] == 1
    assert document["chunks"] is None
    assert document["metadata"]["author"] == "ops"

    fetched = client.get(f"/documents/{document['id']}").json()
    assert fetched["chunks"][0]["content"] == RUNBOOK

    listed = client.get("/documents", params={"instance_id": "inst-1"}).json()
    assert [item["id"] for item in listed] == [document["id"]]

    assert client.delete(f"/documents/{document['id']}").status_code == 200
    assert client.delete(f"/documents/{document['id']}").status_code == 404


def test_invalid_document_type_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/documents",
        json={"instance_id": "inst-1", "title": "t", "content": "body", "type": "spreadsheet"},
    )
    assert response.status_code == 422


def test_ask_and_feedback(client: TestClient) -> None:
    client.post("/documents", json={"instance_id": "inst-1", "title": "Runbook", "content": RUNBOOK})

    response = client.post("/ask", json={"instance_id": "inst-1", "question": RUNBOOK, "channel": "C1"})
    assert response.status_code == 200
    answer = response.json()
    assert answer["content"] == "Generated answer."
    assert answer["model"] == "fake/model"
    assert answer["citations"][0]["title"] == "Runbook"

    assert client.get(f"/answers/{answer['id']}").json()["id"] == answer["id"]

    rated = client.post(f"/answers/{answer['id']}/feedback", json={"is_helpful": True, "rating": 5})
    assert rated.status_code == 200
    assert rated.json()["feedback"]["rating"] == 5

    bad = client.post(f"/answers/{answer['id']}/feedback", json={"is_helpful": True, "rating": 9})
    assert bad.status_code == 400


def test_ask_errors(client: TestClient) -> None:
    assert client.post("/ask", json={"instance_id": "inst-1", "question": "  "}).status_code == 400
    assert client.get("/answers/missing").status_code == 404


def test_metrics_endpoint(client: TestClient) -> None:
    client.post("/documents", json={"instance_id": "inst-1", "title": "Runbook", "content": RUNBOOK})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "lore_documents_ingested_total" in response.text
