"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from diagflow.factory import create_app


@pytest.fixture
def client(testing_config):
    """Test client backed by an in-memory SQLite database."""
    app = create_app(testing_config)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def saved_workflow(client, dishwasher_document):
    response = client.post("/api/v1/workflows", json=dishwasher_document)
    assert response.status_code == 201
    return dishwasher_document


class TestHealth:

    def test_root_and_health(self, client):
        assert client.get("/").status_code == 200
        response = client.get("/health")
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "trace-42"})

        assert response.headers["X-Request-ID"] == "trace-42"
        assert "X-Response-Time" in response.headers


class TestWorkflowEndpoints:
    """Test cases for workflow storage endpoints."""

    def test_save_reports_validation(self, client, dishwasher_document):
        response = client.post("/api/v1/workflows", json=dishwasher_document)

        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "Dishwasher not draining"
        assert body["folder"] == "dishwashers"
        assert body["validation"]["is_executable"] is True

    def test_save_non_executable_still_stores(self, client, yes_no_document):
        response = client.post("/api/v1/workflows", json=yes_no_document)

        assert response.status_code == 201
        assert response.json()["validation"]["is_executable"] is False

    def test_save_malformed_document(self, client):
        response = client.post("/api/v1/workflows", json={"nodes": []})

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "MalformedDocumentError"

    def test_list_and_load(self, client, saved_workflow):
        listing = client.get("/api/v1/workflows", params={"folder": "dishwashers"}).json()
        assert [item["name"] for item in listing] == ["Dishwasher not draining"]

        response = client.get("/api/v1/workflows/dishwashers/Dishwasher not draining")
        assert response.status_code == 200
        document = response.json()
        assert document["nodeCounter"] == 7
        assert len(document["nodes"]) == 6

    def test_load_missing(self, client):
        response = client.get("/api/v1/workflows/default/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFoundError"

    def test_validate_stored_and_inline(self, client, saved_workflow, yes_no_document):
        stored = client.get("/api/v1/workflows/dishwashers/Dishwasher not draining/validate").json()
        assert stored["is_executable"] is True

        inline = client.post("/api/v1/workflows/validate", json=yes_no_document).json()
        assert inline["is_executable"] is False
        assert inline["error_count"] == 4

    def test_export(self, client, saved_workflow):
        response = client.get("/api/v1/workflows/dishwashers/Dishwasher not draining/export")

        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert response.json()["metadata"]["appliance"] == "dishwasher"

    def test_versions(self, client, saved_workflow):
        saved_workflow["nodes"][0]["title"] = "Begin here"
        response = client.post("/api/v1/workflows", json=saved_workflow, params={"description": "Reworded"})
        assert response.json()["version"] == 2

        base = "/api/v1/workflows/dishwashers/Dishwasher not draining/versions"
        versions = client.get(base).json()
        assert [(v["version"], v["description"]) for v in versions] == [(2, "Reworded"), (1, "")]

        first = client.get(f"{base}/1").json()
        assert first["nodes"][0]["title"] == "Begin"
        assert first["metadata"]["version"] == 1
        assert client.get(f"{base}/7").status_code == 404
        assert client.get("/api/v1/workflows/default/missing/versions").status_code == 404

    def test_search(self, client, saved_workflow):
        path = "/api/v1/workflows/dishwashers/Dishwasher not draining/search"

        matches = client.get(path, params={"q": "filter"}).json()
        assert [m["node_id"] for m in matches] == ["N002", "N003"]
        assert matches[0]["match_type"] == "title"

        ends = client.get(path, params={"kind": "end"}).json()
        assert [m["node_id"] for m in ends] == ["N005", "N006"]

    def test_delete(self, client, saved_workflow):
        path = "/api/v1/workflows/dishwashers/Dishwasher not draining"

        assert client.delete(path).status_code == 200
        assert client.delete(path).status_code == 404


class TestSessionEndpoints:
    """Test cases for guided session endpoints."""

    def test_full_session(self, client, saved_workflow):
        response = client.post("/api/v1/sessions", json={"name": "Dishwasher not draining", "folder": "dishwashers"})
        assert response.status_code == 201
        body = response.json()
        session_id = body["sessionId"]
        assert body["state"]["status"] == "running"
        assert body["currentNode"]["id"] == "N001"

        client.post(f"/api/v1/sessions/{session_id}/answer", json={"answer": "start"})
        body = client.post(f"/api/v1/sessions/{session_id}/answer", json={"answer": True}).json()
        assert body["state"]["currentNodeId"] == "N003"
        assert body["currentNode"]["steps"] == ["Twist the filter out", "Rinse", "Reinstall"]

        client.post(f"/api/v1/sessions/{session_id}/answer", json={"answer": "done"})
        body = client.post(f"/api/v1/sessions/{session_id}/answer", json={"answer": "fixed"}).json()
        assert body["state"]["status"] == "completed"

        report = client.get(f"/api/v1/sessions/{session_id}/report").json()
        assert report["progress"] == 100.0
        assert [entry["nodeId"] for entry in report["auditTrail"]] == ["N001", "N002", "N003", "N005"]

    def test_inline_document_session(self, client, dishwasher_document):
        response = client.post("/api/v1/sessions", json={"document": dishwasher_document})

        assert response.status_code == 201

    def test_non_executable_document(self, client, yes_no_document):
        response = client.post("/api/v1/sessions", json={"document": yes_no_document})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "GraphValidationError"

    def test_missing_workflow_reference(self, client):
        assert client.post("/api/v1/sessions", json={}).status_code == 422
        assert client.post("/api/v1/sessions", json={"name": "ghost"}).status_code == 404

    def test_pause_resume_reset(self, client, saved_workflow):
        session_id = client.post(
            "/api/v1/sessions", json={"name": "Dishwasher not draining", "folder": "dishwashers"}
        ).json()["sessionId"]

        assert client.post(f"/api/v1/sessions/{session_id}/pause").json()["state"]["status"] == "paused"
        conflict = client.post(f"/api/v1/sessions/{session_id}/answer", json={"answer": "yes"})
        assert conflict.status_code == 409
        assert client.post(f"/api/v1/sessions/{session_id}/resume").json()["state"]["status"] == "running"

        reset = client.post(f"/api/v1/sessions/{session_id}/reset").json()
        assert reset["state"]["status"] == "idle"
        assert reset["state"]["visited"] == []

        restarted = client.post(f"/api/v1/sessions/{session_id}/start").json()
        assert restarted["state"]["currentNodeId"] == "N001"

    def test_list_and_discard(self, client, saved_workflow):
        session_id = client.post(
            "/api/v1/sessions", json={"name": "Dishwasher not draining", "folder": "dishwashers"}
        ).json()["sessionId"]

        sessions = client.get("/api/v1/sessions").json()
        assert [item["session_id"] for item in sessions] == [session_id]

        assert client.delete(f"/api/v1/sessions/{session_id}").status_code == 200
        assert client.get(f"/api/v1/sessions/{session_id}").status_code == 404
        assert client.delete(f"/api/v1/sessions/{session_id}").status_code == 404
