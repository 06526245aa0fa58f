from __future__ import annotations

from fastapi.testclient import TestClient
from flow_doubles import make_orchestrator

from vr_business_flow.collaborators.in_memory import InMemoryAssessmentService
from vr_business_flow.collaborators.interfaces import Collaborators
from vr_business_flow.config import FlowSettings
from vr_business_flow.flow.orchestrator import FlowOrchestrator
from vr_business_flow.server.app import create_app
from vr_business_flow.server.config import ServerSettings


def _client(orchestrator: FlowOrchestrator) -> TestClient:
    return TestClient(create_app(orchestrator, settings=ServerSettings(_env_file=None)))


def test_health(orchestrator: FlowOrchestrator) -> None:
    with _client(orchestrator) as client:
        health = client.get("/health").json()

    assert health["status"] == "operational"
    assert health["service"] == "VR Business Flow System"
    assert "version" in health
    assert "timestamp" in health


def test_start_then_status(orchestrator: FlowOrchestrator, referral: dict[str, object]) -> None:
    with _client(orchestrator) as client:
        started = client.post("/flow/start", json=referral)
        assert started.status_code == 201
        body = started.json()
        assert body["success"] is True
        assert body["currentStage"] == "completed"
        client_id = body["clientId"]
        assert body["workspaceUrl"].endswith(client_id)
        assert body["notionUrl"].endswith(f"vr-client-{client_id}")

        status = client.get(f"/flow/status/{client_id}")

    assert status.status_code == 200
    data = status.json()["data"]
    assert data["client_id"] == client_id
    assert data["monitoring_id"] == f"monitor_{client_id}"


def test_start_rejects_malformed_referral(orchestrator: FlowOrchestrator) -> None:
    with _client(orchestrator) as client:
        missing = client.post("/flow/start", json={"source": "vr_agency"})
        not_an_object = client.post("/flow/start", json=["vr_agency"])

    assert missing.status_code == 400
    assert missing.json()["success"] is False
    assert "clientInfo" in missing.json()["error"]
    assert not_an_object.status_code == 400
    assert not_an_object.json()["error"].startswith("Invalid request")


def test_start_reports_flow_failure(
    collaborators: Collaborators, flow_settings: FlowSettings, referral: dict[str, object]
) -> None:
    orchestrator = make_orchestrator(
        collaborators, flow_settings, assessment=InMemoryAssessmentService(eligible=False)
    )
    with _client(orchestrator) as client:
        response = client.post("/flow/start", json=referral)

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "not eligible" in response.json()["error"]


def test_status_for_unknown_client(orchestrator: FlowOrchestrator) -> None:
    with _client(orchestrator) as client:
        response = client.get("/flow/status/nobody")

    assert response.status_code == 500
    assert "nobody" in response.json()["error"]


def test_update_stage(orchestrator: FlowOrchestrator) -> None:
    with _client(orchestrator) as client:
        updated = client.put(
            "/flow/update/c1", json={"stage": "assessment", "data": {"note": "docs pending"}}
        )
        status = client.get("/flow/status/c1").json()

    assert updated.status_code == 200
    assert updated.json() == {"success": True, "message": "Flow stage updated successfully"}
    assert status["data"]["stages"]["assessment"]["status"] == "in_progress"
    assert status["data"]["stages"]["assessment"]["data"] == {"note": "docs pending"}


def test_update_rejects_bad_payloads(orchestrator: FlowOrchestrator) -> None:
    with _client(orchestrator) as client:
        unknown_stage = client.put("/flow/update/c1", json={"stage": "launch"})
        missing_stage = client.put("/flow/update/c1", json={"data": {}})

    assert unknown_stage.status_code == 400
    assert "Unknown stage" in unknown_stage.json()["error"]
    assert missing_stage.status_code == 400


def test_services(orchestrator: FlowOrchestrator) -> None:
    with _client(orchestrator) as client:
        response = client.get("/flow/services")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert "business_planning" in response.json()["data"]
