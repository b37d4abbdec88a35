"""
Tests for the trigger API.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from taskrail.api.logs import get_log_session
from taskrail.core.config import Settings
from taskrail.core.dependencies import build_runtime, get_runtime
from taskrail.main import app
from taskrail.models.task_log import TaskLog
from taskrail.services.orchestrator.execution_logger import LogRecordData

API = "/api/v1"


@pytest.fixture
def runtime():
    return build_runtime(Settings(secondary_log_backend="none"))


@pytest.fixture
def client(runtime):
    app.dependency_overrides[get_runtime] = lambda: runtime
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestDiscovery:

    def test_health(self, client):
        response = client.get(f"{API}/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "taskrail"}

    def test_list_tasks(self, client):
        response = client.get(f"{API}/tasks")

        assert response.status_code == 200
        tasks = {task["id"]: task for task in response.json()}
        assert set(tasks) == {"hello-world", "echo", "url-inspect"}
        assert tasks["url-inspect"]["maxDuration"] == 30.0
        assert "url" in tasks["url-inspect"]["input"]["required"]

    def test_list_definitions(self, client):
        response = client.get(f"{API}/definitions")

        assert response.status_code == 200
        body = response.json()
        assert body["tracks"][0]["name"] == "SAMPLE_TRACK"
        assert body["tracks"][0]["tasks"] == ["url-inspect", "echo"]
        assert body["orchestrators"][0]["branches"] == [
            {"id": "SAMPLE_TRACK", "kind": "track"},
            {"id": "hello-world", "kind": "task"},
        ]


class TestRuns:

    def test_run_sample_orchestrator(self, client):
        response = client.post(f"{API}/orchestrators/sample_orchestrator/runs", json={
            "tenantId": "t1",
            "projectId": "p1",
            "userId": "u1",
            "url": "https://cdn.example.com/media/clip.MP4",
            "trampData": {"callbackId": "abc"},
        })

        assert response.status_code == 200
        envelope = response.json()
        assert envelope["job"]["success"] is True
        assert "error" not in envelope["job"]
        assert envelope["job"]["runId"].startswith("orchestrator_")
        assert envelope["trampData"] == {"callbackId": "abc"}
        track_output = envelope["results"]["orchestrator"]["SAMPLE_TRACK"]
        assert track_output["host"] == "cdn.example.com"
        assert track_output["extension"] == "mp4"
        assert track_output["trampData"] == {"callbackId": "abc"}
        assert track_output["userId"] == "u1"
        assert envelope["results"]["orchestrator"]["hello-world"] == {
            "message": "Running alongside the media track!"
        }

    def test_run_track_passes_extra_fields_as_payload(self, client):
        response = client.post(f"{API}/tracks/SAMPLE_TRACK/runs", json={
            "tenantId": "t1",
            "projectId": "p1",
            "payload": {"url": "http://example.com/a/b.txt"},
        })

        envelope = response.json()
        assert response.status_code == 200
        assert envelope["job"]["success"] is True
        assert envelope["results"]["track"]["path"] == "/a/b.txt"
        assert envelope["results"]["tasks"]["url-inspect"]["results"]["extension"] == "txt"
        assert envelope["metadata"]["tasks"]["echo"]["index"] == 1

    def test_task_failure_is_reported_in_envelope(self, client):
        response = client.post(f"{API}/tracks/SAMPLE_TRACK/runs", json={
            "tenantId": "t1",
            "projectId": "p1",
            "url": "ftp://example.com/file.mp4",
        })

        assert response.status_code == 200
        envelope = response.json()
        assert envelope["job"]["success"] is False
        assert envelope["job"]["error"] == "Task url-inspect failed: Unsupported URL: ftp://example.com/file.mp4"
        assert "echo" not in envelope["results"]["tasks"]

    def test_invalid_task_input(self, client):
        response = client.post(f"{API}/tracks/SAMPLE_TRACK/runs", json={"tenantId": "t1", "projectId": "p1"})

        envelope = response.json()
        assert envelope["job"]["success"] is False
        assert envelope["job"]["error"].startswith("Task url-inspect failed: Invalid input")
        assert envelope["metadata"]["tasks"]["url-inspect"]["code"] == "INVALID_INPUT"

    def test_unknown_definition(self, client):
        body = {"tenantId": "t1", "projectId": "p1"}

        assert client.post(f"{API}/tracks/missing/runs", json=body).status_code == 404
        assert client.post(f"{API}/orchestrators/missing/runs", json=body).status_code == 404
        # Names are looked up by kind
        assert client.post(f"{API}/tracks/sample_orchestrator/runs", json=body).status_code == 404

    @pytest.mark.parametrize("body", [
        {"projectId": "p1"},
        {"tenantId": "t1"},
        {"tenantId": "", "projectId": "p1"},
    ])
    def test_missing_context_rejected(self, client, body):
        response = client.post(f"{API}/tracks/SAMPLE_TRACK/runs", json=body)

        assert response.status_code == 422


class TestRunLogs:

    def test_unavailable_without_database(self, client):
        response = client.get(f"{API}/runs/track_abc/logs")

        assert response.status_code == 503

    def test_lists_stored_records(self, client):
        stored = TaskLog.from_record(LogRecordData(
            task="SAMPLE_TRACK",
            task_name="track_execution",
            status="completed",
            task_category="track_execution",
            message="Track execution completed",
            tenant_id="t1",
            project_id="p1",
            job_id="track_abc",
            tags=["track"],
        ))
        stored.id = "log-1"
        stored.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)

        result = MagicMock()
        result.scalars.return_value.all.return_value = [stored]
        session = MagicMock()
        session.execute = AsyncMock(return_value=result)

        async def fake_session():
            yield session

        app.dependency_overrides[get_log_session] = fake_session

        response = client.get(f"{API}/runs/track_abc/logs")

        assert response.status_code == 200
        [record] = response.json()
        assert record["id"] == "log-1"
        assert record["job_id"] == "track_abc"
        assert record["status"] == "completed"
        assert record["tags"] == ["track"]
        session.execute.assert_awaited_once()
