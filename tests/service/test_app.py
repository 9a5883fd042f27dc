"""Tests for the FastAPI service in devpilot.service.app."""

from __future__ import annotations

import json
import subprocess
import time
from pathlib import Path
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from devpilot.acquirer import RepoAcquirer
from devpilot.agents import default_agents
from devpilot.config import DevPilotConfig
from devpilot.errors import (
    CloneFailedError,
    DevPilotError,
    InvalidUrlError,
    SessionNotFoundError,
    SessionNotReadyError,
)
from devpilot.orchestrator import Orchestrator
from devpilot.service import create_app
from devpilot.service.app import status_code_for
from devpilot.sessions import SessionRegistry
from devpilot.workflow import AnalysisService

REPO_URL = "https://github.com/acme/api"

PYTHON_REPO = {
    "requirements.txt": "fastapi\nuvicorn\n",
    "main.py": "from fastapi import FastAPI\napp = FastAPI()\n",
    "tests/test_main.py": "def test_ok():\n    assert True\n",
}


class FakeGit:
    def __init__(self, files: Dict[str, str], error: Exception | None = None) -> None:
        self.files = files
        self.error = error

    def __call__(self, args, *, cwd, env=None, capture_output=False) -> str:
        if self.error is not None:
            raise self.error
        target = Path(args[-1])
        for relative, content in self.files.items():
            path = target / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return ""


def _client(tmp_path: Path, git: FakeGit | None = None) -> TestClient:
    config = DevPilotConfig(scratch_root=tmp_path / "scratch", sweep_interval_seconds=0)
    service = AnalysisService(
        SessionRegistry(),
        RepoAcquirer(config.scratch_root, runner=git or FakeGit(PYTHON_REPO)),
        Orchestrator(default_agents(config)),
    )
    return TestClient(create_app(service, config=config))


def _clone(client: TestClient) -> str:
    response = client.post("/api/clone-repo", json={"repoUrl": REPO_URL})
    assert response.status_code == 200, response.text
    return response.json()["sessionId"]


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (InvalidUrlError("bad"), 400),
        (SessionNotFoundError("x"), 404),
        (SessionNotReadyError("later"), 409),
        (CloneFailedError("nope"), 502),
        (DevPilotError("boom"), 500),
    ],
)
def test_status_code_for(error: DevPilotError, status_code: int) -> None:
    assert status_code_for(error) == status_code


def test_health(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["timestamp"].endswith("Z")


def test_clone_validation_errors(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        missing = client.post("/api/clone-repo", json={})
        invalid = client.post("/api/clone-repo", json={"repoUrl": "https://example.com/a/b"})

    assert missing.status_code == 400
    assert missing.json()["error"] == "InputValidation"
    assert "repoUrl" in missing.json()["message"]
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "InvalidUrl"


def test_clone_failure_maps_to_bad_gateway(tmp_path: Path) -> None:
    error = subprocess.CalledProcessError(128, ["git"], stderr="fatal: not found")
    with _client(tmp_path, FakeGit({}, error)) as client:
        response = client.post("/api/clone-repo", json={"repoUrl": REPO_URL})

    assert response.status_code == 502
    assert response.json()["error"] == "CloneFailed"


def test_session_lifecycle_over_http(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        clone = client.post("/api/clone-repo", json={"repoUrl": REPO_URL})
        assert clone.status_code == 200
        body = clone.json()
        session_id = body["sessionId"]
        assert body["success"] is True
        assert body["repoName"] == "api"
        assert body["localPath"].endswith("api")

        early = client.get(f"/api/files/{session_id}")
        assert early.status_code == 409
        assert early.json()["error"] == "NotReady"

        analyzed = client.post("/api/analyze", json={"sessionId": session_id, "wait": True})
        assert analyzed.status_code == 200
        assert analyzed.json()["techStack"]["backend"] == ["FastAPI"]
        assert analyzed.json()["generatedFiles"] == ["dockerfile", "githubActions", "envExample"]

        again = client.post("/api/analyze", json={"sessionId": session_id})
        assert again.status_code == 409

        files = client.get(f"/api/files/{session_id}").json()
        assert "uvicorn" in files["files"]["dockerfile"]
        assert files["codebaseAnalysis"]["hasTests"] is True

        dockerfile = client.get(f"/api/files/{session_id}/dockerfile")
        assert dockerfile.status_code == 200
        assert dockerfile.headers["content-disposition"] == 'attachment; filename="Dockerfile"'
        assert dockerfile.text.startswith("# Container build")

        workflow = client.get(f"/api/files/{session_id}/githubActions")
        assert workflow.headers["content-type"].startswith("text/yaml")

        unknown = client.get(f"/api/files/{session_id}/Makefile")
        assert unknown.status_code == 404
        assert unknown.json()["error"] == "ArtifactNotFound"

        status = client.get(f"/api/status/{session_id}").json()
        assert status["status"] == "completed"
        assert status["result"]["techStack"]["primary"] == "Python"

        sessions = client.get("/api/sessions").json()["sessions"]
        assert [item["sessionId"] for item in sessions] == [session_id]

        deleted = client.delete(f"/api/sessions/{session_id}")
        assert deleted.json() == {"success": True, "message": "Session cleaned up successfully"}

        gone = client.get(f"/api/status/{session_id}")
        assert gone.status_code == 404
        assert gone.json()["error"] == "InvalidSession"


def test_background_analysis_can_be_polled(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        session_id = _clone(client)

        started = client.post("/api/analyze", json={"sessionId": session_id})
        assert started.status_code == 202
        assert started.json()["status"] == "analyzing"

        deadline = time.monotonic() + 10
        status = client.get(f"/api/status/{session_id}").json()
        while status["status"] == "analyzing" and time.monotonic() < deadline:
            time.sleep(0.05)
            status = client.get(f"/api/status/{session_id}").json()

    assert status["status"] == "completed"


def test_unknown_session_returns_not_found(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        response = client.post("/api/analyze", json={"sessionId": "missing"})

    assert response.status_code == 404


def test_one_shot_endpoint(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        response = client.post("/api/devpilot", json={"repoUrl": REPO_URL})
        sessions = client.get("/api/sessions").json()["sessions"]

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["techStack"]["primary"] == "Python"
    assert "FROM python:3.11-slim" in body["generatedFiles"]["dockerfile"]
    assert any(doc["url"] == "https://docs.docker.com/guides/python/" for doc in body["deploymentDocs"])
    assert sessions == []


def test_websocket_receives_progress_events(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        with client.websocket_connect("/ws/progress") as websocket:
            session_id = _clone(client)
            first = websocket.receive_json()
            second = websocket.receive_json()

    assert first["sessionId"] == session_id
    assert (first["progress"], first["status"]) == (5, "cloning")
    assert (second["progress"], second["status"]) == (10, "cloned")


def test_cors_allows_configured_client(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        response = client.options(
            "/health",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
        )

    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


def test_request_body_must_be_json_object(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        response = client.post(
            "/api/clone-repo", content=json.dumps(["x"]), headers={"Content-Type": "application/json"}
        )

    assert response.status_code == 400
