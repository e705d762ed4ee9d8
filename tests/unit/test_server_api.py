from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from adf_runtime import __version__
from adf_runtime.config import RuntimeSettings
from adf_runtime.definitions import load_definition
from adf_runtime.runtime import AgentRuntime
from adf_runtime.server.app import create_app
from adf_runtime.server.config import ServerSettings

DEFINITION = """
version: "1.0"
agent:
  name: greeter
  description: Greets people
  tools:
    - name: shout
      description: Upper-case a word
      handler: shout
      parameters:
        word: {type: string, required: true}
    - name: explode
      description: Always fails
      handler: explode
  resources:
    - uri: greeter://about
      description: About this agent
  workflows:
    greet:
      initial: hello
      states:
        hello:
          type: response
          template: "Hello {name}"
          transitions: {default: bye}
        bye:
          type: response
          template: "Bye {name}"
    broken:
      initial: start
      states:
        start:
          type: response
          template: "starting"
          transitions: {default: boom}
        boom:
          type: tool
          tool: explode
    dangling:
      initial: a
      states:
        a:
          type: response
          transitions: {default: nowhere}
"""


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _wait_for_run(client: TestClient, run_id: str, timeout: float = 5.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        run = client.get(f"/api/runs/{run_id}").json()
        if run["status"] in {"succeeded", "failed"}:
            return run
        time.sleep(0.02)
    raise AssertionError(f"run {run_id} did not finish")


@pytest.fixture
def definition_path(runtime_settings: RuntimeSettings, tmp_path: Path) -> Path:
    handlers = runtime_settings.handlers_path
    _write(handlers / "shout.py", "def handler(params):\n    return params['word'].upper()\n")
    _write(handlers / "explode.py", "def handler(params):\n    raise RuntimeError('kaboom')\n")
    path = tmp_path / "greeter.yaml"
    _write(path, DEFINITION)
    return path


@pytest.fixture
def client(definition_path: Path, runtime_settings: RuntimeSettings) -> Iterator[TestClient]:
    runtime = AgentRuntime(
        load_definition(definition_path), runtime_settings, sleep=lambda _s: None
    )
    app = create_app(runtime, ServerSettings(_env_file=None))
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    health = client.get("/api/health").json()

    assert health == {
        "status": "ok",
        "agent": "greeter",
        "version": __version__,
        "sampling": False,
    }


def test_app_loads_definition_from_env(
    monkeypatch: pytest.MonkeyPatch, definition_path: Path
) -> None:
    monkeypatch.setenv("ADF_DEFINITION", str(definition_path))

    with TestClient(create_app()) as test_client:
        assert test_client.get("/api/health").json()["agent"] == "greeter"


def test_app_without_definition_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ADF_DEFINITION", raising=False)

    with pytest.raises(RuntimeError, match="ADF_DEFINITION"):
        create_app(settings=ServerSettings(_env_file=None))


def test_tools_list_and_call(client: TestClient) -> None:
    names = [tool["name"] for tool in client.get("/api/tools").json()["tools"]]
    assert names[:2] == ["shout", "explode"]
    assert "respond_to_elicitation" in names

    result = client.post("/api/tools/call", json={"name": "shout", "arguments": {"word": "hey"}})
    assert result.status_code == 200
    assert result.json()["content"][0]["text"] == '"HEY"'

    missing = client.post("/api/tools/call", json={"name": "nope"})
    assert missing.status_code == 404

    failing = client.post("/api/tools/call", json={"name": "explode"})
    assert failing.status_code == 500
    assert "kaboom" in failing.json()["detail"]


def test_resources_and_prompts(client: TestClient) -> None:
    uris = [r["uri"] for r in client.get("/api/resources").json()["resources"]]
    assert uris == ["greeter://about", "elicitation://history"]

    about = client.post("/api/resources/read", json={"uri": "greeter://about"})
    assert about.status_code == 200
    assert client.post("/api/resources/read", json={"uri": "greeter://x"}).status_code == 404

    assert client.get("/api/prompts").json() == {"prompts": []}
    assert client.get("/api/prompts/greet.hello").status_code == 404


def test_workflows_report_validation(client: TestClient) -> None:
    workflows = {w["name"]: w for w in client.get("/api/workflows").json()["workflows"]}

    assert workflows["greet"]["valid"] is True
    assert workflows["dangling"]["valid"] is False
    assert workflows["dangling"]["errors"] == ["State 'a' references missing state 'nowhere'"]


def test_run_succeeds_and_records_responses(client: TestClient) -> None:
    started = client.post("/api/workflows/greet/runs", json={"variables": {"name": "Ada"}})
    assert started.status_code == 202
    run_id = started.json()["run_id"]

    run = _wait_for_run(client, run_id)

    assert run["status"] == "succeeded"
    assert run["current_state"] == "bye"
    assert run["responses"] == ["Hello Ada", "Bye Ada"]
    assert [h["state"] for h in run["history"]] == ["hello", "bye"]
    assert run["variables"] == {"name": "Ada"}
    assert any(r["run_id"] == run_id for r in client.get("/api/runs").json())


def test_failed_run_keeps_partial_history(client: TestClient) -> None:
    run_id = client.post("/api/workflows/broken/runs", json={}).json()["run_id"]

    run = _wait_for_run(client, run_id)

    assert run["status"] == "failed"
    assert run["failed_state"] == "boom"
    assert "kaboom" in run["error"]
    assert [h["state"] for h in run["history"]] == ["start", "boom"]
    assert run["responses"] == ["starting"]


def test_invalid_workflow_run_fails_validation(client: TestClient) -> None:
    run_id = client.post("/api/workflows/dangling/runs", json={}).json()["run_id"]

    run = _wait_for_run(client, run_id)

    assert run["status"] == "failed"
    assert run["error"].startswith("Workflow validation failed")
    assert run["history"] == []


def test_unknown_workflow_and_run_are_404(client: TestClient) -> None:
    assert client.post("/api/workflows/nope/runs", json={}).status_code == 404
    assert client.get("/api/runs/does-not-exist").status_code == 404
