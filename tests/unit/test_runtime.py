"""Unit tests for the agent runtime and its host protocol verbs."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from conftest import FakeProvider

from adf_runtime.config import RuntimeSettings
from adf_runtime.definitions import DefinitionDocument, parse_definition
from adf_runtime.elicitation.bridge import PROMPT_PREFIX
from adf_runtime.runtime import AgentRuntime
from adf_runtime.schema import ElicitationSpec, WorkflowContext

WEATHER_AGENT = """
version: "1.0"
agent:
  name: weather
  description: Weather helper
  tools:
    - name: get_weather
      description: Current weather for a city
      handler: weather
      parameters:
        city: {type: string, required: true}
  resources:
    - uri: weather://cities
      description: Known cities
      handler: cities
    - uri: weather://about
      description: Static information
  workflows:
    main:
      initial: ask
      states:
        ask:
          type: elicitation
          elicitation: {type: select, prompt: "Which city?", options: [Oslo, Rome]}
          transitions: {default: lookup}
        lookup:
          type: tool
          tool: get_weather
          parameters: {city: "{ask_response}", units: "{units}"}
          transitions: {default: report}
        report:
          type: response
          template: "{ask_response}: {lookup_result}"
    haiku:
      initial: write
      states:
        write:
          type: sampling
          prompt: "Write a haiku about {topic}"
          transitions: {default: show}
        show:
          type: response
          template: "{write_completion}"
  context:
    units: metric
"""


class AnsweringChannel:
    def __init__(self, answer: str) -> None:
        self.answer = answer

    def supports_elicitation(self) -> bool:
        return True

    def request_elicitation(self, message: str, spec: ElicitationSpec) -> Any:
        return self.answer

    def cancel_elicitation(self) -> None:
        pass


@pytest.fixture
def document(runtime_settings: RuntimeSettings) -> DefinitionDocument:
    handlers = runtime_settings.handlers_path
    handlers.mkdir(parents=True)
    (handlers / "weather.py").write_text(
        "def handler(params):\n"
        "    return f\"{params['city']} 20C {params.get('units', '')}\".strip()\n",
        encoding="utf-8",
    )
    (handlers / "cities.py").write_text(
        "def handler(uri):\n    return {'uri': uri, 'cities': ['Oslo', 'Rome']}\n",
        encoding="utf-8",
    )
    return parse_definition(WEATHER_AGENT)


@pytest.fixture
def runtime(
    document: DefinitionDocument, runtime_settings: RuntimeSettings, fake_provider: FakeProvider
) -> Iterator[AgentRuntime]:
    rt = AgentRuntime(
        document,
        runtime_settings,
        provider=fake_provider,
        channel=AnsweringChannel("1"),
        sleep=lambda _s: None,
    )
    yield rt
    rt.close()


def test_list_tools_includes_fallback_tools(runtime: AgentRuntime) -> None:
    tools = {tool["name"]: tool for tool in runtime.list_tools()}

    assert set(tools) == {"get_weather", "respond_to_elicitation", "get_elicitation_guidance"}
    assert tools["get_weather"]["inputSchema"]["required"] == ["city"]


def test_disabled_tool_capability_hides_agent_tools(
    document: DefinitionDocument, runtime_settings: RuntimeSettings
) -> None:
    data = document.model_dump(by_alias=True)
    data["agent"]["capabilities"] = {"tools": False}
    runtime = AgentRuntime(DefinitionDocument.model_validate(data), runtime_settings)

    assert "get_weather" not in {tool["name"] for tool in runtime.list_tools()}


def test_call_tool_returns_json_text(runtime: AgentRuntime) -> None:
    result = runtime.call_tool("get_weather", {"city": "Rome"})

    assert json.loads(result["content"][0]["text"]) == "Rome 20C"


def test_call_unknown_tool_raises(runtime: AgentRuntime) -> None:
    with pytest.raises(LookupError):
        runtime.call_tool("launch_rocket", {})


def test_resources_read_through_handlers(runtime: AgentRuntime) -> None:
    uris = [r["uri"] for r in runtime.list_resources()]
    assert uris == ["weather://cities", "weather://about", "elicitation://history"]

    cities = runtime.read_resource("weather://cities")
    assert json.loads(cities["contents"][0]["text"]) == {
        "uri": "weather://cities",
        "cities": ["Oslo", "Rome"],
    }
    about = runtime.read_resource("weather://about")
    assert json.loads(about["contents"][0]["text"]) == {"message": "Static resource"}

    with pytest.raises(LookupError):
        runtime.read_resource("weather://nowhere")


def test_sampling_states_are_prompts(runtime: AgentRuntime) -> None:
    assert runtime.list_prompts() == [
        {"name": "haiku.write", "description": "Write a haiku about {topic}"}
    ]
    prompt = runtime.get_prompt("haiku.write")
    assert prompt["messages"][0]["content"]["text"] == "Write a haiku about {topic}"

    with pytest.raises(LookupError):
        runtime.get_prompt("haiku.show")


def test_validate_reports_every_workflow(runtime: AgentRuntime) -> None:
    reports = runtime.validate()

    assert set(reports) == {"main", "haiku"}
    assert all(report.valid for report in reports.values())


def test_run_workflow_seeds_agent_context(runtime: AgentRuntime) -> None:
    responses: list[str] = []

    context = runtime.run_workflow("main", on_response=lambda _s, t: responses.append(t))

    assert context.variables["units"] == "metric"
    assert context.variables["ask_response"] == "Oslo"
    assert responses == ["Oslo: Oslo 20C metric"]


def test_run_workflow_uses_sampling_provider(
    runtime: AgentRuntime, fake_provider: FakeProvider
) -> None:
    fake_provider.replies = ["Soft rain on the roof"]

    context = runtime.run_workflow("haiku", {"topic": "rain"})

    assert context.variables["write_completion"] == "Soft rain on the roof"
    assert context.current_state == "show"


def test_run_unknown_workflow_raises(runtime: AgentRuntime) -> None:
    with pytest.raises(KeyError):
        runtime.run_workflow("missing")


def test_fallback_elicitation_is_answered_through_host_verbs(
    document: DefinitionDocument, runtime_settings: RuntimeSettings
) -> None:
    runtime = AgentRuntime(document, runtime_settings, sleep=lambda _s: None)
    results: list[WorkflowContext] = []
    worker = threading.Thread(target=lambda: results.append(runtime.run_workflow("main")))
    worker.start()

    try:
        deadline = time.monotonic() + 2.0
        prompts: list[dict[str, Any]] = []
        while not prompts and time.monotonic() < deadline:
            prompts = [p for p in runtime.list_prompts() if p["name"].startswith(PROMPT_PREFIX)]
            time.sleep(0.01)
        assert prompts, "elicitation was never published"

        elicitation_id = prompts[0]["name"].removeprefix(PROMPT_PREFIX)
        wrong = runtime.call_tool(
            "respond_to_elicitation", {"elicitation_id": elicitation_id, "response": "Paris"}
        )
        assert wrong["isError"] is True
        runtime.call_tool(
            "respond_to_elicitation", {"elicitation_id": elicitation_id, "response": "Rome"}
        )
        worker.join(timeout=2.0)
    finally:
        runtime.close()

    [context] = results
    assert context.variables["lookup_result"] == "Rome 20C metric"


def test_handlers_path_from_definition_is_relative_to_base_dir(
    tmp_path: Path, runtime_settings: RuntimeSettings
) -> None:
    data = parse_definition(WEATHER_AGENT).model_dump(by_alias=True)
    data["agent"]["handlers"] = {"path": "tools"}

    runtime = AgentRuntime(
        DefinitionDocument.model_validate(data), runtime_settings, base_dir=tmp_path
    )

    assert runtime.handlers.base_path == tmp_path / "tools"
