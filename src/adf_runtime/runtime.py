"""Agent runtime: one loaded definition wired to its services.

`AgentRuntime` answers the host protocol verbs (list/call tools, list/read
resources, list/get prompts) and runs workflows. The fallback elicitation
surface is merged into the same verbs, so a host without native elicitation
discovers pending questions next to the agent's own tools and resources.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from adf_runtime.config import RuntimeSettings
from adf_runtime.definitions import AgentDefinition, DefinitionDocument
from adf_runtime.elicitation.bridge import JSON_MIME, PROMPT_PREFIX, ElicitationBridge
from adf_runtime.elicitation.channel import ElicitationChannel
from adf_runtime.elicitation.registry import PendingElicitationRegistry
from adf_runtime.elicitation.service import ElicitationMode, ElicitationService
from adf_runtime.handlers import HandlerLoader
from adf_runtime.llm.factory import LLMFactory
from adf_runtime.llm.provider import LLMProvider
from adf_runtime.sampling import SamplingService
from adf_runtime.schema import SamplingState, WorkflowContext
from adf_runtime.workflow.executor import ResponseCallback, WorkflowExecutor
from adf_runtime.workflow.validation import ValidationReport, validate_workflow

logger = logging.getLogger(__name__)


def _json_text(payload: object) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


class AgentRuntime:
    def __init__(
        self,
        document: DefinitionDocument,
        settings: RuntimeSettings | None = None,
        *,
        base_dir: Path | None = None,
        provider: LLMProvider | None = None,
        channel: ElicitationChannel | None = None,
        handlers: HandlerLoader | None = None,
        elicitation_mode: ElicitationMode | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.document = document
        self.settings = settings or RuntimeSettings()
        self._sleep = sleep

        if handlers is None:
            handlers_path = Path(self.agent.handlers.path) if self.agent.handlers else None
            handlers_path = handlers_path or self.settings.handlers_path
            if base_dir is not None and not handlers_path.is_absolute():
                handlers_path = base_dir / handlers_path
            handlers = HandlerLoader(handlers_path, self.agent.tools)
        self.handlers = handlers

        if provider is None and self.settings.llm.configured:
            provider = LLMFactory.create(self.settings.llm)
        self.provider = provider
        self.sampling = (
            SamplingService(
                provider,
                retry_policy=self.settings.retry_policy(),
                timeout_seconds=self.settings.timeout_seconds,
                sleep=sleep,
            )
            if provider is not None
            else None
        )

        self.bridge = ElicitationBridge(
            PendingElicitationRegistry(self.settings.elicitation_timeout_seconds)
        )
        self.elicitation = ElicitationService(
            channel=channel,
            bridge=self.bridge,
            mode=elicitation_mode or self.settings.elicitation_mode,
            timeout_seconds=self.settings.elicitation_timeout_seconds,
        )

        logger.info(
            "Agent runtime ready",
            extra={
                "agent": self.agent.name,
                "workflows": sorted(self.agent.workflows),
                "sampling": self.sampling is not None,
            },
        )

    @property
    def agent(self) -> AgentDefinition:
        return self.document.agent

    def executor(self, on_response: ResponseCallback | None = None) -> WorkflowExecutor:
        return WorkflowExecutor(
            elicitation=self.elicitation,
            sampling=self.sampling,
            handlers=self.handlers,
            retry_policy=self.settings.retry_policy(),
            step_timeout_seconds=self.settings.timeout_seconds,
            on_response=on_response,
            sleep=self._sleep,
        )

    # Workflows

    def workflow_names(self) -> list[str]:
        return list(self.agent.workflows)

    def validate(self) -> dict[str, ValidationReport]:
        return {name: validate_workflow(wf) for name, wf in self.agent.workflows.items()}

    def run_workflow(
        self,
        name: str,
        variables: Mapping[str, Any] | None = None,
        *,
        on_response: ResponseCallback | None = None,
    ) -> WorkflowContext:
        """Run workflow `name`; the agent's `context` seeds the variables.

        Raises:
            KeyError: If no workflow has that name.
            WorkflowFailure: If the run aborted.
        """

        workflow = self.agent.workflows.get(name)
        if workflow is None:
            raise KeyError(f"Workflow '{name}' not found")
        initial = {**self.agent.context, **dict(variables or {})}
        logger.info("Running workflow", extra={"agent": self.agent.name, "workflow": name})
        return self.executor(on_response).execute(workflow, initial)

    # Tools

    def list_tools(self) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = []
        if self.agent.capabilities.tools is not False:
            tools.extend(
                {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": tool.input_schema(),
                }
                for tool in self.agent.tools
            )
        tools.extend(self.bridge.list_tools())
        return tools

    def call_tool(self, name: str, arguments: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Call an agent tool or a fallback elicitation tool.

        Raises:
            LookupError: If no tool has that name.
        """

        if self.bridge.handles_tool(name):
            return self.bridge.call_tool(name, dict(arguments or {}))

        tool = self.agent.tool(name)
        if tool is None:
            raise LookupError(f"Tool {name} not found")
        try:
            result = self.handlers.invoke(tool.name, arguments)
        except Exception:
            logger.exception("Tool execution failed", extra={"tool": name})
            raise
        return {"content": [{"type": "text", "text": _json_text(result)}]}

    # Resources

    def list_resources(self) -> list[dict[str, Any]]:
        resources: list[dict[str, Any]] = []
        if self.agent.capabilities.resources is not False:
            resources.extend(
                {"uri": r.uri, "description": r.description, "mimeType": JSON_MIME}
                for r in self.agent.resources
            )
        resources.extend(self.bridge.list_resources())
        return resources

    def read_resource(self, uri: str) -> dict[str, Any]:
        """Read an agent resource or a fallback elicitation record.

        Raises:
            LookupError: If no resource has that URI.
        """

        if self.bridge.handles_resource(uri):
            return self.bridge.read_resource(uri)

        resource = self.agent.resource(uri)
        if resource is None:
            raise LookupError(f"Resource {uri} not found")
        if resource.handler:
            payload = self.handlers.read_resource(resource.handler, uri)
        else:
            payload = {"message": "Static resource"}
        return {"contents": [{"uri": uri, "mimeType": JSON_MIME, "text": _json_text(payload)}]}

    # Prompts

    def _sampling_states(self) -> list[tuple[str, SamplingState]]:
        found: list[tuple[str, SamplingState]] = []
        for workflow_name, workflow in self.agent.workflows.items():
            for state_id, state in workflow.states.items():
                if isinstance(state, SamplingState):
                    found.append((f"{workflow_name}.{state_id}", state))
        return found

    def list_prompts(self) -> list[dict[str, Any]]:
        prompts: list[dict[str, Any]] = []
        if self.agent.capabilities.sampling is not False:
            prompts.extend(
                {"name": name, "description": state.effective_spec().prompt[:100]}
                for name, state in self._sampling_states()
            )
        prompts.extend(self.bridge.list_prompts())
        return prompts

    def get_prompt(self, name: str) -> dict[str, Any]:
        """Fetch a sampling-state prompt (`workflow.state`) or a pending elicitation prompt.

        Raises:
            LookupError: If no prompt has that name.
        """

        if name.startswith(PROMPT_PREFIX):
            return self.bridge.get_prompt(name)

        for prompt_name, state in self._sampling_states():
            if prompt_name == name:
                spec = state.effective_spec()
                return {
                    "description": spec.prompt[:100],
                    "messages": [
                        {"role": "user", "content": {"type": "text", "text": spec.prompt}}
                    ],
                }
        raise LookupError(f"Prompt {name} not found")

    def close(self) -> None:
        """Reject every pending elicitation so blocked runs can finish."""

        self.bridge.close()
        logger.info("Agent runtime closed", extra={"agent": self.agent.name})
