"""Fallback elicitation surface for hosts without native elicitation.

Each pending request is exposed three ways:
- a prompt (`elicitation_<id>`) combining the formatted question with an
  embedded machine-readable payload
- resources: `elicitation://history` and `elicitation://current/{id}`
- tools: `get_elicitation_guidance` and `respond_to_elicitation`

Payload shapes follow the host protocol's list/get/read/call results so the
server can hand them over unchanged.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from adf_runtime.elicitation.registry import (
    DEFAULT_TIMEOUT_SECONDS,
    PendingElicitation,
    PendingElicitationRegistry,
)
from adf_runtime.elicitation.rules import format_prompt, instructions, validation_rules
from adf_runtime.errors import UnknownElicitation
from adf_runtime.schema import ElicitationSpec

logger = logging.getLogger(__name__)

HISTORY_URI = "elicitation://history"
CURRENT_URI_PREFIX = "elicitation://current/"
PROMPT_PREFIX = "elicitation_"
JSON_MIME = "application/json"

RESPOND_TOOL = "respond_to_elicitation"
GUIDANCE_TOOL = "get_elicitation_guidance"

TOOLS: list[dict[str, Any]] = [
    {
        "name": RESPOND_TOOL,
        "description": "Provide a response to an active elicitation",
        "inputSchema": {
            "type": "object",
            "properties": {
                "elicitation_id": {
                    "type": "string",
                    "description": "The ID of the elicitation to respond to",
                },
                "response": {
                    "type": ["string", "number", "boolean", "object"],
                    "description": "Your response to the elicitation",
                },
            },
            "required": ["elicitation_id", "response"],
        },
    },
    {
        "name": GUIDANCE_TOOL,
        "description": (
            "Get guidance on how to gather information from the user for an elicitation"
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "elicitation_id": {
                    "type": "string",
                    "description": "The ID of the elicitation",
                },
            },
            "required": ["elicitation_id"],
        },
    },
]


def _dumps(payload: object) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def _text(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


class ElicitationBridge:
    """Discoverable prompts, resources and tools over a pending registry."""

    def __init__(self, registry: PendingElicitationRegistry | None = None) -> None:
        self.registry = registry or PendingElicitationRegistry(DEFAULT_TIMEOUT_SECONDS)

    # Delivery

    def request(
        self,
        spec: ElicitationSpec,
        context: dict[str, Any] | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> Any:
        """Publish a pending elicitation and block until it settles.

        Raises:
            WorkflowTimeout: If nobody answered before the timer fired.
            ElicitationRejected: If the bridge was closed while waiting.
        """

        pending = self.registry.create(spec, context, timeout_seconds=timeout_seconds)
        return pending.wait()

    def close(self) -> None:
        self.registry.close()

    # Payloads

    def _payload(self, pending: PendingElicitation) -> dict[str, Any]:
        return {
            "elicitation": pending.spec.model_dump(by_alias=True, exclude_none=True),
            "context": pending.context,
            "instructions": instructions(pending.spec),
        }

    def current_record(self, elicitation_id: str) -> dict[str, Any]:
        pending = self.registry.require(elicitation_id)
        return {
            "id": elicitation_id,
            **self._payload(pending),
            "validationRules": validation_rules(pending.spec),
        }

    def history_record(self) -> list[dict[str, Any]]:
        return [
            entry.model_dump(mode="json", exclude_none=True) for entry in self.registry.history()
        ]

    @staticmethod
    def describe(spec: ElicitationSpec) -> str:
        prompt = spec.prompt if len(spec.prompt) <= 50 else spec.prompt[:50] + "..."
        return f"{spec.type} elicitation: {prompt}"

    def guidance(self, elicitation_id: str) -> str:
        pending = self.registry.require(elicitation_id)
        prompt = format_prompt(pending.spec, pending.context)
        rules = "\n".join(f"   - {rule}" for rule in validation_rules(pending.spec))
        return (
            "# Elicitation Request\n\n"
            "You need to gather the following information from the user:\n\n"
            f"{prompt}\n\n"
            "## Instructions for the Agent:\n\n"
            "1. Ask the user the question above in a natural, conversational way\n"
            f"2. Validate their response according to the type: {pending.spec.type}\n"
            f"{rules}\n"
            f"3. Once you have a valid response, use the '{RESPOND_TOOL}' tool to submit it\n"
            "4. If the response is invalid, help the user understand what's needed\n"
        )

    # Prompts

    def list_prompts(self) -> list[dict[str, Any]]:
        return [
            {
                "name": f"{PROMPT_PREFIX}{pending.id}",
                "description": self.describe(pending.spec),
                "arguments": [
                    {
                        "name": "user_response",
                        "description": "Your response to the question",
                        "required": True,
                    }
                ],
            }
            for pending in self.registry.pending()
        ]

    def get_prompt(self, name: str) -> dict[str, Any]:
        elicitation_id = name.removeprefix(PROMPT_PREFIX)
        pending = self.registry.require(elicitation_id)
        return {
            "description": self.describe(pending.spec),
            "messages": [
                {
                    "role": "user",
                    "content": _text(format_prompt(pending.spec, pending.context)),
                },
                {
                    "role": "assistant",
                    "content": {
                        "type": "resource",
                        "resource": {
                            "uri": f"{CURRENT_URI_PREFIX}{elicitation_id}",
                            "mimeType": JSON_MIME,
                            "text": _dumps(self._payload(pending)),
                        },
                    },
                },
            ],
        }

    # Resources

    def list_resources(self) -> list[dict[str, Any]]:
        resources = [
            {
                "uri": HISTORY_URI,
                "name": "Conversation History",
                "description": "Complete history of elicitation interactions",
                "mimeType": JSON_MIME,
            }
        ]
        resources.extend(
            {
                "uri": f"{CURRENT_URI_PREFIX}{pending.id}",
                "name": f"Current Elicitation {pending.id}",
                "description": "Active elicitation waiting for response",
                "mimeType": JSON_MIME,
            }
            for pending in self.registry.pending()
        )
        return resources

    def handles_resource(self, uri: str) -> bool:
        return uri == HISTORY_URI or uri.startswith(CURRENT_URI_PREFIX)

    def read_resource(self, uri: str) -> dict[str, Any]:
        if uri == HISTORY_URI:
            payload: object = self.history_record()
        elif uri.startswith(CURRENT_URI_PREFIX):
            payload = self.current_record(uri.removeprefix(CURRENT_URI_PREFIX))
        else:
            raise UnknownElicitation(uri)
        return {"contents": [{"uri": uri, "mimeType": JSON_MIME, "text": _dumps(payload)}]}

    # Tools

    def list_tools(self) -> list[dict[str, Any]]:
        return [dict(tool) for tool in TOOLS]

    def handles_tool(self, name: str) -> bool:
        return name in {RESPOND_TOOL, GUIDANCE_TOOL}

    def get_elicitation_guidance(self, elicitation_id: str) -> dict[str, Any]:
        record = self.current_record(elicitation_id)
        return {
            "content": [
                _text(self.guidance(elicitation_id)),
                {
                    "type": "resource",
                    "resource": {
                        "uri": f"{CURRENT_URI_PREFIX}{elicitation_id}",
                        "mimeType": JSON_MIME,
                        "text": _dumps(record),
                    },
                },
            ]
        }

    def respond_to_elicitation(self, elicitation_id: str, response: Any) -> dict[str, Any]:
        pending = self.registry.get(elicitation_id)
        outcome = self.registry.respond(elicitation_id, response)
        if not outcome.accepted:
            guidance = instructions(pending.spec) if pending is not None else ""
            return {
                "content": [_text(f"Invalid response: {outcome.reason}\n\n{guidance}".rstrip())],
                "isError": True,
            }
        value = json.dumps(outcome.value, ensure_ascii=False, default=str)
        return {"content": [_text(f"Response accepted: {value}")]}

    def call_tool(self, name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
        args = arguments or {}
        elicitation_id = str(args.get("elicitation_id", ""))
        if name == RESPOND_TOOL:
            if "response" not in args:
                return {"content": [_text("Missing required argument: response")], "isError": True}
            return self.respond_to_elicitation(elicitation_id, args["response"])
        if name == GUIDANCE_TOOL:
            return self.get_elicitation_guidance(elicitation_id)
        raise LookupError(f"Unknown tool: {name}")
