"""Elicitation service: one validated value per request, native or fallback."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from adf_runtime.elicitation.bridge import ElicitationBridge
from adf_runtime.elicitation.channel import ElicitationChannel
from adf_runtime.elicitation.registry import DEFAULT_TIMEOUT_SECONDS
from adf_runtime.elicitation.rules import (
    Verdict,
    format_prompt,
    transform_response,
    validate_response,
)
from adf_runtime.errors import ChannelClosedError, ElicitationRejected, WorkflowTimeout
from adf_runtime.retry import call_with_timeout
from adf_runtime.schema import ElicitationSpec

logger = logging.getLogger(__name__)

ElicitationMode = Literal["auto", "native", "fallback"]
Delivery = Literal["native", "fallback"]


@dataclass(frozen=True, slots=True)
class ElicitationResult:
    value: Any
    raw: Any  # None for fallback delivery; the registry keeps only the typed value
    prompt: str
    delivery: Delivery


class ElicitationService:
    """Obtain a validated, typed answer for an `ElicitationSpec`.

    A capability probe picks the delivery path on every request: the native
    channel when one is attached and reports support, otherwise the fallback
    bridge. `mode` pins one path.
    """

    def __init__(
        self,
        *,
        channel: ElicitationChannel | None = None,
        bridge: ElicitationBridge | None = None,
        mode: ElicitationMode = "auto",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.channel = channel
        self.bridge = bridge
        self.mode = mode
        self.timeout_seconds = timeout_seconds

    def format_prompt(self, spec: ElicitationSpec, context: Mapping[str, Any] | None = None) -> str:
        return format_prompt(spec, context)

    def validate_response(self, raw: Any, spec: ElicitationSpec) -> Verdict:
        return validate_response(raw, spec)

    def transform_response(self, raw: Any, spec: ElicitationSpec) -> Any:
        return transform_response(raw, spec)

    def select_delivery(self) -> Delivery:
        """Capability probe.

        Raises:
            ElicitationRejected: If the pinned or probed path is unavailable.
        """

        native_ok = self.channel is not None and self.channel.supports_elicitation()
        if self.mode == "native":
            if not native_ok:
                raise ElicitationRejected("native elicitation channel unavailable")
            return "native"
        if self.mode == "auto" and native_ok:
            return "native"
        if self.bridge is None:
            raise ElicitationRejected("no elicitation channel available")
        return "fallback"

    def request_elicitation(
        self, spec: ElicitationSpec, context: Mapping[str, Any] | None = None
    ) -> ElicitationResult:
        prompt = format_prompt(spec, context)
        delivery = self.select_delivery()
        logger.info(
            "Requesting elicitation", extra={"type": spec.type, "delivery": delivery}
        )

        if delivery == "native":
            raw = self._request_native(prompt, spec)
            value = transform_response(raw, spec)
        else:
            assert self.bridge is not None
            # The registry validates and transforms before resolving.
            value = self.bridge.request(
                spec, dict(context or {}), timeout_seconds=self.timeout_seconds
            )
            raw = None

        logger.info("Elicitation completed", extra={"type": spec.type, "delivery": delivery})
        return ElicitationResult(value=value, raw=raw, prompt=prompt, delivery=delivery)

    def _request_native(self, prompt: str, spec: ElicitationSpec) -> Any:
        channel = self.channel
        assert channel is not None
        try:
            raw = call_with_timeout(
                lambda: channel.request_elicitation(prompt, spec),
                self.timeout_seconds,
                operation="native elicitation",
            )
        except WorkflowTimeout:
            channel.cancel_elicitation()
            raise
        except ChannelClosedError as e:
            raise ElicitationRejected(f"channel closed: {e}") from e

        verdict = validate_response(raw, spec)
        if not verdict.valid:
            logger.warning(
                "Invalid elicitation response", extra={"type": spec.type, "reason": verdict.reason}
            )
            raise ElicitationRejected(verdict.reason or "invalid response", retryable=True)
        return raw
