"""Pending-elicitation registry for fallback delivery.

The registry owns the table of in-flight requests and an append-only history
log. Each entry leaves the table exactly once, on the first of: an accepted
response, an explicit rejection, or its timer firing. All table and history
mutations happen under a single lock, so concurrent submissions for the same
id are serialized and exactly one of them wins.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel

from adf_runtime.elicitation.rules import transform_response, validate_response
from adf_runtime.errors import ElicitationRejected, UnknownElicitation, WorkflowTimeout
from adf_runtime.schema import ElicitationSpec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0

HistoryStatus = Literal["pending", "resolved", "rejected", "expired"]


class ElicitationHistoryEntry(BaseModel):
    id: str
    type: str
    prompt: str
    timestamp: str
    status: HistoryStatus = "pending"
    response: Any = None


@dataclass
class PendingElicitation:
    id: str
    spec: ElicitationSpec
    context: dict[str, Any]
    timeout_seconds: float
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    future: Future[Any] = field(default_factory=Future, repr=False)
    timer: threading.Timer | None = field(default=None, repr=False)

    def wait(self) -> Any:
        """Block until resolved, rejected or expired."""

        return self.future.result()


@dataclass(frozen=True, slots=True)
class ResponseOutcome:
    accepted: bool
    value: Any = None
    reason: str | None = None


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class PendingElicitationRegistry:
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: dict[str, PendingElicitation] = {}
        self._history: list[ElicitationHistoryEntry] = []
        self._closed = False

    def create(
        self,
        spec: ElicitationSpec,
        context: dict[str, Any] | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> PendingElicitation:
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        with self._lock:
            if self._closed:
                raise ElicitationRejected("elicitation channel closed")
            elicitation_id = f"elicit-{uuid.uuid4().hex}"
            while elicitation_id in self._pending:
                elicitation_id = f"elicit-{uuid.uuid4().hex}"

            pending = PendingElicitation(
                id=elicitation_id,
                spec=spec,
                context=copy.deepcopy(dict(context or {})),
                timeout_seconds=timeout,
            )
            timer = threading.Timer(timeout, self.expire, args=(elicitation_id,))
            timer.daemon = True
            pending.timer = timer

            self._pending[elicitation_id] = pending
            self._history.append(
                ElicitationHistoryEntry(
                    id=elicitation_id,
                    type=spec.type,
                    prompt=spec.prompt,
                    timestamp=_utc_iso_now(),
                )
            )
            timer.start()

        logger.info(
            "Elicitation pending",
            extra={"elicitation_id": elicitation_id, "type": spec.type, "timeout_seconds": timeout},
        )
        return pending

    def get(self, elicitation_id: str) -> PendingElicitation | None:
        with self._lock:
            return self._pending.get(elicitation_id)

    def require(self, elicitation_id: str) -> PendingElicitation:
        pending = self.get(elicitation_id)
        if pending is None:
            raise UnknownElicitation(elicitation_id)
        return pending

    def pending(self) -> list[PendingElicitation]:
        with self._lock:
            return list(self._pending.values())

    def history(self) -> list[ElicitationHistoryEntry]:
        with self._lock:
            return [entry.model_copy() for entry in self._history]

    def _finish_unlocked(
        self, elicitation_id: str, status: HistoryStatus, response: Any = None
    ) -> PendingElicitation | None:
        pending = self._pending.pop(elicitation_id, None)
        if pending is None:
            return None
        if pending.timer is not None:
            pending.timer.cancel()
        for entry in reversed(self._history):
            if entry.id == elicitation_id:
                entry.status = status
                if status == "resolved":
                    entry.response = response
                break
        return pending

    def respond(self, elicitation_id: str, raw: Any) -> ResponseOutcome:
        """Validate, transform and resolve in one atomic step.

        An invalid response leaves the entry pending so the caller can retry.

        Raises:
            UnknownElicitation: If the id is not (or no longer) pending.
        """

        with self._lock:
            pending = self._pending.get(elicitation_id)
            if pending is None:
                raise UnknownElicitation(elicitation_id)

            verdict = validate_response(raw, pending.spec)
            if not verdict.valid:
                logger.info(
                    "Elicitation response rejected",
                    extra={"elicitation_id": elicitation_id, "reason": verdict.reason},
                )
                return ResponseOutcome(accepted=False, reason=verdict.reason)

            value = transform_response(raw, pending.spec)
            self._finish_unlocked(elicitation_id, "resolved", value)

        pending.future.set_result(value)
        logger.info("Elicitation resolved", extra={"elicitation_id": elicitation_id})
        return ResponseOutcome(accepted=True, value=value)

    def resolve(self, elicitation_id: str, value: Any) -> bool:
        """Settle an entry with an already-typed value, skipping validation.

        Returns False if the id was not pending.
        """

        with self._lock:
            pending = self._finish_unlocked(elicitation_id, "resolved", value)
        if pending is None:
            return False
        pending.future.set_result(value)
        logger.info("Elicitation resolved", extra={"elicitation_id": elicitation_id})
        return True

    def reject(self, elicitation_id: str, error: BaseException) -> bool:
        with self._lock:
            pending = self._finish_unlocked(elicitation_id, "rejected")
        if pending is None:
            return False
        pending.future.set_exception(error)
        logger.info(
            "Elicitation rejected", extra={"elicitation_id": elicitation_id, "error": str(error)}
        )
        return True

    def expire(self, elicitation_id: str) -> bool:
        with self._lock:
            pending = self._finish_unlocked(elicitation_id, "expired")
        if pending is None:
            return False
        pending.future.set_exception(
            WorkflowTimeout(
                operation=f"elicitation {elicitation_id}",
                timeout_seconds=pending.timeout_seconds,
            )
        )
        logger.warning("Elicitation expired", extra={"elicitation_id": elicitation_id})
        return True

    def close(self) -> None:
        """Reject every waiter; no new entries are accepted afterwards."""

        with self._lock:
            self._closed = True
            ids = list(self._pending)
        for elicitation_id in ids:
            self.reject(elicitation_id, ElicitationRejected("elicitation channel closed"))
