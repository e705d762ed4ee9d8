"""Native elicitation channels.

A channel is the host's own request/response path for asking the user. The
service probes `supports_elicitation()` and falls back to the discoverable
bridge when no capable channel is attached.
"""

from __future__ import annotations

import sys
import threading
from collections import deque
from typing import Any, Protocol, TextIO

from adf_runtime.errors import ChannelClosedError
from adf_runtime.schema import ElicitationSpec


class ElicitationChannel(Protocol):
    def supports_elicitation(self) -> bool: ...

    def request_elicitation(self, message: str, spec: ElicitationSpec) -> Any:
        """Ask the user `message` and return their raw answer.

        Raises:
            ChannelClosedError: If the channel closed or the request was
                cancelled before an answer arrived.
        """
        ...

    def cancel_elicitation(self) -> None:
        """Abort the outstanding request, if any, so it can no longer take an answer."""
        ...


class ConsoleChannel:
    """Ask on a terminal. Used by the `run` CLI command.

    At most one `readline` is outstanding at any time. A line that arrives
    after its request was cancelled is kept for the next request instead of
    being handed to the abandoned caller.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._cond = threading.Condition()
        self._lines: deque[str | None] = deque()  # None marks end of input
        self._reading = False
        self._ticket = 0

    def supports_elicitation(self) -> bool:
        with self._cond:
            at_eof = bool(self._lines) and self._lines[0] is None
        return not self._stdin.closed and not at_eof

    def request_elicitation(self, message: str, spec: ElicitationSpec) -> Any:
        with self._cond:
            self._ticket += 1
            ticket = self._ticket
            self._stdout.write(f"{message}\n> ")
            self._stdout.flush()
            while not self._lines:
                self._start_reader()
                self._cond.wait()
                if self._ticket != ticket:
                    raise ChannelClosedError("elicitation cancelled")
            line = self._lines[0]
            if line is None:
                raise ChannelClosedError("stdin closed")
            self._lines.popleft()
        return line.rstrip("\r\n")

    def cancel_elicitation(self) -> None:
        with self._cond:
            self._ticket += 1
            self._cond.notify_all()

    def _start_reader(self) -> None:
        if self._reading:
            return
        self._reading = True
        threading.Thread(target=self._read_line, name="adf-console-reader", daemon=True).start()

    def _read_line(self) -> None:
        try:
            line = self._stdin.readline()
        except (OSError, ValueError):  # closed underneath us
            line = ""
        with self._cond:
            self._lines.append(line or None)
            self._reading = False
            self._cond.notify_all()
