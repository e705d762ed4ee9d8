#!/usr/bin/env python3
"""Programmatic workflow run example.

This demonstrates using the runtime components directly:

* load settings from `.env`
* load an agent definition
* run one of its workflows, answering elicitations in the terminal

Equivalent CLI: `adf run examples/weather_agent.yaml --workflow main`
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from adf_runtime.config import RuntimeSettings
from adf_runtime.definitions import load_definition
from adf_runtime.elicitation.channel import ConsoleChannel
from adf_runtime.errors import WorkflowFailure
from adf_runtime.logging import configure_logging
from adf_runtime.runtime import AgentRuntime

HERE = Path(__file__).resolve().parent


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an agent workflow (programmatic example).")
    parser.add_argument(
        "--definition",
        type=Path,
        default=HERE / "weather_agent.yaml",
        help="Agent definition file",
    )
    parser.add_argument("--workflow", default="main", help="Workflow name")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = RuntimeSettings()
    configure_logging(settings.log_level, settings.log_format)

    document = load_definition(args.definition)
    runtime = AgentRuntime(
        document, settings, base_dir=args.definition.parent, channel=ConsoleChannel()
    )

    try:
        context = runtime.run_workflow(
            args.workflow, on_response=lambda _state, text: print(text)
        )
    except WorkflowFailure as exc:
        print(f"Run failed at state '{exc.state_id}': {exc.message}")
        return 1
    finally:
        runtime.close()

    print(f"Finished at '{context.current_state}' after {len(context.history)} steps")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
