"""CLI entrypoint for adf-runtime.

Exit codes:
- 0: success
- 1: unexpected failure
- 2: configuration error
- 3: invalid agent definition or workflow
- 4: workflow run aborted
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from adf_runtime import __version__
from adf_runtime.config import RuntimeSettings
from adf_runtime.definitions import DefinitionError, load_definition
from adf_runtime.elicitation.channel import ConsoleChannel
from adf_runtime.errors import WorkflowFailure
from adf_runtime.logging import configure_logging
from adf_runtime.runtime import AgentRuntime

logger = logging.getLogger(__name__)


def _parse_var(value: str) -> tuple[str, Any]:
    key, sep, raw = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected key=value, got '{value}'")
    try:
        parsed = yaml.safe_load(raw) if raw else ""
    except yaml.YAMLError:
        parsed = raw
    return key.strip(), parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adf",
        description="Run declaratively-defined agent workflows",
    )
    parser.add_argument("--version", action="version", version=f"adf-runtime {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate an agent definition")
    validate.add_argument("definition", type=Path, help="Path to a .yaml/.yml/.json definition")

    workflows = subparsers.add_parser("workflows", help="List the workflows of a definition")
    workflows.add_argument("definition", type=Path)

    run = subparsers.add_parser("run", help="Run a workflow in this terminal")
    run.add_argument("definition", type=Path)
    run.add_argument(
        "--workflow",
        "-w",
        default=None,
        help="Workflow to run (defaults to the first one declared)",
    )
    run.add_argument(
        "--var",
        dest="variables",
        action="append",
        type=_parse_var,
        default=[],
        metavar="KEY=VALUE",
        help="Initial variable; VALUE is parsed as YAML (repeatable)",
    )

    serve = subparsers.add_parser("serve", help="Serve a definition over HTTP")
    serve.add_argument("definition", type=Path)
    serve.add_argument("--host", default=None, help="Bind address (default: ADF_HOST or 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: ADF_PORT or 8000)")

    return parser


def _validate(runtime: AgentRuntime) -> int:
    ok = True
    for name, report in runtime.validate().items():
        status = "ok" if report.valid else "INVALID"
        print(f"{name}: {status}")
        for diagnostic in report.diagnostics:
            print(f"  {diagnostic.severity}: {diagnostic.message}")
        ok = ok and report.valid
    return 0 if ok else 3


def _run(runtime: AgentRuntime, workflow: str | None, variables: dict[str, Any]) -> int:
    names = runtime.workflow_names()
    name = workflow or (names[0] if names else None)
    if name is None or name not in runtime.agent.workflows:
        print(f"Workflow not found: {workflow}", file=sys.stderr)
        return 3

    try:
        context = runtime.run_workflow(
            name, variables, on_response=lambda _state, text: print(text, flush=True)
        )
    except WorkflowFailure as e:
        print(f"Workflow '{name}' failed: {e}", file=sys.stderr)
        return 4

    logger.info(
        "Run complete",
        extra={"workflow": name, "state": context.current_state, "steps": len(context.history)},
    )
    return 0


def _serve(args: argparse.Namespace, runtime: AgentRuntime) -> int:
    import uvicorn

    from adf_runtime.server.app import create_app
    from adf_runtime.server.config import ServerSettings

    server_settings = ServerSettings(definition_path=args.definition)
    app = create_app(runtime, server_settings)
    uvicorn.run(
        app,
        host=args.host or server_settings.host,
        port=args.port or server_settings.port,
        log_config=None,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = RuntimeSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level, settings.log_format)

    try:
        document = load_definition(args.definition)
    except DefinitionError as e:
        print(str(e), file=sys.stderr)
        return 3

    runtime: AgentRuntime | None = None
    try:
        if args.command == "validate":
            runtime = AgentRuntime(document, settings, base_dir=args.definition.parent)
            return _validate(runtime)

        if args.command == "workflows":
            for name, workflow in document.agent.workflows.items():
                print(f"{name}\tinitial={workflow.initial}\tstates={len(workflow.states)}")
            return 0

        if args.command == "run":
            runtime = AgentRuntime(
                document,
                settings,
                base_dir=args.definition.parent,
                channel=ConsoleChannel(),
            )
            return _run(runtime, args.workflow, dict(args.variables))

        if args.command == "serve":
            runtime = AgentRuntime(document, settings, base_dir=args.definition.parent)
            return _serve(args, runtime)

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1
    finally:
        if runtime is not None:
            runtime.close()


if __name__ == "__main__":
    raise SystemExit(main())
