"""Workflow execution.

This package holds:
- the closed condition evaluator and transition pattern matching
- semantic validation (reference existence, reachability)
- the step-driving executor

Conditions are a narrow mini-language: a bare variable name or a
single `<var> <op> <literal>` comparison. Nothing here evaluates code.
"""

__all__: list[str] = []
