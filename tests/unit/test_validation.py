from __future__ import annotations

from conftest import make_workflow

from adf_runtime.workflow.validation import validate_workflow


def test_valid_workflow_has_no_diagnostics() -> None:
    workflow = make_workflow(
        "a",
        {
            "a": {"type": "response", "template": "x", "transitions": {"default": "b"}},
            "b": {"type": "response", "template": "y"},
        },
    )

    report = validate_workflow(workflow)

    assert report.valid
    assert report.diagnostics == []
    assert report.unreachable == []


def test_missing_initial_state_is_an_error() -> None:
    report = validate_workflow(make_workflow("start", {"a": {"type": "response"}}))

    assert not report.valid
    assert report.errors[0].message == "Initial state 'start' not found"


def test_every_reference_kind_is_checked() -> None:
    workflow = make_workflow(
        "c",
        {
            "c": {"type": "conditional", "condition": "x", "onTrue": "t1", "onFalse": "p"},
            "p": {"type": "parallel", "branches": ["b1"], "transitions": {"default": "l"}},
            "l": {"type": "loop", "condition": "x", "body": "b2"},
        },
    )

    report = validate_workflow(workflow)

    assert not report.valid
    assert sorted(d.message for d in report.errors) == [
        "State 'c' references missing state 't1'",
        "State 'l' references missing state 'b2'",
        "State 'p' references missing state 'b1'",
    ]


def test_unreachable_states_are_warnings() -> None:
    workflow = make_workflow(
        "a",
        {
            "a": {"type": "response", "template": "x"},
            "orphan": {"type": "response", "template": "y"},
        },
    )

    report = validate_workflow(workflow)

    assert report.valid
    assert report.unreachable == ["orphan"]
    assert [w.message for w in report.warnings] == ["State 'orphan' is unreachable"]
