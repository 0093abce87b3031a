"""Tests for the terminal rendering of streamed events."""

import pytest

from coworker.client.cli import render_event
from coworker.common import shorten
from coworker.core.events import (
    DoneEvent,
    ErrorEvent,
    PlanEvent,
    ToolEndEvent,
    ToolStartEvent,
    TurnCompleteEvent,
)
from coworker.core.schema import PlanStepInfo


@pytest.mark.parametrize(
    ("event", "expected"),
    [
        (PlanEvent(steps=[PlanStepInfo(step=1, description="Read code")]), "1. Read code"),
        (ToolStartEvent(tool="bash", input={"command": "ls -la"}), "[bash] command: ls -la"),
        (ToolEndEvent(tool="bash", result="line1\nline2", success=True), "[bash] line1 line2"),
        (DoneEvent(total_turns=1), "Completed in 1 turn"),
        (ErrorEvent(message="Run cancelled"), "Error: Run cancelled"),
    ],
)
def test_render_event(capsys: pytest.CaptureFixture[str], event, expected: str) -> None:
    render_event(event)
    assert expected in capsys.readouterr().out


def test_turn_complete_prints_nothing(capsys: pytest.CaptureFixture[str]) -> None:
    render_event(TurnCompleteEvent(turn=3))
    assert capsys.readouterr().out == ""


def test_shorten_flattens_and_cuts() -> None:
    assert shorten("a\n  b", 10) == "a b"
    assert shorten("x" * 20, 10) == "xxxxxxx..."
