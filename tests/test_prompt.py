"""Tests for system prompt assembly and plan / step parsing."""

from coworker.core.prompt import (
    DEFAULT_SYSTEM_PROMPT,
    build_system_prompt,
    parse_plan,
    split_step_markers,
)
from coworker.skills import SkillInfo


def test_prompt_without_skills_is_the_template() -> None:
    assert build_system_prompt([], "/home/me/skills") == DEFAULT_SYSTEM_PROMPT


def test_prompt_lists_skills_and_their_location() -> None:
    """Each skill appears with its description, and paths point at the skills root."""
    prompt = build_system_prompt(
        [SkillInfo(name="pdf", description="Work with PDF files")], "/home/me/skills"
    )
    assert prompt.startswith(DEFAULT_SYSTEM_PROMPT)
    assert "## Available Skills" in prompt
    assert "- **pdf**: Work with PDF files" in prompt
    assert "`/home/me/skills/{skill_name}/SKILL.md`" in prompt


def test_parse_plan_extracts_numbered_steps() -> None:
    """Steps are numbered as written and brackets around descriptions are dropped."""
    steps, rest = parse_plan(
        "Sure.\n<plan>\n1. [Read the code]\n2. Fix the bug\nnot a step\n</plan>\nStarting now."
    )
    assert [(s.step, s.description) for s in steps] == [(1, "Read the code"), (2, "Fix the bug")]
    assert "<plan>" not in rest
    assert "Sure." in rest and "Starting now." in rest


def test_parse_plan_without_block() -> None:
    steps, rest = parse_plan("no plan here")
    assert steps == []
    assert rest == "no plan here"


def test_parse_plan_keeps_unnumbered_block_as_text() -> None:
    """A bulleted plan yields no steps and its text is not lost."""
    text = "<plan>\n- read code\n- fix bug\n</plan>\nGo."
    steps, rest = parse_plan(text)
    assert steps == []
    assert rest == text


def test_split_step_markers_keeps_order() -> None:
    """Prose and markers come out interleaved in their original order."""
    parts = list(
        split_step_markers("Intro\n[STEP 1 START]\nreading\n[STEP 1 DONE][STEP 2 START] next")
    )
    assert parts == ["Intro", ("start", 1), "reading", ("done", 1), ("start", 2), "next"]
