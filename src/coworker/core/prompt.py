"""
System prompt assembly and the plan / step-marker conventions it asks the model to follow.

:func:`build_system_prompt` is a pure function of the skills snapshot, so the prompt can be
computed once at startup and tested in isolation.
"""

import re
from typing import (
    Iterator,
    List,
    Sequence,
    Tuple,
    Union,
)

from coworker.core.schema import PlanStepInfo
from coworker.skills import SkillInfo

DEFAULT_SYSTEM_PROMPT = """\
You are Coworker, an AI agent that helps users with software development tasks.

You have access to tools that allow you to read and write files, execute commands, and search \
through codebases.

## IMPORTANT: Always Create a Plan First

Before starting ANY task, you MUST output a plan in this exact format:

<plan>
1. [First step description]
2. [Second step description]
3. [Third step description]
...
</plan>

After outputting the plan, immediately begin executing each step. As you work through each \
step, indicate progress with:
- `[STEP 1 START]` when beginning a step
- `[STEP 1 DONE]` when completing a step

## Guidelines
- Always read files before modifying them to understand the context
- Use edit_file for small changes, write_file for new files or complete rewrites
- Be careful with bash commands - prefer read-only operations when possible
- Search with glob and grep before making assumptions about file locations
- Explain what you're doing briefly

## Available Tools
- `read_file` - Read file contents
- `write_file` - Create or overwrite a file
- `edit_file` - Make targeted edits to a file
- `bash` - Execute shell commands
- `glob` - Find files by pattern
- `grep` - Search file contents
- `list_dir` - List directory contents
- `docker_run` - Run commands in Docker containers
- `docker_list` - List running containers
- `docker_images` - List available images

## Docker Integration
The project_path (if provided) is automatically mounted to /workspace in containers.
Skills directory is automatically mounted to /skills (read-only).
Default image: python:3.11-alpine. Also available: ubuntu:latest, node:20, rust:alpine

## Workflow
1. Output your plan in <plan> tags
2. Execute step by step, marking progress
3. Verify your changes work
4. Summarize what was accomplished
"""


def build_system_prompt(skills: Sequence[SkillInfo], skills_root: str) -> str:
    """Return the fixed template, plus an "Available Skills" section when *skills* is non-empty."""
    prompt = DEFAULT_SYSTEM_PROMPT
    if not skills:
        return prompt

    lines = [
        "",
        "",
        "## Available Skills",
        f"Skills are located in {skills_root} (auto-mounted at /skills in Docker):",
        "",
    ]
    lines.extend(f"- **{skill.name}**: {skill.description}" for skill in skills)
    lines += [
        "",
        "### Using Skills",
        "When a user's request matches a skill:",
        f"1. Read the skill's SKILL.md file using read_file tool: "
        f"`{skills_root}/{{skill_name}}/SKILL.md`",
        "2. Follow the instructions in SKILL.md",
        "3. Load additional referenced files progressively as needed:",
        f"   - `{skills_root}/{{skill_name}}/forms.md`",
        f"   - `{skills_root}/{{skill_name}}/reference.md`",
        "4. Execute scripts using docker_run tool - skills are auto-mounted at /skills",
        "5. Example: `python /skills/pdf/scripts/extract_text.py /workspace/document.pdf`",
        "",
        "Note: The ~ symbol is supported in read_file paths and will expand to the user's "
        "home directory.",
        "",
    ]
    return prompt + "\n".join(lines)


# ---------------------------------------------------------------------------
# Plan & step markers
# ---------------------------------------------------------------------------
_PLAN_RE = re.compile(r"<plan>(.*?)</plan>", re.DOTALL | re.IGNORECASE)
_PLAN_LINE_RE = re.compile(r"^\s*(\d+)[.)]\s*(.+?)\s*$")
_STEP_RE = re.compile(r"\[STEP\s+(\d+)\s+(START|DONE)\]", re.IGNORECASE)


def parse_plan(text: str) -> Tuple[List[PlanStepInfo], str]:
    """
    Extract the ``<plan>`` block from *text*.

    Returns the numbered steps and *text* with the block removed.  Without a plan block, or
    when the block has no numbered lines, the steps are empty and *text* comes back unchanged.
    Square brackets around a step description are stripped.
    """
    match = _PLAN_RE.search(text)
    if match is None:
        return [], text

    steps: List[PlanStepInfo] = []
    for line in match.group(1).splitlines():
        line_match = _PLAN_LINE_RE.match(line)
        if line_match is None:
            continue
        description = line_match.group(2)
        if description.startswith("[") and description.endswith("]"):
            description = description[1:-1].strip()
        steps.append(PlanStepInfo(step=int(line_match.group(1)), description=description))

    if not steps:
        # Unnumbered plan: leave it in the prose.
        return [], text
    remainder = text[: match.start()] + text[match.end() :]
    return steps, remainder


StepMarker = Tuple[str, int]  # ("start" | "done", step number)


def split_step_markers(text: str) -> Iterator[Union[str, StepMarker]]:
    """
    Split *text* into prose segments and step markers, in order.

    Prose segments are stripped; empty ones are skipped.
    """
    pos = 0
    for match in _STEP_RE.finditer(text):
        segment = text[pos : match.start()].strip()
        if segment:
            yield segment
        yield match.group(2).lower(), int(match.group(1))
        pos = match.end()
    tail = text[pos:].strip()
    if tail:
        yield tail
