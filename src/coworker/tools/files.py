"""File system tools: read, write, edit, list, glob and grep."""

import logging
import re
from pathlib import Path
from typing import List

from coworker.core.capability import ToolContext
from coworker.core.errors import ToolExecutionFailure
from coworker.tools import register_tool

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 50_000
MAX_MATCHES = 500


def resolve_path(path: str, ctx: ToolContext) -> Path:
    """Expand ``~`` and anchor relative paths at the project directory."""
    candidate = Path(path).expanduser()
    if not candidate.is_absolute() and ctx.project_path:
        candidate = Path(ctx.project_path).expanduser() / candidate
    return candidate


def truncate_output(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated {len(text) - limit} characters]"


@register_tool(
    "read_file",
    params={
        "path": "Path of the file to read",
        "offset": "First line to return (0-based)",
        "limit": "Maximum number of lines to return",
    },
)
def read_file(path: str, ctx: ToolContext, offset: int = 0, limit: int | None = None) -> str:
    """Read file contents."""
    target = resolve_path(path, ctx)
    if not target.is_file():
        raise ToolExecutionFailure(f"File not found: {path}")
    try:
        text = target.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ToolExecutionFailure(f"Cannot read {path}: {exc}") from exc

    if offset or limit is not None:
        lines = text.splitlines(keepends=True)
        end = None if limit is None else offset + limit
        text = "".join(lines[offset:end])
    return truncate_output(text)


@register_tool(
    "write_file",
    params={"path": "Path of the file to write", "content": "Full new file content"},
)
def write_file(path: str, content: str, ctx: ToolContext) -> str:
    """Create or overwrite a file."""
    target = resolve_path(path, ctx)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise ToolExecutionFailure(f"Cannot write {path}: {exc}") from exc
    return f"Wrote {len(content)} characters to {target}"


@register_tool(
    "edit_file",
    params={
        "path": "Path of the file to edit",
        "old_string": "Exact text to replace",
        "new_string": "Replacement text",
        "replace_all": "Replace every occurrence instead of exactly one",
    },
)
def edit_file(
    path: str, old_string: str, new_string: str, ctx: ToolContext, replace_all: bool = False
) -> str:
    """Make targeted edits to a file."""
    target = resolve_path(path, ctx)
    if not target.is_file():
        raise ToolExecutionFailure(f"File not found: {path}")
    text = target.read_text(encoding="utf-8")

    count = text.count(old_string) if old_string else 0
    if count == 0:
        raise ToolExecutionFailure(f"old_string not found in {path}")
    if count > 1 and not replace_all:
        raise ToolExecutionFailure(
            f"old_string occurs {count} times in {path}; pass replace_all or add context"
        )

    updated = text.replace(old_string, new_string, -1 if replace_all else 1)
    target.write_text(updated, encoding="utf-8")
    return f"Replaced {count if replace_all else 1} occurrence(s) in {target}"


@register_tool("list_dir", params={"path": "Directory to list"})
def list_dir(ctx: ToolContext, path: str = ".") -> str:
    """List directory contents."""
    target = resolve_path(path, ctx)
    if not target.is_dir():
        raise ToolExecutionFailure(f"Not a directory: {path}")
    entries = sorted(target.iterdir(), key=lambda p: (not p.is_dir(), p.name))
    return "\n".join(f"{p.name}/" if p.is_dir() else p.name for p in entries)


@register_tool(
    "glob",
    params={"pattern": "Glob pattern such as **/*.py", "path": "Directory to search from"},
)
def glob_files(pattern: str, ctx: ToolContext, path: str = ".") -> str:
    """Find files by pattern."""
    root = resolve_path(path, ctx)
    if not root.is_dir():
        raise ToolExecutionFailure(f"Not a directory: {path}")
    matches = sorted(str(p.relative_to(root)) for p in root.glob(pattern))
    if len(matches) > MAX_MATCHES:
        matches = matches[:MAX_MATCHES] + [f"... [{len(matches) - MAX_MATCHES} more]"]
    return "\n".join(matches) if matches else "No files matched."


@register_tool(
    "grep",
    params={
        "pattern": "Regular expression to search for",
        "path": "File or directory to search",
        "include": "Glob restricting which files are searched, e.g. *.py",
    },
)
def grep(pattern: str, ctx: ToolContext, path: str = ".", include: str | None = None) -> str:
    """Search file contents."""
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        raise ToolExecutionFailure(f"Invalid regular expression {pattern!r}: {exc}") from exc

    root = resolve_path(path, ctx)
    if root.is_file():
        candidates: List[Path] = [root]
        base = root.parent
    elif root.is_dir():
        candidates = sorted(p for p in root.rglob(include or "*") if p.is_file())
        base = root
    else:
        raise ToolExecutionFailure(f"Path not found: {path}")

    hits: List[str] = []
    for candidate in candidates:
        try:
            lines = candidate.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            continue  # binary or unreadable
        for lineno, line in enumerate(lines, start=1):
            if regex.search(line):
                hits.append(f"{candidate.relative_to(base)}:{lineno}: {line}")
                if len(hits) >= MAX_MATCHES:
                    return truncate_output("\n".join(hits) + "\n... [match limit reached]")
    return truncate_output("\n".join(hits)) if hits else "No matches found."
