"""Shell command tool and the subprocess helper shared with the Docker tools."""

import asyncio
import logging
from pathlib import Path
from typing import Tuple

from coworker.core.capability import ToolContext
from coworker.core.errors import ToolExecutionFailure
from coworker.tools import register_tool
from coworker.tools.files import (
    resolve_path,
    truncate_output,
)

logger = logging.getLogger(__name__)


async def _communicate(proc: asyncio.subprocess.Process) -> Tuple[int, str]:
    try:
        stdout, _ = await proc.communicate()
    except asyncio.CancelledError:
        # Timeout or run cancellation: do not leave the child running.
        if proc.returncode is None:
            logger.info("Killing subprocess %s", proc.pid)
            proc.kill()
            await proc.wait()
        raise
    return proc.returncode or 0, stdout.decode("utf-8", errors="replace")


async def run_shell(command: str, cwd: Path | None = None) -> Tuple[int, str]:
    """Run *command* through the shell; stderr is merged into stdout."""
    proc = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    return await _communicate(proc)


async def run_exec(*argv: str) -> Tuple[int, str]:
    """Run *argv* without a shell; stderr is merged into stdout."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except FileNotFoundError as exc:
        raise ToolExecutionFailure(f"Executable not found: {argv[0]}") from exc
    return await _communicate(proc)


@register_tool("bash", params={"command": "Shell command to execute"})
async def bash(command: str, ctx: ToolContext) -> str:
    """Execute shell commands."""
    cwd = resolve_path(".", ctx) if ctx.project_path else None
    if cwd is not None and not cwd.is_dir():
        raise ToolExecutionFailure(f"Project directory does not exist: {cwd}")

    returncode, output = await run_shell(command, cwd=cwd)
    output = truncate_output(output)
    if returncode != 0:
        raise ToolExecutionFailure(f"Command exited with code {returncode}\n{output}")
    return output or "(no output)"
