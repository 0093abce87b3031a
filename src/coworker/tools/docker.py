"""Docker tools, driven through the ``docker`` CLI."""

import asyncio
import logging
import uuid
from pathlib import Path

from coworker.config import settings
from coworker.core.capability import ToolContext
from coworker.core.errors import ToolExecutionFailure
from coworker.tools import register_tool
from coworker.tools.files import (
    resolve_path,
    truncate_output,
)
from coworker.tools.shell import run_exec

logger = logging.getLogger(__name__)

DEFAULT_IMAGE = "python:3.11-alpine"


async def _docker(*args: str) -> str:
    returncode, output = await run_exec("docker", *args)
    output = truncate_output(output)
    if returncode != 0:
        raise ToolExecutionFailure(f"docker {args[0]} exited with code {returncode}\n{output}")
    return output


@register_tool(
    "docker_run",
    params={
        "command": "Shell command to run inside the container",
        "image": "Image to run (python:3.11-alpine, ubuntu:latest, node:20, rust:alpine, ...)",
    },
)
async def docker_run(command: str, ctx: ToolContext, image: str = DEFAULT_IMAGE) -> str:
    """Run commands in Docker containers."""
    name = f"coworker-{uuid.uuid4().hex[:12]}"
    argv = ["run", "--rm", "--name", name]
    if ctx.project_path:
        argv += ["-v", f"{resolve_path('.', ctx)}:/workspace", "-w", "/workspace"]
    skills_dir = Path(settings.SKILLS_DIR).expanduser()
    if skills_dir.is_dir():
        argv += ["-v", f"{skills_dir}:/skills:ro"]
    argv += [image, "sh", "-c", command]

    try:
        return await _docker(*argv) or "(no output)"
    except asyncio.CancelledError:
        logger.info("Stopping container %s", name)
        await run_exec("docker", "rm", "-f", name)
        raise


@register_tool("docker_list")
async def docker_list() -> str:
    """List running containers."""
    return await _docker("ps", "--format", "{{.ID}}\t{{.Image}}\t{{.Status}}\t{{.Names}}")


@register_tool("docker_images")
async def docker_images() -> str:
    """List available images."""
    return await _docker("images", "--format", "{{.Repository}}:{{.Tag}}\t{{.Size}}")
