"""
Uniform capability interface shared by local tools and MCP servers.

The catalog and dispatcher only talk to :class:`ToolProvider`; where a tool actually runs (an
in-process function, a subprocess, a remote MCP server) is the provider's business.
"""

from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    List,
    Protocol,
    runtime_checkable,
)

from coworker.core.schema import ToolDefinition


@dataclass(frozen=True)
class ToolContext:
    """Per-run facts a handler may need."""

    project_path: str | None = None


@runtime_checkable
class ToolProvider(Protocol):
    """A source of tools: describes them and invokes them by name."""

    source: str

    def list_tools(self) -> List[ToolDefinition]:
        """Return the tools this provider currently offers."""
        ...

    async def invoke(self, name: str, args: Dict[str, Any], ctx: ToolContext) -> str:
        """
        Run tool *name* with *args* and return its textual output.

        Raises
        ------
        ToolExecutionFailure
            On any handler-level failure.
        """
        ...
