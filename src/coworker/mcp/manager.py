"""
MCP integration: exposes tools of configured MCP servers through the common provider interface.

Connection handshake and tool discovery live in the ``mcp`` SDK; this module only starts the
stdio or streamable-HTTP sessions, snapshots their tool lists and forwards calls.
:meth:`MCPManager.connect` and :meth:`MCPManager.aclose` must run in the same task (the SDK's
transports are task-scoped).
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from coworker.config import settings
from coworker.core.capability import ToolContext
from coworker.core.errors import (
    ToolExecutionFailure,
    ToolNotFound,
)
from coworker.core.schema import ToolDefinition
from coworker.mcp.config import MCPServerConfig

logger = logging.getLogger(__name__)


class MCPManager:
    """:class:`~coworker.core.capability.ToolProvider` backed by MCP client sessions."""

    source = "mcp"

    def __init__(
        self, configs: Sequence[MCPServerConfig] = (), init_timeout: float | None = None
    ):
        self._configs = list(configs)
        self._init_timeout = settings.MCP_INIT_TIMEOUT if init_timeout is None else init_timeout
        self._stack: AsyncExitStack | None = None
        self._sessions: Dict[str, Any] = {}
        self._tool_server: Dict[str, str] = {}
        self._tools: List[ToolDefinition] = []

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def connect(self) -> None:
        """Start every enabled server and discover its tools; failing servers are skipped."""
        self._stack = AsyncExitStack()
        for config in self._configs:
            if not config.enabled:
                continue
            try:
                session = await self._open_session(config)
            except Exception as exc:  # pylint: disable=broad-except
                logger.error("Failed to start MCP server '%s': %s", config.name, exc)
                continue
            self._sessions[config.name] = session

        await self.refresh_tools()

    async def _open_session(self, config: MCPServerConfig) -> Any:
        """Open and initialize one server; a failed start tears that server down at once."""
        from mcp import ClientSession  # pylint: disable=import-outside-toplevel

        server_stack = AsyncExitStack()
        try:
            streams = await server_stack.enter_async_context(_open_transport(config))
            session = await server_stack.enter_async_context(
                ClientSession(streams[0], streams[1])
            )
            await asyncio.wait_for(session.initialize(), timeout=self._init_timeout)
        except Exception:
            await server_stack.aclose()
            raise
        self._stack.push_async_callback(server_stack.aclose)
        logger.info("Connected MCP server '%s' (%s)", config.name, config.transport)
        return session

    async def add_session(self, name: str, session: Any) -> None:
        """Attach an already initialized session and rediscover tools."""
        self._sessions[name] = session
        await self.refresh_tools()

    async def refresh_tools(self) -> None:
        """Snapshot the tool lists of every connected server."""
        tools: List[ToolDefinition] = []
        tool_server: Dict[str, str] = {}
        for server_name, session in self._sessions.items():
            try:
                listing = await session.list_tools()
            except Exception as exc:  # pylint: disable=broad-except
                logger.error("Tool discovery failed on MCP server '%s': %s", server_name, exc)
                continue
            for tool in listing.tools:
                if tool.name in tool_server:
                    logger.warning(
                        "Duplicate tool %r from server %r (already from %r)",
                        tool.name,
                        server_name,
                        tool_server[tool.name],
                    )
                    continue
                tool_server[tool.name] = server_name
                tools.append(
                    ToolDefinition(
                        name=tool.name,
                        description=tool.description or "",
                        input_schema=tool.inputSchema or {"type": "object", "properties": {}},
                    )
                )
        self._tools, self._tool_server = tools, tool_server
        logger.info("MCP: %d tools from %d servers", len(tools), len(self._sessions))

    async def aclose(self) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
        self._sessions.clear()
        self._tool_server.clear()
        self._tools = []

    # ------------------------------------------------------------------ #
    # ToolProvider
    # ------------------------------------------------------------------ #
    def list_tools(self) -> List[ToolDefinition]:
        return list(self._tools)

    def server_for(self, name: str) -> str | None:
        return self._tool_server.get(name)

    async def invoke(self, name: str, args: Dict[str, Any], ctx: ToolContext) -> str:
        server_name = self._tool_server.get(name)
        if server_name is None:
            raise ToolNotFound(name)

        session = self._sessions[server_name]
        try:
            result = await session.call_tool(name, args)
        except Exception as exc:  # pylint: disable=broad-except
            raise ToolExecutionFailure(
                f"MCP server '{server_name}' failed to run '{name}': {exc}"
            ) from exc

        parts = [
            item.text if hasattr(item, "text") else str(item) for item in result.content or []
        ]
        text = "\n".join(parts)
        if result.isError:
            raise ToolExecutionFailure(text or f"MCP tool '{name}' reported an error")
        return text


def _open_transport(config: MCPServerConfig) -> Any:
    """Client transport context for *config*; yields the read and write streams first."""
    if config.transport == "http":
        from mcp.client.streamable_http import (  # pylint: disable=import-outside-toplevel
            streamablehttp_client,
        )

        return streamablehttp_client(config.url, headers=config.headers)

    from mcp import StdioServerParameters  # pylint: disable=import-outside-toplevel
    from mcp.client.stdio import stdio_client  # pylint: disable=import-outside-toplevel

    return stdio_client(
        StdioServerParameters(
            command=config.command, args=config.args, env=config.env, cwd=config.cwd
        )
    )
