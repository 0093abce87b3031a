"""Model Context Protocol integration."""

from coworker.mcp.config import (
    MCPServerConfig,
    load_server_configs,
)
from coworker.mcp.manager import MCPManager

__all__ = ["MCPManager", "MCPServerConfig", "load_server_configs"]
