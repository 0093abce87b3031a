"""MCP server configuration models and loader."""

import json
import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Literal,
)

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    model_validator,
)

logger = logging.getLogger(__name__)


class MCPServerConfig(BaseModel):
    """
    How to reach one MCP server.

    ``stdio`` servers are launched from *command* / *args*; ``http`` servers are reached at *url*
    over streamable HTTP.  When *transport* is omitted, an entry with a *url* and no *command* is
    taken to be an HTTP server.
    """

    name: str
    transport: Literal["stdio", "http"] = "stdio"
    command: str | None = None
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] | None = None
    cwd: str | None = None
    url: str | None = None
    headers: Dict[str, str] | None = None
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _infer_transport(cls, data: Any) -> Any:
        if isinstance(data, dict) and "transport" not in data:
            if data.get("url") and not data.get("command"):
                data = {**data, "transport": "http"}
        return data

    @model_validator(mode="after")
    def _check_endpoint(self) -> "MCPServerConfig":
        if self.transport == "stdio" and not self.command:
            raise ValueError(f"stdio MCP server '{self.name}' needs a command")
        if self.transport == "http" and not self.url:
            raise ValueError(f"http MCP server '{self.name}' needs a url")
        return self


class MCPConfigFile(BaseModel):
    """On-disk layout: ``{"mcpServers": {"<name>": {"command": ..., "args": [...]}}}``."""

    mcpServers: Dict[str, Dict[str, object]] = Field(default_factory=dict)


def load_server_configs(path: str | Path) -> List[MCPServerConfig]:
    """
    Read server definitions from a JSON file.

    A missing file yields no servers; an invalid one raises ``ValueError``.
    """
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        logger.info("No MCP config at %s", config_path)
        return []

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
        parsed = MCPConfigFile.model_validate(raw)
        return [
            MCPServerConfig.model_validate({"name": name, **spec})
            for name, spec in parsed.mcpServers.items()
        ]
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Invalid MCP config {config_path}: {exc}") from exc
