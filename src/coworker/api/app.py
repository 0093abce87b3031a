"""
Core API backend for Coworker.

This module exposes the agent to frontends over HTTP:
- **GET /health**            - liveness check.
- **GET /tools**             - the tool catalog (local + MCP).
- **POST /tools/refresh**    - rediscover MCP tools and return the catalog.
- **POST /agent**            - start a run; the response body is the run's event stream as
                               newline-delimited JSON, and the run id is in ``X-Run-Id``.
- **DELETE /agent/{run_id}** - cancel a running run.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from coworker.api.models import (
    CancelResponse,
    RunRequest,
    ToolInfo,
)
from coworker.common import (
    AnsiColors,
    colored_print,
)
from coworker.config import settings
from coworker.core.agent import (
    Agent,
    default_agent_config,
)
from coworker.core.catalog import (
    LOCAL_PRECEDENCE,
    MCP_PRECEDENCE,
    ToolCatalog,
)
from coworker.core.events import EventEmitter
from coworker.mcp import (
    MCPManager,
    load_server_configs,
)
from coworker.providers.base import (
    BaseProvider,
    load_provider,
)
from coworker.skills import DirectorySkills
from coworker.tools import LocalTools

logger = logging.getLogger(__name__)

# Runs in flight, by id (in-memory only)
runs: Dict[str, Agent] = {}

catalog = ToolCatalog(skills=DirectorySkills(settings.SKILLS_DIR))
catalog.add_provider(LocalTools(), LOCAL_PRECEDENCE)

# Set by the lifespan when an MCP config is present
mcp_manager: MCPManager | None = None


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Connect configured MCP servers for the lifetime of the app."""
    global mcp_manager  # pylint: disable=global-statement
    if settings.MCP_CONFIG_PATH:
        mcp_manager = MCPManager(load_server_configs(settings.MCP_CONFIG_PATH))
        await mcp_manager.connect()
        catalog.add_provider(mcp_manager, MCP_PRECEDENCE)
    try:
        yield
    finally:
        for agent in runs.values():
            agent.cancel()
        if mcp_manager is not None:
            await mcp_manager.aclose()
            mcp_manager = None


app = FastAPI(
    title="Coworker API", version="0.1.0", description="Coworker agent API", lifespan=lifespan
)

# The API runs shell commands, so only local frontends may call it from a browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Run-Id"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_provider() -> BaseProvider:
    """Model provider for a new run (overridable in tests)."""
    return load_provider()


def get_catalog() -> ToolCatalog:
    return catalog


def get_mcp_manager() -> MCPManager | None:
    return mcp_manager


async def refresh_tool_sources(tools: ToolCatalog, manager: MCPManager | None) -> None:
    """Re-list MCP tools and rebuild *tools*, so servers that went away drop out."""
    if manager is not None:
        await manager.refresh_tools()
    tools.refresh()


def _tool_infos(tools: ToolCatalog) -> List[ToolInfo]:
    return [
        ToolInfo(
            name=definition.name,
            description=definition.description,
            source=tools.resolve(definition.name).source,
            input_schema=definition.input_schema,
        )
        for definition in tools.list_tools()
    ]


async def _finish_run(run_id: str, agent: Agent, task: "asyncio.Task[Any]") -> None:
    """Forget *run_id*, then stop the run if the client left early and wait for it."""
    runs.pop(run_id, None)
    if not task.done():
        agent.cancel()
    # Shielded so the run still ends through its own cancellation path.
    await asyncio.shield(task)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.get("/tools", response_model=List[ToolInfo], summary="List tools")
async def list_tools(tools: ToolCatalog = Depends(get_catalog)) -> List[ToolInfo]:
    """List every tool in the catalog with its origin."""
    return _tool_infos(tools)


@app.post("/tools/refresh", response_model=List[ToolInfo], summary="Refresh tools")
async def refresh_tools(
    tools: ToolCatalog = Depends(get_catalog),
    manager: MCPManager | None = Depends(get_mcp_manager),
) -> List[ToolInfo]:
    """Rediscover MCP tools and return the updated catalog."""
    await refresh_tool_sources(tools, manager)
    return _tool_infos(tools)


@app.post("/agent", summary="Start an agent run and stream its events")
async def agent_endpoint(
    req: RunRequest,
    provider: BaseProvider = Depends(get_provider),
    tools: ToolCatalog = Depends(get_catalog),
    manager: MCPManager | None = Depends(get_mcp_manager),
) -> StreamingResponse:
    """Start a run and stream its events as NDJSON until the final ``done``/``error``."""
    await refresh_tool_sources(tools, manager)
    config = default_agent_config(
        tools,
        project_path=req.project_path,
        max_turns=req.max_turns,
        allowed_tools=req.allowed_tools,
    )
    emitter = EventEmitter(settings.EVENT_BUFFER_SIZE)
    agent = Agent(provider, tools, config, emitter=emitter)
    run_id = str(uuid.uuid4())
    runs[run_id] = agent
    logger.info("Starting run %s (max_turns=%d)", run_id, config.max_turns)

    task = asyncio.create_task(agent.run(req.message))

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for event in emitter.stream():
                yield event.model_dump_json() + "\n"
        finally:
            await _finish_run(run_id, agent, task)

    return StreamingResponse(
        event_stream(), media_type="application/x-ndjson", headers={"X-Run-Id": run_id}
    )


@app.delete("/agent/{run_id}", response_model=CancelResponse, summary="Cancel a run")
async def cancel_run(run_id: str) -> CancelResponse:
    """Request cooperative cancellation of a running run."""
    agent = runs.get(run_id)
    if agent is None:
        raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
    agent.cancel()
    return CancelResponse(run_id=run_id, cancelled=True)


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting Coworker API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug(
        "API settings: %s", settings.model_dump(exclude={"ANTHROPIC_API_KEY", "OPENAI_API_KEY"})
    )

    colored_print(f"Coworker API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "coworker.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m coworker.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
