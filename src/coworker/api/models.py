"""
Pydantic models for Coworker API requests and responses.
This module defines the request and response schemas used by the Coworker API.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class RunRequest(BaseModel):
    """Start an agent run."""

    message: str = Field(..., min_length=1, description="User request for the agent")
    project_path: Optional[str] = Field(None, description="Working directory for file tools")
    max_turns: Optional[int] = Field(None, ge=1, description="Turn budget for this run")
    allowed_tools: Optional[List[str]] = Field(
        None, description="Tool names the agent may call (default: local tools + MCP tools)"
    )


class ToolInfo(BaseModel):
    """A catalog entry as shown to clients."""

    name: str
    description: str
    source: str
    input_schema: Dict[str, Any]


class CancelResponse(BaseModel):
    run_id: str
    cancelled: bool
