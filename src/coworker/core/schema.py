"""
Schema definitions for model <-> agent <-> tool messages.

These data models serve as the contract between the model provider, the turn loop, and individual
tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.

The wire shape mirrors the content-block format of tool-calling chat APIs: a message carries
either plain text, an ordered list of ``text`` / ``tool_use`` blocks, or a batch of
``tool_result`` blocks answering the tool uses of the previous assistant message.
"""

from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Sequence,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
)

from coworker.core.errors import MalformedResponse

DEFAULT_MAX_TURNS = 20

DEFAULT_ALLOWED_TOOLS: frozenset[str] = frozenset(
    {
        "read_file",
        "write_file",
        "edit_file",
        "bash",
        "glob",
        "grep",
        "list_dir",
        "docker_run",
        "docker_list",
        "docker_images",
    }
)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
class ToolDefinition(BaseModel):
    """Name, description and JSON Schema of a callable capability."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class TextBlock(BaseModel):
    """Prose emitted by the model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A request from the model to invoke a named tool."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_use"] = "tool_use"
    id: str = Field(..., min_length=1)
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    # Opaque continuation token some providers require echoed back on the result
    thought_signature: str | None = None


ToolUse = ToolUseBlock

ContentBlock = Annotated[Union[TextBlock, ToolUseBlock], Field(discriminator="type")]


class ToolResult(BaseModel):
    """Normalized outcome of one tool use, fed back to the model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool | None = None
    thought_signature: str | None = None

    @classmethod
    def success(
        cls, tool_use_id: str, content: str, thought_signature: str | None = None
    ) -> "ToolResult":
        """Build a successful result; ``is_error`` stays absent."""
        return cls(tool_use_id=tool_use_id, content=content, thought_signature=thought_signature)

    @classmethod
    def error(
        cls, tool_use_id: str, message: str, thought_signature: str | None = None
    ) -> "ToolResult":
        """Build an error result carrying *message* as its content."""
        return cls(
            tool_use_id=tool_use_id,
            content=message,
            is_error=True,
            thought_signature=thought_signature,
        )


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
AgentContent = Union[str, List[ContentBlock], List[ToolResult]]


class AgentMessage(BaseModel):
    """One conversation turn as stored in the run history."""

    role: Literal["user", "assistant"]
    content: AgentContent

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the provider wire shape, omitting absent optional fields."""
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {
            "role": self.role,
            "content": [
                block.model_dump(mode="json", exclude_none=True) for block in self.content
            ],
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "AgentMessage":
        """Parse a wire-shaped message back into its typed form."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise MalformedResponse(f"Invalid message: {exc}") from exc

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        """Tool-use blocks of this message in their original order."""
        if isinstance(self.content, str):
            return []
        return [block for block in self.content if isinstance(block, ToolUseBlock)]


def serialize_history(messages: Sequence[AgentMessage]) -> List[Dict[str, Any]]:
    """Serialize a whole history for a provider request."""
    return [message.to_wire() for message in messages]


_BLOCKS_ADAPTER: TypeAdapter[List[ContentBlock]] = TypeAdapter(List[ContentBlock])


def parse_content_blocks(raw: Any) -> List[ContentBlock]:
    """
    Parse a provider response body into ordered content blocks.

    Raises
    ------
    MalformedResponse
        If *raw* is not a list, a block carries an unknown ``type`` tag, or a required field is
        missing.
    """
    if not isinstance(raw, list):
        raise MalformedResponse(f"Expected a list of content blocks, got {type(raw).__name__}")
    try:
        return _BLOCKS_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise MalformedResponse(f"Unparseable content block: {exc}") from exc


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------
class AgentConfig(BaseModel):
    """Per-run configuration; immutable for the lifetime of the run."""

    model_config = ConfigDict(frozen=True)

    system_prompt: str
    max_turns: int = Field(DEFAULT_MAX_TURNS, ge=1)
    project_path: str | None = None
    allowed_tools: frozenset[str] = DEFAULT_ALLOWED_TOOLS


class PlanStepInfo(BaseModel):
    """One numbered step of the plan the model announces up front."""

    model_config = ConfigDict(frozen=True)

    step: int
    description: str
