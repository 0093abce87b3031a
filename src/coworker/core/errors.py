"""
Exception taxonomy for the agent core.

Tool-level errors (:class:`ToolError` and subclasses) are always recovered by the dispatcher into
an error ``ToolResult``.  Transport and parsing errors end the run.
"""


class AgentError(RuntimeError):
    """Base class for every error raised by the agent core."""


class TransportError(AgentError):
    """The model provider could not be reached or refused the request."""

    def __init__(self, message: str, *, retryable: bool = True, status_code: int | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class MalformedResponse(AgentError):
    """A provider response could not be parsed into content blocks."""


class RunCancelled(AgentError):
    """The run was cancelled by its owner."""


class ToolError(AgentError):
    """Base class for failures that become an error tool result."""


class ToolNotAllowed(ToolError):
    """The tool exists (or not) but is absent from the run's allowed set."""

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is not allowed in this run.")
        self.name = name


class ToolNotFound(ToolError):
    """No catalog entry carries the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is not registered.")
        self.name = name


class ToolExecutionFailure(ToolError):
    """A handler ran but failed: exception, timeout, non-zero exit or remote error."""
