"""
Model provider interface for Coworker.

This package is the only place that *directly* calls an LLM.  Everything else (turn loop, tools,
MCP) stays model-agnostic: a provider receives the serialized history plus tool definitions and
returns content blocks in the shared wire shape.

Additional providers can be added by subclassing :class:`BaseProvider` and registering via
:func:`register_provider`.
"""

import asyncio
import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Protocol,
    Sequence,
    Type,
)

from pydantic import (
    BaseModel,
    Field,
)

from coworker.config import settings
from coworker.core.errors import TransportError
from coworker.core.schema import (
    AgentMessage,
    ToolDefinition,
)

logger = logging.getLogger(__name__)


class ModelResponse(BaseModel):
    """Raw provider reply: content blocks in wire shape, parsed later by the turn loop."""

    content: List[Dict[str, Any]] = Field(default_factory=list)
    stop_reason: str | None = None
    usage: Dict[str, int] = Field(default_factory=dict)


class ModelProvider(Protocol):
    """Structural interface the turn loop depends on."""

    name: str

    async def send_with_retry(
        self,
        history: Sequence[AgentMessage],
        tools: Sequence[ToolDefinition],
        system_prompt: str,
    ) -> ModelResponse: ...


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseProvider"]) -> Type["BaseProvider"]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(name: str | None = None) -> "BaseProvider":
    """
    Factory that returns an instantiated provider.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env option
    """
    # Concrete providers register on import.
    from coworker.providers import (  # pylint: disable=import-outside-toplevel,unused-import
        anthropic,
        openai,
    )

    target = (name or settings.PROVIDER).lower()
    cls = _PROVIDER_REGISTRY.get(target)
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseProvider:
    """
    Base class with shared retry logic.

    Retryable :class:`TransportError`\\ s are retried up to *max_retries* more times with
    exponential backoff ``base_delay * 2**attempt`` capped at *max_delay*.  Anything else
    propagates on the first failure.
    """

    name: str = "base"

    def __init__(
        self,
        max_retries: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
    ):
        self.max_retries = settings.MODEL_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = settings.MODEL_RETRY_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = settings.MODEL_RETRY_MAX_DELAY if max_delay is None else max_delay

    async def send(
        self,
        history: Sequence[AgentMessage],
        tools: Sequence[ToolDefinition],
        system_prompt: str,
    ) -> ModelResponse:
        """Perform one request.  Raise :class:`TransportError` on transport problems."""
        raise NotImplementedError

    def backoff(self, attempt: int) -> float:
        """Delay before retry number *attempt* (0-based)."""
        return float(min(self.base_delay * (2**attempt), self.max_delay))

    async def send_with_retry(
        self,
        history: Sequence[AgentMessage],
        tools: Sequence[ToolDefinition],
        system_prompt: str,
    ) -> ModelResponse:
        """Wrap :meth:`send` with bounded retries for retryable transport errors."""
        attempt = 0
        while True:
            try:
                return await self.send(history, tools, system_prompt)
            except TransportError as exc:
                if not exc.retryable or attempt >= self.max_retries:
                    logger.error(
                        "%s request failed after %d attempt(s): %s", self.name, attempt + 1, exc
                    )
                    raise
                delay = self.backoff(attempt)
                attempt += 1
                logger.info(
                    "%s request failed (%s), retrying in %.1f seconds (attempt %d/%d)...",
                    self.name,
                    exc,
                    delay,
                    attempt,
                    self.max_retries,
                )
                await asyncio.sleep(delay)


def is_retryable_status(status_code: int) -> bool:
    """Rate limits, request timeouts and server errors are worth retrying."""
    return status_code in (408, 409, 429) or status_code >= 500
