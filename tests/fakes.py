"""Scripted model provider and in-memory tool provider shared by the tests."""

import inspect
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
)

from coworker.core.capability import ToolContext
from coworker.core.schema import (
    AgentMessage,
    ToolDefinition,
)
from coworker.providers.base import (
    BaseProvider,
    ModelResponse,
)


def text(value: str) -> Dict[str, Any]:
    return {"type": "text", "text": value}


def tool_use(
    block_id: str, name: str, args: Dict[str, Any] | None = None, **extra: Any
) -> Dict[str, Any]:
    return {"type": "tool_use", "id": block_id, "name": name, "input": args or {}, **extra}


class ScriptedProvider(BaseProvider):
    """Replays a fixed list of responses; an exception in the list is raised instead."""

    name = "scripted"

    def __init__(self, responses: Sequence[Any], max_retries: int = 0):
        super().__init__(max_retries=max_retries, base_delay=0, max_delay=0)
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def send(
        self,
        history: Sequence[AgentMessage],
        tools: Sequence[ToolDefinition],
        system_prompt: str,
    ) -> ModelResponse:
        self.calls.append(
            {
                "history": [message.to_wire() for message in history],
                "tools": [tool.name for tool in tools],
                "system_prompt": system_prompt,
            }
        )
        if not self.responses:
            raise AssertionError("unexpected model call")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return ModelResponse(content=item)


class FakeTools:
    """Tool provider whose handlers are plain or async callables keyed by name."""

    def __init__(self, handlers: Dict[str, Callable[..., Any]], source: str = "local"):
        self.handlers = handlers
        self.source = source
        self.calls: List[tuple] = []

    def list_tools(self) -> List[ToolDefinition]:
        return [ToolDefinition(name=name, description=f"fake {name}") for name in self.handlers]

    async def invoke(self, name: str, args: Dict[str, Any], ctx: ToolContext) -> str:
        self.calls.append((name, args))
        result = self.handlers[name](**args)
        if inspect.isawaitable(result):
            result = await result
        return result
