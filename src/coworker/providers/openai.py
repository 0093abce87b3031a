"""OpenAI chat-completions provider, translating content blocks to function calls and back."""

import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from coworker.config import settings
from coworker.core.errors import (
    MalformedResponse,
    TransportError,
)
from coworker.core.schema import (
    AgentMessage,
    TextBlock,
    ToolDefinition,
    ToolResult,
    ToolUseBlock,
)
from coworker.providers.base import (
    BaseProvider,
    ModelResponse,
    is_retryable_status,
    register_provider,
)

logger = logging.getLogger(__name__)


def to_openai_messages(
    history: Sequence[AgentMessage], system_prompt: str
) -> List[Dict[str, Any]]:
    """Flatten block-based history into chat-completions messages."""
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for message in history:
        content = message.content
        if isinstance(content, str):
            messages.append({"role": message.role, "content": content})
            continue

        results = [item for item in content if isinstance(item, ToolResult)]
        if results:
            # One "tool" message per result, in tool-use order.
            for result in results:
                text = f"Error: {result.content}" if result.is_error else result.content
                messages.append(
                    {"role": "tool", "tool_call_id": result.tool_use_id, "content": text}
                )
            continue

        text = "".join(block.text for block in content if isinstance(block, TextBlock))
        tool_calls = [
            {
                "id": block.id,
                "type": "function",
                "function": {"name": block.name, "arguments": json.dumps(block.input)},
            }
            for block in content
            if isinstance(block, ToolUseBlock)
        ]
        entry: Dict[str, Any] = {"role": message.role, "content": text or None}
        if tool_calls:
            entry["tool_calls"] = tool_calls
        messages.append(entry)
    return messages


def to_openai_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in tools
    ]


def from_openai_message(message: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Convert an assistant chat message into wire-shape content blocks."""
    blocks: List[Dict[str, Any]] = []
    if message.get("content"):
        blocks.append({"type": "text", "text": message["content"]})
    for call in message.get("tool_calls") or []:
        function = call.get("function") or {}
        raw_args = function.get("arguments") or "{}"
        try:
            args = json.loads(raw_args)
        except json.JSONDecodeError as exc:
            raise MalformedResponse(
                f"Invalid JSON arguments for tool call {call.get('id')}: {exc}"
            ) from exc
        blocks.append(
            {"type": "tool_use", "id": call.get("id"), "name": function.get("name"), "input": args}
        )
    return blocks


@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """OpenAI-based provider using native function calling."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        client: Any = None,
        **retry: Any,
    ):
        super().__init__(**retry)
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.max_tokens = max_tokens or settings.MAX_TOKENS
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.AsyncOpenAI(
                api_key=self.api_key, timeout=settings.MODEL_TIMEOUT, max_retries=0
            )
        return self._client

    async def send(
        self,
        history: Sequence[AgentMessage],
        tools: Sequence[ToolDefinition],
        system_prompt: str,
    ) -> ModelResponse:
        import openai  # pylint: disable=import-outside-toplevel

        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": to_openai_messages(history, system_prompt),
        }
        if tools:
            request["tools"] = to_openai_tools(tools)

        try:
            resp = await self._get_client().chat.completions.create(**request)
        except openai.APIStatusError as exc:
            raise TransportError(
                f"OpenAI API error {exc.status_code}: {exc.message}",
                retryable=is_retryable_status(exc.status_code),
                status_code=exc.status_code,
            ) from exc
        except openai.APIConnectionError as exc:
            raise TransportError(f"Cannot reach OpenAI API: {exc}") from exc

        if not resp.choices:
            raise MalformedResponse("OpenAI returned no choices")
        choice = resp.choices[0]
        logger.debug("OpenAI response (finish_reason=%s): %s", choice.finish_reason, choice)
        usage = {}
        if resp.usage is not None:
            usage = {
                "input_tokens": resp.usage.prompt_tokens,
                "output_tokens": resp.usage.completion_tokens,
            }
        return ModelResponse(
            content=from_openai_message(choice.message.model_dump()),
            stop_reason=choice.finish_reason,
            usage=usage,
        )
