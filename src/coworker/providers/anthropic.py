"""Anthropic Messages API provider (native content-block format)."""

import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from coworker.config import settings
from coworker.core.errors import TransportError
from coworker.core.schema import (
    AgentMessage,
    ToolDefinition,
    serialize_history,
)
from coworker.providers.base import (
    BaseProvider,
    ModelResponse,
    is_retryable_status,
    register_provider,
)

logger = logging.getLogger(__name__)


def to_anthropic_messages(history: Sequence[AgentMessage]) -> List[Dict[str, Any]]:
    """Serialize *history*; continuation tokens are not part of this API and are dropped."""
    messages = serialize_history(history)
    for message in messages:
        if isinstance(message["content"], list):
            for block in message["content"]:
                block.pop("thought_signature", None)
    return messages


def to_anthropic_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    return [tool.model_dump() for tool in tools]


@register_provider("anthropic")
class AnthropicProvider(BaseProvider):
    """Anthropic Claude-based provider."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        client: Any = None,
        **retry: Any,
    ):
        super().__init__(**retry)
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.MAX_TOKENS
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            # Retries are handled by BaseProvider.send_with_retry.
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key, timeout=settings.MODEL_TIMEOUT, max_retries=0
            )
        return self._client

    async def send(
        self,
        history: Sequence[AgentMessage],
        tools: Sequence[ToolDefinition],
        system_prompt: str,
    ) -> ModelResponse:
        import anthropic  # pylint: disable=import-outside-toplevel

        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": to_anthropic_messages(history),
        }
        if tools:
            request["tools"] = to_anthropic_tools(tools)

        try:
            response = await self._get_client().messages.create(**request)
        except anthropic.APIStatusError as exc:
            raise TransportError(
                f"Anthropic API error {exc.status_code}: {exc.message}",
                retryable=is_retryable_status(exc.status_code),
                status_code=exc.status_code,
            ) from exc
        except anthropic.APIConnectionError as exc:
            raise TransportError(f"Cannot reach Anthropic API: {exc}") from exc

        logger.debug("Anthropic response (stop_reason=%s): %s", response.stop_reason, response)
        return ModelResponse(
            content=[block.model_dump(exclude_none=True) for block in response.content],
            stop_reason=response.stop_reason,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )
