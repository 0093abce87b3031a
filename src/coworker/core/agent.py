"""
Main orchestration loop for Coworker.

One :class:`Agent` drives one run: it sends the conversation to the model, turns the reply into
events, dispatches every tool use in order, appends the results and goes round again until the
model stops asking for tools, the turn limit is hit, or something unrecoverable happens.  Every
run ends with exactly one ``done`` or ``error`` event.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import (
    dataclass,
    field,
)
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Iterable,
    List,
    TypeVar,
)

from coworker.config import settings
from coworker.core.catalog import ToolCatalog
from coworker.core.dispatcher import ToolDispatcher
from coworker.core.errors import (
    MalformedResponse,
    RunCancelled,
    TransportError,
)
from coworker.core.events import (
    DoneEvent,
    ErrorEvent,
    EventEmitter,
    PlanEvent,
    StepDoneEvent,
    StepStartEvent,
    TextEvent,
    TurnCompleteEvent,
)
from coworker.core.prompt import (
    parse_plan,
    split_step_markers,
)
from coworker.core.schema import (
    DEFAULT_ALLOWED_TOOLS,
    AgentConfig,
    AgentMessage,
    ContentBlock,
    TextBlock,
    ToolResult,
    ToolUseBlock,
    parse_content_blocks,
)
from coworker.providers.base import ModelProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunState(str, Enum):
    """States of the turn loop."""

    INIT = "init"
    AWAITING_MODEL = "awaiting_model"
    PARSING_RESPONSE = "parsing_response"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    TURN_LIMIT_REACHED = "turn_limit_reached"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {RunState.COMPLETED, RunState.TURN_LIMIT_REACHED, RunState.FAILED, RunState.CANCELLED}
)


@dataclass
class RunResult:
    """Outcome of a finished run."""

    state: RunState
    turns: int
    history: List[AgentMessage] = field(default_factory=list)
    error: str | None = None


def default_agent_config(
    catalog: ToolCatalog,
    project_path: str | None = None,
    max_turns: int | None = None,
    allowed_tools: Iterable[str] | None = None,
) -> AgentConfig:
    """
    Build the usual run configuration.

    Unless *allowed_tools* is given, the built-in local tools plus every MCP-provided tool in
    *catalog* are allowed.
    """
    if allowed_tools is None:
        allowed = set(DEFAULT_ALLOWED_TOOLS)
        allowed.update(name for name in catalog.names() if catalog.resolve(name).source != "local")
    else:
        allowed = set(allowed_tools)
    return AgentConfig(
        system_prompt=catalog.system_prompt(),
        max_turns=max_turns or settings.MAX_TURNS,
        project_path=project_path,
        allowed_tools=frozenset(allowed),
    )


class Agent:
    """
    Single-use turn loop for one conversation request.

    Parameters
    ----------
    provider:
        Model provider; only :meth:`~coworker.providers.base.BaseProvider.send_with_retry` is used.
    catalog:
        Shared tool catalog.
    config:
        Immutable run configuration.
    emitter:
        Event channel for this run; a fresh one is created when omitted.
    tool_timeout:
        Per-tool execution budget in seconds.
    """

    def __init__(
        self,
        provider: ModelProvider,
        catalog: ToolCatalog,
        config: AgentConfig,
        emitter: EventEmitter | None = None,
        tool_timeout: float | None = None,
    ):
        self.provider = provider
        self.catalog = catalog
        self.config = config
        self.emitter = emitter or EventEmitter(settings.EVENT_BUFFER_SIZE)
        self.state = RunState.INIT
        self.history: List[AgentMessage] = []
        self._cancel = asyncio.Event()
        self._plan_emitted = False
        self._dispatcher = ToolDispatcher(
            catalog,
            self.emitter,
            timeout=settings.TOOL_TIMEOUT if tool_timeout is None else tool_timeout,
        )

    def cancel(self) -> None:
        """Request cooperative cancellation; honoured at the next suspension point."""
        logger.info("Cancellation requested (state=%s)", self.state.value)
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    async def run(self, request: str) -> RunResult:
        """Drive the conversation for *request* to a terminal state."""
        if self.state is not RunState.INIT:
            raise RuntimeError("An Agent instance can only run once.")

        self.history = [AgentMessage(role="user", content=request)]
        try:
            return await self._loop()
        finally:
            self.emitter.close()

    # ------------------------------------------------------------------ #
    # Loop
    # ------------------------------------------------------------------ #
    async def _loop(self) -> RunResult:
        tools = self.catalog.list_tools(self.config.allowed_tools)
        turn = 0

        while True:
            if self.cancelled:
                return self._stop_cancelled(turn)

            self.state = RunState.AWAITING_MODEL
            logger.debug("Turn %d: awaiting model (%d messages)", turn + 1, len(self.history))
            try:
                response = await self._until_cancelled(
                    self.provider.send_with_retry(self.history, tools, self.config.system_prompt)
                )
            except RunCancelled:
                return self._stop_cancelled(turn)
            except (TransportError, MalformedResponse) as exc:
                return self._stop_failed(turn, f"Model request failed: {exc}")
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Unexpected provider error")
                return self._stop_failed(turn, f"Model request failed: {exc}")

            self.state = RunState.PARSING_RESPONSE
            try:
                blocks = parse_content_blocks(response.content)
            except MalformedResponse as exc:
                return self._stop_failed(turn, f"Malformed model response: {exc}")
            turn += 1

            self.history.append(AgentMessage(role="assistant", content=blocks))
            self._emit_prose(blocks, first_response=turn == 1)

            tool_uses = [block for block in blocks if isinstance(block, ToolUseBlock)]
            if not tool_uses:
                self.emitter.emit(TurnCompleteEvent(turn=turn))
                return self._stop_done(RunState.COMPLETED, turn)

            self.state = RunState.DISPATCHING
            logger.info(
                "Turn %d: dispatching %d tool call(s): %s",
                turn,
                len(tool_uses),
                [tool_use.name for tool_use in tool_uses],
            )
            results: List[ToolResult] = []
            for tool_use in tool_uses:
                results.append(await self._dispatcher.execute(tool_use, self.config, self._cancel))
            self.history.append(AgentMessage(role="user", content=results))
            self.emitter.emit(TurnCompleteEvent(turn=turn))

            if self.cancelled:
                return self._stop_cancelled(turn)
            if turn >= self.config.max_turns:
                logger.info("Turn limit (%d) reached", self.config.max_turns)
                return self._stop_done(RunState.TURN_LIMIT_REACHED, turn)

    async def _until_cancelled(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, abandoning it as soon as the run is cancelled."""
        task: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
        cancel_waiter = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_waiter.cancel()
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if task.cancelled():
            raise RunCancelled("Run cancelled")
        return task.result()

    def _emit_prose(self, blocks: List[ContentBlock], first_response: bool) -> None:
        for block in blocks:
            if not isinstance(block, TextBlock):
                continue
            text = block.text
            if first_response and not self._plan_emitted:
                steps, text = parse_plan(text)
                if steps:
                    self._plan_emitted = True
                    self.emitter.emit(PlanEvent(steps=steps))

            for part in split_step_markers(text):
                match part:
                    case str():
                        self.emitter.emit(TextEvent(content=part))
                    case ("start", step):
                        self.emitter.emit(StepStartEvent(step=step))
                    case ("done", step):
                        self.emitter.emit(StepDoneEvent(step=step))

    # ------------------------------------------------------------------ #
    # Terminal transitions
    # ------------------------------------------------------------------ #
    def _stop_done(self, state: RunState, turns: int) -> RunResult:
        self.state = state
        self.emitter.emit(DoneEvent(total_turns=turns))
        logger.info("Run finished: %s after %d turn(s)", state.value, turns)
        return RunResult(state=state, turns=turns, history=self.history)

    def _stop_failed(self, turns: int, message: str) -> RunResult:
        self.state = RunState.FAILED
        self.emitter.emit(ErrorEvent(message=message))
        logger.error("Run failed after %d turn(s): %s", turns, message)
        return RunResult(state=RunState.FAILED, turns=turns, history=self.history, error=message)

    def _stop_cancelled(self, turns: int) -> RunResult:
        message = "Run cancelled"
        self.state = RunState.CANCELLED
        self.emitter.emit(ErrorEvent(message=message))
        logger.info("Run cancelled after %d turn(s)", turns)
        return RunResult(state=RunState.CANCELLED, turns=turns, history=self.history, error=message)
