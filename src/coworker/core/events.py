"""
Observable agent events and the per-run emitter that delivers them.

Events are output-only: the turn loop emits them, a subscriber (UI, API stream, CLI) consumes
them, and nothing flows back.  The emitter never blocks the loop: when its buffer is full the
oldest undelivered event is dropped with a warning, so whatever *is* delivered keeps emission
order.
"""

import asyncio
import logging
from collections import deque
from typing import (
    Annotated,
    Any,
    AsyncIterator,
    Callable,
    Deque,
    Dict,
    List,
    Literal,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
)

from coworker.core.schema import PlanStepInfo

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event models
# ---------------------------------------------------------------------------
class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class TextEvent(_Event):
    """A prose segment of a model response."""

    type: Literal["text"] = "text"
    content: str


class PlanEvent(_Event):
    """The plan announced in the first response."""

    type: Literal["plan"] = "plan"
    steps: List[PlanStepInfo]


class StepStartEvent(_Event):
    type: Literal["step_start"] = "step_start"
    step: int


class StepDoneEvent(_Event):
    type: Literal["step_done"] = "step_done"
    step: int


class ToolStartEvent(_Event):
    type: Literal["tool_start"] = "tool_start"
    tool: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolEndEvent(_Event):
    type: Literal["tool_end"] = "tool_end"
    tool: str
    result: str
    success: bool


class TurnCompleteEvent(_Event):
    type: Literal["turn_complete"] = "turn_complete"
    turn: int


class DoneEvent(_Event):
    """Final event of a run that completed or hit its turn limit."""

    type: Literal["done"] = "done"
    total_turns: int


class ErrorEvent(_Event):
    """Final event of a run that failed or was cancelled."""

    type: Literal["error"] = "error"
    message: str


AgentEvent = Annotated[
    Union[
        TextEvent,
        PlanEvent,
        StepStartEvent,
        StepDoneEvent,
        ToolStartEvent,
        ToolEndEvent,
        TurnCompleteEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

EVENT_ADAPTER: TypeAdapter[AgentEvent] = TypeAdapter(AgentEvent)


def parse_event(data: Dict[str, Any]) -> AgentEvent:
    """Rebuild a typed event from its JSON form (used by stream consumers)."""
    return EVENT_ADAPTER.validate_python(data)


# ---------------------------------------------------------------------------
# Emitter
# ---------------------------------------------------------------------------
EventListener = Callable[[AgentEvent], None]


class EventEmitter:
    """
    Append-only, ordered event channel for one agent run.

    Parameters
    ----------
    maxsize:
        Number of undelivered events kept for the subscriber.  ``0`` means unbounded.
    """

    def __init__(self, maxsize: int = 1000):
        self._buffer: Deque[AgentEvent] = deque()
        self._maxsize = maxsize
        self._listeners: List[EventListener] = []
        self._wakeup = asyncio.Event()
        self._closed = False
        self.dropped = 0

    # ------------------------------------------------------------------ #
    # Producer side
    # ------------------------------------------------------------------ #
    def emit(self, event: AgentEvent) -> None:
        """Record *event*; never blocks."""
        if self._closed:
            logger.warning("Dropping %s event emitted after close", event.type)
            return

        for listener in self._listeners:
            try:
                listener(event)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Event listener failed on %s event", event.type)

        if self._maxsize and len(self._buffer) >= self._maxsize:
            dropped = self._buffer.popleft()
            self.dropped += 1
            logger.warning(
                "Event buffer full (%d); dropped oldest %s event", self._maxsize, dropped.type
            )
        self._buffer.append(event)
        self._wakeup.set()

    def close(self) -> None:
        """Mark the channel finished; subscribers stop after the remaining events."""
        self._closed = True
        self._wakeup.set()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------ #
    # Consumer side
    # ------------------------------------------------------------------ #
    def add_listener(self, listener: EventListener) -> None:
        """Call *listener* synchronously on every emitted event."""
        self._listeners.append(listener)

    def drain(self) -> List[AgentEvent]:
        """Pop every buffered event without waiting."""
        events = list(self._buffer)
        self._buffer.clear()
        return events

    async def stream(self) -> AsyncIterator[AgentEvent]:
        """Yield events in emission order until the emitter is closed and empty."""
        while True:
            while self._buffer:
                yield self._buffer.popleft()
            if self._closed:
                return
            self._wakeup.clear()
            await self._wakeup.wait()
