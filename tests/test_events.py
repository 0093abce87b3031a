"""Tests for agent events and the per-run emitter."""

import asyncio

import pytest

from coworker.core.events import (
    DoneEvent,
    EventEmitter,
    PlanEvent,
    TextEvent,
    ToolEndEvent,
    TurnCompleteEvent,
    parse_event,
)
from coworker.core.schema import PlanStepInfo


def test_drain_returns_events_in_emission_order(emitter: EventEmitter) -> None:
    """Events come back exactly in the order they were emitted."""
    events = [TextEvent(content="a"), TurnCompleteEvent(turn=1), DoneEvent(total_turns=1)]
    for event in events:
        emitter.emit(event)
    assert emitter.drain() == events
    assert emitter.drain() == []


def test_full_buffer_drops_oldest_and_keeps_order() -> None:
    """A bounded emitter never blocks; it discards the oldest events first."""
    emitter = EventEmitter(maxsize=3)
    for turn in range(1, 6):
        emitter.emit(TurnCompleteEvent(turn=turn))
    assert [event.turn for event in emitter.drain()] == [3, 4, 5]
    assert emitter.dropped == 2


def test_listeners_see_every_event_even_if_one_fails(emitter: EventEmitter) -> None:
    """A failing listener is logged and does not stop delivery."""
    seen = []

    def broken(_event):
        raise RuntimeError("listener bug")

    emitter.add_listener(broken)
    emitter.add_listener(seen.append)
    emitter.emit(TextEvent(content="x"))
    assert seen == [TextEvent(content="x")]
    assert emitter.drain() == [TextEvent(content="x")]


def test_emit_after_close_is_ignored(emitter: EventEmitter) -> None:
    emitter.close()
    emitter.emit(TextEvent(content="late"))
    assert emitter.drain() == []


@pytest.mark.asyncio
async def test_stream_yields_until_closed(emitter: EventEmitter) -> None:
    """A subscriber waiting on the stream receives later events and stops on close."""

    async def produce() -> None:
        await asyncio.sleep(0)
        emitter.emit(TextEvent(content="one"))
        await asyncio.sleep(0)
        emitter.emit(DoneEvent(total_turns=1))
        emitter.close()

    producer = asyncio.create_task(produce())
    received = [event async for event in emitter.stream()]
    await producer
    assert received == [TextEvent(content="one"), DoneEvent(total_turns=1)]


def test_event_json_round_trip() -> None:
    """Events serialize with a ``type`` tag and parse back to the same variant."""
    plan = PlanEvent(steps=[PlanStepInfo(step=1, description="Read the code")])
    data = plan.model_dump(mode="json")
    assert data["type"] == "plan"
    assert parse_event(data) == plan

    end = parse_event({"type": "tool_end", "tool": "bash", "result": "oops", "success": False})
    assert isinstance(end, ToolEndEvent)
    assert end.success is False
