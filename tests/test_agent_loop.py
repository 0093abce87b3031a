"""Tests for the turn loop state machine."""

import asyncio
from typing import List

import pytest
from fakes import (
    FakeTools,
    ScriptedProvider,
    text,
    tool_use,
)

from coworker.core.agent import (
    Agent,
    RunState,
    default_agent_config,
)
from coworker.core.catalog import (
    MCP_PRECEDENCE,
    ToolCatalog,
)
from coworker.core.errors import TransportError
from coworker.core.events import (
    AgentEvent,
    DoneEvent,
    ErrorEvent,
    EventEmitter,
    PlanEvent,
    StepDoneEvent,
    StepStartEvent,
    TextEvent,
    ToolEndEvent,
    ToolStartEvent,
    TurnCompleteEvent,
)
from coworker.core.schema import (
    AgentConfig,
    ToolResult,
)


async def _slow() -> str:
    await asyncio.sleep(10)
    return "never"


@pytest.fixture
def tools() -> FakeTools:
    return FakeTools(
        {
            "read_file": lambda path="": f"contents of {path}",
            "bash": lambda command="": f"ran {command}",
            "slow": _slow,
        }
    )


@pytest.fixture
def catalog(tools: FakeTools) -> ToolCatalog:
    catalog = ToolCatalog()
    catalog.add_provider(tools, 0)
    return catalog


def _agent(
    provider: ScriptedProvider,
    catalog: ToolCatalog,
    emitter: EventEmitter,
    max_turns: int = 20,
    allowed=("read_file", "bash", "slow"),
) -> Agent:
    config = AgentConfig(
        system_prompt="SYSTEM", max_turns=max_turns, allowed_tools=frozenset(allowed)
    )
    return Agent(provider, catalog, config, emitter=emitter, tool_timeout=5.0)


def _final_events(events: List[AgentEvent]) -> List[AgentEvent]:
    return [e for e in events if isinstance(e, (DoneEvent, ErrorEvent))]


@pytest.mark.asyncio
async def test_response_without_tools_completes(catalog, emitter) -> None:
    """A reply with no tool use finishes the run on the first turn."""
    provider = ScriptedProvider([[text("All done.")]])
    result = await _agent(provider, catalog, emitter).run("hello")

    assert result.state is RunState.COMPLETED
    assert result.turns == 1
    assert emitter.drain() == [
        TextEvent(content="All done."),
        TurnCompleteEvent(turn=1),
        DoneEvent(total_turns=1),
    ]
    assert emitter.closed
    call = provider.calls[0]
    assert call["system_prompt"] == "SYSTEM"
    assert call["history"] == [{"role": "user", "content": "hello"}]


@pytest.mark.asyncio
async def test_tool_results_follow_tool_use_order(catalog, tools, emitter) -> None:
    """Results come back as one user message, in the order the tool uses were issued."""
    provider = ScriptedProvider(
        [
            [
                text("Looking."),
                tool_use("t1", "read_file", {"path": "a.py"}),
                tool_use("t2", "bash", {"command": "ls"}),
                tool_use("t3", "read_file", {"path": "b.py"}, thought_signature="sig"),
            ],
            [text("Done.")],
        ]
    )
    result = await _agent(provider, catalog, emitter).run("inspect")

    assert result.state is RunState.COMPLETED
    assert [call[0] for call in tools.calls] == ["read_file", "bash", "read_file"]

    results = result.history[2].content
    assert result.history[2].role == "user"
    assert [r.tool_use_id for r in results] == ["t1", "t2", "t3"]
    assert all(isinstance(r, ToolResult) and r.is_error is None for r in results)
    assert results[2].thought_signature == "sig"

    # The second model call sees the assistant turn and the results.
    second_history = provider.calls[1]["history"]
    assert second_history[-1]["content"][0]["tool_use_id"] == "t1"
    assert second_history[-1]["content"][2]["thought_signature"] == "sig"


@pytest.mark.asyncio
async def test_turn_limit_stops_before_next_model_call(catalog, emitter) -> None:
    """With max_turns=1 a tool-using reply is dispatched but turn 2 never starts."""
    provider = ScriptedProvider(
        [[tool_use("t1", "bash", {"command": "ls"})], [text("should not be requested")]]
    )
    result = await _agent(provider, catalog, emitter, max_turns=1).run("go")

    assert result.state is RunState.TURN_LIMIT_REACHED
    assert len(provider.calls) == 1
    events = emitter.drain()
    assert TurnCompleteEvent(turn=2) not in events
    assert [type(e) for e in events] == [
        ToolStartEvent,
        ToolEndEvent,
        TurnCompleteEvent,
        DoneEvent,
    ]
    assert events[-1] == DoneEvent(total_turns=1)


@pytest.mark.asyncio
async def test_turn_numbers_increase_without_gaps(catalog, emitter) -> None:
    provider = ScriptedProvider(
        [
            [tool_use("t1", "bash")],
            [tool_use("t2", "bash")],
            [tool_use("t3", "bash")],
            [text("finished")],
        ]
    )
    result = await _agent(provider, catalog, emitter).run("go")

    turns = [e.turn for e in emitter.drain() if isinstance(e, TurnCompleteEvent)]
    assert turns == [1, 2, 3, 4]
    assert result.turns == 4


@pytest.mark.asyncio
async def test_plan_and_step_markers_become_events(catalog, emitter) -> None:
    """The first reply's plan is parsed; step markers split the prose."""
    first = (
        "I'll fix it.\n<plan>\n1. Read the file\n2. Patch it\n</plan>\n"
        "[STEP 1 START]\nReading now."
    )
    provider = ScriptedProvider(
        [
            [text(first), tool_use("t1", "read_file", {"path": "x"})],
            [text("[STEP 1 DONE]\n<plan>\n1. not a plan anymore\n</plan>")],
        ]
    )
    await _agent(provider, catalog, emitter).run("fix")
    events = emitter.drain()

    plan = events[0]
    assert isinstance(plan, PlanEvent)
    assert [(s.step, s.description) for s in plan.steps] == [(1, "Read the file"), (2, "Patch it")]
    assert events[1:4] == [
        TextEvent(content="I'll fix it."),
        StepStartEvent(step=1),
        TextEvent(content="Reading now."),
    ]
    assert StepDoneEvent(step=1) in events
    assert sum(isinstance(e, PlanEvent) for e in events) == 1
    second_text = [e for e in events if isinstance(e, TextEvent)][-1]
    assert "<plan>" in second_text.content


@pytest.mark.asyncio
async def test_unnumbered_plan_is_emitted_as_text(catalog, emitter) -> None:
    """A plan block without numbered steps still reaches the client as prose."""
    provider = ScriptedProvider([[text("<plan>\n- read code\n- fix bug\n</plan>")]])
    await _agent(provider, catalog, emitter).run("fix")
    events = emitter.drain()

    assert not any(isinstance(e, PlanEvent) for e in events)
    assert any(isinstance(e, TextEvent) and "read code" in e.content for e in events)


@pytest.mark.asyncio
async def test_disallowed_tool_does_not_end_run(catalog, tools, emitter) -> None:
    """A refused tool becomes an error result the model can react to."""
    provider = ScriptedProvider([[tool_use("t1", "bash", {})], [text("Understood.")]])
    result = await _agent(provider, catalog, emitter, allowed=("read_file",)).run("go")

    assert result.state is RunState.COMPLETED
    assert tools.calls == []
    tool_end = next(e for e in emitter.drain() if isinstance(e, ToolEndEvent))
    assert tool_end.success is False
    assert result.history[2].content[0].is_error is True
    # Only allowed tools are advertised to the model.
    assert provider.calls[0]["tools"] == ["read_file"]


@pytest.mark.asyncio
async def test_transport_errors_are_retried(catalog, emitter) -> None:
    provider = ScriptedProvider(
        [TransportError("503 overloaded"), [text("ok")]],
        max_retries=2,
    )
    result = await _agent(provider, catalog, emitter).run("go")
    assert result.state is RunState.COMPLETED
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_transport_exhaustion_fails_run(catalog, emitter) -> None:
    """After the retry budget the run fails with a single error event."""
    provider = ScriptedProvider(
        [TransportError("timeout"), TransportError("timeout"), TransportError("timeout")],
        max_retries=2,
    )
    result = await _agent(provider, catalog, emitter).run("go")

    assert result.state is RunState.FAILED
    assert len(provider.calls) == 3
    events = emitter.drain()
    assert _final_events(events) == events == [ErrorEvent(message=result.error)]
    assert "timeout" in result.error


@pytest.mark.asyncio
async def test_non_retryable_transport_error_fails_immediately(catalog, emitter) -> None:
    provider = ScriptedProvider(
        [TransportError("401 unauthorized", retryable=False), [text("unused")]],
        max_retries=3,
    )
    result = await _agent(provider, catalog, emitter).run("go")
    assert result.state is RunState.FAILED
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_malformed_response_fails_run(catalog, emitter) -> None:
    provider = ScriptedProvider([[tool_use("t1", "bash")], [{"type": "mystery"}]])
    result = await _agent(provider, catalog, emitter).run("go")

    assert result.state is RunState.FAILED
    assert result.turns == 1
    events = emitter.drain()
    assert isinstance(events[-1], ErrorEvent)
    assert "Malformed" in events[-1].message
    assert len(_final_events(events)) == 1


@pytest.mark.asyncio
async def test_cancel_during_tool_still_emits_tool_end(catalog, emitter) -> None:
    """Cancelling while a tool runs stops it, reports tool_end, then ends with an error."""
    provider = ScriptedProvider([[tool_use("t1", "slow")], [text("unused")]])
    agent = _agent(provider, catalog, emitter)

    def cancel_on_tool_start(event: AgentEvent) -> None:
        if isinstance(event, ToolStartEvent):
            asyncio.get_running_loop().call_later(0.01, agent.cancel)

    emitter.add_listener(cancel_on_tool_start)
    result = await agent.run("go")

    assert result.state is RunState.CANCELLED
    assert len(provider.calls) == 1
    events = emitter.drain()
    assert [type(e) for e in events] == [
        ToolStartEvent,
        ToolEndEvent,
        TurnCompleteEvent,
        ErrorEvent,
    ]
    assert events[1].success is False
    assert events[-1] == ErrorEvent(message="Run cancelled")


@pytest.mark.asyncio
async def test_cancel_while_awaiting_model(catalog, emitter) -> None:
    """A pending model call is abandoned when the run is cancelled."""

    class HangingProvider(ScriptedProvider):
        async def send(self, history, tools, system_prompt):
            await asyncio.sleep(10)

    agent = _agent(HangingProvider([]), catalog, emitter)
    runner = asyncio.create_task(agent.run("go"))
    await asyncio.sleep(0.01)
    agent.cancel()
    result = await runner

    assert result.state is RunState.CANCELLED
    assert result.turns == 0
    assert emitter.drain() == [ErrorEvent(message="Run cancelled")]


@pytest.mark.asyncio
async def test_agent_runs_only_once(catalog, emitter) -> None:
    agent = _agent(ScriptedProvider([[text("done")]]), catalog, emitter)
    await agent.run("go")
    with pytest.raises(RuntimeError):
        await agent.run("again")


def test_default_config_allows_mcp_tools(tools) -> None:
    """Default runs may call the built-in tools and any tool discovered over MCP."""
    remote = FakeTools({"search_docs": lambda: ""}, source="mcp")
    catalog = ToolCatalog()
    catalog.add_provider(tools, 0)
    catalog.add_provider(remote, MCP_PRECEDENCE)

    config = default_agent_config(catalog, project_path="/work", max_turns=7)
    assert "search_docs" in config.allowed_tools
    assert "read_file" in config.allowed_tools
    assert "slow" not in config.allowed_tools
    assert config.max_turns == 7
    assert config.project_path == "/work"
    assert config.system_prompt.startswith("You are Coworker")
