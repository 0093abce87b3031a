"""Dispatches tool uses to catalog providers and normalizes every outcome into a ToolResult."""

import asyncio
import logging
from typing import Any

from coworker.core.capability import ToolContext
from coworker.core.catalog import ToolCatalog
from coworker.core.errors import (
    ToolError,
    ToolExecutionFailure,
    ToolNotAllowed,
)
from coworker.core.events import (
    EventEmitter,
    ToolEndEvent,
    ToolStartEvent,
)
from coworker.core.schema import (
    AgentConfig,
    ToolResult,
    ToolUse,
)

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 120.0


class ToolDispatcher:
    """
    Executes one tool use at a time on behalf of a single run.

    Parameters
    ----------
    catalog:
        Shared, read-only tool catalog.
    emitter:
        The run's event channel; receives ``tool_start`` / ``tool_end``.
    timeout:
        Seconds a handler may run before it is cancelled.
    """

    def __init__(
        self, catalog: ToolCatalog, emitter: EventEmitter, timeout: float = DEFAULT_TOOL_TIMEOUT
    ):
        self._catalog = catalog
        self._emitter = emitter
        self._timeout = timeout

    async def execute(
        self, tool_use: ToolUse, config: AgentConfig, cancel: asyncio.Event | None = None
    ) -> ToolResult:
        """
        Run *tool_use* and return its result.

        Never raises for tool-level problems: disallowed or unknown tools, handler exceptions,
        timeouts and cancellation all become an error result.  ``tool_end`` is emitted for every
        ``tool_start``.
        """
        self._emitter.emit(ToolStartEvent(tool=tool_use.name, input=tool_use.input))
        try:
            output = await self._invoke(tool_use, config, cancel)
            result = ToolResult.success(tool_use.id, output, tool_use.thought_signature)
        except ToolError as exc:
            logger.warning("Tool '%s' (%s) failed: %s", tool_use.name, tool_use.id, exc)
            result = ToolResult.error(tool_use.id, str(exc), tool_use.thought_signature)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Provider error while running tool '%s'", tool_use.name)
            result = ToolResult.error(
                tool_use.id,
                f"Tool '{tool_use.name}' raised an error: {exc}",
                tool_use.thought_signature,
            )

        self._emitter.emit(
            ToolEndEvent(tool=tool_use.name, result=result.content, success=not result.is_error)
        )
        return result

    async def _invoke(
        self, tool_use: ToolUse, config: AgentConfig, cancel: asyncio.Event | None
    ) -> str:
        if tool_use.name not in config.allowed_tools:
            raise ToolNotAllowed(tool_use.name)
        entry = self._catalog.resolve(tool_use.name)
        if cancel is not None and cancel.is_set():
            raise ToolExecutionFailure(f"Tool '{tool_use.name}' was cancelled before it started")

        ctx = ToolContext(project_path=config.project_path)
        logger.debug("Dispatching '%s' to %s provider", tool_use.name, entry.source)
        task = asyncio.ensure_future(entry.provider.invoke(tool_use.name, tool_use.input, ctx))
        return await self._supervise(task, tool_use.name, cancel)

    async def _supervise(
        self, task: "asyncio.Future[Any]", name: str, cancel: asyncio.Event | None
    ) -> str:
        """Wait for *task* under the timeout; stop it early when the run is cancelled."""
        waiters = {task}
        cancel_waiter = None
        if cancel is not None:
            cancel_waiter = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self._timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await _stop(task)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        await _stop(task)
        if cancel is not None and cancel.is_set():
            raise ToolExecutionFailure(f"Tool '{name}' was cancelled")
        raise ToolExecutionFailure(f"Tool '{name}' timed out after {self._timeout:g}s")


async def _stop(task: "asyncio.Future[Any]") -> None:
    """Cancel *task* and wait for its cleanup (process kill, container stop) to finish."""
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:  # pylint: disable=broad-except
        logger.debug("Tool task raised while being cancelled", exc_info=True)
