"""CLI client for the Coworker API: sends a request and renders the streamed events."""

from __future__ import annotations

import json
import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
    assert_never,
)

import httpx

from coworker.common import (
    AnsiColors,
    colored_print,
    shorten,
)
from coworker.config import settings
from coworker.core.events import (
    AgentEvent,
    DoneEvent,
    ErrorEvent,
    PlanEvent,
    StepDoneEvent,
    StepStartEvent,
    TextEvent,
    ToolEndEvent,
    ToolStartEvent,
    TurnCompleteEvent,
    parse_event,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def render_event(event: AgentEvent) -> None:
    """Print one agent event."""
    match event:
        case TextEvent():
            colored_print(event.content, AnsiColors.YELLOW)
        case PlanEvent():
            colored_print("Plan:", AnsiColors.BLUE)
            for step in event.steps:
                colored_print(f"  {step.step}. {step.description}", AnsiColors.BLUE)
        case StepStartEvent():
            colored_print(f"> step {event.step}", AnsiColors.BLUE)
        case StepDoneEvent():
            colored_print(f"v step {event.step} done", AnsiColors.BLUE)
        case ToolStartEvent():
            args = ", ".join(f"{k}: {shorten(str(v), 60)}" for k, v in event.input.items())
            colored_print(f"[{event.tool}] {args}", AnsiColors.GREY)
        case ToolEndEvent():
            color = AnsiColors.GREEN if event.success else AnsiColors.RED
            colored_print(f"[{event.tool}] {shorten(event.result)}", color)
        case TurnCompleteEvent():
            logger.debug("Turn %d complete", event.turn)
        case DoneEvent():
            plural = "s" if event.total_turns != 1 else ""
            colored_print(f"Completed in {event.total_turns} turn{plural}", AnsiColors.GREEN)
        case ErrorEvent():
            colored_print(f"Error: {event.message}", AnsiColors.RED)
        case _:
            assert_never(event)


def stream_run(payload: Dict[str, Any], max_retries: int = 5) -> None:
    """POST a run request and render its event stream, retrying while the API starts up."""
    base_url = f"http://localhost:{settings.API_PORT}"

    for attempt in range(max_retries):
        run_id: str | None = None
        try:
            with httpx.Client(base_url=base_url, timeout=httpx.Timeout(30.0, read=None)) as client:
                try:
                    with client.stream("POST", "/agent", json=payload) as response:
                        response.raise_for_status()
                        run_id = response.headers.get("X-Run-Id")
                        for line in response.iter_lines():
                            if line.strip():
                                render_event(parse_event(json.loads(line)))
                except KeyboardInterrupt:
                    if run_id:
                        client.delete(f"/agent/{run_id}")
                        colored_print("Run cancelled.", AnsiColors.RED)
            return
        except httpx.HTTPError as e:
            # On connection refused, retry with exponential backoff
            if isinstance(e, httpx.ConnectError) and attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue

            logger.error("API request error: %s", str(e))
            colored_print(f"Error connecting to API: {e}", AnsiColors.RED)
            return


def run_cli(project_path: str | None = None, max_turns: int | None = None) -> None:
    """Run the CLI client that communicates with the API."""
    colored_print("\nCoworker shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        payload: Dict[str, Any] = {"message": user_msg, "project_path": project_path}
        if max_turns:
            payload["max_turns"] = max_turns
        stream_run(payload)


if __name__ == "__main__":
    run_cli()
