"""Terminal client for agentdeck: runs agents in-process or streams them from the API."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Tuple,
)

import httpx

from agentdeck.agent.agent_loop import (
    EmptyInputError,
    run_agent,
)
from agentdeck.agent.cancellation import CancellationController
from agentdeck.agent.profiles import UnknownAgentError
from agentdeck.agent.sinks import (
    ChunkEmitter,
    ChunkSink,
    TerminalSink,
)
from agentdeck.common import (
    AnsiColors,
    colored_print,
)
from agentdeck.config import settings
from agentdeck.core.schema import (
    RunOutcome,
    parse_chunk,
)

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


async def ask_user(question: str) -> bool:
    """Interactive approver: asks *question* on the terminal, approves only on y/yes."""
    colored_print(f"\n❓ {question} [y/N] ", AnsiColors.YELLOW, end="", flush=True)
    try:
        answer = await asyncio.to_thread(input)
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _install_sigint(callback: Any) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, callback)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported here; Ctrl+C will not cancel the run")
        return False
    return True


def _remove_sigint() -> None:
    asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)


# ---------------------------------------------------------------------------
# Local runs
# ---------------------------------------------------------------------------
async def run_local(agent: str, user_input: str, sink: Optional[ChunkSink] = None) -> RunOutcome:
    """Run the agent in this process; Ctrl+C stops the run instead of the program."""
    controller = CancellationController()
    installed = _install_sigint(controller.cancel)
    try:
        return await run_agent(
            agent,
            user_input,
            max_steps=settings.CLI_MAX_STEPS,
            sink=sink if sink is not None else TerminalSink(),
            cancellation=controller,
            approver=ask_user,
            project_path=os.getcwd(),
            debug=settings.DEBUG,
        )
    finally:
        if installed:
            _remove_sigint()


# ---------------------------------------------------------------------------
# Remote runs
# ---------------------------------------------------------------------------
def _api_url(path: str) -> str:
    return f"http://localhost:{settings.API_PORT}{path}"


def _error_detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


async def run_remote(
    agent: str,
    user_input: str,
    sink: Optional[ChunkSink] = None,
    max_retries: int = 5,
) -> bool:
    """
    Start a run on the API server and render its SSE stream.

    Connection failures are retried with exponential backoff, since the API may still be starting.
    Returns True when a stream was received.
    """
    emitter = ChunkEmitter(sink if sink is not None else TerminalSink())
    payload: Dict[str, Any] = {"agent": agent, "userInput": user_input, "projectPath": os.getcwd()}
    timeout = httpx.Timeout(settings.HTTP_TIMEOUT, read=None)
    cancel_requests: List["asyncio.Task[httpx.Response]"] = []

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            for attempt in range(max_retries):
                try:
                    async with client.stream(
                        "POST", _api_url("/api/agent/run"), json=payload
                    ) as response:
                        if response.is_error:
                            await response.aread()
                            colored_print(f"API error: {_error_detail(response)}", AnsiColors.RED)
                            return False

                        run_id = response.headers.get("X-Run-Id")

                        def request_cancel() -> None:
                            if run_id:
                                cancel_requests.append(
                                    asyncio.create_task(
                                        client.post(_api_url(f"/api/agent/runs/{run_id}/cancel"))
                                    )
                                )

                        installed = _install_sigint(request_cancel)
                        try:
                            async for line in response.aiter_lines():
                                if line.startswith(SSE_DATA_PREFIX):
                                    emitter.emit(parse_chunk(line[len(SSE_DATA_PREFIX) :]))
                        finally:
                            if installed:
                                _remove_sigint()
                        if cancel_requests:
                            await asyncio.gather(*cancel_requests, return_exceptions=True)
                        return True
                except httpx.ConnectError as e:
                    if attempt < max_retries - 1:
                        retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                        logger.info(
                            "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                            retry_delay,
                            attempt + 1,
                            max_retries,
                        )
                        await asyncio.sleep(retry_delay)
                        continue
                    logger.error("API request error: %s", str(e))
                    colored_print(f"Error connecting to API: {e}", AnsiColors.RED)
                    return False
                except httpx.HTTPError as e:
                    logger.error("API request error: %s", str(e))
                    colored_print(f"Error connecting to API: {e}", AnsiColors.RED)
                    return False
        return False
    finally:
        emitter.close()


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def run_cli(agent: str = "coding", remote: bool = False) -> None:
    """Prompt for instructions and run each one as a separate agent run."""
    where = "via API" if remote else "in-process"
    colored_print(
        f"\n🃏 agentdeck shell [{agent}, {where}] - type 'exit' or 'quit' (or Ctrl+C) to exit",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        if remote:
            asyncio.run(run_remote(agent, user_msg))
            continue
        try:
            asyncio.run(run_local(agent, user_msg))
        except (UnknownAgentError, EmptyInputError) as exc:
            colored_print(f"⚠️ {exc}", AnsiColors.RED)
            break


if __name__ == "__main__":
    run_cli()
