"""Main orchestration loop for agentdeck."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Callable,
    List,
    Optional,
    Sequence,
)

from agentdeck.agent.cancellation import CancellationController
from agentdeck.agent.context import build_system_prompt
from agentdeck.agent.planner_interface import (
    BasePlanner,
    ModelProviderError,
    load_planner,
)
from agentdeck.agent.profiles import (
    AgentProfile,
    get_profile,
)
from agentdeck.agent.sinks import (
    CallbackSink,
    ChunkEmitter,
    ChunkSink,
    TerminalSink,
)
from agentdeck.agent.tool_executor import (
    ToolExecutionError,
    dispatch_tool_call,
)
from agentdeck.config import settings
from agentdeck.core.schema import (
    AgentStreamChunk,
    ErrorChunk,
    FinishChunk,
    Message,
    RunOutcome,
    TextDelta,
    TextDeltaChunk,
    ToolCallChunk,
    ToolCallRequest,
    ToolResultChunk,
)
from agentdeck.tools import (
    TOOL_REGISTRY,
    Approver,
    ToolContext,
    ToolRegistry,
    deny_all,
    get_tool_schemas,
)

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Agent run stopped by user"


class EmptyInputError(ValueError):
    """Raised when a run is requested with blank user input."""


@dataclass
class RunState:
    """Mutable state of one run; never shared between runs."""

    history: List[Message] = field(default_factory=list)
    step_count: int = 0
    turns: int = 0
    outcome: Optional[RunOutcome] = None


def validate_run_request(agent: str, user_input: str) -> AgentProfile:
    """
    Check a run request before anything is streamed.

    Raises
    ------
    UnknownAgentError
        If *agent* is not a known profile.
    EmptyInputError
        If *user_input* is empty or whitespace.
    """
    profile = get_profile(agent)
    if not user_input or not user_input.strip():
        raise EmptyInputError("User input must not be empty.")
    return profile


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Drives the model/tool loop for one run at a time.

    Each model turn streams its text to the sink as it arrives.  The tool calls the model asked
    for are then dispatched one by one in the order they were requested: a ``tool-call`` chunk is
    emitted right before the dispatch and its ``tool-result`` right after, so pairs never
    interleave.  A turn without tool calls, or reaching ``max_steps`` turns that used tools, ends
    the run with ``finish``.
    """

    def __init__(
        self,
        planner: BasePlanner,
        registry: Optional[ToolRegistry] = None,
        max_steps: Optional[int] = None,
        debug: bool = False,
    ) -> None:
        self.planner = planner
        self.registry = registry if registry is not None else TOOL_REGISTRY
        self.max_steps = max_steps if max_steps is not None else settings.WEB_MAX_STEPS
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.debug = debug

    async def run(
        self,
        profile: AgentProfile,
        system_prompt: str,
        user_input: str,
        sink: ChunkSink,
        cancellation: Optional[CancellationController] = None,
        tool_context: Optional[ToolContext] = None,
    ) -> RunOutcome:
        """
        Run *user_input* against *profile* and stream the chunks to *sink*.

        Exactly one terminal chunk (``finish`` or ``error``) is emitted, followed by exactly one
        ``sink.on_close()``, whatever happens during the run.

        Returns
        -------
        RunOutcome
            How the run ended.
        """
        cancellation = cancellation if cancellation is not None else CancellationController()
        ctx = tool_context if tool_context is not None else ToolContext()
        emitter = ChunkEmitter(sink)
        state = RunState(history=[Message.user(user_input)])

        logger.info("Starting '%s' run (max_steps=%d)", profile.name, self.max_steps)
        try:
            state.outcome = await self._drive(
                profile, system_prompt, state, emitter, cancellation, ctx
            )
        except ModelProviderError as exc:
            logger.error("Model failure in '%s' run: %s", profile.name, exc)
            state.outcome = self._fail(emitter, str(exc))
        except ToolExecutionError as exc:
            logger.error("Tool failure in '%s' run: %s", profile.name, exc)
            state.outcome = self._fail(emitter, str(exc))
        except asyncio.CancelledError:
            logger.info("'%s' run cancelled by its task", profile.name)
            state.outcome = self._abort(emitter)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in '%s' run", profile.name)
            state.outcome = self._fail(emitter, f"Agent run failed: {exc}")
        finally:
            cancellation.mark_done()
            emitter.close()

        logger.info(
            "'%s' run ended: %s after %d turn(s), %d step(s)",
            profile.name,
            state.outcome.value,
            state.turns,
            state.step_count,
        )
        return state.outcome

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------
    async def _drive(
        self,
        profile: AgentProfile,
        system_prompt: str,
        state: RunState,
        emitter: ChunkEmitter,
        cancellation: CancellationController,
        ctx: ToolContext,
    ) -> RunOutcome:
        allowed = self.registry.resolve(profile)
        schemas = get_tool_schemas(allowed)

        while True:
            if cancellation.cancelled:
                return self._abort(emitter)

            state.turns += 1
            text, calls = await self._stream_turn(
                system_prompt, state, schemas, emitter, cancellation
            )
            if cancellation.cancelled:
                return self._abort(emitter)

            state.history.append(Message.assistant(text, calls))
            if not calls:
                return self._finish(emitter)

            state.step_count += 1
            if self.debug:
                logger.info("Step %d: %d tool call(s)", state.step_count, len(calls))

            for call in calls:
                if cancellation.cancelled:
                    return self._abort(emitter)
                emitter.emit(ToolCallChunk(tool_name=call.tool_name, input=call.raw_input))
                result = await dispatch_tool_call(call, allowed, ctx, self.registry)
                emitter.emit(ToolResultChunk(tool_name=result.tool_name, output=result.output))
                state.history.append(Message.tool(result))

            if state.step_count >= self.max_steps:
                logger.info("'%s' run reached max_steps=%d", profile.name, self.max_steps)
                return self._finish(emitter)

    async def _stream_turn(
        self,
        system_prompt: str,
        state: RunState,
        schemas: Sequence,
        emitter: ChunkEmitter,
        cancellation: CancellationController,
    ) -> tuple[str, List[ToolCallRequest]]:
        text_parts: List[str] = []
        calls: List[ToolCallRequest] = []
        events = self.planner.stream_turn(system_prompt, state.history, schemas)
        try:
            async for event in events:
                if cancellation.cancelled:
                    break
                if isinstance(event, TextDelta):
                    if event.text:
                        text_parts.append(event.text)
                        emitter.emit(TextDeltaChunk(text=event.text))
                else:
                    calls.append(event)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
        return "".join(text_parts), calls

    @staticmethod
    def _finish(emitter: ChunkEmitter) -> RunOutcome:
        emitter.emit(FinishChunk())
        return RunOutcome.FINISHED

    @staticmethod
    def _abort(emitter: ChunkEmitter) -> RunOutcome:
        emitter.emit(ErrorChunk(message=STOPPED_BY_USER))
        return RunOutcome.ABORTED

    @staticmethod
    def _fail(emitter: ChunkEmitter, message: str) -> RunOutcome:
        emitter.emit(ErrorChunk(message=message))
        return RunOutcome.ERRORED


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def _fail_before_start(sink: ChunkSink, message: str) -> RunOutcome:
    emitter = ChunkEmitter(sink)
    emitter.emit(ErrorChunk(message=message))
    emitter.close()
    return RunOutcome.ERRORED


async def run_agent(
    agent: str,
    user_input: str,
    *,
    extra_context: Optional[str] = None,
    max_steps: Optional[int] = None,
    on_chunk: Optional[Callable[[AgentStreamChunk], None]] = None,
    sink: Optional[ChunkSink] = None,
    planner: Optional[BasePlanner] = None,
    cancellation: Optional[CancellationController] = None,
    approver: Optional[Approver] = None,
    project_path: Optional[str] = None,
    repo_slugs: Sequence[str] = (),
    ticket_key: Optional[str] = None,
    debug: bool = False,
) -> RunOutcome:
    """
    Run one agent request end to end.

    Parameters
    ----------
    agent:
        Profile name.
    user_input:
        The user's instruction.
    extra_context:
        Additional text appended to the system prompt.
    max_steps:
        Step bound (default: ``WEB_MAX_STEPS``).
    on_chunk, sink:
        Where chunks go: an explicit sink wins, then a callback, then the terminal.
    planner:
        Model back-end (default: :func:`load_planner`).
    cancellation:
        Controller the caller can use to stop the run.
    approver:
        Human-in-the-loop callback for destructive tools (default: deny).
    project_path, repo_slugs, ticket_key:
        Passed to the context assembler; *project_path* is also the tools' working directory.
    debug:
        Log context loading problems and per-step tool counts.

    Raises
    ------
    UnknownAgentError, EmptyInputError
        Before any chunk is emitted.
    """
    profile = validate_run_request(agent, user_input)
    if sink is None:
        sink = CallbackSink(on_chunk) if on_chunk is not None else TerminalSink()

    if planner is None:
        try:
            planner = load_planner()
        except ValueError as exc:
            logger.error("Could not load planner: %s", exc)
            return _fail_before_start(sink, str(exc))

    try:
        context = await build_system_prompt(
            profile,
            project_path=project_path,
            repo_slugs=repo_slugs,
            ticket_key=ticket_key,
            extra_context=extra_context,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Could not assemble the context for agent %s", agent)
        return _fail_before_start(sink, f"Could not assemble context: {exc}")
    if debug:
        logger.info("Loaded context files: %s", context.loaded_files)
        for error in context.errors:
            logger.warning("Context: %s", error)

    tool_context = ToolContext(approver=approver or deny_all)
    if project_path:
        tool_context.project_path = project_path

    loop = AgentLoop(planner, max_steps=max_steps, debug=debug)
    return await loop.run(
        profile,
        context.system_prompt,
        user_input,
        sink,
        cancellation=cancellation,
        tool_context=tool_context,
    )
