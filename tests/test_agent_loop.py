"""Tests for the orchestration loop and the run entry point."""

import pytest

from agentdeck.agent import agent_loop as agent_loop_module
from agentdeck.agent.agent_loop import (
    STOPPED_BY_USER,
    AgentLoop,
    EmptyInputError,
    run_agent,
    validate_run_request,
)
from agentdeck.agent.cancellation import CancellationController
from agentdeck.agent.planner_interface import ModelProviderError
from agentdeck.agent.profiles import (
    AgentProfile,
    UnknownAgentError,
    get_profile,
)
from agentdeck.agent.sinks import CallbackSink
from agentdeck.config import settings
from agentdeck.core.schema import (
    ErrorChunk,
    FinishChunk,
    RunOutcome,
    TextDeltaChunk,
    ToolCallChunk,
    ToolResultChunk,
)
from agentdeck.tools import (
    ToolContext,
    ToolRegistry,
    register_tool,
)
from agentdeck.tools.process import ToolTimeoutError
from conftest import (
    LoopingPlanner,
    RecordingSink,
    ScriptedPlanner,
    call,
    text,
)

CALCULATOR = get_profile("calculator")


def _assert_single_terminal(sink: RecordingSink) -> None:
    terminal = [chunk for chunk in sink.chunks if chunk.type in ("finish", "error")]
    assert len(terminal) == 1
    assert sink.chunks[-1] is terminal[0]
    assert sink.closed == 1


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_calculator_adds_numbers(sink: RecordingSink) -> None:
    planner = ScriptedPlanner(
        [
            [text("Let me add those. "), call("add", {"a": 12, "b": 7}, "c1")],
            [text("12 + 7 = 19")],
        ]
    )
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "what is 12 + 7?", sink)

    assert outcome is RunOutcome.FINISHED
    assert sink.chunks == [
        TextDeltaChunk(text="Let me add those. "),
        ToolCallChunk(tool_name="add", input={"a": 12, "b": 7}),
        ToolResultChunk(tool_name="add", output="19"),
        TextDeltaChunk(text="12 + 7 = 19"),
        FinishChunk(),
    ]
    assert sink.closed == 1

    second_turn = planner.requests[1]["history"]
    assert [message.role for message in second_turn] == ["user", "assistant", "tool"]
    assert second_turn[2].tool_call_id == "c1"
    assert second_turn[2].content == "19"
    assert planner.requests[0]["tools"] == ["add", "divide", "multiply", "subtract"]
    assert planner.requests[0]["system_prompt"] == "system"


@pytest.mark.asyncio
async def test_no_tool_calls_finishes_after_one_turn(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([[text("Hello"), text(" there")]])
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "hi", sink)
    assert outcome is RunOutcome.FINISHED
    assert sink.types == ["text-delta", "text-delta", "finish"]
    assert len(planner.requests) == 1


@pytest.mark.asyncio
async def test_divide_by_zero_is_a_tool_result(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([[call("divide", {"a": 1, "b": 0})], [text("Cannot divide.")]])
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "1/0", sink)
    assert outcome is RunOutcome.FINISHED
    assert sink.types == ["tool-call", "tool-result", "text-delta", "finish"]
    assert sink.chunks[1].output.startswith("Error: cannot divide by zero")


@pytest.mark.asyncio
async def test_calls_are_dispatched_in_order_and_pairs_never_interleave(
    sink: RecordingSink,
) -> None:
    planner = ScriptedPlanner(
        [
            [
                call("multiply", {"a": 3, "b": 4}, "c1"),
                text("working"),
                call("subtract", {"a": 10, "b": 1}, "c2"),
            ],
        ]
    )
    await AgentLoop(planner).run(CALCULATOR, "system", "go", sink)
    assert sink.types == [
        "text-delta",
        "tool-call",
        "tool-result",
        "tool-call",
        "tool-result",
        "finish",
    ]
    assert [chunk.output for chunk in sink.chunks if chunk.type == "tool-result"] == ["12", "9"]


# ---------------------------------------------------------------------------
# Recoverable tool problems
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_invalid_tool_input_is_reported_to_the_model(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([[call("add", {"a": 1})], [text("Sorry.")]])
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "add", sink)
    assert outcome is RunOutcome.FINISHED
    result = sink.chunks[1]
    assert result.type == "tool-result"
    assert "Invalid input for tool 'add'" in result.output
    assert "b:" in result.output
    assert planner.requests[1]["history"][-1].content == result.output


@pytest.mark.asyncio
async def test_tool_outside_profile_is_not_executed(sink: RecordingSink, project_dir) -> None:
    planner = ScriptedPlanner([[call("create_file", {"path": "x.txt", "content": "x"})]])
    ctx = ToolContext(project_path=str(project_dir))
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "go", sink, tool_context=ctx)
    assert outcome is RunOutcome.FINISHED
    assert "not available" in sink.chunks[1].output
    assert not (project_dir / "x.txt").exists()


@pytest.mark.asyncio
async def test_profile_without_tools_gets_no_schemas(sink: RecordingSink) -> None:
    profile = AgentProfile(name="chat", base_prompt="", allowed_tools=frozenset())
    planner = ScriptedPlanner([[text("hi")]])
    await AgentLoop(planner).run(profile, "system", "hi", sink)
    assert planner.requests[0]["tools"] == []


# ---------------------------------------------------------------------------
# Step bound
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_step_bound_ends_the_run_with_finish(sink: RecordingSink) -> None:
    planner = LoopingPlanner(call("add", {"a": 1, "b": 1}))
    outcome = await AgentLoop(planner, max_steps=3).run(CALCULATOR, "system", "loop", sink)
    assert outcome is RunOutcome.FINISHED
    assert planner.turns == 3
    assert sink.types.count("tool-call") == 3
    assert sink.types[-1] == "finish"
    _assert_single_terminal(sink)


def test_max_steps_must_be_positive() -> None:
    with pytest.raises(ValueError):
        AgentLoop(ScriptedPlanner(), max_steps=0)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_cancel_before_start_emits_only_the_stop_error(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([[text("never")]])
    controller = CancellationController()
    controller.cancel()
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "x", sink, controller)
    assert outcome is RunOutcome.ABORTED
    assert sink.chunks == [ErrorChunk(message=STOPPED_BY_USER)]
    assert sink.closed == 1
    assert planner.requests == []


@pytest.mark.asyncio
async def test_cancel_during_streaming_stops_further_chunks() -> None:
    controller = CancellationController()
    received = []

    def on_chunk(chunk) -> None:
        received.append(chunk)
        if chunk.type == "text-delta":
            controller.cancel()

    planner = ScriptedPlanner([[text("one"), text("two"), call("add", {"a": 1, "b": 2})]])
    outcome = await AgentLoop(planner).run(
        CALCULATOR, "system", "x", CallbackSink(on_chunk), controller
    )
    assert outcome is RunOutcome.ABORTED
    assert received == [TextDeltaChunk(text="one"), ErrorChunk(message=STOPPED_BY_USER)]


@pytest.mark.asyncio
async def test_cancel_between_tool_calls_skips_remaining_dispatches(
    sink: RecordingSink,
) -> None:
    controller = CancellationController()
    registry = ToolRegistry()
    dispatched = []

    @register_tool("stop", registry=registry)
    async def _stop() -> str:
        dispatched.append("stop")
        controller.cancel()
        return "stopping"

    @register_tool("after", registry=registry)
    async def _after() -> str:
        dispatched.append("after")
        return "ran"

    profile = AgentProfile(name="t", base_prompt="", allowed_tools=frozenset({"stop", "after"}))
    planner = ScriptedPlanner([[call("stop", {}, "c1"), call("after", {}, "c2")]])
    outcome = await AgentLoop(planner, registry=registry).run(
        profile, "system", "x", sink, controller
    )
    assert outcome is RunOutcome.ABORTED
    assert dispatched == ["stop"]
    assert sink.types == ["tool-call", "tool-result", "error"]
    assert sink.chunks[-1].message == STOPPED_BY_USER


@pytest.mark.asyncio
async def test_cancel_after_finish_is_ignored(sink: RecordingSink) -> None:
    controller = CancellationController()
    await AgentLoop(ScriptedPlanner([[text("done")]])).run(
        CALCULATOR, "system", "x", sink, controller
    )
    assert controller.cancel() is False
    assert sink.types == ["text-delta", "finish"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_model_failure_ends_in_a_single_error(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([ModelProviderError("Error calling Anthropic: overloaded")])
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "x", sink)
    assert outcome is RunOutcome.ERRORED
    assert sink.chunks == [ErrorChunk(message="Error calling Anthropic: overloaded")]
    assert sink.closed == 1


@pytest.mark.asyncio
async def test_model_failure_mid_stream_keeps_earlier_chunks(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([[text("partial"), ModelProviderError("connection reset")]])
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "x", sink)
    assert outcome is RunOutcome.ERRORED
    assert sink.types == ["text-delta", "error"]
    _assert_single_terminal(sink)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [RuntimeError("kaput"), ToolTimeoutError("Command 'sleep 999' timed out after 1s")],
)
async def test_tool_exception_ends_the_run(sink: RecordingSink, failure: Exception) -> None:
    registry = ToolRegistry()

    @register_tool("broken", registry=registry)
    async def _broken() -> str:
        raise failure

    profile = AgentProfile(name="t", base_prompt="", allowed_tools=frozenset({"broken"}))
    planner = ScriptedPlanner([[call("broken")], [text("unreachable")]])
    outcome = await AgentLoop(planner, registry=registry).run(profile, "system", "x", sink)

    assert outcome is RunOutcome.ERRORED
    assert sink.types == ["tool-call", "error"]
    assert str(failure) in sink.chunks[-1].message
    assert len(planner.requests) == 1
    _assert_single_terminal(sink)


@pytest.mark.asyncio
async def test_unexpected_planner_bug_still_terminates_cleanly(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([KeyError("choices")])
    outcome = await AgentLoop(planner).run(CALCULATOR, "system", "x", sink)
    assert outcome is RunOutcome.ERRORED
    assert sink.chunks[0].message.startswith("Agent run failed:")
    _assert_single_terminal(sink)


# ---------------------------------------------------------------------------
# run_agent
# ---------------------------------------------------------------------------
def test_validate_run_request() -> None:
    assert validate_run_request("calculator", "2+2") is CALCULATOR
    with pytest.raises(UnknownAgentError):
        validate_run_request("astrologer", "2+2")
    with pytest.raises(EmptyInputError):
        validate_run_request("calculator", "   ")


@pytest.mark.asyncio
async def test_run_agent_rejects_bad_requests_before_streaming() -> None:
    chunks = []
    with pytest.raises(UnknownAgentError):
        await run_agent("astrologer", "hi", on_chunk=chunks.append, planner=ScriptedPlanner())
    with pytest.raises(EmptyInputError):
        await run_agent("calculator", "", on_chunk=chunks.append, planner=ScriptedPlanner())
    assert chunks == []


@pytest.mark.asyncio
async def test_run_agent_with_callback(isolated_settings) -> None:
    chunks = []
    planner = ScriptedPlanner([[call("add", {"a": 2, "b": 2})], [text("4")]])
    outcome = await run_agent(
        "calculator",
        "2 + 2",
        extra_context="Answer tersely.",
        on_chunk=chunks.append,
        planner=planner,
    )
    assert outcome is RunOutcome.FINISHED
    assert [chunk.type for chunk in chunks] == ["tool-call", "tool-result", "text-delta", "finish"]
    system_prompt = planner.requests[0]["system_prompt"]
    assert system_prompt.startswith(CALCULATOR.base_prompt)
    assert system_prompt.endswith("# Additional Context\n\nAnswer tersely.")


@pytest.mark.asyncio
async def test_run_agent_honours_max_steps(sink: RecordingSink) -> None:
    planner = LoopingPlanner(call("add", {"a": 1, "b": 1}))
    outcome = await run_agent("calculator", "loop", max_steps=2, sink=sink, planner=planner)
    assert outcome is RunOutcome.FINISHED
    assert planner.turns == 2


@pytest.mark.asyncio
async def test_run_agent_reports_unknown_planner(monkeypatch, sink: RecordingSink) -> None:
    monkeypatch.setattr(settings, "PLANNER", "carrier-pigeon")
    outcome = await run_agent("calculator", "2+2", sink=sink)
    assert outcome is RunOutcome.ERRORED
    assert sink.types == ["error"]
    assert "carrier-pigeon" in sink.chunks[0].message
    assert sink.closed == 1


@pytest.mark.asyncio
async def test_run_agent_reports_context_failures(monkeypatch, sink: RecordingSink) -> None:
    async def broken_context(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(agent_loop_module, "build_system_prompt", broken_context)
    planner = ScriptedPlanner([[text("never")]])
    outcome = await run_agent("calculator", "2+2", sink=sink, planner=planner)
    assert outcome is RunOutcome.ERRORED
    assert sink.types == ["error"]
    assert sink.chunks[0].message == "Could not assemble context: disk on fire"
    assert sink.closed == 1
    assert planner.requests == []


@pytest.mark.asyncio
async def test_run_agent_survives_an_unreadable_project_path(sink: RecordingSink) -> None:
    planner = ScriptedPlanner([[text("hello")]])
    outcome = await run_agent(
        "coding", "hi", sink=sink, planner=planner, project_path="/tmp/a\x00b"
    )
    assert outcome is RunOutcome.FINISHED
    assert sink.types == ["text-delta", "finish"]
    assert sink.closed == 1


@pytest.mark.asyncio
async def test_absolute_glob_pattern_does_not_end_the_run(
    sink: RecordingSink, project_dir
) -> None:
    (project_dir / "app.conf").write_text("")
    planner = ScriptedPlanner(
        [
            [call("glob", {"pattern": "/etc/*.conf"}, call_id="g1")],
            [call("glob", {"pattern": f"{project_dir}/*.conf"}, call_id="g2")],
            [text("done")],
        ]
    )
    outcome = await run_agent(
        "coding", "find configs", sink=sink, planner=planner, project_path=str(project_dir)
    )
    assert outcome is RunOutcome.FINISHED
    assert sink.types == [
        "tool-call",
        "tool-result",
        "tool-call",
        "tool-result",
        "text-delta",
        "finish",
    ]
    assert sink.chunks[3].output == str(project_dir / "app.conf")
