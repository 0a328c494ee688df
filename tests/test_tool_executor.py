"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

from typing import Annotated

import pytest
from pydantic import Field

from agentdeck.agent.tool_executor import (
    ToolExecutionError,
    dispatch_tool_call,
    execute_tool,
)
from agentdeck.tools import (
    ToolContext,
    ToolRegistry,
    register_tool,
)
from conftest import call

# Registry holding stub tools for these tests only.
registry = ToolRegistry()


@register_tool("add", registry=registry)
async def _add(
    a: Annotated[int, Field(description="First addend")],
    b: Annotated[int, Field(description="Second addend")],
) -> str:
    """Return the sum of two integers (used only for tests)."""

    return str(a + b)


@register_tool("explode", registry=registry)
async def _explode() -> str:
    """Always fails (used only for tests)."""

    raise RuntimeError("kaput")


@pytest.mark.asyncio
async def test_execute_tool_success() -> None:
    """Executor should return the correct value when the tool is valid."""

    assert await execute_tool("add", {"a": 2, "b": 3}, registry=registry) == "5"


@pytest.mark.asyncio
async def test_execute_tool_missing() -> None:
    """Executor should raise *ToolExecutionError* for an unknown tool."""

    with pytest.raises(ToolExecutionError) as exc_info:
        await execute_tool("not_a_tool", {}, registry=registry)
    assert "not_a_tool" in str(exc_info.value)


@pytest.mark.asyncio
async def test_execute_tool_bad_args() -> None:
    """Executor should raise *ToolExecutionError* for wrong arguments."""

    with pytest.raises(ToolExecutionError) as exc_info:
        await execute_tool("add", {"a": 2}, registry=registry)  # missing 'b'
    assert "Invalid input for tool 'add'" in str(exc_info.value)
    assert "b:" in str(exc_info.value)


@pytest.mark.asyncio
async def test_execute_tool_wraps_tool_exceptions() -> None:
    with pytest.raises(ToolExecutionError) as exc_info:
        await execute_tool("explode", registry=registry)
    assert "kaput" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_dispatch_returns_result_with_call_id() -> None:
    allowed = {"add": registry.get("add")}
    result = await dispatch_tool_call(
        call("add", {"a": 1, "b": 1}, "c-42"), allowed, ToolContext(), registry
    )
    assert result.id == "c-42"
    assert result.tool_name == "add"
    assert result.output == "2"


@pytest.mark.asyncio
async def test_dispatch_reports_invalid_input_as_output() -> None:
    allowed = {"add": registry.get("add")}
    result = await dispatch_tool_call(call("add", {"a": "x"}), allowed, ToolContext(), registry)
    assert result.output.startswith("Error: Invalid input for tool 'add'")
    assert "a:" in result.output
    assert "b:" in result.output


@pytest.mark.asyncio
async def test_dispatch_rejects_tools_outside_the_allowed_set() -> None:
    allowed = {"add": registry.get("add")}
    result = await dispatch_tool_call(call("explode"), allowed, ToolContext(), registry)
    assert "not available" in result.output
    assert "add" in result.output


@pytest.mark.asyncio
async def test_dispatch_propagates_tool_failures() -> None:
    allowed = {"explode": registry.get("explode")}
    with pytest.raises(ToolExecutionError):
        await dispatch_tool_call(call("explode"), allowed, ToolContext(), registry)
