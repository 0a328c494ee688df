"""Dispatches tool calls requested by the model and wraps errors."""

import logging
from typing import (
    Any,
    Mapping,
    Optional,
)

from agentdeck.core.schema import (
    ToolCallRequest,
    ToolCallResult,
)
from agentdeck.tools import (
    TOOL_REGISTRY,
    InvalidInputError,
    ToolContext,
    ToolDefinition,
    ToolRegistry,
    UnknownToolError,
)

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a tool invocation fails with an exception; ends the run."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


async def execute_tool(
    name: str,
    args: Any = None,
    ctx: Optional[ToolContext] = None,
    registry: Optional[ToolRegistry] = None,
) -> str:
    """
    Look up *name* in the registry and invoke it with *args*.

    Parameters
    ----------
    name:
        The registered tool name.
    args:
        Raw tool input, validated against the tool's input schema.  If *None*, an empty dict is
        assumed.
    ctx:
        Per-run tool context (a fresh one is created when omitted).
    registry:
        Registry to look the tool up in (default: the global registry).

    Returns
    -------
    str
        Whatever the tool function returns.

    Raises
    ------
    ToolExecutionError
        If the tool is missing, its input is invalid or its invocation raises an exception.
    """
    registry = registry if registry is not None else TOOL_REGISTRY
    ctx = ctx if ctx is not None else ToolContext()

    try:
        return await registry.invoke(name, args, ctx)
    except UnknownToolError as exc:
        raise ToolExecutionError(name, f"Tool '{name}' is not registered.") from exc
    except InvalidInputError as exc:
        logger.warning("Argument error while executing tool '%s': %s", name, exc)
        raise ToolExecutionError(name, str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(name, f"Tool '{name}' raised an error: {exc}") from exc


async def dispatch_tool_call(
    call: ToolCallRequest,
    allowed: Mapping[str, ToolDefinition],
    ctx: ToolContext,
    registry: Optional[ToolRegistry] = None,
) -> ToolCallResult:
    """
    Run one model-requested tool call under the loop's failure policy.

    Calls the model can correct (a tool outside *allowed*, or input that fails validation) come
    back as a result whose output explains the problem.  Exceptions raised by the tool itself are
    raised as :class:`ToolExecutionError`.
    """
    registry = registry if registry is not None else TOOL_REGISTRY

    def result(output: str) -> ToolCallResult:
        return ToolCallResult(id=call.id, tool_name=call.tool_name, output=output)

    if call.tool_name not in allowed:
        logger.warning("Model requested unavailable tool '%s'", call.tool_name)
        return result(
            f"Error: tool '{call.tool_name}' is not available. "
            f"Available tools: {', '.join(sorted(allowed)) or 'none'}"
        )

    try:
        output = await execute_tool(call.tool_name, call.raw_input, ctx, registry)
    except ToolExecutionError as exc:
        if isinstance(exc.__cause__, (InvalidInputError, UnknownToolError)):
            return result(f"Error: {exc}")
        raise
    return result(output)
