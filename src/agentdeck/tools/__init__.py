"""
Tool registry for agentdeck.

This module provides a decorator to register tools and a registry to look them up by name.
Tools are async functions with typed keyword parameters that return a string.  The parameters
are turned into a pydantic model, which is both the JSON schema advertised to the model and the
validator applied to whatever input the model sends back.
"""

import inspect
import logging
import os
from dataclasses import (
    dataclass,
    field,
)
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Type,
    TypedDict,
    get_type_hints,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    create_model,
)

from agentdeck.config import settings

if TYPE_CHECKING:
    from agentdeck.agent.profiles import AgentProfile

logger = logging.getLogger(__name__)

Approver = Callable[[str], Awaitable[bool]]
"""Async human-in-the-loop callback: receives a question, returns True to approve."""


class DuplicateToolError(ValueError):
    """Raised when a tool name is registered twice."""


class UnknownToolError(LookupError):
    """Raised when invoking a tool name that is not in the registry."""


class InvalidInputError(ValueError):
    """Raised when tool input does not match the tool's input schema."""

    def __init__(self, tool_name: str, problems: List[str]) -> None:
        self.tool_name = tool_name
        self.problems = problems
        super().__init__(f"Invalid input for tool '{tool_name}': " + "; ".join(problems))


async def deny_all(prompt: str) -> bool:
    """Default approver used when nobody is around to answer."""
    logger.info("Confirmation denied (no interactive approver): %s", prompt)
    return False


@dataclass
class ToolContext:
    """
    Per-run state handed to every tool invocation.

    One instance is created for each run, so edit history and the list of created files never leak
    between concurrent runs.
    """

    project_path: str = field(default_factory=os.getcwd)
    workspace_dir: str = field(default_factory=lambda: settings.AGENT_WORKSPACE_DIR)
    files_created: List[str] = field(default_factory=list)
    edit_history: Dict[str, List[str]] = field(default_factory=dict)
    approver: Approver = deny_all

    def resolve_path(self, path: str) -> Path:
        """Resolve *path* against the project directory unless it is already absolute."""
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return Path(self.project_path) / candidate

    async def confirm(self, question: str) -> bool:
        return await self.approver(question)


def _input_model_name(tool_name: str) -> str:
    return "".join(part.capitalize() for part in tool_name.split("_")) + "Input"


@dataclass(frozen=True)
class ToolDefinition:
    """A named, schema-validated capability the model may invoke."""

    name: str
    description: str
    input_model: Type[BaseModel]
    execute: Callable[[BaseModel, ToolContext], Awaitable[str]]

    @classmethod
    def from_function(
        cls, name: str, fn: Callable[..., Awaitable[str]], description: Optional[str] = None
    ) -> "ToolDefinition":
        """
        Build a definition from an async function.

        Every keyword parameter becomes an input field (``Annotated[..., Field(...)]`` carries the
        description, a default makes the field optional).  A parameter called ``ctx`` is not part
        of the schema; it receives the run's :class:`ToolContext`.
        """
        sig = inspect.signature(fn)
        type_hints = get_type_hints(fn, include_extras=True)
        fields: Dict[str, Any] = {}
        takes_ctx = False
        for param_name, param in sig.parameters.items():
            if param_name == "ctx":
                takes_ctx = True
                continue
            annotation = type_hints.get(param_name, Any)
            default = ... if param.default is inspect.Parameter.empty else param.default
            fields[param_name] = (annotation, default)

        input_model = create_model(  # type: ignore[call-overload]
            _input_model_name(name),
            __config__=ConfigDict(extra="ignore"),
            **fields,
        )
        field_names = list(fields)

        async def execute(args: BaseModel, ctx: ToolContext) -> str:
            kwargs = {key: getattr(args, key) for key in field_names}
            if takes_ctx:
                return await fn(ctx, **kwargs)
            return await fn(**kwargs)

        return cls(
            name=name,
            description=inspect.cleandoc(description or fn.__doc__ or ""),
            input_model=input_model,
            execute=execute,
        )

    def json_schema(self) -> Dict[str, Any]:
        """JSON schema of the tool input, as advertised to model providers."""
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema


class ToolSchema(TypedDict):
    """
    Provider-neutral description of a tool.
    """

    name: str
    description: str
    parameters: Mapping[str, Any]


class ToolRegistry:
    """Name-keyed mapping of tool definitions; read-only once the process is initialised."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDefinition] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return sorted(self._tools)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def register(self, tool: ToolDefinition) -> ToolDefinition:
        """
        Add *tool* to the registry.

        Raises
        ------
        DuplicateToolError
            If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise DuplicateToolError(f"Tool '{tool.name}' is already registered.")
        logger.debug("Registering tool '%s'", tool.name)
        self._tools[tool.name] = tool
        return tool

    def resolve(self, profile: "AgentProfile") -> Dict[str, ToolDefinition]:
        """Return the subset of tools the profile may use (empty when it allows none)."""
        return {
            name: self._tools[name] for name in sorted(profile.allowed_tools) if name in self._tools
        }

    def validate(self, name: str, raw_input: Any) -> BaseModel:
        """Check *raw_input* against the tool's input model without running the tool."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(f"Tool '{name}' is not registered.")
        if raw_input is None:
            raw_input = {}
        if not isinstance(raw_input, Mapping):
            raise InvalidInputError(
                name, [f"input must be an object, got {type(raw_input).__name__}"]
            )
        try:
            return tool.input_model.model_validate(dict(raw_input))
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(part) for part in err['loc']) or '<input>'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise InvalidInputError(name, problems) from exc

    async def invoke(self, name: str, raw_input: Any, ctx: ToolContext) -> str:
        """
        Validate *raw_input* and run the tool.

        Validation happens before execution ever starts.  Whatever the tool raises propagates to
        the caller unchanged; built-in tools report expected failures as returned strings instead.
        """
        args = self.validate(name, raw_input)
        tool = self._tools[name]
        logger.debug("Executing tool '%s' with args=%s", name, args)
        output = await tool.execute(args, ctx)
        return output if isinstance(output, str) else str(output)


TOOL_REGISTRY = ToolRegistry()
"""Global registry of built-in tools."""


def register_tool(name: str, registry: Optional[ToolRegistry] = None) -> Callable:
    """
    Register an async tool function with the given name.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("my_tool")
        async def my_tool(ctx: ToolContext, path: Annotated[str, Field(description="...")]) -> str:
            ...

    Parameters
    ----------
    name: str
        The name of the tool.  This must be unique and is what the model uses to call it.
    registry: ToolRegistry | None
        Registry to add the tool to (default: :data:`TOOL_REGISTRY`).
    Raises
    ------
    DuplicateToolError
        If a tool with the same name is already registered.
    """
    target = registry if registry is not None else TOOL_REGISTRY
    if name in target:
        raise DuplicateToolError(f"Tool '{name}' is already registered.")

    def wrapper(fn: Callable[..., Awaitable[str]]) -> Callable[..., Awaitable[str]]:
        target.register(ToolDefinition.from_function(name, fn))
        return fn

    return wrapper


def get_tool_schemas(tools: Mapping[str, ToolDefinition]) -> List[ToolSchema]:
    """Describe *tools* for a model provider."""
    return [
        ToolSchema(name=tool.name, description=tool.description, parameters=tool.json_schema())
        for tool in tools.values()
    ]


# Built-in tool modules register themselves on import.
from agentdeck.tools import (  # noqa: E402,F401  pylint: disable=wrong-import-position
    bitbucket_tools,
    calculator,
    coding_tools,
    file_tools,
    git_tools,
    jira_tools,
)
