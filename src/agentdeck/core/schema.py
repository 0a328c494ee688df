"""
Schema definitions for model <-> agent loop <-> tool <-> consumer messages.

These data models serve as the contract between the model session, the orchestration loop,
individual tools and whoever consumes the chunk stream.  We keep them separate from runtime logic
so they can be imported anywhere without side-effects.
"""

from enum import Enum
from typing import (
    Annotated,
    Any,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
)


# ---------------------------------------------------------------------------
# Model session events
# ---------------------------------------------------------------------------
class TextDelta(BaseModel):
    """A fragment of assistant text produced while the model is streaming."""

    text: str


class ToolCallRequest(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(..., description="Provider-assigned call identifier")
    tool_name: str = Field(..., description="Registered tool name")
    raw_input: Any = Field(default_factory=dict, description="Unvalidated tool input")


ModelEvent = Union[TextDelta, ToolCallRequest]


class ToolCallResult(BaseModel):
    """Output of one executed tool call, correlated with its request by ``id``."""

    id: str
    tool_name: str
    output: str


# ---------------------------------------------------------------------------
# Conversation history
# ---------------------------------------------------------------------------
class Message(BaseModel):
    """One provider-neutral entry of the conversation history."""

    role: Literal["user", "assistant", "tool"]
    content: str = ""
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: List[ToolCallRequest]) -> "Message":
        return cls(role="assistant", content=content, tool_calls=list(tool_calls))

    @classmethod
    def tool(cls, result: ToolCallResult) -> "Message":
        return cls(
            role="tool",
            content=result.output,
            tool_call_id=result.id,
            tool_name=result.tool_name,
        )


class RunOutcome(str, Enum):
    """Terminal state of one agent run."""

    FINISHED = "finished"
    ABORTED = "aborted"
    ERRORED = "errored"


# ---------------------------------------------------------------------------
# Wire chunks
# ---------------------------------------------------------------------------
class _Chunk(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TextDeltaChunk(_Chunk):
    """Streamed assistant text."""

    type: Literal["text-delta"] = "text-delta"
    text: str


class ToolCallChunk(_Chunk):
    """The model asked for a tool to run."""

    type: Literal["tool-call"] = "tool-call"
    tool_name: str = Field(..., alias="toolName")
    input: Any = None


class ToolResultChunk(_Chunk):
    """A tool finished and produced output."""

    type: Literal["tool-result"] = "tool-result"
    tool_name: str = Field(..., alias="toolName")
    output: str


class FinishChunk(_Chunk):
    """The run completed."""

    type: Literal["finish"] = "finish"


class ErrorChunk(_Chunk):
    """The run failed or was stopped."""

    type: Literal["error"] = "error"
    message: str


AgentStreamChunk = Annotated[
    Union[TextDeltaChunk, ToolCallChunk, ToolResultChunk, FinishChunk, ErrorChunk],
    Field(discriminator="type"),
]

TERMINAL_CHUNK_TYPES = frozenset({"finish", "error"})

_chunk_adapter: TypeAdapter[AgentStreamChunk] = TypeAdapter(AgentStreamChunk)


def chunk_to_json(chunk: AgentStreamChunk) -> str:
    """Serialize a chunk to its wire JSON (camelCase field names)."""
    return chunk.model_dump_json(by_alias=True)


def parse_chunk(data: str | bytes) -> AgentStreamChunk:
    """Parse one wire JSON object back into the matching chunk model."""
    return _chunk_adapter.validate_json(data)


def is_terminal(chunk: AgentStreamChunk) -> bool:
    return chunk.type in TERMINAL_CHUNK_TYPES
