"""Shared fixtures: scripted model back-ends, recording sinks and isolated settings."""

from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Sequence,
    Union,
)

import pytest

from agentdeck.agent.planner_interface import BasePlanner
from agentdeck.config import settings
from agentdeck.core.schema import (
    AgentStreamChunk,
    Message,
    ModelEvent,
    TextDelta,
    ToolCallRequest,
)
from agentdeck.tools import ToolContext

Turn = Union[Sequence[Union[ModelEvent, BaseException]], BaseException]


def text(value: str) -> TextDelta:
    return TextDelta(text=value)


def call(tool_name: str, raw_input: Any = None, call_id: str = "call_1") -> ToolCallRequest:
    return ToolCallRequest(
        id=call_id, tool_name=tool_name, raw_input={} if raw_input is None else raw_input
    )


class ScriptedPlanner(BasePlanner):
    """
    Replays a fixed script of model turns.

    Each turn is a list of events (an exception in the list is raised at that point) or an
    exception raised before the turn produces anything.  Once the script is exhausted every turn
    is empty, which ends the run.
    """

    def __init__(self, turns: Iterable[Turn] = ()) -> None:
        self.turns: List[Turn] = list(turns)
        self.requests: List[Dict[str, Any]] = []

    async def stream_turn(
        self,
        system_prompt: str,
        history: Sequence[Message],
        tools: Sequence[Any],
    ) -> AsyncIterator[ModelEvent]:
        self.requests.append(
            {
                "system_prompt": system_prompt,
                "history": list(history),
                "tools": [tool["name"] for tool in tools],
            }
        )
        if not self.turns:
            return
        turn = self.turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        for event in turn:
            if isinstance(event, BaseException):
                raise event
            yield event


class LoopingPlanner(BasePlanner):
    """Asks for the same tool call on every turn, forever."""

    def __init__(self, request: ToolCallRequest) -> None:
        self.request = request
        self.turns = 0

    async def stream_turn(
        self,
        system_prompt: str,
        history: Sequence[Message],
        tools: Sequence[Any],
    ) -> AsyncIterator[ModelEvent]:
        self.turns += 1
        yield self.request.model_copy(update={"id": f"call_{self.turns}"})


class RecordingSink:
    def __init__(self) -> None:
        self.chunks: List[AgentStreamChunk] = []
        self.closed = 0

    def on_chunk(self, chunk: AgentStreamChunk) -> None:
        self.chunks.append(chunk)

    def on_close(self) -> None:
        self.closed += 1

    @property
    def types(self) -> List[str]:
        return [chunk.type for chunk in self.chunks]


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point file and network settings away from the developer's environment."""
    context_dir = tmp_path / "context_files"
    context_dir.mkdir()
    monkeypatch.setattr(settings, "CONTEXT_DIR", str(context_dir))
    monkeypatch.setattr(settings, "AGENT_WORKSPACE_DIR", str(tmp_path / "workspaces"))
    monkeypatch.setattr(settings, "JIRA_BASE_URL", None)
    monkeypatch.setattr(settings, "JIRA_USER_EMAIL", None)
    monkeypatch.setattr(settings, "JIRA_API_TOKEN", None)
    monkeypatch.setattr(settings, "BITBUCKET_USERNAME", None)
    monkeypatch.setattr(settings, "BITBUCKET_APP_PASSWORD", None)
    monkeypatch.setattr(settings, "BITBUCKET_WORKSPACE", None)
    return context_dir


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def tool_context(project_dir) -> ToolContext:
    return ToolContext(project_path=str(project_dir))
