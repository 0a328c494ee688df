"""
Planner interface for agentdeck.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
sinks) stays model-agnostic: a planner turns the system prompt, the conversation history and the
available tool schemas into a stream of :class:`TextDelta` and :class:`ToolCallRequest` events
for one model turn.

We support two back-ends out of the box:

1. **Anthropic** via the Messages streaming API.
2. **OpenAI** via streaming chat completions with function tools.

Additional providers can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

from agentdeck.config import settings
from agentdeck.core.schema import (
    Message,
    ModelEvent,
    TextDelta,
    ToolCallRequest,
)
from agentdeck.tools import ToolSchema

logger = logging.getLogger(__name__)


class ModelProviderError(RuntimeError):
    """Raised when the model back-end fails (network, auth, rate limit, malformed stream)."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    3. default: ``"anthropic"``
    """

    target = name or getattr(settings, "PLANNER", "anthropic")
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls()


def available_planners() -> List[str]:
    return sorted(_PLANNER_REGISTRY)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that streams one model turn as text deltas and tool call requests."""

    @abstractmethod
    def stream_turn(
        self,
        system_prompt: str,
        history: Sequence[Message],
        tools: Sequence[ToolSchema],
    ) -> AsyncIterator[ModelEvent]:
        """
        Stream one model turn.

        Parameters
        ----------
        system_prompt:
            The assembled system prompt for the run.
        history:
            Conversation so far, starting with the user's instruction.
        tools:
            Schemas of the tools the model may call; empty when the profile allows none.

        Returns
        -------
        AsyncIterator[ModelEvent]
            Text deltas as they arrive, and one :class:`ToolCallRequest` per completed tool call.

        Raises
        ------
        ModelProviderError
            If the provider request fails at any point of the turn.
        """


def _tool_input(raw_input: Any) -> Dict[str, Any]:
    return raw_input if isinstance(raw_input, dict) else {}


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
@register_planner("anthropic")
class AnthropicPlanner(BasePlanner):
    """Anthropic Claude planner using the streaming Messages API."""

    def __init__(self, client: Any = None) -> None:
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.AsyncAnthropic(
                api_key=settings.ANTHROPIC_API_KEY,
                timeout=settings.MODEL_TIMEOUT,
            )
        return self._client

    @staticmethod
    def to_provider_messages(history: Sequence[Message]) -> List[Dict[str, Any]]:
        """
        Convert history to Anthropic message dicts.

        Consecutive tool results are grouped into one user message of ``tool_result`` blocks, as
        the API requires every result of a turn to follow the assistant message directly.
        """
        messages: List[Dict[str, Any]] = []
        for message in history:
            if message.role == "user":
                messages.append({"role": "user", "content": message.content})
            elif message.role == "assistant":
                blocks: List[Dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.tool_name,
                            "input": _tool_input(call.raw_input),
                        }
                    )
                if blocks:
                    messages.append({"role": "assistant", "content": blocks})
            else:
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                previous = messages[-1] if messages else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                ):
                    previous["content"].append(block)
                else:
                    messages.append({"role": "user", "content": [block]})
        return messages

    async def stream_turn(
        self,
        system_prompt: str,
        history: Sequence[Message],
        tools: Sequence[ToolSchema],
    ) -> AsyncIterator[ModelEvent]:
        import anthropic  # pylint: disable=import-outside-toplevel

        request: Dict[str, Any] = {
            "model": settings.ANTHROPIC_MODEL,
            "max_tokens": settings.MODEL_MAX_TOKENS,
            "system": system_prompt,
            "messages": self.to_provider_messages(history),
        }
        if tools:
            request["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool["description"],
                    "input_schema": tool["parameters"],
                }
                for tool in tools
            ]

        try:
            async with self._get_client().messages.stream(**request) as stream:
                async for event in stream:
                    if event.type == "content_block_delta" and event.delta.type == "text_delta":
                        yield TextDelta(text=event.delta.text)
                    elif (
                        event.type == "content_block_stop"
                        and event.content_block.type == "tool_use"
                    ):
                        block = event.content_block
                        logger.debug("Anthropic tool_use %s(%s)", block.name, block.input)
                        yield ToolCallRequest(
                            id=block.id, tool_name=block.name, raw_input=block.input
                        )
        except anthropic.AnthropicError as e:
            logger.error("Anthropic planner error: %s", str(e))
            raise ModelProviderError(f"Error calling Anthropic: {e}") from e


@register_planner("openai")
class OpenAIPlanner(BasePlanner):
    """OpenAI planner using streaming chat completions."""

    def __init__(self, client: Any = None) -> None:
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.MODEL_TIMEOUT,
            )
        return self._client

    @staticmethod
    def to_provider_messages(
        system_prompt: str, history: Sequence[Message]
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for message in history:
            if message.role == "user":
                messages.append({"role": "user", "content": message.content})
            elif message.role == "assistant":
                entry: Dict[str, Any] = {"role": "assistant", "content": message.content or None}
                if message.tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.tool_name,
                                "arguments": json.dumps(_tool_input(call.raw_input)),
                            },
                        }
                        for call in message.tool_calls
                    ]
                messages.append(entry)
            else:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": message.tool_call_id,
                        "content": message.content,
                    }
                )
        return messages

    @staticmethod
    def _parse_arguments(arguments: str) -> Any:
        """Decode accumulated argument JSON; undecodable text is left for validation to reject."""
        if not arguments.strip():
            return {}
        try:
            return json.loads(arguments)
        except json.JSONDecodeError:
            logger.warning("OpenAI returned non-JSON tool arguments: %s", arguments)
            return arguments

    async def stream_turn(
        self,
        system_prompt: str,
        history: Sequence[Message],
        tools: Sequence[ToolSchema],
    ) -> AsyncIterator[ModelEvent]:
        import openai  # pylint: disable=import-outside-toplevel

        request: Dict[str, Any] = {
            "model": settings.OPENAI_MODEL,
            "max_tokens": settings.MODEL_MAX_TOKENS,
            "messages": self.to_provider_messages(system_prompt, history),
            "stream": True,
        }
        if tools:
            request["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool["name"],
                        "description": tool["description"],
                        "parameters": tool["parameters"],
                    },
                }
                for tool in tools
            ]

        pending: Dict[int, Dict[str, str]] = {}
        try:
            stream = await self._get_client().chat.completions.create(**request)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield TextDelta(text=delta.content)
                for fragment in delta.tool_calls or []:
                    call = pending.setdefault(
                        fragment.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if fragment.id:
                        call["id"] = fragment.id
                    if fragment.function is not None:
                        call["name"] += fragment.function.name or ""
                        call["arguments"] += fragment.function.arguments or ""
        except openai.OpenAIError as e:
            logger.error("OpenAI planner error: %s", str(e))
            raise ModelProviderError(f"Error calling OpenAI: {e}") from e

        for index in sorted(pending):
            call = pending[index]
            yield ToolCallRequest(
                id=call["id"] or f"call_{index}",
                tool_name=call["name"],
                raw_input=self._parse_arguments(call["arguments"]),
            )
