"""
Chunk sinks.

A sink receives the ordered chunks of one run.  The agent loop talks to its sink through a
:class:`ChunkEmitter`, which guarantees that nothing follows the terminal chunk and that the sink
is closed exactly once.
"""

import asyncio
import json
import logging
import sys
from typing import (
    Callable,
    Optional,
    Protocol,
    TextIO,
)

from agentdeck.common import (
    AnsiColors,
    colored_print,
)
from agentdeck.core.schema import (
    AgentStreamChunk,
    ErrorChunk,
    FinishChunk,
    TextDeltaChunk,
    ToolCallChunk,
    ToolResultChunk,
    chunk_to_json,
    is_terminal,
)

logger = logging.getLogger(__name__)


class ChunkSink(Protocol):
    """Consumer of one run's chunk stream."""

    def on_chunk(self, chunk: AgentStreamChunk) -> None: ...

    def on_close(self) -> None: ...


class ChunkEmitter:
    """Forwards chunks to a sink until the terminal chunk, then closes it once."""

    def __init__(self, sink: ChunkSink) -> None:
        self._sink = sink
        self._terminated = False
        self._closed = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def emit(self, chunk: AgentStreamChunk) -> None:
        if self._terminated:
            logger.debug("Dropping %s chunk emitted after the terminal chunk", chunk.type)
            return
        if is_terminal(chunk):
            self._terminated = True
        self._sink.on_chunk(chunk)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sink.on_close()


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------
class TerminalSink:
    """Human-readable rendering of a run for an interactive terminal."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def on_chunk(self, chunk: AgentStreamChunk) -> None:
        if isinstance(chunk, TextDeltaChunk):
            self._stream.write(chunk.text)
            self._stream.flush()
        elif isinstance(chunk, ToolCallChunk):
            colored_print(
                f"\n🔧 Calling: {chunk.tool_name} {json.dumps(chunk.input, default=str)}",
                AnsiColors.YELLOW,
                file=self._stream,
            )
        elif isinstance(chunk, ToolResultChunk):
            colored_print(f"✅ Result: {chunk.output}", AnsiColors.GREEN, file=self._stream)
        elif isinstance(chunk, ErrorChunk):
            colored_print(f"\n❌ Error: {chunk.message}", AnsiColors.RED, file=self._stream)
        elif isinstance(chunk, FinishChunk):
            colored_print("\n🏁 Agent finished", AnsiColors.BLUE, file=self._stream)

    def on_close(self) -> None:
        self._stream.flush()


# ---------------------------------------------------------------------------
# Server-sent events
# ---------------------------------------------------------------------------
def format_sse(chunk: AgentStreamChunk) -> str:
    """Frame one chunk as a server-sent event: ``data: <json>`` and a blank line."""
    return f"data: {chunk_to_json(chunk)}\n\n"


class SSESink:
    """
    Queues SSE frames for a streaming HTTP response.

    Frames are enqueued the moment the chunk is produced; :meth:`frames` drains the queue until
    the sink is closed.
    """

    _END = None

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on_chunk(self, chunk: AgentStreamChunk) -> None:
        self._queue.put_nowait(format_sse(chunk))

    def on_close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._END)

    async def frames(self):
        while True:
            frame = await self._queue.get()
            if frame is self._END:
                return
            yield frame


# ---------------------------------------------------------------------------
# Callback
# ---------------------------------------------------------------------------
class CallbackSink:
    """Adapts a plain ``on_chunk`` callable (and optional ``on_close``) to the sink protocol."""

    def __init__(
        self,
        on_chunk: Callable[[AgentStreamChunk], None],
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._on_chunk = on_chunk
        self._on_close = on_close

    def on_chunk(self, chunk: AgentStreamChunk) -> None:
        self._on_chunk(chunk)

    def on_close(self) -> None:
        if self._on_close is not None:
            self._on_close()
