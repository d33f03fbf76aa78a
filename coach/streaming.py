import asyncio
from enum import Enum
from typing import List, Optional

from coach.errors import ChannelClosed

_CLOSED = object()


class ChunkChannel:
    """Bounded hand-off of text chunks from one producer to one consumer.

    Only the producer may close the channel and it must do so exactly once;
    the consumer just iterates until the channel is closed and drained.
    """

    def __init__(self, capacity: int = 1):
        self._queue = asyncio.Queue(maxsize=capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: str):
        if self._closed:
            raise ChannelClosed("send on closed channel")
        await self._queue.put(chunk)

    def close(self):
        if self._closed:
            raise ChannelClosed("channel already closed")
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # the consumer sees the closed flag once it drains the last chunk
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        chunk = await self._queue.get()
        if chunk is _CLOSED:
            raise StopAsyncIteration
        return chunk


class StreamState(str, Enum):
    ADMITTED = "admitted"
    PROMPT_BUILT = "prompt_built"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class CoachStream:
    """One in-flight model response, as seen by the HTTP writer.

    Iterating yields chunks as the model produces them. ``text`` holds what the
    producer has accumulated so far, which is the full response once ``state``
    is ``COMPLETED``.
    """

    def __init__(self, channel: Optional[ChunkChannel] = None):
        self.channel = channel or ChunkChannel()
        self.state = StreamState.ADMITTED
        self.chunks: List[str] = []
        self.error: Optional[BaseException] = None
        self.producer: Optional[asyncio.Task] = None

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    @property
    def finished(self) -> bool:
        return self.state in (StreamState.COMPLETED, StreamState.FAILED)

    def __aiter__(self):
        return self.channel.__aiter__()

    async def aclose(self):
        """Stop the producer when nobody is reading any more."""
        if self.producer is not None and not self.producer.done():
            self.producer.cancel()
