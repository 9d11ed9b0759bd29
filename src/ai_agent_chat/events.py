"""
Normalized chat events and the server-sent-events channel that carries them.

Wire format, one frame per event::

    event: <message|thinking|error|done>
    data: <JSON>
    <blank line>

An ``error`` frame is always followed by a synthetic ``done`` frame.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Content:
    text: str
    turn_id: str


@dataclass(frozen=True)
class Progress:
    note: str


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class Error:
    message: str


NormalizedEvent = Union[Content, Progress, Done, Error]

TERMINAL_EVENTS = (Done, Error)


def _frame(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def serialize_event(event: NormalizedEvent) -> str:
    """Serialize an event to its SSE frame(s)."""
    if isinstance(event, Content):
        return _frame("message", {"content": event.text, "messageId": event.turn_id})
    if isinstance(event, Progress):
        return _frame("thinking", {"content": event.note})
    if isinstance(event, Error):
        return _frame("error", {"error": event.message}) + _frame("done", {})
    if isinstance(event, Done):
        return _frame("done", {})
    raise TypeError(f"Unsupported event: {event!r}")


class Transport(Protocol):
    async def write(self, data: str) -> None: ...

    async def flush(self) -> None: ...


class SessionEventChannel:
    """Writes normalized events to a transport, flushing after every event.

    The channel never closes the transport: its lifetime belongs to the
    request layer. Events emitted after a terminal event are dropped.
    """

    def __init__(self, transport: Transport):
        self.transport = transport
        self.terminated = False

    async def emit(self, event: NormalizedEvent) -> bool:
        """Write one event. Returns False if the event was dropped."""
        if self.terminated:
            logger.warning(f"Dropping {type(event).__name__} event after terminal event")
            return False
        if isinstance(event, TERMINAL_EVENTS):
            self.terminated = True
        await self.transport.write(serialize_event(event))
        await self.transport.flush()
        return True

    async def emit_frame(self, event_type: str, data: dict) -> None:
        """Write a raw frame outside the turn protocol (e.g. connection handshake)."""
        await self.transport.write(_frame(event_type, data))
        await self.transport.flush()


_CLOSED = object()


class QueueTransport:
    """Hands written frames to a streaming HTTP response through a queue.

    ``write`` enqueues immediately, so nothing is buffered past the call; the
    response drains the queue via ``frames()`` until ``close()`` is called.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    async def write(self, data: str) -> None:
        await self._queue.put(data)

    async def flush(self) -> None:
        # Queue hand-off is immediate
        return None

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    async def frames(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

