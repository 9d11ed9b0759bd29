"""Shared fakes for the chat server tests: transports, MCP servers and LLM clients."""

import json
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest

from ai_agent_chat.config import Settings
from ai_agent_chat.tool_providers import (
    ReconnectPolicy,
    ToolProviderConfig,
    ToolProviderRegistry,
)


class BufferTransport:
    """Collects written frames in memory and counts flushes."""

    def __init__(self):
        self.frames: List[str] = []
        self.flushes = 0

    async def write(self, data: str) -> None:
        self.frames.append(data)

    async def flush(self) -> None:
        self.flushes += 1

    def getvalue(self) -> str:
        return "".join(self.frames)


def parse_frames(raw: str) -> List[Tuple[str, Dict[str, Any]]]:
    """Split an SSE byte stream into (event type, JSON payload) pairs."""
    events = []
    for block in raw.split("\n\n"):
        if not block.strip():
            continue
        event_type, data = None, None
        for line in block.split("\n"):
            if line.startswith("event: "):
                event_type = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        events.append((event_type, data))
    return events


class FakeToolServer:
    """In-memory stand-in for an MCP client session."""

    def __init__(self, tools: List[Dict[str, Any]], responses: Optional[Dict[str, Any]] = None):
        self.tools = tools
        self.responses = responses or {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.opened = 0
        self.closed = 0

    async def list_tools(self):
        return {"tools": self.tools}

    async def call_tool(self, name: str, arguments: Dict[str, Any]):
        self.calls.append((name, arguments))
        response = self.responses.get(name, "ok")
        if isinstance(response, Exception):
            raise response
        return {"content": [{"type": "text", "text": response}], "isError": False}


def make_session_factory(servers: Dict[str, FakeToolServer]):
    """Session factory keyed by endpoint; unknown endpoints refuse to connect."""

    @asynccontextmanager
    async def factory(endpoint: str):
        server = servers.get(endpoint)
        if server is None:
            raise ConnectionError(f"cannot reach {endpoint}")
        server.opened += 1
        try:
            yield server
        finally:
            server.closed += 1

    return factory


def make_providers(*names: str) -> ToolProviderRegistry:
    """Providers at http://<name>/ that fail fast (no retry delay)."""
    return ToolProviderRegistry(
        {
            name: ToolProviderConfig(
                name=name,
                endpoint=f"http://{name}/",
                reconnect=ReconnectPolicy(enabled=True, max_attempts=2, delay_ms=0),
            )
            for name in names
        }
    )


def tool_call(name: str, arguments: Dict[str, Any], call_id: str = "call_1"):
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
    )


def chat_reply(content: str = "", tool_calls: Optional[List[Any]] = None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls or None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def delta(text: Optional[str]):
    return SimpleNamespace(content=text, role=None)


def delta_chunk(text: Optional[str]):
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta(text))])


async def _stream(chunks):
    for chunk in chunks:
        yield chunk


class FakeCompletions:
    """``client.chat.completions`` replaying canned replies.

    Non-streaming calls return ``replies`` in order, repeating the last one
    once exhausted. Streaming calls return ``stream_chunks``.
    """

    def __init__(
        self,
        replies: Optional[List[Any]] = None,
        stream_chunks: Optional[List[Any]] = None,
        agent_error: Optional[Exception] = None,
        stream_error: Optional[Exception] = None,
    ):
        self.replies = list(replies or [])
        self.stream_chunks = list(stream_chunks or [])
        self.agent_error = agent_error
        self.stream_error = stream_error
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if kwargs.get("stream"):
            if self.stream_error is not None:
                raise self.stream_error
            return _stream(self.stream_chunks)
        if self.agent_error is not None:
            raise self.agent_error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


class FakeLLMClient:
    def __init__(self, **kwargs):
        self.completions = FakeCompletions(**kwargs)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def transport():
    return BufferTransport()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openrouter_api_key="test-key",
        sessions_dir=str(tmp_path / "sessions"),
        default_model="openai/gpt-4.1",
        agent_max_steps=10,
    )
