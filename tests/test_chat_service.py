"""
Tests for chat turn cleanup when the turn is cancelled mid-stream.
"""

import asyncio
from types import SimpleNamespace

import pytest

from conftest import FakeToolServer, make_providers, make_session_factory

from ai_agent_chat.chat_service import ChatService
from ai_agent_chat.events import SessionEventChannel
from ai_agent_chat.model_catalog import ModelCatalog
from ai_agent_chat.session_manager import SessionManager
from ai_agent_chat.session_store import JsonFileSessionStore

TIME_TOOL = {"name": "current-time", "inputSchema": {"type": "object", "properties": {"timezone": {"type": "string"}}}}
ADD_TOOL = {"name": "add", "inputSchema": {"type": "object", "properties": {"a": {"type": "number"}}}}


class HangingCompletions:
    """Model calls that never return until cancelled."""

    def __init__(self):
        self.started = asyncio.Event()

    async def create(self, **kwargs):
        self.started.set()
        await asyncio.Event().wait()


@pytest.fixture
def tool_servers():
    return {
        "http://time/": FakeToolServer([TIME_TOOL]),
        "http://calculator/": FakeToolServer([ADD_TOOL]),
    }


@pytest.fixture
def completions():
    return HangingCompletions()


@pytest.fixture
def service(settings, tool_servers, completions):
    models = ModelCatalog(default_model_id=settings.default_model)
    sessions = SessionManager(JsonFileSessionStore(settings.sessions_dir), models)
    return ChatService(
        sessions,
        models,
        make_providers("time", "web-search", "calculator"),
        settings,
        llm_client_factory=lambda s: SimpleNamespace(chat=SimpleNamespace(completions=completions)),
        tool_session_factory=make_session_factory(tool_servers),
    )


class TestTurnCancellation:
    """Connections opened by a turn are closed even when the turn is cancelled."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model_id", ["openai/gpt-4.1", "meta-llama/llama-4-maverick:free"])
    async def test_cancel_while_model_is_streaming(
        self, service, completions, tool_servers, transport, model_id
    ) -> None:
        session = service.sessions.create_session()
        turn = asyncio.create_task(
            service.stream_chat_response(
                session["id"], "what time is it?", model_id, SessionEventChannel(transport)
            )
        )
        await asyncio.wait_for(completions.started.wait(), timeout=5)

        turn.cancel()
        with pytest.raises(asyncio.CancelledError):
            await turn

        for server in tool_servers.values():
            assert server.closed == server.opened

    @pytest.mark.asyncio
    async def test_tool_model_opened_connections_before_cancel(
        self, service, completions, tool_servers, transport
    ) -> None:
        session = service.sessions.create_session()
        turn = asyncio.create_task(
            service.stream_chat_response(
                session["id"], "hi", "openai/gpt-4.1", SessionEventChannel(transport)
            )
        )
        await asyncio.wait_for(completions.started.wait(), timeout=5)
        assert all(server.opened == 1 and server.closed == 0 for server in tool_servers.values())

        turn.cancel()
        with pytest.raises(asyncio.CancelledError):
            await turn
        assert all(server.closed == 1 for server in tool_servers.values())
