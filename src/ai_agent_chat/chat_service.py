"""
One chat turn end to end: look up the session and model, load tools, run the
selected runtime and stream normalized events to the client.
"""

import logging
from typing import Callable, Optional

from openai import AsyncOpenAI

from .agent import TurnLoggerAdapter, create_llm_client
from .config import Settings
from .errors import ModelNotFound, SessionNotFound
from .events import Error, SessionEventChannel
from .invocation import InvocationAdapter
from .model_catalog import ModelCatalog
from .normalizer import ChatTurn, StreamNormalizer
from .session_manager import SessionManager
from .session_store import new_message
from .tool_connections import SessionFactory, ToolConnectionManager
from .tool_providers import ToolProviderRegistry
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

LLMClientFactory = Callable[[Settings], AsyncOpenAI]


class ChatService:
    def __init__(
        self,
        sessions: SessionManager,
        models: ModelCatalog,
        providers: ToolProviderRegistry,
        settings: Settings,
        llm_client_factory: LLMClientFactory = create_llm_client,
        tool_session_factory: Optional[SessionFactory] = None,
    ):
        self.sessions = sessions
        self.models = models
        self.providers = providers
        self.settings = settings
        self.llm_client_factory = llm_client_factory
        self.tool_session_factory = tool_session_factory

    async def stream_chat_response(
        self, session_id: str, message: str, model_id: str, channel: SessionEventChannel
    ) -> ChatTurn:
        """
        Run one turn, writing every event to ``channel``.

        Always ends with exactly one terminal event (``done``, or ``error``
        followed by ``done``) and never raises.
        """
        turn = ChatTurn()

        if self.sessions.get_session(session_id) is None:
            await channel.emit(Error(str(SessionNotFound(session_id))))
            return turn
        model = self.models.get_model_by_id(model_id)
        if model is None:
            await channel.emit(Error(str(ModelNotFound(model_id))))
            return turn

        log = TurnLoggerAdapter(logger, turn.turn_id)
        log.info(
            f"Chat turn started for session {session_id} with model {model.id}",
            extra={
                "structured": {
                    "log_type": "turn_start",
                    "session_id": session_id,
                    "model_id": model.id,
                }
            },
        )

        async def persist(finished: ChatTurn) -> None:
            saved = self.sessions.append_message(
                session_id,
                new_message("assistant", finished.accumulated_text, finished.turn_id),
            )
            if saved is None:
                raise SessionNotFound(session_id)

        normalizer = StreamNormalizer(channel, turn, persist=persist, log=log)
        try:
            self.sessions.append_message(session_id, new_message("user", message))
            client = self.llm_client_factory(self.settings)

            async with ToolConnectionManager(self.providers, self.tool_session_factory) as tools:
                registry = None
                if model.enabled_tool_calls:
                    registry = await self._load_tools(tools, normalizer)
                else:
                    log.info(f"Model {model.id} does not support tool calls, using direct LLM")

                adapter = InvocationAdapter(client, model, registry, self.settings, log)
                await normalizer.start()
                await normalizer.run(adapter.stream(message, on_progress=normalizer.progress))
                log.info(
                    "Chat turn finished",
                    extra={
                        "structured": {
                            "log_type": "turn_end",
                            "state": turn.state.value,
                            "transitions": [mode.value for mode in adapter.transitions],
                        }
                    },
                )
        except Exception as e:
            log.error(f"Error in stream_chat_response: {e}", exc_info=True)
            await normalizer.fail(str(e) or "Unknown error")
        return turn

    async def _load_tools(
        self, tools: ToolConnectionManager, normalizer: StreamNormalizer
    ) -> Optional[ToolRegistry]:
        await normalizer.progress("Loading tools...")
        try:
            registry = await tools.load_tools()
        except Exception as e:
            logger.error(f"Error loading tools: {e}")
            await normalizer.progress("Error loading tools, using direct LLM instead")
            return None

        if len(registry) == 0:
            await normalizer.progress("No tools were loaded, using direct LLM instead")
            return None

        normalizer.turn.tools_loaded = True
        await normalizer.progress(f"Loaded {len(registry)} tools from tool servers")
        return registry
