"""
Chooses between the tool-using agent and a direct LLM stream for one turn.

The agent runs only for tool-capable models with at least one loaded tool.
If it fails for any reason other than its step ceiling, the turn falls back
once to the direct stream::

    AGENT -> AGENT_FAILED -> FALLBACK -> DIRECT

A failure of the direct stream ends the turn.
"""

import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

from openai import AsyncOpenAI

from .agent import Agent, DirectLLM
from .config import Settings
from .errors import AgentStepLimitExceeded, RuntimeStreamFailure
from .model_catalog import LLMModel
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], Awaitable[Any]]


class RuntimeMode(Enum):
    AGENT = "agent"
    AGENT_FAILED = "agent_failed"
    FALLBACK = "fallback"
    DIRECT = "direct"


class InvocationAdapter:
    def __init__(
        self,
        client: AsyncOpenAI,
        model: LLMModel,
        tool_registry: Optional[ToolRegistry],
        settings: Settings,
        log: Optional[logging.LoggerAdapter] = None,
    ):
        self.model = model
        self.logger = log or logging.LoggerAdapter(logger, {})
        self.direct = DirectLLM(
            client,
            model.id,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
        self.agent: Optional[Agent] = None
        if model.enabled_tool_calls and tool_registry is not None and len(tool_registry) > 0:
            self.agent = Agent(
                client,
                tool_registry,
                model.id,
                max_steps=settings.agent_max_steps,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                log=self.logger,
            )
        self.mode = RuntimeMode.AGENT if self.agent else RuntimeMode.DIRECT
        self.transitions: List[RuntimeMode] = [self.mode]

    def _transition(self, mode: RuntimeMode) -> None:
        self.logger.info(f"Runtime transition: {self.mode.value} -> {mode.value}")
        self.mode = mode
        self.transitions.append(mode)

    async def stream(
        self, message: str, on_progress: Optional[ProgressCallback] = None
    ) -> AsyncIterator[Any]:
        """Yield raw fragments from the selected runtime."""
        if self.mode is RuntimeMode.AGENT:
            if on_progress:
                await on_progress("Using agent with tool capabilities...")
            try:
                async for fragment in self.agent.stream(message):
                    yield fragment
                return
            except AgentStepLimitExceeded:
                raise
            except Exception as e:
                self.logger.error(f"Agent streaming error, falling back to direct LLM: {e}")
                self._transition(RuntimeMode.AGENT_FAILED)

            self._transition(RuntimeMode.FALLBACK)
            if on_progress:
                await on_progress("Agent encountered an error, using direct LLM instead...")
            self._transition(RuntimeMode.DIRECT)
        else:
            self.logger.info(f"Model {self.model.id} streaming without tools")

        try:
            async for fragment in self.direct.stream(message):
                yield fragment
        except Exception as e:
            self.logger.error(f"LLM streaming error: {e}")
            raise RuntimeStreamFailure(str(e) or type(e).__name__) from e
