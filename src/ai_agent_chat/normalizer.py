"""
Stream normalizer: turns raw runtime fragments into chat events.

One ``StreamNormalizer`` drives one assistant turn through::

    IDLE -> STREAMING -> DONE | ERROR

Text extracted from fragments is accumulated and emitted as ``Content`` deltas
under the turn's id; tool calls and tool results become ``Progress`` notes and
are never part of the accumulated text. At end of stream the whole accumulated
text is emitted once more, persisted, and the turn ends with ``Done``.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterable, Awaitable, Callable, List, Optional

from .errors import AgentStepLimitExceeded
from .events import Content, Done, Error, NormalizedEvent, Progress, SessionEventChannel
from .fragments import (
    AgentMessageFragment,
    ContentFragment,
    IterationFragment,
    MessageListFragment,
    OutputFragment,
    StepFragment,
    classify_fragment,
    content_text,
)
from .utils import get_field, to_text, truncate

logger = logging.getLogger(__name__)

MAX_PROGRESS_OUTPUT = 500


class TurnState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


@dataclass
class ChatTurn:
    turn_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    accumulated_text: str = ""
    tools_loaded: bool = False
    state: TurnState = TurnState.IDLE

    @property
    def finished(self) -> bool:
        return self.state in (TurnState.DONE, TurnState.ERROR)


PersistCallback = Callable[[ChatTurn], Awaitable[None]]


def _tool_call_note(call: Any) -> str:
    name = get_field(call, "name") or "unknown"
    args = get_field(call, "args") or {}
    return f"Using tool: {name} with input: {json.dumps(args, ensure_ascii=False, default=str)}"


class StreamNormalizer:
    def __init__(
        self,
        channel: SessionEventChannel,
        turn: Optional[ChatTurn] = None,
        persist: Optional[PersistCallback] = None,
        log: Optional[logging.LoggerAdapter] = None,
    ):
        self.channel = channel
        self.turn = turn or ChatTurn()
        self.persist = persist
        self.logger = log or logging.LoggerAdapter(logger, {})

    @property
    def state(self) -> TurnState:
        return self.turn.state

    async def _emit(self, event: NormalizedEvent) -> None:
        if self.turn.finished:
            self.logger.warning(f"Turn {self.turn.turn_id} already finished, dropping {event}")
            return
        await self.channel.emit(event)

    async def start(self) -> None:
        """Enter STREAMING, telling the client the model is working."""
        if self.turn.state is not TurnState.IDLE:
            return
        self.turn.state = TurnState.STREAMING
        await self._emit(Progress("Thinking..."))

    async def progress(self, note: str) -> None:
        await self._emit(Progress(note))

    async def fail(self, message: str) -> None:
        """End the turn with an error. Later events are dropped."""
        if self.turn.finished:
            return
        await self._emit(Error(message))
        self.turn.state = TurnState.ERROR

    async def run(self, fragments: AsyncIterable[Any]) -> None:
        """Consume a fragment stream to a terminal event; never raises."""
        try:
            await self.start()
            async for raw in fragments:
                await self.handle(raw)
            await self._finish()
        except AgentStepLimitExceeded as e:
            self.logger.warning(f"Agent step limit reached: {e}")
            await self.fail(e.message)
        except Exception as e:
            self.logger.error(f"Error in chat stream: {e}", exc_info=True)
            await self.fail(str(e) or "Unknown error")

    async def handle(self, raw: Any) -> None:
        """Extract text and progress notes from one raw fragment."""
        fragment = classify_fragment(raw)

        if isinstance(fragment, ContentFragment):
            await self._append(fragment.text)
        elif isinstance(fragment, AgentMessageFragment):
            for message in fragment.messages:
                await self._agent_message(message)
        elif isinstance(fragment, IterationFragment):
            if fragment.iterations:
                await self._iteration(fragment.iterations[-1])
        elif isinstance(fragment, StepFragment):
            if fragment.steps:
                last_step = fragment.steps[-1]
                text = get_field(last_step, "output") or get_field(last_step, "result")
                if text:
                    await self._append(to_text(text))
        elif isinstance(fragment, OutputFragment):
            await self._append(to_text(fragment.output))
        elif isinstance(fragment, MessageListFragment):
            await self._message(fragment.messages[-1])
        else:
            self.logger.debug(f"Ignoring unrecognized fragment: {fragment.raw!r}")

    async def _append(self, text: str) -> None:
        if not text:
            return
        self.turn.accumulated_text += text
        await self._emit(Content(text, self.turn.turn_id))

    async def _agent_message(self, message: Any) -> None:
        kwargs = get_field(message, "kwargs")
        content = get_field(kwargs, "content") or get_field(message, "content")
        if content:
            await self._append(content_text(content))

        tool_calls = get_field(kwargs, "tool_calls") or get_field(message, "tool_calls") or []
        for call in tool_calls:
            await self.progress(_tool_call_note(call))

    async def _iteration(self, iteration: Any) -> None:
        output = get_field(get_field(iteration, "result"), "output")
        if output:
            await self._append(to_text(output))
            return

        action_result = get_field(iteration, "action_result")
        if action_result:
            await self.progress(
                f"Tool result: {truncate(to_text(action_result), MAX_PROGRESS_OUTPUT)}"
            )
            return

        action = get_field(iteration, "action")
        if action:
            await self.progress(_tool_call_note(action))

    async def _message(self, message: Any) -> None:
        tool_calls: List[Any] = get_field(message, "tool_calls") or []
        if tool_calls:
            for call in tool_calls:
                await self.progress(_tool_call_note(call))
        elif get_field(message, "name"):
            output = to_text(get_field(message, "content", ""))
            await self.progress(f"Tool output: {truncate(output, MAX_PROGRESS_OUTPUT)}")
        else:
            content = get_field(message, "content")
            if content:
                await self._append(content_text(content))

    async def _finish(self) -> None:
        text = self.turn.accumulated_text
        if text:
            # Full text once more in case a shape produced no delta
            await self._emit(Content(text, self.turn.turn_id))
        if self.persist is not None:
            await self.persist(self.turn)
        await self._emit(Done())
        self.turn.state = TurnState.DONE
