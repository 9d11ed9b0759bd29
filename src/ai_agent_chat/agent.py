import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from .config import Settings
from .errors import AgentStepLimitExceeded, ChatError
from .tool_registry import ToolCall, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_AGENT_PROMPT = (
    "You're a helpful AI assistant. Use the provided tools when necessary "
    "to answer the user's question."
)


class TurnLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that automatically injects turn_id into structured logs."""

    def __init__(self, logger, turn_id):
        self.turn_id = turn_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        # Inject turn_id into structured logs
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["turn_id"] = self.turn_id
        return msg, kwargs


def create_llm_client(settings: Settings) -> AsyncOpenAI:
    """Create an OpenAI-compatible client for the OpenRouter endpoint."""
    if not settings.openrouter_api_key:
        raise ChatError("OPENROUTER_API_KEY is not configured")
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        default_headers={
            "HTTP-Referer": "https://ai-agent-chat.example.com",
            "X-Title": "AI Agent Chat",
        },
    )


def _parse_tool_calls(reply) -> List[ToolCall]:
    calls = []
    for item in getattr(reply, "tool_calls", None) or []:
        raw_arguments = item.function.arguments or ""
        try:
            arguments = json.loads(raw_arguments) if raw_arguments else {}
        except json.JSONDecodeError:
            arguments = {"input": raw_arguments}
        if not isinstance(arguments, dict):
            arguments = {"input": arguments}
        calls.append(ToolCall(name=item.function.name, arguments=arguments, call_id=item.id))
    return calls


class DirectLLM:
    """Single-pass streaming completion without tools."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model_name: str,
        temperature: float = 0.1,
        max_tokens: int = 5000,
    ):
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def stream(self, message: str) -> AsyncIterator[Any]:
        """Yield the raw deltas of a streamed completion."""
        stream = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[{"role": "user", "content": message}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=True,
        )
        async for chunk in stream:
            if chunk.choices:
                yield chunk.choices[0].delta


class Agent:
    """Tool-using agent bounded by a step ceiling.

    Every model call and every round of tool calls counts as one step. Output
    is yielded as update fragments: ``{"agent": {"messages": [...]}}`` after
    each model call and ``{"messages": [tool message]}`` after each tool call.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        tool_registry: ToolRegistry,
        model_name: str,
        system_prompt: str = DEFAULT_AGENT_PROMPT,
        max_steps: int = 10,
        temperature: float = 0.1,
        max_tokens: int = 5000,
        log: Optional[logging.LoggerAdapter] = None,
    ):
        self.client = client
        self.tool_registry = tool_registry
        self.model_name = model_name
        self.system_prompt = system_prompt
        self.max_steps = max_steps  # Prevent unbounded tool call loops
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.logger = log or logging.LoggerAdapter(logger, {})

    def _create_args(self, context: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "model": self.model_name,
            "messages": list(context),
            "tools": self.tool_registry.get_schemas(),
            "tool_choice": "auto",
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def stream(self, message: str) -> AsyncIterator[Dict[str, Any]]:
        """Run the tool call loop for one user message."""
        context: List[Dict[str, Any]] = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": message},
        ]
        steps = 0

        while True:
            if steps >= self.max_steps:
                raise AgentStepLimitExceeded(self.max_steps)

            response = await self.client.chat.completions.create(**self._create_args(context))
            steps += 1
            reply = response.choices[0].message
            content = reply.content or ""
            tool_calls = _parse_tool_calls(reply)

            self.logger.info(
                "Model response received",
                extra={
                    "structured": {
                        "log_type": "message",
                        "role": "assistant",
                        "content": content,
                        "tool_calls": [call.name for call in tool_calls],
                    }
                },
            )
            yield {
                "agent": {
                    "messages": [
                        {
                            "role": "assistant",
                            "content": content,
                            "tool_calls": [
                                {"id": c.call_id, "name": c.name, "args": c.arguments}
                                for c in tool_calls
                            ],
                        }
                    ]
                }
            }

            if not tool_calls:
                return

            context.append(
                {
                    "role": "assistant",
                    "content": content,
                    "tool_calls": [
                        {
                            "id": item.id,
                            "type": "function",
                            "function": {
                                "name": item.function.name,
                                "arguments": item.function.arguments,
                            },
                        }
                        for item in reply.tool_calls
                    ],
                }
            )

            if steps >= self.max_steps:
                raise AgentStepLimitExceeded(self.max_steps)

            # One tool call at a time
            for call in tool_calls:
                self.logger.info(
                    "Tool call received",
                    extra={
                        "structured": {
                            "log_type": "tool_call",
                            "tool_name": call.name,
                            "arguments": call.arguments,
                            "call_id": call.call_id,
                        }
                    },
                )
                output = await self.tool_registry.execute_tool_call(call.name, call.arguments)
                self.logger.info(
                    "Tool result received",
                    extra={
                        "structured": {
                            "log_type": "tool_result",
                            "tool_name": call.name,
                            "result": output,
                        }
                    },
                )
                context.append(
                    {"role": "tool", "tool_call_id": call.call_id, "content": output}
                )
                yield {
                    "messages": [
                        {
                            "role": "tool",
                            "name": call.name,
                            "content": output,
                            "tool_call_id": call.call_id,
                        }
                    ]
                }
            steps += 1
