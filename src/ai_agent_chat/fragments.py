"""
Raw response fragments emitted by the model or agent runtime.

Runtimes emit fragments in several incompatible shapes. ``classify_fragment``
maps every raw fragment to exactly one variant by probing fields in a fixed
order; the first match wins, so shapes carrying extra fields that also belong
to a later shape are still classified consistently.
"""

from dataclasses import dataclass
from typing import Any, List, Union

from .utils import get_field, to_text


@dataclass(frozen=True)
class ContentFragment:
    text: str


@dataclass(frozen=True)
class AgentMessageFragment:
    messages: List[Any]


@dataclass(frozen=True)
class IterationFragment:
    iterations: List[Any]


@dataclass(frozen=True)
class StepFragment:
    steps: List[Any]


@dataclass(frozen=True)
class OutputFragment:
    output: Any


@dataclass(frozen=True)
class MessageListFragment:
    messages: List[Any]


@dataclass(frozen=True)
class UnknownFragment:
    raw: Any


ResponseFragment = Union[
    ContentFragment,
    AgentMessageFragment,
    IterationFragment,
    StepFragment,
    OutputFragment,
    MessageListFragment,
    UnknownFragment,
]


def content_text(content: Any) -> str:
    # Content given as a list of typed parts, e.g. [{"type": "text", "text": "..."}]
    if isinstance(content, list):
        texts = [get_field(part, "text") for part in content]
        if texts and all(isinstance(t, str) for t in texts):
            return "".join(texts)
    return to_text(content)


def classify_fragment(raw: Any) -> ResponseFragment:
    """Classify a raw fragment. Probe order:

    content -> agent.messages -> iterations -> steps -> output -> messages -> unknown
    """
    if raw is None or isinstance(raw, (str, bytes, int, float, bool)):
        return UnknownFragment(raw)

    content = get_field(raw, "content")
    if content:
        return ContentFragment(content_text(content))

    agent = get_field(raw, "agent")
    agent_messages = get_field(agent, "messages")
    if isinstance(agent_messages, list):
        return AgentMessageFragment(list(agent_messages))

    iterations = get_field(raw, "iterations")
    if iterations is not None:
        return IterationFragment(list(iterations) if isinstance(iterations, list) else [])

    steps = get_field(raw, "steps")
    if isinstance(steps, list):
        return StepFragment(list(steps))

    output = get_field(raw, "output")
    if output is not None:
        return OutputFragment(output)

    messages = get_field(raw, "messages")
    if isinstance(messages, list) and messages:
        return MessageListFragment(list(messages))

    return UnknownFragment(raw)
