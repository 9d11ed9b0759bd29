"""
AI Agent Chat - a streaming chat server for LLMs with dynamically discovered tools.

Tools are loaded per turn from MCP tool servers. Responses from either a
tool-using agent or a direct model stream are normalized into a small event
protocol (message, thinking, error, done) sent over server-sent events.
"""

__version__ = "0.1.0"

from .agent import Agent, DirectLLM
from .events import SessionEventChannel
from .normalizer import StreamNormalizer
from .tool_connections import ToolConnectionManager
from .tool_registry import ToolRegistry

__all__ = [
    "Agent",
    "DirectLLM",
    "SessionEventChannel",
    "StreamNormalizer",
    "ToolConnectionManager",
    "ToolRegistry",
]
