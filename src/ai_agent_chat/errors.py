"""Error taxonomy for chat turns.

Provider and tool failures are recovered where they happen; only the step
limit, a failed fallback stream and missing sessions or models end a turn.
"""


class ChatError(Exception):
    """Base class for errors raised while processing a chat turn."""


class ProviderUnavailable(ChatError):
    """A tool provider could not be reached or introspected."""

    def __init__(self, provider_name: str, reason: str):
        self.provider_name = provider_name
        self.reason = reason
        super().__init__(f"Tool provider '{provider_name}' unavailable: {reason}")


class ToolInvocationFailed(ChatError):
    """A remote tool call raised or returned malformed data."""

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Tool '{tool_name}' failed: {reason}")


class AgentStepLimitExceeded(ChatError):
    """The agent hit its step ceiling without producing a final answer."""

    message = "Agent reached maximum number of steps without completing the task"

    def __init__(self, max_steps: int):
        self.max_steps = max_steps
        super().__init__(self.message)


class RuntimeStreamFailure(ChatError):
    """The model stream failed and no fallback is left for this turn."""


class SessionNotFound(ChatError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class ModelNotFound(ChatError):
    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model not found: {model_id}")
