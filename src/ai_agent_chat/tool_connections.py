"""
Per-turn connections to tool providers (MCP servers over streamable HTTP).

A ``ToolConnectionManager`` is created for one chat turn and used as an async
context manager: connections it opens are owned by that turn and closed when
the turn ends, whether it completed, failed or was cancelled.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

from mcp import ClientSession, McpError
from mcp.client.streamable_http import streamablehttp_client
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .errors import ProviderUnavailable, ToolInvocationFailed
from .tool_providers import ToolProviderConfig, ToolProviderRegistry
from .tool_registry import (
    ToolDescriptor,
    ToolInvoker,
    ToolRegistry,
    build_input_description,
    build_tool_description,
    make_display_name,
    resolve_tool_arguments,
)
from .utils import get_field, to_text

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str], Any]  # endpoint -> async context manager yielding a session


@asynccontextmanager
async def open_mcp_session(endpoint: str) -> AsyncIterator[ClientSession]:
    """Open and initialize an MCP client session over streamable HTTP."""
    async with streamablehttp_client(endpoint) as (read_stream, write_stream, _):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            yield session


def format_tool_result(result: Any) -> str:
    """Render a tool call result as the observation text handed to the agent."""
    if isinstance(result, str):
        return result

    texts = [get_field(item, "text") for item in (get_field(result, "content") or [])]
    texts = [text for text in texts if isinstance(text, str)]
    if texts:
        text = "\n".join(texts)
    elif hasattr(result, "model_dump"):
        text = to_text(result.model_dump(mode="json", exclude_none=True))
    else:
        text = to_text(result)

    if get_field(result, "isError"):
        return f"Error: {text}"
    return text


class ToolProviderConnection:
    """A session with one tool provider.

    The session lives inside a dedicated task: the transport's cancel scopes
    must be exited by the task that entered them, and connect calls are fanned
    out across tasks.
    """

    def __init__(
        self, config: ToolProviderConfig, session_factory: SessionFactory = open_mcp_session
    ):
        self.config = config
        self.session = None
        self.connected = False
        self.tools: Dict[str, ToolDescriptor] = {}  # raw name -> descriptor
        self._session_factory = session_factory
        self._task: Optional[asyncio.Task] = None
        self._closing = asyncio.Event()

    @property
    def provider_name(self) -> str:
        return self.config.name

    @property
    def endpoint(self) -> str:
        return self.config.endpoint

    async def open(self) -> None:
        """Open a session, raising if the provider cannot be reached."""
        ready = asyncio.get_running_loop().create_future()
        self._closing = asyncio.Event()
        self._task = asyncio.create_task(
            self._hold_session(ready), name=f"tool-provider-{self.provider_name}"
        )
        try:
            await ready
        except asyncio.CancelledError:
            self._task.cancel()
            raise
        except Exception:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
            raise

    async def _hold_session(self, ready: asyncio.Future) -> None:
        try:
            async with self._session_factory(self.endpoint) as session:
                self.session = session
                self.connected = True
                ready.set_result(None)
                await self._closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.error(f"Tool provider \"{self.provider_name}\" session ended: {e}")
        finally:
            self.connected = False
            self.session = None
            if not ready.done():
                ready.set_exception(ConnectionError("session closed before it was ready"))

    async def close(self, timeout: float = 5.0) -> None:
        if self._task is None:
            return
        self._closing.set()
        try:
            await asyncio.wait_for(self._task, timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Timed out closing tool provider \"{self.provider_name}\", session cancelled"
            )
        finally:
            self._task = None
            self.connected = False
            self.session = None


class ToolConnectionManager:
    """Connects to tool providers, lists their tools and invokes them for one turn."""

    def __init__(
        self,
        providers: ToolProviderRegistry,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.providers = providers
        self._session_factory = session_factory or open_mcp_session
        self.connections: Dict[str, ToolProviderConnection] = {}

    async def __aenter__(self) -> "ToolConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close_all()

    async def connect(
        self, provider_name: str
    ) -> Union[ToolProviderConnection, ProviderUnavailable]:
        """
        Connect to a provider, honouring its reconnect policy.

        Returns:
            The live connection, or a ``ProviderUnavailable`` describing the failure
        """
        existing = self.connections.get(provider_name)
        if existing is not None and existing.connected:
            return existing

        config = self.providers.get(provider_name)
        if config is None:
            return ProviderUnavailable(provider_name, "provider is not configured")

        if existing is not None:
            # A session dropped by a transport error still holds its task open
            await self.close(existing)
        connection = existing or ToolProviderConnection(config, self._session_factory)
        self.connections[provider_name] = connection

        attempts = config.reconnect.attempts
        try:
            async for attempt in self._retrying(config):
                with attempt:
                    logger.info(
                        f"Connecting to tool provider \"{provider_name}\" at {config.endpoint} "
                        f"(attempt {attempt.retry_state.attempt_number}/{attempts})"
                    )
                    await connection.open()
        except Exception as e:
            logger.error(f"Failed to connect to tool provider \"{provider_name}\": {e}")
            return ProviderUnavailable(provider_name, str(e))

        logger.info(f"Successfully connected to tool provider \"{provider_name}\"")
        return connection

    @staticmethod
    def _retrying(config: ToolProviderConfig) -> AsyncRetrying:
        provider_name = config.name

        def log_failure(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Connection to tool provider \"{provider_name}\" failed: "
                f"{retry_state.outcome.exception()}"
            )

        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(config.reconnect.attempts),
            wait=wait_fixed(config.reconnect.delay_ms / 1000),
            retry=retry_if_exception_type(Exception),
            before_sleep=log_failure,
        )

    async def list_tools(self, connection: ToolProviderConnection) -> List[ToolDescriptor]:
        """Introspect a provider's tool catalog into descriptors."""
        if not connection.connected or connection.session is None:
            raise ProviderUnavailable(connection.provider_name, "not connected")

        result = await connection.session.list_tools()
        provider_name = connection.provider_name

        descriptors = []
        for tool in get_field(result, "tools") or []:
            raw_name = get_field(tool, "name")
            if not raw_name:
                continue
            input_schema = get_field(tool, "inputSchema")
            descriptors.append(
                ToolDescriptor(
                    provider_name=provider_name,
                    raw_name=raw_name,
                    display_name=make_display_name(provider_name, raw_name),
                    argument_schema=input_schema,
                    description=build_tool_description(
                        provider_name,
                        raw_name,
                        get_field(tool, "description"),
                        input_schema,
                        get_field(tool, "annotations"),
                    ),
                    input_description=build_input_description(
                        provider_name, raw_name, input_schema
                    ),
                )
            )

        connection.tools = {d.raw_name: d for d in descriptors}
        logger.info(
            f"Tool provider \"{provider_name}\" offers {len(descriptors)} tools",
            extra={
                "structured": {
                    "log_type": "tool_catalog",
                    "provider": provider_name,
                    "tools": [d.raw_name for d in descriptors],
                }
            },
        )
        return descriptors

    async def invoke(
        self,
        connection: ToolProviderConnection,
        tool_name: str,
        raw_input: str,
        structured_args: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Call a remote tool with the model's raw input.

        Failures are returned as ``"Error: ..."`` text, never raised.
        """
        provider_name = connection.provider_name
        descriptor = connection.tools.get(tool_name)
        schema = descriptor.argument_schema if descriptor else None

        try:
            if not connection.connected or connection.session is None:
                raise ToolInvocationFailed(
                    tool_name, f"provider '{provider_name}' is not connected"
                )

            params = resolve_tool_arguments(
                provider_name, tool_name, schema, raw_input, structured_args
            )
            logger.info(
                f"Calling tool {tool_name} on {provider_name} with params: {params}",
                extra={
                    "structured": {
                        "log_type": "tool_call",
                        "tool_name": tool_name,
                        "arguments": params,
                    }
                },
            )
            result = await connection.session.call_tool(tool_name, params)
            return format_tool_result(result)
        except (McpError, ToolInvocationFailed) as e:
            logger.error(f"Error calling tool {tool_name} on {provider_name}: {e}")
            return f"Error: {e}"
        except Exception as e:
            # Transport failure: the session can no longer be trusted
            connection.connected = False
            logger.error(f"Error calling tool {tool_name} on {provider_name}: {e}")
            return f"Error: {e}"

    async def close(self, connection: ToolProviderConnection) -> None:
        try:
            await connection.close()
            logger.info(f"Closed connection to tool provider \"{connection.provider_name}\"")
        except Exception as e:
            logger.error(
                f"Error closing connection to tool provider \"{connection.provider_name}\": {e}"
            )

    async def close_all(self) -> None:
        connections = list(self.connections.values())
        self.connections.clear()
        for connection in connections:
            await self.close(connection)

    async def load_tools(self) -> ToolRegistry:
        """
        Connect to every provider concurrently and collect their tools.

        A provider that fails to connect or list its tools is skipped; the
        turn continues with whatever loaded.
        """
        configs = list(self.providers)
        results = await asyncio.gather(*(self._load_provider(c) for c in configs))

        registry = ToolRegistry()
        loaded = []
        for config, result in zip(configs, results):
            if result is None:
                continue
            connection, descriptors = result
            for descriptor in descriptors:
                registry.register(descriptor, self._bind(connection, descriptor.raw_name))
            loaded.append(config.name)

        logger.info(
            f"Successfully loaded {len(registry)} tools from providers: {', '.join(loaded)}"
        )
        return registry

    async def _load_provider(
        self, config: ToolProviderConfig
    ) -> Optional[Tuple[ToolProviderConnection, List[ToolDescriptor]]]:
        connection = await self.connect(config.name)
        if isinstance(connection, ProviderUnavailable):
            return None
        try:
            descriptors = await self.list_tools(connection)
        except Exception as e:
            logger.error(f"Error getting tools from tool provider \"{config.name}\": {e}")
            return None
        return connection, descriptors

    def _bind(self, connection: ToolProviderConnection, tool_name: str) -> ToolInvoker:
        async def invoke(
            raw_input: str, structured_args: Optional[Dict[str, Any]] = None
        ) -> str:
            return await self.invoke(connection, tool_name, raw_input, structured_args)

        return invoke
