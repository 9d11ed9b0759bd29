"""
Static registry of tool providers (MCP servers).

Each provider is described by its endpoint and a reconnection policy. The
registry holds no live state; connections are opened per turn by
``ToolConnectionManager``.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional


@dataclass(frozen=True)
class ReconnectPolicy:
    enabled: bool = True
    max_attempts: int = 2
    delay_ms: int = 2000

    @property
    def attempts(self) -> int:
        """Number of connection attempts to make, including the first one."""
        if not self.enabled:
            return 1
        return max(1, self.max_attempts)


@dataclass(frozen=True)
class ToolProviderConfig:
    name: str
    endpoint: str
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)


DEFAULT_TOOL_PROVIDERS: Dict[str, ToolProviderConfig] = {
    "time": ToolProviderConfig(
        name="time",
        endpoint="http://time:3000/",
        reconnect=ReconnectPolicy(enabled=True, max_attempts=2, delay_ms=2000),
    ),
    "web-search": ToolProviderConfig(
        name="web-search",
        endpoint="http://web-search:3000/",
        reconnect=ReconnectPolicy(enabled=True, max_attempts=3, delay_ms=2000),
    ),
    "calculator": ToolProviderConfig(
        name="calculator",
        endpoint="http://calculator:3000/",
        reconnect=ReconnectPolicy(enabled=True, max_attempts=2, delay_ms=2000),
    ),
    "playwright": ToolProviderConfig(
        name="playwright",
        endpoint="http://playwright:3000/mcp",
        reconnect=ReconnectPolicy(enabled=True, max_attempts=3, delay_ms=2000),
    ),
}


def _endpoint_override(name: str) -> Optional[str]:
    env_name = "TOOL_PROVIDER_" + name.upper().replace("-", "_") + "_URL"
    return os.getenv(env_name)


class ToolProviderRegistry:
    """Read-only mapping of provider name to connection descriptor."""

    def __init__(self, providers: Optional[Dict[str, ToolProviderConfig]] = None):
        self._providers = dict(providers if providers is not None else DEFAULT_TOOL_PROVIDERS)

    @classmethod
    def from_env(cls) -> "ToolProviderRegistry":
        """Default providers with endpoints overridable via TOOL_PROVIDER_<NAME>_URL."""
        providers = {}
        for name, config in DEFAULT_TOOL_PROVIDERS.items():
            endpoint = _endpoint_override(name) or config.endpoint
            providers[name] = ToolProviderConfig(name, endpoint, config.reconnect)
        return cls(providers)

    def get(self, name: str) -> Optional[ToolProviderConfig]:
        return self._providers.get(name)

    def names(self) -> List[str]:
        return list(self._providers)

    def __iter__(self) -> Iterator[ToolProviderConfig]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)
