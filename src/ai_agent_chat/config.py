"""Server configuration loaded from the environment (and an optional .env file)."""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    port: int = 3001
    host: str = "0.0.0.0"
    environment: str = "development"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"

    # OpenRouter (OpenAI-compatible) endpoint
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4.1"
    temperature: float = 0.1
    max_tokens: int = 5000

    agent_max_steps: int = 10
    sessions_dir: str = "data/sessions"
    brave_api_key: str = ""


def load_settings() -> Settings:
    """Build settings from environment variables, falling back to defaults."""
    environment = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development"
    return Settings(
        port=int(os.getenv("PORT", "3001")),
        host=os.getenv("HOST", "0.0.0.0"),
        environment=environment,
        cors_origins=_env_list("CORS_ORIGIN", DEFAULT_CORS_ORIGINS),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        openrouter_api_key=os.getenv("OPENROUTER_API_KEY", ""),
        openrouter_base_url=os.getenv(
            "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
        ),
        default_model=os.getenv("OPENROUTER_DEFAULT_MODEL", "openai/gpt-4.1"),
        temperature=float(os.getenv("LLM_TEMPERATURE", "0.1")),
        max_tokens=int(os.getenv("LLM_MAX_TOKENS", "5000")),
        agent_max_steps=int(os.getenv("AGENT_MAX_STEPS", "10")),
        sessions_dir=os.getenv("SESSIONS_DIR", "data/sessions"),
        brave_api_key=os.getenv("BRAVE_API_KEY", ""),
    )
