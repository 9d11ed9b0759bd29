"""Static catalog of selectable models."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class LLMModel:
    id: str
    name: str
    provider: str
    description: str = ""
    enabled_tool_calls: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "description": self.description,
            "enabledToolCalls": self.enabled_tool_calls,
        }


MODELS: List[LLMModel] = [
    LLMModel(
        id="openai/gpt-4.1-nano",
        name="GPT-4.1 Nano",
        provider="OpenAI",
        description="Fastest and cheapest model in the GPT-4.1 series, for latency-sensitive use.",
        enabled_tool_calls=True,
    ),
    LLMModel(
        id="arcee-ai/caller-large",
        name="Arcee AI: Caller Large",
        provider="Arcee AI",
        description="Arcee's function-calling specialist built to orchestrate external tools and APIs.",
        enabled_tool_calls=True,
    ),
    LLMModel(
        id="meta-llama/llama-4-maverick:free",
        name="Llama 4 Maverick (Free)",
        provider="Meta",
        description="Meta's latest model with strong language understanding and reasoning.",
        enabled_tool_calls=False,
    ),
    LLMModel(
        id="deepseek/deepseek-chat-v3-0324:free",
        name="DeepSeek Chat v3.0324 (Free)",
        provider="DeepSeek",
        description="DeepSeek's latest chat model.",
        enabled_tool_calls=False,
    ),
    LLMModel(
        id="openai/gpt-4.1",
        name="GPT-4.1",
        provider="OpenAI",
        description="OpenAI's general-purpose GPT-4.1 model.",
        enabled_tool_calls=True,
    ),
    LLMModel(
        id="openai/o3-mini-high",
        name="gpt-o3-mini-high",
        provider="OpenAI",
        description="o3-mini with reasoning effort set to high, tuned for STEM reasoning.",
        enabled_tool_calls=True,
    ),
    LLMModel(
        id="google/gemini-2.5-flash-preview",
        name="Gemini 2.5 Flash",
        provider="Google",
        description="Google's latest fast model.",
        enabled_tool_calls=True,
    ),
    LLMModel(
        id="google/gemini-2.0-flash-001",
        name="Google Gemini 2.0 Flash",
        provider="Google",
        description="Google's high-performance conversational model.",
        enabled_tool_calls=True,
    ),
    LLMModel(
        id="anthropic/claude-3.7-sonnet",
        name="Anthropic Claude 3.7 Sonnet",
        provider="Anthropic",
        description="Anthropic's high-performance model, strong at coding.",
        enabled_tool_calls=True,
    ),
]


class ModelCatalog:
    def __init__(self, models: Optional[List[LLMModel]] = None, default_model_id: str = ""):
        self.models = list(models if models is not None else MODELS)
        self.default_model_id = default_model_id

    def list_models(self) -> List[LLMModel]:
        return list(self.models)

    def get_model_by_id(self, model_id: str) -> Optional[LLMModel]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def get_default_model(self) -> LLMModel:
        """Configured default model, or the first model when it is not in the catalog."""
        return self.get_model_by_id(self.default_model_id) or self.models[0]
