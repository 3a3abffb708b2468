"""Model catalog: which provider serves which model id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from streamgate.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


@dataclass(frozen=True)
class ModelSpec:
    """One selectable model."""

    id: str
    name: str
    provider: str
    #: False for models that reject tool declarations (e.g. vision previews).
    tools: bool = True
    thinking_budget: int | None = None


class ModelCatalog:
    """Ordered model table; the first entry is the fallback."""

    def __init__(self, models: Iterable[ModelSpec]) -> None:
        self._models = tuple(models)
        if not self._models:
            raise ConfigurationError("ModelCatalog needs at least one model")
        self._by_id = {m.id: m for m in self._models}

    def __iter__(self) -> Iterator[ModelSpec]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def get(self, model_id: str) -> ModelSpec | None:
        return self._by_id.get(model_id)

    def find(self, model_id: str | None) -> ModelSpec:
        """Return the spec for *model_id*, or the first entry when unknown."""
        if model_id is None:
            return self._models[0]
        return self._by_id.get(model_id, self._models[0])

    def for_provider(self, provider: str) -> list[ModelSpec]:
        provider = provider.lower()
        return [m for m in self._models if m.provider == provider]


DEFAULT_MODELS: tuple[ModelSpec, ...] = (
    ModelSpec("gemini-3-flash-preview", "Gemini 3 Flash", "gemini"),
    ModelSpec("gemini-3-pro-preview", "Gemini 3 Pro", "gemini", thinking_budget=1024),
    ModelSpec("claude-sonnet-4-5", "Claude Sonnet 4.5", "anthropic"),
    ModelSpec("llama-3.3-70b-versatile", "Llama 3.3 70B (Groq)", "groq"),
    ModelSpec("deepseek-r1-distill-llama-70b", "DeepSeek R1 (Groq)", "groq"),
    ModelSpec(
        "llama-3.2-90b-vision-preview", "Llama 3.2 Vision", "groq", tools=False
    ),
    ModelSpec("deepseek-chat", "DeepSeek Chat", "deepseek"),
    ModelSpec("gpt-4o", "GPT-4o", "openai"),
    ModelSpec("grok-2-latest", "Grok 2", "xai"),
    ModelSpec("mistral-large-latest", "Mistral Large", "mistral"),
    ModelSpec("openai/gpt-4o", "GPT-4o (OpenRouter)", "openrouter"),
    ModelSpec(
        "anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet (OpenRouter)", "openrouter"
    ),
    ModelSpec("veo-3.1-fast-generate-preview", "Veo 3.1 Fast", "veo", tools=False),
    ModelSpec(
        "gemini-2.5-flash-image",
        "Gemini 2.5 Flash Image",
        "gemini-image",
        tools=False,
    ),
    ModelSpec(
        "gemini-3-pro-image-preview",
        "Gemini 3 Pro Image",
        "gemini-image",
        tools=False,
    ),
    ModelSpec("dall-e-3", "DALL-E 3", "openai-image", tools=False),
)


def default_catalog() -> ModelCatalog:
    return ModelCatalog(DEFAULT_MODELS)
