"""Provider capability registry: which transport each provider speaks."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

from streamgate.errors import ConfigurationError, UnknownProviderError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

TransportKind = Literal[
    "sdk-native", "openai-compatible", "raw-sse", "long-poll", "image"
]
TRANSPORT_KINDS: tuple[TransportKind, ...] = (
    "sdk-native",
    "openai-compatible",
    "raw-sse",
    "long-poll",
    "image",
)


@dataclass(frozen=True)
class ProviderCapabilities:
    """Feature flags exposed by providers."""

    tools: bool = False
    vision: bool = False
    grounding: bool = False


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one provider."""

    id: str
    transport: TransportKind
    capabilities: ProviderCapabilities = field(default_factory=ProviderCapabilities)
    #: Meaning depends on transport: API base URL, or None for SDK defaults.
    base_endpoint: str | None = None
    #: Backing SDK for ``sdk-native`` and ``image`` providers.
    sdk: str | None = None
    #: Pool to draw secrets from; defaults to ``id``.
    credential_pool: str = ""
    requires_credential: bool = True
    #: Extra env vars read after the standard names (e.g. a generic ``API_KEY``).
    fallback_env: tuple[str, ...] = ()
    #: Stored read-only; left out of the hash.
    extra_headers: Mapping[str, str] = field(default_factory=dict, hash=False)
    extra_body: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.transport not in TRANSPORT_KINDS:
            raise ConfigurationError(f"Unknown transport kind: {self.transport!r}")
        if self.transport in ("sdk-native", "image") and not self.sdk:
            raise ConfigurationError(
                f"{self.transport} provider {self.id!r} must name its sdk"
            )
        if not self.credential_pool:
            object.__setattr__(self, "credential_pool", self.id)
        object.__setattr__(
            self, "extra_headers", MappingProxyType(dict(self.extra_headers))
        )
        object.__setattr__(self, "extra_body", MappingProxyType(dict(self.extra_body)))


class ProviderRegistry:
    """Immutable lookup table of provider descriptors."""

    def __init__(self, descriptors: Iterable[ProviderDescriptor]) -> None:
        table: dict[str, ProviderDescriptor] = {}
        for d in descriptors:
            key = d.id.lower()
            if key in table:
                raise ConfigurationError(f"Duplicate provider id: {d.id!r}")
            table[key] = d
        self._table = MappingProxyType(table)

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._table.values())

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.lower() in self._table

    def resolve(self, provider_id: str) -> ProviderDescriptor:
        """Return the descriptor for *provider_id* (case-insensitive)."""
        try:
            return self._table[provider_id.lower()]
        except KeyError:
            raise UnknownProviderError(
                f"Unknown provider: {provider_id!r}",
                hint=f"Known providers: {', '.join(sorted(self._table))}",
            ) from None


def default_registry(
    *, app_url: str = "https://localhost", app_title: str = "streamgate"
) -> ProviderRegistry:
    """Return the standard provider table.

    ``app_url``/``app_title`` identify the calling application to OpenRouter.
    """
    chat = ProviderCapabilities(tools=True, vision=True)
    return ProviderRegistry(
        [
            ProviderDescriptor(
                id="gemini",
                transport="sdk-native",
                sdk="google-genai",
                capabilities=ProviderCapabilities(
                    tools=True, vision=True, grounding=True
                ),
                fallback_env=("API_KEY",),
            ),
            ProviderDescriptor(
                id="anthropic",
                transport="sdk-native",
                sdk="anthropic",
                capabilities=chat,
            ),
            ProviderDescriptor(
                id="groq",
                transport="openai-compatible",
                capabilities=chat,
                base_endpoint="https://api.groq.com/openai/v1",
            ),
            ProviderDescriptor(
                id="deepseek",
                transport="openai-compatible",
                capabilities=ProviderCapabilities(tools=True),
                base_endpoint="https://api.deepseek.com",
            ),
            ProviderDescriptor(
                id="openai",
                transport="openai-compatible",
                capabilities=chat,
                base_endpoint="https://api.openai.com/v1",
            ),
            ProviderDescriptor(
                id="xai",
                transport="openai-compatible",
                capabilities=chat,
                base_endpoint="https://api.x.ai/v1",
            ),
            ProviderDescriptor(
                id="mistral",
                transport="openai-compatible",
                base_endpoint="https://api.mistral.ai/v1",
            ),
            ProviderDescriptor(
                id="openrouter",
                transport="raw-sse",
                capabilities=chat,
                base_endpoint="https://openrouter.ai/api/v1/chat/completions",
                extra_headers={"HTTP-Referer": app_url, "X-Title": app_title},
                extra_body={
                    "provider": {"sort": "throughput"},
                    "transforms": ["middle-out"],
                },
            ),
            ProviderDescriptor(
                id="veo",
                transport="long-poll",
                credential_pool="gemini",
                fallback_env=("API_KEY",),
            ),
            ProviderDescriptor(
                id="gemini-image",
                transport="image",
                sdk="google-genai",
                capabilities=ProviderCapabilities(vision=True),
                credential_pool="gemini",
                fallback_env=("API_KEY",),
            ),
            ProviderDescriptor(
                id="openai-image",
                transport="image",
                sdk="openai",
                credential_pool="openai",
                base_endpoint="https://api.openai.com/v1",
            ),
        ]
    )
