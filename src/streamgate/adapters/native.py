"""SDK-native adapter: routes to the backend for the provider's SDK."""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING

from streamgate.adapters.anthropic import AnthropicBackend
from streamgate.adapters.gemini import GeminiBackend
from streamgate.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from streamgate.adapters.base import AdapterRequest, RawEvent, TransportAdapter
    from streamgate.registry import ProviderDescriptor


class SdkNativeAdapter:
    """Wraps each backend SDK's own async stream.

    Translation is a field-by-field projection done by the backend; this
    class only picks the backend named by ``descriptor.sdk``.
    """

    def __init__(self, backends: Mapping[str, TransportAdapter] | None = None) -> None:
        if backends is None:
            backends = {
                "google-genai": GeminiBackend(),
                "anthropic": AnthropicBackend(),
            }
        self._backends = MappingProxyType(dict(backends))

    def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        backend = self._backends.get(descriptor.sdk or "")
        if backend is None:
            raise ConfigurationError(
                f"No SDK backend {descriptor.sdk!r} for provider {descriptor.id!r}",
                hint=f"Available backends: {', '.join(sorted(self._backends))}",
            )
        return backend.open(descriptor, credential, request)
