"""Gateway facade: model resolution, default history, and stream dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any

import httpx

from streamgate.adapters.image import ImageAdapter
from streamgate.adapters.longpoll import LongPollAdapter
from streamgate.adapters.native import SdkNativeAdapter
from streamgate.adapters.openai_compat import OpenAICompatibleAdapter
from streamgate.adapters.sse import SSEAdapter
from streamgate.config import Config
from streamgate.credentials import CredentialStore
from streamgate.errors import StreamgateError
from streamgate.events import GroundingRef, MediaRef, StreamStatus, ToolCall
from streamgate.history import ConversationTurn, HistoryBuffer
from streamgate.models import default_catalog
from streamgate.registry import default_registry
from streamgate.sequencer import StreamCall, StreamSequencer
from streamgate.tools import coerce_tools

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from streamgate.adapters.base import TransportAdapter
    from streamgate.events import CanonicalEvent
    from streamgate.history import InlineData
    from streamgate.models import ModelCatalog
    from streamgate.registry import ProviderRegistry, TransportKind
    from streamgate.tools import ToolDeclaration

log = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """A fully drained stream."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    grounding_refs: list[GroundingRef] = field(default_factory=list)
    media: list[MediaRef] = field(default_factory=list)
    status: StreamStatus | None = None

    @property
    def ok(self) -> bool:
        return self.status is not None and self.status.outcome == "success"


def default_adapters(config: Config) -> dict[TransportKind, TransportAdapter]:
    """One adapter per transport kind, tuned from *config*."""
    return {
        "sdk-native": SdkNativeAdapter(),
        "openai-compatible": OpenAICompatibleAdapter(),
        "raw-sse": SSEAdapter(
            timeout=httpx.Timeout(
                config.read_timeout_s, connect=config.connect_timeout_s
            )
        ),
        "long-poll": LongPollAdapter(
            poll_interval_s=config.poll_interval_s,
            max_wait_s=config.max_poll_wait_s,
        ),
        "image": ImageAdapter(),
    }


class Gateway:
    """Unified streaming entry point over every registered provider.

    Example:
        gateway = Gateway.from_env(Config(system_instruction="Be brief."))
        async for event in gateway.stream("Hello", model="gpt-4o"):
            print(event.to_dict())
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        credentials: CredentialStore | None = None,
        registry: ProviderRegistry | None = None,
        catalog: ModelCatalog | None = None,
        adapters: Mapping[TransportKind, TransportAdapter] | None = None,
        history: HistoryBuffer | None = None,
    ) -> None:
        self.config = config or Config()
        self.registry = registry or default_registry()
        self.catalog = catalog or default_catalog()
        self.credentials = credentials if credentials is not None else CredentialStore()
        self.history = (
            history if history is not None else HistoryBuffer(self.config.history_turns)
        )
        self.sequencer = StreamSequencer(
            registry=self.registry,
            credentials=self.credentials,
            adapters=adapters or default_adapters(self.config),
            inline_errors=self.config.inline_errors,
        )

    @classmethod
    def from_env(
        cls,
        config: Config | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> Gateway:
        """Build a gateway whose credential pools are read from the environment."""
        config = config or Config()
        registry = kwargs.pop("registry", None) or default_registry()
        credentials = CredentialStore.from_env(
            registry, environ=environ, prefix=config.env_prefix
        )
        return cls(config, credentials=credentials, registry=registry, **kwargs)

    def new_session(self) -> HistoryBuffer:
        """Return a fresh history buffer sized from the config."""
        return HistoryBuffer(self.config.history_turns)

    def reset(self) -> None:
        """Forget the default conversation."""
        self.history.clear()

    def _build_call(
        self,
        prompt: str,
        *,
        model: str | None,
        provider: str | None,
        attachment: InlineData | None,
        system_instruction: str | None,
        tools: list[ToolDeclaration | dict[str, Any]] | None,
        options: dict[str, Any] | None,
    ) -> StreamCall:
        model_id = model or self.config.default_model
        spec = self.catalog.get(model_id)
        if provider is None:
            if spec is None:
                spec = self.catalog.find(None)
                log.info("Unknown model %r; falling back to %s", model_id, spec.id)
                model_id = spec.id
            provider = spec.provider
        return StreamCall(
            provider=provider,
            model=model_id,
            turn=ConversationTurn("user", prompt, attachment),
            system_instruction=(
                system_instruction
                if system_instruction is not None
                else self.config.system_instruction
            ),
            tools=coerce_tools(tools),
            allow_tools=spec.tools if spec is not None else True,
            thinking_budget=spec.thinking_budget if spec is not None else None,
            temperature=self.config.temperature,
            top_p=self.config.top_p,
            max_tokens=self.config.max_tokens,
            options=dict(options or {}),
        )

    def stream(
        self,
        prompt: str,
        *,
        model: str | None = None,
        provider: str | None = None,
        attachment: InlineData | None = None,
        system_instruction: str | None = None,
        tools: list[ToolDeclaration | dict[str, Any]] | None = None,
        history: HistoryBuffer | None = None,
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[CanonicalEvent]:
        """Open a stream for one user turn.

        Args:
            prompt: The user turn text.
            model: Catalog model id; unknown ids fall back to the first entry
                unless ``provider`` is given explicitly.
            provider: Route to this provider, bypassing the catalog.
            attachment: Optional inline image for vision-capable providers.
            system_instruction: Overrides ``Config.system_instruction``.
            tools: ToolDeclarations or dicts in any supported convention.
            history: Conversation to read and extend; defaults to the
                gateway's own buffer.
            options: Provider-specific extras (e.g. video config fields).

        Returns:
            An async iterator of CanonicalEvents ending with exactly one
            status event. Closing it early cancels the provider stream.
        """
        try:
            call = self._build_call(
                prompt,
                model=model,
                provider=provider,
                attachment=attachment,
                system_instruction=system_instruction,
                tools=tools,
                options=options,
            )
        except StreamgateError as exc:
            return self.sequencer.reject(
                provider or "", model or self.config.default_model, exc
            )
        if history is None:
            history = self.history
        return self.sequencer.run(call, history)

    async def generate(self, prompt: str, **kwargs: Any) -> GenerationResult:
        """Drain a stream into a GenerationResult."""
        result = GenerationResult()
        text_parts: list[str] = []
        async for event in self.stream(prompt, **kwargs):
            if event.text_delta:
                text_parts.append(event.text_delta)
            if event.tool_call is not None:
                result.tool_calls.append(event.tool_call)
            if event.grounding_refs:
                result.grounding_refs.extend(event.grounding_refs)
            if event.media is not None:
                result.media.append(event.media)
            if event.status is not None:
                result.status = event.status
        result.text = "".join(text_parts)
        return result
