"""Adapter protocol and the internal event struct adapters produce."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from streamgate.events import GroundingRef, MediaRef
    from streamgate.history import ConversationTurn
    from streamgate.registry import ProviderDescriptor
    from streamgate.tools import ToolDeclaration


@dataclass(frozen=True)
class ToolFragment:
    """A piece of a streamed tool call.

    Fragments are routed by ``index`` when the provider numbers its calls,
    otherwise by ``call_id``. ``name`` may be absent on continuation
    fragments.
    """

    index: int | None = None
    call_id: str | None = None
    name: str | None = None
    arguments: str = ""
    #: The provider signalled this call is complete.
    closed: bool = False

    @property
    def key(self) -> int | str:
        if self.index is not None:
            return self.index
        if self.call_id is not None:
            return self.call_id
        return 0


@dataclass(frozen=True)
class RawEvent:
    """What an adapter yields. Never leaves the gateway."""

    text: str | None = None
    tool: ToolFragment | None = None
    #: All open tool calls are complete.
    tools_done: bool = False
    grounding: tuple[GroundingRef, ...] = ()
    media: MediaRef | None = None


@dataclass(frozen=True)
class AdapterRequest:
    """Provider-agnostic request handed to an adapter."""

    model: str
    turn: ConversationTurn
    system_instruction: str | None = None
    history: tuple[ConversationTurn, ...] = ()
    #: Already gated by capability; empty means "send no tools".
    tools: tuple[ToolDeclaration, ...] = ()
    grounding: bool = False
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    thinking_budget: int | None = None
    #: Transport-specific options (e.g. video aspect ratio).
    options: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class TransportAdapter(Protocol):
    """Converts one provider's native stream into RawEvents.

    ``open`` returns a lazy, pull-driven async iterator. Closing it early
    (``aclose()``) must release the underlying connection or poll loop.
    """

    def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        """Start the provider call and return its event stream."""
        ...


async def close_client(client: Any) -> None:
    """Release a per-call SDK client.

    google-genai keeps its async transport under ``client.aio``; the openai
    and anthropic clients expose an async ``close()`` directly.
    """
    aio = getattr(client, "aio", None)
    aclose = getattr(aio, "aclose", None)
    if callable(aclose):
        await aclose()
        return
    close = getattr(client, "close", None)
    if callable(close):
        result = close()
        if inspect.isawaitable(result):
            await result
