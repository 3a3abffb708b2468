"""Stream sequencer: one call from credential to terminal status.

States: ResolvingCredential -> Dispatching -> Streaming -> Finalizing ->
Terminated. Every path through ``run()`` yields exactly one ``status``
event, last. Failures become that event; no exception escapes the stream
except cancellation and the consumer closing it early.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
import logging
import time
from typing import TYPE_CHECKING, Any

from streamgate.accumulator import ToolCallAccumulator
from streamgate.adapters._errors import wrap_provider_error
from streamgate.adapters.base import AdapterRequest
from streamgate.errors import (
    APIError,
    ConfigurationError,
    MissingCredentialError,
    PartialStreamFailure,
    StreamgateError,
)
from streamgate.events import CanonicalEvent, StreamStatus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from streamgate.adapters.base import RawEvent, TransportAdapter
    from streamgate.credentials import CredentialStore
    from streamgate.history import ConversationTurn, HistoryBuffer
    from streamgate.registry import (
        ProviderDescriptor,
        ProviderRegistry,
        TransportKind,
    )
    from streamgate.tools import ToolDeclaration

log = logging.getLogger(__name__)

ERROR_MARKER = "\n\n**System Error:** {message}"


@dataclass(frozen=True)
class StreamCall:
    """Everything the sequencer needs for one call."""

    provider: str
    model: str
    turn: ConversationTurn
    system_instruction: str | None = None
    tools: tuple[ToolDeclaration, ...] = ()
    #: Model-level switch; provider capability is checked separately.
    allow_tools: bool = True
    thinking_budget: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    options: dict[str, Any] = field(default_factory=dict)


class StreamSequencer:
    """Drives one adapter per call and guarantees a terminal status."""

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        credentials: CredentialStore,
        adapters: Mapping[TransportKind, TransportAdapter],
        inline_errors: bool = True,
    ) -> None:
        self.registry = registry
        self.credentials = credentials
        self.adapters = adapters
        self.inline_errors = inline_errors

    def build_request(
        self,
        descriptor: ProviderDescriptor,
        call: StreamCall,
        history: HistoryBuffer | None,
    ) -> AdapterRequest:
        """Dispatching: shape the provider request, gating features by capability."""
        caps = descriptor.capabilities
        if call.turn.attachment is not None and not caps.vision:
            raise ConfigurationError(
                f"Provider {descriptor.id} does not accept inline attachments",
                hint="Choose a vision-capable provider for image input.",
            )
        tools = call.tools if caps.tools and call.allow_tools else ()
        turns = history.snapshot() if history is not None else ()
        if not caps.vision:
            turns = tuple(t.text_only() for t in turns)
        return AdapterRequest(
            model=call.model,
            turn=call.turn,
            system_instruction=call.system_instruction,
            history=turns,
            tools=tools,
            grounding=caps.grounding,
            temperature=call.temperature,
            top_p=call.top_p,
            max_tokens=call.max_tokens,
            thinking_budget=call.thinking_budget,
            options=dict(call.options),
        )

    async def run(
        self, call: StreamCall, history: HistoryBuffer | None = None
    ) -> AsyncIterator[CanonicalEvent]:
        """Yield canonical events for *call*, ending with one status event."""
        started = time.perf_counter()
        provider = call.provider

        def status(outcome: str, message: str | None = None) -> CanonicalEvent:
            latency_ms = int((time.perf_counter() - started) * 1000)
            return CanonicalEvent(
                status=StreamStatus(
                    provider=provider,
                    model=call.model,
                    latency_ms=latency_ms,
                    outcome=outcome,  # type: ignore[arg-type]
                    message=message,
                )
            )

        # ResolvingCredential
        try:
            descriptor = self.registry.resolve(provider)
            provider = descriptor.id
            credential = self.credentials.acquire(descriptor.credential_pool)
            if credential is None and descriptor.requires_credential:
                raise MissingCredentialError(descriptor.credential_pool)
            adapter = self.adapters.get(descriptor.transport)
            if adapter is None:
                raise ConfigurationError(
                    f"No adapter registered for transport {descriptor.transport!r}"
                )
            request = self.build_request(descriptor, call, history)
        except Exception as exc:  # noqa: BLE001
            log.warning("Call to %s failed before dispatch: %s", provider, exc)
            for event in self._failure_events(str(exc)):
                yield event
            yield status("error", str(exc))
            return

        # Dispatching / Streaming
        accumulator = ToolCallAccumulator()
        text_parts: list[str] = []
        delivered = 0
        log.debug(
            "Dispatching %s/%s via %s", provider, call.model, descriptor.transport
        )
        try:
            raw_stream = adapter.open(descriptor, credential, request)
            async with aclosing(raw_stream) as raw_events:
                async for raw in raw_events:
                    for event in self._translate(raw, accumulator):
                        if event.text_delta:
                            text_parts.append(event.text_delta)
                        delivered += 1
                        yield event
            for invocation in accumulator.flush():
                delivered += 1
                yield CanonicalEvent(tool_call=invocation.to_event())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error: StreamgateError
            if isinstance(exc, StreamgateError) and not isinstance(exc, APIError):
                error = exc
            else:
                error = wrap_provider_error(exc, provider=provider)
            if delivered:
                error = PartialStreamFailure(error, delivered=delivered)
            log.warning(
                "Stream from %s/%s failed after %d event(s): %s",
                provider,
                call.model,
                delivered,
                error,
            )
            for event in self._failure_events(str(error)):
                yield event
            yield status("error", str(error))
            return

        # Finalizing
        if history is not None:
            history.record_exchange(call.turn, "".join(text_parts))
        yield status("success")

    async def reject(
        self, provider: str, model: str, error: BaseException
    ) -> AsyncIterator[CanonicalEvent]:
        """Terminate a call that could not be built, without dispatching it."""
        log.warning("Call to %s rejected: %s", provider, error)
        for event in self._failure_events(str(error)):
            yield event
        yield CanonicalEvent(
            status=StreamStatus(
                provider=provider,
                model=model,
                latency_ms=0,
                outcome="error",
                message=str(error),
            )
        )

    def _failure_events(self, message: str) -> list[CanonicalEvent]:
        if not self.inline_errors:
            return []
        return [CanonicalEvent(text_delta=ERROR_MARKER.format(message=message))]

    @staticmethod
    def _translate(
        raw: RawEvent, accumulator: ToolCallAccumulator
    ) -> list[CanonicalEvent]:
        events: list[CanonicalEvent] = []
        if raw.text:
            events.append(CanonicalEvent(text_delta=raw.text))
        if raw.tool is not None:
            events.extend(
                CanonicalEvent(tool_call=inv.to_event())
                for inv in accumulator.feed(raw.tool)
            )
        if raw.tools_done:
            events.extend(
                CanonicalEvent(tool_call=inv.to_event()) for inv in accumulator.flush()
            )
        if raw.grounding:
            events.append(CanonicalEvent(grounding_refs=tuple(raw.grounding)))
        if raw.media is not None:
            events.append(CanonicalEvent(media=raw.media))
        return events
