"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off adapter subclasses as coverage expands.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from streamgate.adapters.base import AdapterRequest, RawEvent
from streamgate.credentials import CredentialStore
from streamgate.events import CanonicalEvent
from streamgate.history import ConversationTurn
from streamgate.registry import ProviderDescriptor, default_registry
from streamgate.sequencer import StreamCall, StreamSequencer


@dataclass
class ScriptedAdapter:
    """Adapter double that yields a scripted sequence of events/exceptions.

    Records every ``open`` call and whether the stream was closed, so tests
    can assert on dispatch and cleanup without a real provider.
    """

    script: list[RawEvent | BaseException] = field(default_factory=list)
    open_calls: int = 0
    credentials: list[str | None] = field(default_factory=list)
    requests: list[AdapterRequest] = field(default_factory=list)
    yielded: int = 0
    closed: bool = False

    def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        self.open_calls += 1
        self.credentials.append(credential)
        self.requests.append(request)
        return self._run()

    async def _run(self) -> AsyncIterator[RawEvent]:
        try:
            for item in self.script:
                if isinstance(item, BaseException):
                    raise item
                self.yielded += 1
                yield item
        finally:
            self.closed = True


def text_events(*chunks: str) -> list[RawEvent | BaseException]:
    return [RawEvent(text=c) for c in chunks]


def make_call(
    prompt: str = "hello", *, provider: str = "groq", model: str = "m", **kwargs: Any
) -> StreamCall:
    return StreamCall(
        provider=provider,
        model=model,
        turn=ConversationTurn("user", prompt),
        **kwargs,
    )


def make_sequencer(
    adapter: ScriptedAdapter,
    *,
    secrets: dict[str, list[str]] | None = None,
    inline_errors: bool = True,
) -> StreamSequencer:
    """Sequencer with every transport routed to *adapter*."""
    if secrets is None:
        secrets = {"groq": ["groq-secret-1"], "gemini": ["gemini-secret-1"]}
    return StreamSequencer(
        registry=default_registry(),
        credentials=CredentialStore.from_secrets(secrets),
        adapters={
            "sdk-native": adapter,
            "openai-compatible": adapter,
            "raw-sse": adapter,
            "long-poll": adapter,
            "image": adapter,
        },
        inline_errors=inline_errors,
    )


async def collect(stream: AsyncIterator[CanonicalEvent]) -> list[CanonicalEvent]:
    return [event async for event in stream]


def statuses(events: list[CanonicalEvent]) -> list[CanonicalEvent]:
    return [e for e in events if e.status is not None]
