"""Long-poll adapter for slow operations (Veo video generation).

The provider returns an operation handle instead of a stream. The adapter
polls the handle until it reports ``done`` and then yields a single media
event. Total wait is bounded; the bound surfaces as a TransportError.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from streamgate.adapters.base import AdapterRequest, RawEvent, close_client
from streamgate.adapters.gemini import make_genai_client
from streamgate.errors import ProviderError, TransportError
from streamgate.events import MediaRef

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from streamgate.registry import ProviderDescriptor

log = logging.getLogger(__name__)


def _operation_error(operation: Any) -> str | None:
    error = getattr(operation, "error", None)
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(getattr(error, "message", None) or error)


def _result_uri(operation: Any) -> tuple[str | None, str | None]:
    response = getattr(operation, "response", None) or getattr(
        operation, "result", None
    )
    videos = getattr(response, "generated_videos", None) or []
    if not videos:
        return None, None
    video = getattr(videos[0], "video", None)
    uri = getattr(video, "uri", None)
    mime_type = getattr(video, "mime_type", None)
    return (
        uri if isinstance(uri, str) and uri else None,
        mime_type if isinstance(mime_type, str) else None,
    )


class LongPollAdapter:
    """Starts a video generation and polls it at a fixed interval."""

    def __init__(
        self,
        *,
        poll_interval_s: float = 10.0,
        max_wait_s: float = 600.0,
        client_factory: Callable[[str], Any] | None = None,
    ) -> None:
        self.poll_interval_s = poll_interval_s
        self.max_wait_s = max_wait_s
        self._client_factory = client_factory or make_genai_client

    def _build_config(self, request: AdapterRequest) -> Any:
        from google.genai import types

        options = {"number_of_videos": 1, **request.options}
        return types.GenerateVideosConfig(**options)

    def _timeout(self, descriptor: ProviderDescriptor) -> TransportError:
        return TransportError(
            f"{descriptor.id} operation did not finish within {self.max_wait_s:g}s",
            hint="Raise Config.max_poll_wait_s for longer jobs.",
            retryable=True,
            provider=descriptor.id,
            phase="poll",
        )

    async def _bounded(
        self,
        descriptor: ProviderDescriptor,
        deadline: float,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Await one start or status request, failing once ``deadline`` passes."""
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise self._timeout(descriptor)
        try:
            return await asyncio.wait_for(call(), remaining)
        except asyncio.TimeoutError as e:
            raise self._timeout(descriptor) from e

    async def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        client = self._client_factory(credential or "")
        deadline = time.monotonic() + self.max_wait_s
        try:
            operation = await self._bounded(
                descriptor,
                deadline,
                lambda: client.aio.models.generate_videos(
                    model=request.model,
                    prompt=request.turn.content,
                    config=self._build_config(request),
                ),
            )
            log.debug(
                "%s operation started: %s",
                descriptor.id,
                getattr(operation, "name", "?"),
            )

            polls = 0
            while not getattr(operation, "done", False):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise self._timeout(descriptor)
                await asyncio.sleep(min(self.poll_interval_s, remaining))
                current = operation
                operation = await self._bounded(
                    descriptor,
                    deadline,
                    lambda: client.aio.operations.get(current),
                )
                polls += 1
        finally:
            await close_client(client)

        message = _operation_error(operation)
        if message:
            raise ProviderError(
                f"{descriptor.id} operation failed: {message}",
                provider=descriptor.id,
                phase="poll",
            )
        uri, mime_type = _result_uri(operation)
        if uri is None:
            raise ProviderError(
                f"{descriptor.id} operation finished without a result URI",
                provider=descriptor.id,
                phase="poll",
            )
        log.debug("%s operation done after %d poll(s)", descriptor.id, polls)
        yield RawEvent(media=MediaRef(uri=uri, mime_type=mime_type or "video/mp4"))
