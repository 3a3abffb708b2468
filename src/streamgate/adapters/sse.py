"""Raw Server-Sent-Events adapter over httpx.

Network reads carry no message boundaries: one logical ``data:`` line may
be split across two reads, and a multi-byte UTF-8 character may be split
across two chunks. ``SSEDecoder`` buffers both so that no frame is lost or
duplicated whatever the chunking.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from streamgate._http import (
    RETRYABLE_STATUS_CODES,
    SSE_DATA_PREFIX,
    SSE_DONE_SENTINEL,
)
from streamgate.adapters._errors import extract_error_message
from streamgate.adapters.openai_compat import build_payload, project_chunk
from streamgate.errors import ProviderError, RateLimitError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from streamgate.adapters.base import AdapterRequest, RawEvent
    from streamgate.registry import ProviderDescriptor

log = logging.getLogger(__name__)


class SSEDecoder:
    """Incremental decoder from raw bytes to JSON frames.

    ``feed()`` accepts arbitrary byte chunks and returns the frames completed
    by them. Blank lines and lines without the ``data:`` marker are ignored,
    ``data: [DONE]`` ends the stream, and lines whose payload is not valid
    JSON are skipped.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False
        self.skipped = 0

    def feed(self, chunk: bytes) -> list[Any]:
        if self.done:
            return []
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._decode_lines(lines)

    def finish(self) -> list[Any]:
        """Flush a trailing line that was never newline-terminated."""
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return self._decode_lines([tail])

    def _decode_lines(self, lines: Iterable[str]) -> list[Any]:
        frames: list[Any] = []
        for line in lines:
            stripped = line.strip()
            if not stripped or not stripped.startswith(SSE_DATA_PREFIX):
                continue
            payload = stripped[len(SSE_DATA_PREFIX) :].strip()
            if payload == SSE_DONE_SENTINEL:
                self.done = True
                break
            try:
                frames.append(json.loads(payload))
            except ValueError:
                self.skipped += 1
        return frames


def decode_stream(chunks: Iterable[bytes]) -> list[Any]:
    """Decode a complete byte stream (convenience for fixtures and tests)."""
    decoder = SSEDecoder()
    frames: list[Any] = []
    for chunk in chunks:
        frames.extend(decoder.feed(chunk))
        if decoder.done:
            return frames
    frames.extend(decoder.finish())
    return frames


class SSEAdapter:
    """POSTs a Chat Completions body and parses the SSE response by hand."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout or httpx.Timeout(180.0, connect=10.0)

    async def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        if not descriptor.base_endpoint:
            raise ProviderError(
                f"Provider {descriptor.id} has no endpoint configured",
                provider=descriptor.id,
                phase="dispatch",
            )
        payload = build_payload(request)
        payload.update(descriptor.extra_body)
        headers = {"Content-Type": "application/json", **descriptor.extra_headers}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        log.debug("%s SSE request: model=%s", descriptor.id, request.model)
        try:
            async with client.stream(
                "POST", descriptor.base_endpoint, json=payload, headers=headers
            ) as response:
                if response.status_code >= 400:
                    raise await _error_from_response(descriptor.id, response)

                decoder = SSEDecoder()
                async for chunk in response.aiter_bytes():
                    for frame in decoder.feed(chunk):
                        for event in _project(descriptor.id, frame):
                            yield event
                    if decoder.done:
                        break
                for frame in decoder.finish():
                    for event in _project(descriptor.id, frame):
                        yield event
                if decoder.skipped:
                    log.debug(
                        "%s: skipped %d malformed SSE line(s)",
                        descriptor.id,
                        decoder.skipped,
                    )
        finally:
            if owns_client:
                await client.aclose()


def _project(provider: str, frame: Any) -> list[RawEvent]:
    if not isinstance(frame, dict):
        return []
    if "error" in frame:
        raise ProviderError(
            extract_error_message(frame) or f"{provider} reported a stream error",
            provider=provider,
            phase="stream",
        )
    return project_chunk(frame)


async def _error_from_response(
    provider: str, response: httpx.Response
) -> ProviderError:
    await response.aread()
    message: str | None = None
    try:
        message = extract_error_message(response.json())
    except ValueError:
        message = None
    status = response.status_code
    err_cls = RateLimitError if status == 429 else ProviderError
    return err_cls(
        message or f"HTTP {status}",
        status_code=status,
        retryable=status in RETRYABLE_STATUS_CODES,
        provider=provider,
        phase="stream",
    )
