"""OpenAI-compatible adapter (openai SDK pointed at the provider's base URL).

Groq, DeepSeek, OpenAI, xAI and Mistral all expose the Chat Completions
``choices[0].delta`` stream. The projection helpers here are shared with the
raw-SSE adapter, which sees the same JSON over plain HTTP.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from streamgate.adapters.base import (
    AdapterRequest,
    RawEvent,
    ToolFragment,
    close_client,
)
from streamgate.errors import APIError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from streamgate.history import ConversationTurn
    from streamgate.registry import ProviderDescriptor

log = logging.getLogger(__name__)

DEFAULT_SYSTEM_MESSAGE = "You are a helpful assistant."


def make_openai_client(api_key: str, base_url: str | None) -> Any:
    """Create an AsyncOpenAI client bound to one provider endpoint."""
    try:
        from openai import AsyncOpenAI
    except ImportError as e:
        raise APIError(
            "openai package not installed",
            hint="pip install openai",
        ) from e
    return AsyncOpenAI(api_key=api_key, base_url=base_url)


def to_message(turn: ConversationTurn) -> dict[str, Any]:
    if turn.attachment is None:
        return {"role": turn.role, "content": turn.content}
    return {
        "role": turn.role,
        "content": [
            {"type": "text", "text": turn.content},
            {"type": "image_url", "image_url": {"url": turn.attachment.data_url}},
        ],
    }


def build_messages(request: AdapterRequest) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [
        {
            "role": "system",
            "content": request.system_instruction or DEFAULT_SYSTEM_MESSAGE,
        }
    ]
    messages.extend(to_message(t) for t in request.history)
    messages.append(to_message(request.turn))
    return messages


def build_payload(request: AdapterRequest) -> dict[str, Any]:
    """Chat Completions body shared by the SDK and raw-SSE transports."""
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": build_messages(request),
        "stream": True,
    }
    if request.temperature is not None:
        payload["temperature"] = request.temperature
    if request.top_p is not None:
        payload["top_p"] = request.top_p
    if request.max_tokens is not None:
        payload["max_tokens"] = request.max_tokens
    if request.tools:
        payload["tools"] = [t.to_openai_tool() for t in request.tools]
        payload["tool_choice"] = "auto"
    return payload


def project_chunk(chunk: dict[str, Any]) -> list[RawEvent]:
    """Project one decoded ``chat.completion.chunk`` into RawEvents.

    Tool-call deltas are routed by ``index``: continuation fragments usually
    carry neither id nor name.
    """
    choices = chunk.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return []
    choice = choices[0]
    delta = choice.get("delta") or {}
    events: list[RawEvent] = []

    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(RawEvent(text=content))

    for tc in delta.get("tool_calls") or []:
        func = tc.get("function") or {}
        events.append(
            RawEvent(
                tool=ToolFragment(
                    index=tc.get("index", 0),
                    call_id=tc.get("id") or None,
                    name=func.get("name") or None,
                    arguments=func.get("arguments") or "",
                )
            )
        )

    if choice.get("finish_reason") == "tool_calls":
        events.append(RawEvent(tools_done=True))
    return events


def _as_dict(chunk: Any) -> dict[str, Any]:
    if isinstance(chunk, dict):
        return chunk
    return chunk.model_dump(exclude_none=True)


class OpenAICompatibleAdapter:
    """Streams ``chat.completions.create(stream=True)`` through the openai SDK."""

    def __init__(
        self, client_factory: Callable[[str, str | None], Any] | None = None
    ) -> None:
        self._client_factory = client_factory or make_openai_client

    async def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        client = self._client_factory(credential or "", descriptor.base_endpoint)
        payload = build_payload(request)
        if descriptor.extra_body:
            payload["extra_body"] = dict(descriptor.extra_body)
        if descriptor.extra_headers:
            payload["extra_headers"] = dict(descriptor.extra_headers)
        log.debug("%s stream: model=%s", descriptor.id, request.model)

        try:
            stream = await client.chat.completions.create(**payload)
            try:
                async for chunk in stream:
                    for event in project_chunk(_as_dict(chunk)):
                        yield event
            finally:
                await stream.close()
        finally:
            await close_client(client)
