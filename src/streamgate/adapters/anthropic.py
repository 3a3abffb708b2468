"""Anthropic SDK-native stream backend (Messages API, ``stream=True``)."""

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

_ANTHROPIC_MAX_TOKENS = 8192


def make_anthropic_client(api_key: str) -> Any:
    """Create an async Anthropic client for one call's credential."""
    try:
        from anthropic import AsyncAnthropic
    except ImportError as e:
        raise APIError(
            "anthropic package not installed",
            hint="pip install anthropic",
        ) from e
    return AsyncAnthropic(api_key=api_key)


def to_message(turn: ConversationTurn) -> dict[str, Any]:
    if turn.attachment is None:
        return {"role": turn.role, "content": turn.content}
    return {
        "role": turn.role,
        "content": [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": turn.attachment.mime_type,
                    "data": turn.attachment.b64,
                },
            },
            {"type": "text", "text": turn.content},
        ],
    }


def build_kwargs(request: AdapterRequest) -> dict[str, Any]:
    messages = [to_message(t) for t in request.history]
    messages.append(to_message(request.turn))
    kwargs: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_tokens or _ANTHROPIC_MAX_TOKENS,
        "messages": messages,
        "stream": True,
    }
    if request.system_instruction:
        kwargs["system"] = request.system_instruction
    if request.temperature is not None:
        kwargs["temperature"] = request.temperature
    if request.top_p is not None:
        kwargs["top_p"] = request.top_p
    if request.tools:
        kwargs["tools"] = [t.to_anthropic_tool() for t in request.tools]
    return kwargs


def project_event(event: Any, tool_blocks: set[int]) -> list[RawEvent]:
    """Project one raw Messages stream event.

    ``tool_blocks`` tracks the indices of open ``tool_use`` blocks so that
    only their ``content_block_stop`` closes a call.
    """
    etype = getattr(event, "type", None)
    if etype == "content_block_start":
        block = event.content_block
        if getattr(block, "type", None) != "tool_use":
            return []
        tool_blocks.add(event.index)
        return [
            RawEvent(
                tool=ToolFragment(index=event.index, call_id=block.id, name=block.name)
            )
        ]
    if etype == "content_block_delta":
        delta = event.delta
        dtype = getattr(delta, "type", None)
        if dtype == "text_delta" and delta.text:
            return [RawEvent(text=delta.text)]
        if dtype == "input_json_delta" and delta.partial_json:
            return [
                RawEvent(
                    tool=ToolFragment(index=event.index, arguments=delta.partial_json)
                )
            ]
        return []
    if etype == "content_block_stop" and event.index in tool_blocks:
        tool_blocks.discard(event.index)
        return [RawEvent(tool=ToolFragment(index=event.index, closed=True))]
    return []


class AnthropicBackend:
    """Projects raw Messages stream events into RawEvents.

    Tool calls are content blocks: ``content_block_start`` names the call,
    ``input_json_delta`` carries argument text, ``content_block_stop``
    closes it. Blocks are routed by their index.
    """

    def __init__(self, client_factory: Callable[[str], Any] | None = None) -> None:
        self._client_factory = client_factory or make_anthropic_client

    async def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        client = self._client_factory(credential or "")
        log.debug("%s stream: model=%s", descriptor.id, request.model)
        tool_blocks: set[int] = set()
        try:
            stream = await client.messages.create(**build_kwargs(request))
            try:
                async for event in stream:
                    for raw in project_event(event, tool_blocks):
                        yield raw
            finally:
                await stream.close()
        finally:
            await close_client(client)
