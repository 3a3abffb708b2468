"""Gemini SDK-native stream backend (google-genai)."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from streamgate.adapters.base import (
    AdapterRequest,
    RawEvent,
    ToolFragment,
    close_client,
)
from streamgate.errors import APIError
from streamgate.events import GroundingRef

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from streamgate.history import ConversationTurn
    from streamgate.registry import ProviderDescriptor

log = logging.getLogger(__name__)


def make_genai_client(api_key: str) -> Any:
    """Create a google-genai client for one call's credential."""
    try:
        from google import genai
    except ImportError as e:
        raise APIError(
            "google-genai package not installed",
            hint="pip install google-genai",
        ) from e
    return genai.Client(api_key=api_key)


def to_content(turn: ConversationTurn) -> Any:
    """Render a turn as a google-genai Content ("assistant" becomes "model")."""
    from google.genai import types

    parts: list[Any] = []
    if turn.attachment is not None:
        parts.append(
            types.Part.from_bytes(
                data=turn.attachment.data, mime_type=turn.attachment.mime_type
            )
        )
    parts.append(types.Part.from_text(text=turn.content))
    role = "model" if turn.role == "assistant" else "user"
    return types.Content(role=role, parts=parts)


def build_config(request: AdapterRequest) -> Any:
    """Translate the request's generation settings into GenerateContentConfig."""
    from google.genai import types

    config_kwargs: dict[str, Any] = {}
    if request.system_instruction is not None:
        config_kwargs["system_instruction"] = request.system_instruction
    if request.temperature is not None:
        config_kwargs["temperature"] = request.temperature
    if request.top_p is not None:
        config_kwargs["top_p"] = request.top_p
    if request.max_tokens is not None:
        config_kwargs["max_output_tokens"] = request.max_tokens
    if request.thinking_budget is not None:
        config_kwargs["thinking_config"] = types.ThinkingConfig(
            thinking_budget=request.thinking_budget
        )

    tool_objs: list[Any] = []
    if request.tools:
        tool_objs.append(
            types.Tool(
                function_declarations=[
                    types.FunctionDeclaration(**t.to_function_declaration())
                    for t in request.tools
                ]
            )
        )
    if request.grounding:
        tool_objs.append(types.Tool(google_search=types.GoogleSearch()))
    if tool_objs:
        config_kwargs["tools"] = tool_objs

    return types.GenerateContentConfig(**config_kwargs)


def _grounding_refs(candidate: Any) -> tuple[GroundingRef, ...]:
    metadata = getattr(candidate, "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    refs: list[GroundingRef] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if isinstance(uri, str) and uri:
            title = getattr(web, "title", None)
            refs.append(
                GroundingRef(uri=uri, title=title if isinstance(title, str) else None)
            )
    return tuple(refs)


def project_chunk(chunk: Any) -> list[RawEvent]:
    """Field-by-field projection of one GenerateContentResponse chunk."""
    events: list[RawEvent] = []
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return events
    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    for part in getattr(content, "parts", None) or []:
        if getattr(part, "thought", None) is True:
            continue
        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            events.append(RawEvent(text=text))
        fc = getattr(part, "function_call", None)
        if fc is not None:
            call_id = getattr(fc, "id", None)
            events.append(
                RawEvent(
                    tool=ToolFragment(
                        call_id=(
                            call_id if isinstance(call_id, str) and call_id else None
                        ),
                        name=str(fc.name),
                        # Gemini args arrive whole, as Optional[dict].
                        arguments=json.dumps(getattr(fc, "args", None) or {}),
                        closed=True,
                    )
                )
            )
    refs = _grounding_refs(candidate)
    if refs:
        events.append(RawEvent(grounding=refs))
    return events


class GeminiBackend:
    """Streams ``generate_content_stream`` chunks as RawEvents."""

    def __init__(self, client_factory: Callable[[str], Any] | None = None) -> None:
        self._client_factory = client_factory or make_genai_client

    async def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        client = self._client_factory(credential or "")
        contents = [to_content(t) for t in request.history]
        contents.append(to_content(request.turn))
        log.debug(
            "%s stream: model=%s turns=%d", descriptor.id, request.model, len(contents)
        )

        try:
            stream = await client.aio.models.generate_content_stream(
                model=request.model,
                contents=contents,
                config=build_config(request),
            )
            try:
                async for chunk in stream:
                    for event in project_chunk(chunk):
                        yield event
            finally:
                aclose = getattr(stream, "aclose", None)
                if callable(aclose):
                    await aclose()
        finally:
            await close_client(client)
