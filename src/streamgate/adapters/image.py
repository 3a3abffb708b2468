"""Image generation as a one-shot stream.

Neither backend streams: the adapter makes one request and yields the
generated image as a media event carrying a ``data:`` URL. Gemini may also
return caption text, which is yielded ahead of the image.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from streamgate.adapters.base import AdapterRequest, RawEvent, close_client
from streamgate.adapters.gemini import make_genai_client, to_content
from streamgate.adapters.openai_compat import make_openai_client
from streamgate.errors import ConfigurationError, ProviderError
from streamgate.events import MediaRef
from streamgate.history import InlineData

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from streamgate.registry import ProviderDescriptor

log = logging.getLogger(__name__)

_OPENAI_IMAGE_DEFAULTS = MappingProxyType(
    {"n": 1, "size": "1024x1024", "response_format": "b64_json"}
)


def _no_image(descriptor: ProviderDescriptor) -> ProviderError:
    return ProviderError(
        f"{descriptor.id} returned no image",
        hint="The prompt may have been refused; try rephrasing it.",
        provider=descriptor.id,
        phase="stream",
    )


def build_image_config(request: AdapterRequest) -> Any:
    """GenerateContentConfig asking for image output.

    ``request.options`` (e.g. ``aspect_ratio``, ``image_size``) become the
    ``ImageConfig``.
    """
    from google.genai import types

    config_kwargs: dict[str, Any] = {"response_modalities": ["TEXT", "IMAGE"]}
    if request.system_instruction is not None:
        config_kwargs["system_instruction"] = request.system_instruction
    if request.options:
        config_kwargs["image_config"] = types.ImageConfig(**request.options)
    return types.GenerateContentConfig(**config_kwargs)


def project_image_response(response: Any) -> list[RawEvent]:
    """Caption text and inline images from one GenerateContentResponse."""
    events: list[RawEvent] = []
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return events
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        if getattr(part, "thought", None) is True:
            continue
        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            events.append(RawEvent(text=text))
        blob = getattr(part, "inline_data", None)
        data = getattr(blob, "data", None)
        if isinstance(data, bytes) and data:
            mime_type = getattr(blob, "mime_type", None) or "image/png"
            image = InlineData(data, mime_type)
            events.append(
                RawEvent(media=MediaRef(uri=image.data_url, mime_type=mime_type))
            )
    return events


def project_images_result(result: Any) -> list[RawEvent]:
    """Media events from an ``images.generate`` result (base64 or URL)."""
    events: list[RawEvent] = []
    for item in getattr(result, "data", None) or []:
        b64 = getattr(item, "b64_json", None)
        url = getattr(item, "url", None)
        if isinstance(b64, str) and b64:
            image = InlineData.from_base64(b64, "image/png")
            events.append(
                RawEvent(media=MediaRef(uri=image.data_url, mime_type="image/png"))
            )
        elif isinstance(url, str) and url:
            events.append(RawEvent(media=MediaRef(uri=url)))
    return events


class ImageAdapter:
    """Routes image requests to the backend named by ``descriptor.sdk``.

    With google-genai an attached image is sent along with the prompt, which
    asks the model to edit it.
    """

    def __init__(
        self,
        *,
        genai_factory: Callable[[str], Any] | None = None,
        openai_factory: Callable[[str, str | None], Any] | None = None,
    ) -> None:
        self._genai_factory = genai_factory or make_genai_client
        self._openai_factory = openai_factory or make_openai_client

    def open(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        if descriptor.sdk == "google-genai":
            return self._gemini(descriptor, credential, request)
        if descriptor.sdk == "openai":
            return self._openai(descriptor, credential, request)
        raise ConfigurationError(
            f"No image backend {descriptor.sdk!r} for provider {descriptor.id!r}",
            hint="Image providers use sdk 'google-genai' or 'openai'.",
        )

    async def _gemini(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        client = self._genai_factory(credential or "")
        log.debug("%s image: model=%s", descriptor.id, request.model)
        try:
            response = await client.aio.models.generate_content(
                model=request.model,
                contents=[to_content(request.turn)],
                config=build_image_config(request),
            )
        finally:
            await close_client(client)

        events = project_image_response(response)
        if not any(e.media is not None for e in events):
            raise _no_image(descriptor)
        for event in events:
            yield event

    async def _openai(
        self,
        descriptor: ProviderDescriptor,
        credential: str | None,
        request: AdapterRequest,
    ) -> AsyncIterator[RawEvent]:
        client = self._openai_factory(credential or "", descriptor.base_endpoint)
        log.debug("%s image: model=%s", descriptor.id, request.model)
        try:
            result = await client.images.generate(
                model=request.model,
                prompt=request.turn.content,
                **{**_OPENAI_IMAGE_DEFAULTS, **request.options},
            )
        finally:
            await close_client(client)

        events = project_images_result(result)
        if not events:
            raise _no_image(descriptor)
        for event in events:
            yield event
