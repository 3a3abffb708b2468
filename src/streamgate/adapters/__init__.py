"""Transport adapters: one per transport kind."""

from .base import AdapterRequest, RawEvent, ToolFragment, TransportAdapter
from .image import ImageAdapter
from .longpoll import LongPollAdapter
from .native import SdkNativeAdapter
from .openai_compat import OpenAICompatibleAdapter
from .sse import SSEAdapter, SSEDecoder

__all__ = [
    "AdapterRequest",
    "ImageAdapter",
    "LongPollAdapter",
    "OpenAICompatibleAdapter",
    "RawEvent",
    "SSEAdapter",
    "SSEDecoder",
    "SdkNativeAdapter",
    "ToolFragment",
    "TransportAdapter",
]
