"""Adapter characterization tests.

These tests verify the request shapes sent to each SDK and the projection
of native stream chunks into RawEvents. They use fake clients so no
network calls are made.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any

import pytest

from streamgate.accumulator import ToolCallAccumulator
from streamgate.adapters.anthropic import AnthropicBackend, build_kwargs
from streamgate.adapters.base import AdapterRequest, RawEvent, TransportAdapter
from streamgate.adapters.gemini import GeminiBackend, build_config, project_chunk
from streamgate.adapters.native import SdkNativeAdapter
from streamgate.adapters.openai_compat import (
    DEFAULT_SYSTEM_MESSAGE,
    OpenAICompatibleAdapter,
    build_payload,
)
from streamgate.adapters.openai_compat import project_chunk as project_openai
from streamgate.errors import ConfigurationError
from streamgate.history import ConversationTurn, InlineData
from streamgate.registry import ProviderDescriptor, default_registry
from streamgate.tools import GENERATE_VISUAL, MANAGE_NOTE

pytestmark = pytest.mark.contract


def _request(**kwargs: Any) -> AdapterRequest:
    kwargs.setdefault("turn", ConversationTurn("user", "hi"))
    return AdapterRequest(model="m", **kwargs)


async def _drain(stream: AsyncIterator[RawEvent]) -> list[RawEvent]:
    return [e async for e in stream]


class _FakeStream:
    """Async-iterable SDK stream with a close() hook."""

    def __init__(self, items: list[Any]) -> None:
        self._items = items
        self.closed = False

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[Any]:
        for item in self._items:
            yield item

    async def close(self) -> None:
        self.closed = True


def test_every_adapter_satisfies_protocol() -> None:
    assert isinstance(SdkNativeAdapter(), TransportAdapter)
    assert isinstance(OpenAICompatibleAdapter(), TransportAdapter)
    assert isinstance(GeminiBackend(), TransportAdapter)
    assert isinstance(AnthropicBackend(), TransportAdapter)


# =============================================================================
# Gemini
# =============================================================================


def _part(**kwargs: Any) -> SimpleNamespace:
    defaults = {"text": None, "thought": None, "function_call": None}
    return SimpleNamespace(**{**defaults, **kwargs})


def _gemini_chunk(*parts: SimpleNamespace, grounding: Any = None) -> SimpleNamespace:
    return SimpleNamespace(
        candidates=[
            SimpleNamespace(
                content=SimpleNamespace(parts=list(parts)),
                grounding_metadata=grounding,
            )
        ]
    )


def test_gemini_projection_skips_thoughts() -> None:
    chunk = _gemini_chunk(_part(text="thinking...", thought=True), _part(text="Hi"))

    assert project_chunk(chunk) == [RawEvent(text="Hi")]


def test_gemini_function_call_is_one_closed_fragment() -> None:
    fc = SimpleNamespace(id=None, name="generate_visual", args={"prompt": "a cat"})

    [event] = project_chunk(_gemini_chunk(_part(function_call=fc)))

    assert event.tool is not None
    assert event.tool.closed is True
    assert event.tool.name == "generate_visual"
    acc = ToolCallAccumulator()
    [call] = acc.feed(event.tool)
    assert call.parsed_arguments() == {"prompt": "a cat"}


def test_gemini_grounding_chunks_become_refs() -> None:
    grounding = SimpleNamespace(
        grounding_chunks=[
            SimpleNamespace(web=SimpleNamespace(uri="https://a.example", title="A")),
            SimpleNamespace(web=None),
        ]
    )

    events = project_chunk(_gemini_chunk(_part(text="x"), grounding=grounding))

    assert events[-1].grounding[0].uri == "https://a.example"
    assert events[-1].grounding[0].title == "A"


def test_gemini_chunk_without_candidates_is_empty() -> None:
    assert project_chunk(SimpleNamespace(candidates=None)) == []


def test_gemini_config_carries_tools_grounding_and_thinking() -> None:
    config = build_config(
        _request(
            system_instruction="Be brief.",
            tools=(GENERATE_VISUAL,),
            grounding=True,
            thinking_budget=1024,
            max_tokens=256,
        )
    )

    assert config.system_instruction == "Be brief."
    assert config.max_output_tokens == 256
    assert config.thinking_config.thinking_budget == 1024
    assert config.tools[0].function_declarations[0].name == "generate_visual"
    assert config.tools[1].google_search is not None


@pytest.mark.asyncio
async def test_gemini_backend_streams_and_closes() -> None:
    calls: list[dict[str, Any]] = []
    closed: list[bool] = []

    async def stream() -> AsyncIterator[Any]:
        try:
            yield _gemini_chunk(_part(text="Hel"))
            yield _gemini_chunk(_part(text="lo"))
        finally:
            closed.append(True)

    async def generate_content_stream(**kwargs: Any) -> AsyncIterator[Any]:
        calls.append(kwargs)
        return stream()

    async def aclose() -> None:
        closed.append(True)

    client = SimpleNamespace(
        aio=SimpleNamespace(
            models=SimpleNamespace(generate_content_stream=generate_content_stream),
            aclose=aclose,
        )
    )
    keys: list[str] = []

    def factory(key: str) -> Any:
        keys.append(key)
        return client

    history = (
        ConversationTurn("user", "earlier"),
        ConversationTurn("assistant", "reply"),
    )
    events = await _drain(
        GeminiBackend(factory).open(
            default_registry().resolve("gemini"),
            "gemini-secret",
            _request(history=history),
        )
    )

    assert [e.text for e in events] == ["Hel", "lo"]
    assert keys == ["gemini-secret"]
    assert [c.role for c in calls[0]["contents"]] == ["user", "model", "user"]
    assert closed == [True, True]


# =============================================================================
# OpenAI-compatible
# =============================================================================


def test_openai_payload_defaults_system_message() -> None:
    payload = build_payload(_request())

    assert payload["messages"][0] == {
        "role": "system",
        "content": DEFAULT_SYSTEM_MESSAGE,
    }
    assert payload["stream"] is True
    assert "tools" not in payload
    assert "temperature" not in payload


def test_openai_payload_includes_image_as_data_url() -> None:
    turn = ConversationTurn("user", "what?", InlineData(b"img", "image/png"))

    payload = build_payload(_request(turn=turn, tools=(MANAGE_NOTE,), top_p=0.9))

    content = payload["messages"][-1]["content"]
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")
    assert payload["tools"][0]["function"]["name"] == "manage_note"
    assert payload["top_p"] == 0.9


def test_openai_projection_routes_tool_calls_by_index() -> None:
    events = project_openai(
        {
            "choices": [
                {
                    "delta": {
                        "tool_calls": [
                            {"index": 1, "function": {"arguments": '{"a"'}},
                        ]
                    },
                    "finish_reason": "tool_calls",
                }
            ]
        }
    )

    assert events[0].tool is not None
    assert events[0].tool.index == 1
    assert events[0].tool.call_id is None
    assert events[1].tools_done is True


def test_openai_projection_ignores_empty_choices() -> None:
    assert project_openai({"choices": []}) == []


@pytest.mark.asyncio
async def test_openai_adapter_passes_extras_and_closes_stream() -> None:
    stream = _FakeStream(
        [
            {"choices": [{"delta": {"content": "Hi"}}]},
            SimpleNamespace(
                model_dump=lambda exclude_none: {
                    "choices": [{"delta": {"content": "!"}}]
                }
            ),
        ]
    )
    seen: dict[str, Any] = {}

    async def create(**kwargs: Any) -> _FakeStream:
        seen.update(kwargs)
        return stream

    client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create))
    )

    def factory(key: str, base_url: str | None) -> Any:
        seen["base_url"] = base_url
        return client

    descriptor = ProviderDescriptor(
        id="custom",
        transport="openai-compatible",
        base_endpoint="https://llm.example/v1",
        extra_headers={"X-App": "demo"},
        extra_body={"route": "fast"},
    )
    events = await _drain(
        OpenAICompatibleAdapter(factory).open(descriptor, "sk-secret", _request())
    )

    assert [e.text for e in events] == ["Hi", "!"]
    assert seen["base_url"] == "https://llm.example/v1"
    assert seen["extra_headers"] == {"X-App": "demo"}
    assert seen["extra_body"] == {"route": "fast"}
    assert stream.closed is True


# =============================================================================
# Anthropic
# =============================================================================


def test_anthropic_kwargs_shape() -> None:
    turn = ConversationTurn("user", "look", InlineData(b"img", "image/jpeg"))

    kwargs = build_kwargs(
        _request(turn=turn, system_instruction="Persona", tools=(GENERATE_VISUAL,))
    )

    assert kwargs["max_tokens"] == 8192
    assert kwargs["system"] == "Persona"
    assert kwargs["stream"] is True
    assert kwargs["tools"][0]["input_schema"]["required"] == ["prompt"]
    image = kwargs["messages"][-1]["content"][0]
    assert image["source"]["media_type"] == "image/jpeg"


@pytest.mark.asyncio
async def test_anthropic_backend_projects_text_and_tool_blocks() -> None:
    ev = SimpleNamespace
    stream = _FakeStream(
        [
            ev(type="message_start"),
            ev(
                type="content_block_start",
                index=0,
                content_block=ev(type="text", text=""),
            ),
            ev(
                type="content_block_delta",
                index=0,
                delta=ev(type="text_delta", text="On it."),
            ),
            ev(type="content_block_stop", index=0),
            ev(
                type="content_block_start",
                index=1,
                content_block=ev(type="tool_use", id="toolu_1", name="manage_note"),
            ),
            ev(
                type="content_block_delta",
                index=1,
                delta=ev(type="input_json_delta", partial_json='{"action": '),
            ),
            ev(
                type="content_block_delta",
                index=1,
                delta=ev(type="input_json_delta", partial_json='"CREATE"}'),
            ),
            ev(type="content_block_stop", index=1),
            ev(type="message_stop"),
        ]
    )

    async def create(**kwargs: Any) -> _FakeStream:
        return stream

    client = SimpleNamespace(messages=SimpleNamespace(create=create))
    descriptor = default_registry().resolve("anthropic")

    events = await _drain(
        AnthropicBackend(lambda key: client).open(descriptor, "ak-secret", _request())
    )

    assert events[0].text == "On it."
    acc = ToolCallAccumulator()
    done = [inv for e in events if e.tool is not None for inv in acc.feed(e.tool)]
    assert len(done) == 1
    assert done[0].call_id == "toolu_1"
    assert done[0].parsed_arguments() == {"action": "CREATE"}
    assert stream.closed is True


# =============================================================================
# SDK-native dispatch
# =============================================================================


@pytest.mark.asyncio
async def test_native_adapter_routes_by_sdk_name() -> None:
    used: list[str] = []

    class _Backend:
        def __init__(self, name: str) -> None:
            self.name = name

        async def open(self, descriptor, credential, request):
            used.append(self.name)
            yield RawEvent(text=self.name)

    adapter = SdkNativeAdapter(
        {"google-genai": _Backend("gemini"), "anthropic": _Backend("claude")}
    )
    registry = default_registry()

    await _drain(adapter.open(registry.resolve("anthropic"), "k", _request()))
    await _drain(adapter.open(registry.resolve("gemini"), "k", _request()))

    assert used == ["claude", "gemini"]


def test_native_adapter_rejects_unknown_sdk() -> None:
    descriptor = ProviderDescriptor(id="x", transport="sdk-native", sdk="mystery")

    with pytest.raises(ConfigurationError, match="mystery"):
        SdkNativeAdapter({}).open(descriptor, "k", _request())


# =============================================================================
# Per-call client lifecycle
# =============================================================================


class _FakeSdkClient:
    """openai/anthropic-shaped client recording ``close()``."""

    def __init__(self, items: list[Any], *, fail: Exception | None = None) -> None:
        self.closed = 0
        self.stream = _FakeStream(items)
        self._fail = fail
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        self.messages = SimpleNamespace(create=self._create)

    async def _create(self, **kwargs: Any) -> _FakeStream:
        if self._fail is not None:
            raise self._fail
        return self.stream

    async def close(self) -> None:
        self.closed += 1


@pytest.mark.asyncio
async def test_openai_adapter_closes_each_client() -> None:
    clients: list[_FakeSdkClient] = []

    def factory(key: str, base_url: str | None) -> _FakeSdkClient:
        clients.append(_FakeSdkClient([{"choices": [{"delta": {"content": "x"}}]}]))
        return clients[-1]

    adapter = OpenAICompatibleAdapter(factory)
    descriptor = default_registry().resolve("groq")
    for _ in range(3):
        await _drain(adapter.open(descriptor, "k", _request()))

    assert [c.closed for c in clients] == [1, 1, 1]


@pytest.mark.asyncio
async def test_openai_client_closed_when_create_fails() -> None:
    client = _FakeSdkClient([], fail=RuntimeError("refused"))
    adapter = OpenAICompatibleAdapter(lambda key, base_url: client)

    with pytest.raises(RuntimeError, match="refused"):
        await _drain(adapter.open(default_registry().resolve("groq"), "k", _request()))

    assert client.closed == 1


@pytest.mark.asyncio
async def test_anthropic_client_closed_after_abandonment() -> None:
    ev = SimpleNamespace
    client = _FakeSdkClient(
        [
            ev(
                type="content_block_delta",
                index=0,
                delta=ev(type="text_delta", text=f"t{i}"),
            )
            for i in range(5)
        ]
    )
    stream = AnthropicBackend(lambda key: client).open(
        default_registry().resolve("anthropic"), "k", _request()
    )

    first = await stream.__anext__()
    await stream.aclose()

    assert first.text == "t0"
    assert client.stream.closed is True
    assert client.closed == 1
