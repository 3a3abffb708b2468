"""Canonical event types emitted by the gateway, whatever the provider."""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Literal

Outcome = Literal["success", "error"]


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    The gateway emits one ToolCall per completed invocation, so
    ``argument_fragment`` carries the full argument text.
    """

    call_id: str
    name: str | None = None
    argument_fragment: str | None = None

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the argument text as a JSON object ({} when empty or invalid)."""
        if not self.argument_fragment:
            return {}
        try:
            value = json.loads(self.argument_fragment)
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class GroundingRef:
    """A source cited by a web-grounded answer."""

    uri: str
    title: str | None = None


@dataclass(frozen=True)
class MediaRef:
    """Location of a generated media artifact (a video URI or an image data URL)."""

    uri: str
    mime_type: str | None = None


@dataclass(frozen=True)
class StreamStatus:
    """Terminal marker for a stream."""

    provider: str
    model: str
    latency_ms: int
    outcome: Outcome
    message: str | None = None


@dataclass(frozen=True)
class CanonicalEvent:
    """The single normalized unit of a gateway stream."""

    text_delta: str | None = None
    tool_call: ToolCall | None = None
    grounding_refs: tuple[GroundingRef, ...] | None = None
    media: MediaRef | None = None
    status: StreamStatus | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire shape, omitting absent fields."""
        out: dict[str, Any] = {}
        if self.text_delta is not None:
            out["text_delta"] = self.text_delta
        if self.tool_call is not None:
            tc: dict[str, Any] = {"call_id": self.tool_call.call_id}
            if self.tool_call.name is not None:
                tc["name"] = self.tool_call.name
            if self.tool_call.argument_fragment is not None:
                tc["argument_fragment"] = self.tool_call.argument_fragment
            out["tool_call"] = tc
        if self.grounding_refs is not None:
            out["grounding_refs"] = [
                {"uri": r.uri, **({"title": r.title} if r.title else {})}
                for r in self.grounding_refs
            ]
        if self.media is not None:
            out["media"] = {"uri": self.media.uri}
            if self.media.mime_type:
                out["media"]["mime_type"] = self.media.mime_type
        if self.status is not None:
            st: dict[str, Any] = {
                "provider": self.status.provider,
                "model": self.status.model,
                "latency_ms": self.status.latency_ms,
                "outcome": self.status.outcome,
            }
            if self.status.message is not None:
                st["message"] = self.status.message
            out["status"] = st
        return out
