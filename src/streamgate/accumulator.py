"""Reassemble streamed tool-call fragments into complete invocations.

Each call moves ``Idle -> Accumulating -> Closed``. Argument text is
appended strictly in arrival order: providers stream JSON arguments a few
characters at a time, so concatenation order is the payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any
import uuid

from streamgate.events import ToolCall

if TYPE_CHECKING:
    from streamgate.adapters.base import ToolFragment


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:8]}"


@dataclass
class ToolInvocation:
    """One tool call being assembled."""

    call_id: str
    name: str | None = None
    argument_buffer: list[str] = field(default_factory=list)
    closed: bool = False

    @property
    def arguments(self) -> str:
        return "".join(self.argument_buffer)

    def append(self, fragment: str) -> None:
        if self.closed:
            raise RuntimeError(f"tool call {self.call_id} is already closed")
        if fragment:
            self.argument_buffer.append(fragment)

    def parsed_arguments(self) -> dict[str, Any]:
        text = self.arguments
        if not text:
            return {}
        try:
            value = json.loads(text)
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}

    def to_event(self) -> ToolCall:
        return ToolCall(
            call_id=self.call_id, name=self.name, argument_fragment=self.arguments
        )


class ToolCallAccumulator:
    """Fold fragments for one stream into completed ToolInvocations."""

    def __init__(self) -> None:
        self._open: dict[int | str, ToolInvocation] = {}
        self.completed: list[ToolInvocation] = []

    @property
    def has_open_calls(self) -> bool:
        return bool(self._open)

    def feed(self, fragment: ToolFragment) -> list[ToolInvocation]:
        """Apply one fragment; return any invocation it completed."""
        key = fragment.key
        call = self._open.get(key)
        if call is None:
            call = ToolInvocation(call_id=fragment.call_id or _new_call_id())
            self._open[key] = call
        if fragment.name and not call.name:
            call.name = fragment.name
        call.append(fragment.arguments)
        if fragment.closed:
            return [self._close(key)]
        return []

    def close(self, key: int | str) -> ToolInvocation | None:
        """Close the call routed under *key*, if open."""
        if key not in self._open:
            return None
        return self._close(key)

    def flush(self) -> list[ToolInvocation]:
        """Close every open call, in the order they were opened."""
        return [self._close(key) for key in list(self._open)]

    def _close(self, key: int | str) -> ToolInvocation:
        call = self._open.pop(key)
        call.closed = True
        self.completed.append(call)
        return call
