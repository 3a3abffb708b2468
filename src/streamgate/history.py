"""Bounded conversation history re-injected into each call."""

from __future__ import annotations

import base64
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from streamgate.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterator

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class InlineData:
    """Binary payload sent inline with a turn (e.g. an image)."""

    data: bytes
    mime_type: str

    @classmethod
    def from_base64(cls, data: str, mime_type: str) -> InlineData:
        return cls(base64.b64decode(data), mime_type)

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64}"


@dataclass(frozen=True)
class ConversationTurn:
    """One side of an exchange."""

    role: Role
    content: str
    attachment: InlineData | None = None

    def __post_init__(self) -> None:
        if self.role not in ("user", "assistant"):
            raise ConfigurationError(
                f"role must be 'user' or 'assistant', got {self.role!r}"
            )

    def text_only(self) -> ConversationTurn:
        """This turn without its attachment."""
        if self.attachment is None:
            return self
        return ConversationTurn(self.role, self.content)


class HistoryBuffer:
    """Sliding window of the N most recent turns, oldest evicted first.

    A buffer belongs to one conversation. It is not locked: if two calls for
    the same conversation run concurrently, whichever finishes last appends
    last (last-writer-wins); turns are never interleaved within an exchange.
    """

    def __init__(self, max_turns: int = 10) -> None:
        if max_turns < 2 or max_turns % 2:
            raise ConfigurationError(
                f"max_turns must be an even number ≥ 2, got {max_turns}",
                hint="The window holds whole user/assistant pairs.",
            )
        self.max_turns = max_turns
        self._turns: deque[ConversationTurn] = deque(maxlen=max_turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self._turns)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def record_exchange(self, user: ConversationTurn, assistant_text: str) -> bool:
        """Append a completed exchange; skipped when either side is empty.

        Only the text of the user turn is kept. Attachments belong to the call
        that sent them and are not replayed to later providers.
        """
        if not user.content or not assistant_text:
            return False
        self._turns.extend(
            (
                user.text_only(),
                ConversationTurn(role="assistant", content=assistant_text),
            )
        )
        return True

    def snapshot(self) -> tuple[ConversationTurn, ...]:
        """Immutable copy of the current window."""
        return tuple(self._turns)

    def clear(self) -> None:
        self._turns.clear()
