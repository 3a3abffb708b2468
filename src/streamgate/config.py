"""Configuration: frozen Config plus credential discovery from the environment."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from streamgate.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

load_dotenv()

DEFAULT_ENV_PREFIX = "STREAMGATE_"
#: Numbered secrets are looked up as ``P_KEY_1`` .. ``P_KEY_20``.
MAX_NUMBERED_KEYS = 20
#: Values this short are placeholders, not secrets.
MIN_SECRET_LENGTH = 6


@dataclass(frozen=True)
class Config:
    """Immutable gateway configuration.

    Secrets are not part of Config; they are discovered per provider by
    ``discover_secrets`` and held by the credential pools.

    Example:
        config = Config(system_instruction=persona_prompt, history_turns=10)
        gateway = Gateway.from_env(config)
    """

    #: Used when a call does not name a model.
    default_model: str = "gemini-3-flash-preview"
    #: Opaque persona prompt sent as the system instruction.
    system_instruction: str | None = None
    #: Number of turns (user + assistant) re-injected as context. Must be even.
    history_turns: int = 10
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    poll_interval_s: float = 10.0
    #: Hard ceiling on long-poll operations; exceeding it ends the stream with an error.
    max_poll_wait_s: float = 600.0
    connect_timeout_s: float = 10.0
    read_timeout_s: float = 180.0
    env_prefix: str = DEFAULT_ENV_PREFIX
    #: Append a visible error marker to the text stream before the error status.
    inline_errors: bool = True

    def __post_init__(self) -> None:
        """Validate numeric fields early for clear errors."""
        if self.history_turns < 2 or self.history_turns % 2:
            raise ConfigurationError(
                f"history_turns must be an even number ≥ 2, got {self.history_turns}",
                hint="Each exchange is a user turn plus an assistant turn.",
            )
        if self.poll_interval_s < 0:
            raise ConfigurationError(
                f"poll_interval_s must be ≥ 0, got {self.poll_interval_s}"
            )
        if self.max_poll_wait_s <= 0:
            raise ConfigurationError(
                f"max_poll_wait_s must be > 0, got {self.max_poll_wait_s}",
                hint="Long-poll operations need a finite upper bound.",
            )
        if self.connect_timeout_s <= 0 or self.read_timeout_s <= 0:
            raise ConfigurationError("HTTP timeouts must be > 0")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ConfigurationError(
                "max_tokens must be a positive integer",
                hint="Pass max_tokens=2048 or leave it unset.",
            )


def discover_secrets(
    provider: str,
    *,
    environ: Mapping[str, str] | None = None,
    prefix: str = DEFAULT_ENV_PREFIX,
    fallback_env: Iterable[str] = (),
) -> list[str]:
    """Collect the secrets configured for *provider*, in pool order.

    Lookup order is ``{prefix}P_API_KEY`` / ``P_API_KEY`` first, then
    ``{prefix}P_KEY_i`` / ``P_KEY_i`` for i in 1..20, then any
    ``fallback_env`` names. Within a slot the prefixed variant wins. Short
    values and duplicates are dropped.
    """
    env = os.environ if environ is None else environ
    name = provider.upper()

    def lookup(var: str) -> str | None:
        return env.get(f"{prefix}{var}") or env.get(var)

    candidates = [lookup(f"{name}_API_KEY")]
    candidates.extend(
        lookup(f"{name}_KEY_{i}") for i in range(1, MAX_NUMBERED_KEYS + 1)
    )
    candidates.extend(env.get(var) for var in fallback_env)

    secrets: list[str] = []
    for value in candidates:
        if not value or len(value) < MIN_SECRET_LENGTH or value in secrets:
            continue
        secrets.append(value)
    return secrets
