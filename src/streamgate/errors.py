"""Exception hierarchy for streamgate.

These exceptions are raised inside the gateway and converted into a terminal
``status=error`` event at the stream boundary. Callers of ``Gateway.stream()``
never see them raised; they surface only through construction-time
validation (``Config``, ``ProviderRegistry``) and direct adapter use.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class StreamgateError(Exception):
    """Base exception for all streamgate errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(StreamgateError):
    """Configuration validation or resolution failed."""


class UnknownProviderError(ConfigurationError):
    """The requested provider id is not in the registry."""


class MissingCredentialError(StreamgateError):
    """No usable secret is configured for the chosen provider."""

    def __init__(self, provider: str, *, hint: str | None = None) -> None:
        if hint is None:
            hint = f"Set {provider.upper()}_API_KEY or {provider.upper()}_KEY_1."
        super().__init__(f"API key for {provider} not found", hint=hint)
        self.provider = provider


class APIError(StreamgateError):
    """A provider call failed.

    ``retryable`` is advisory: the gateway never retries on its own, but a
    caller re-invoking the gateway will rotate to the next credential.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.provider = provider
        self.phase = phase


class TransportError(APIError):
    """Connection refused, timeout, or a malformed response body."""


class ProviderError(APIError):
    """The backend returned a structured error payload."""


class RateLimitError(ProviderError):
    """Rate limit exceeded (HTTP 429)."""


class PartialStreamFailure(StreamgateError):
    """A failure after some events were already delivered to the caller."""

    def __init__(self, cause: BaseException, *, delivered: int) -> None:
        super().__init__(str(cause) or type(cause).__name__)
        self.cause = cause
        self.delivered = delivered


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, once each."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
