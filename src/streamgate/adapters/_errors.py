"""Shared adapter-side error helpers.

Adapters let SDK and httpx exceptions propagate; the sequencer maps them
through ``wrap_provider_error`` so the terminal status carries a stable,
human-readable message without brittle substring matching.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from streamgate._http import RETRYABLE_STATUS_CODES
from streamgate.errors import (
    APIError,
    ProviderError,
    RateLimitError,
    TransportError,
    _walk_exception_chain,
)


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status", "code"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def extract_error_message(payload: Any) -> str | None:
    """Pull ``error.message`` out of a decoded provider error body."""
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    message = payload.get("message")
    return message if isinstance(message, str) and message else None


def _auth_hint(provider: str, status_code: int | None) -> str | None:
    if status_code in {401, 403}:
        name = provider.upper()
        return f"Check the {name}_API_KEY / {name}_KEY_n secrets."
    return None


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str = "stream",
    message: str | None = None,
) -> APIError:
    """Map SDK/httpx exceptions into TransportError or ProviderError."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        return exc

    status_code = extract_status_code(exc)
    network_failure = any(
        isinstance(
            e,
            (
                httpx.TimeoutException,
                httpx.TransportError,
                TimeoutError,
                ConnectionError,
            ),
        )
        for e in _walk_exception_chain(exc)
    )

    err_cls: type[APIError]
    if status_code == 429:
        err_cls = RateLimitError
    elif status_code is not None and not network_failure:
        err_cls = ProviderError
    else:
        err_cls = TransportError

    retryable = network_failure or status_code in RETRYABLE_STATUS_CODES
    msg = message or f"{provider} {phase} failed"
    status_note = f" (status={status_code})" if status_code is not None else ""
    cause = str(exc) or type(exc).__name__
    return err_cls(
        f"{msg}{status_note}: {cause}",
        hint=_auth_hint(provider, status_code),
        retryable=retryable,
        status_code=status_code,
        provider=provider,
        phase=phase,
    )
