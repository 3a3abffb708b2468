"""Small HTTP-related constants shared across streamgate.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

# Status codes a caller may reasonably re-invoke on.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})

# Raw-SSE framing consumed from upstream providers.
SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"
