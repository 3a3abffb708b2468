"""Streamgate: one streaming interface over many LLM providers.

Public API:
    - Gateway: Model resolution, history, and stream dispatch
    - Config: Configuration dataclass
    - CanonicalEvent: The normalized stream unit
    - ToolDeclaration: Provider-neutral tool definitions
    - CredentialStore / ProviderRegistry: Credential pools and provider table
"""

from __future__ import annotations

import logging

from streamgate.config import Config, discover_secrets
from streamgate.credentials import CredentialPool, CredentialStore
from streamgate.errors import (
    APIError,
    ConfigurationError,
    MissingCredentialError,
    PartialStreamFailure,
    ProviderError,
    RateLimitError,
    StreamgateError,
    TransportError,
    UnknownProviderError,
)
from streamgate.events import (
    CanonicalEvent,
    GroundingRef,
    MediaRef,
    StreamStatus,
    ToolCall,
)
from streamgate.gateway import Gateway, GenerationResult
from streamgate.history import ConversationTurn, HistoryBuffer, InlineData
from streamgate.models import ModelCatalog, ModelSpec, default_catalog
from streamgate.registry import (
    ProviderCapabilities,
    ProviderDescriptor,
    ProviderRegistry,
    default_registry,
)
from streamgate.tools import BUILTIN_TOOLS, ToolDeclaration

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("streamgate")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("streamgate").addHandler(logging.NullHandler())

__all__ = [
    "BUILTIN_TOOLS",
    "APIError",
    "CanonicalEvent",
    "Config",
    "ConfigurationError",
    "ConversationTurn",
    "CredentialPool",
    "CredentialStore",
    "Gateway",
    "GenerationResult",
    "GroundingRef",
    "HistoryBuffer",
    "InlineData",
    "MediaRef",
    "MissingCredentialError",
    "ModelCatalog",
    "ModelSpec",
    "PartialStreamFailure",
    "ProviderCapabilities",
    "ProviderDescriptor",
    "ProviderError",
    "ProviderRegistry",
    "RateLimitError",
    "StreamStatus",
    "StreamgateError",
    "ToolCall",
    "ToolDeclaration",
    "TransportError",
    "UnknownProviderError",
    "default_catalog",
    "default_registry",
    "discover_secrets",
]
