"""Rotating credential pools, one per provider."""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import TYPE_CHECKING

from streamgate.config import DEFAULT_ENV_PREFIX, discover_secrets

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from streamgate.registry import ProviderRegistry

log = logging.getLogger(__name__)


class CredentialPool:
    """Ordered set of secrets with a round-robin cursor.

    Consecutive ``acquire()`` calls cycle through the secrets in order,
    starting at index 0. The counter is the only mutable state and is
    guarded by a lock, so concurrent callers never skip or repeat a slot.
    """

    def __init__(self, provider_id: str, secrets: Iterable[str] = ()) -> None:
        self.provider_id = provider_id
        unique: list[str] = []
        for s in secrets:
            if s and s not in unique:
                unique.append(s)
        self._secrets = tuple(unique)
        self._counter = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._secrets)

    def __repr__(self) -> str:
        return f"CredentialPool(provider_id={self.provider_id!r}, size={len(self)})"

    @property
    def rotations(self) -> int:
        """Number of secrets handed out so far."""
        return self._counter

    def acquire(self) -> str | None:
        """Return the next secret, or None when the pool is empty."""
        if not self._secrets:
            return None
        with self._lock:
            index = self._counter % len(self._secrets)
            self._counter += 1
        return self._secrets[index]


class CredentialStore:
    """Process-wide mapping of pool id to CredentialPool.

    Built once at gateway construction; pools are never added afterwards.
    """

    def __init__(self, pools: Iterable[CredentialPool] = ()) -> None:
        self._pools: Mapping[str, CredentialPool] = MappingProxyType(
            {p.provider_id.lower(): p for p in pools}
        )

    @classmethod
    def from_secrets(cls, secrets: Mapping[str, Iterable[str]]) -> CredentialStore:
        """Build a store from an explicit ``{provider_id: [secret, ...]}`` map."""
        return cls(CredentialPool(pid, values) for pid, values in secrets.items())

    @classmethod
    def from_env(
        cls,
        registry: ProviderRegistry,
        *,
        environ: Mapping[str, str] | None = None,
        prefix: str = DEFAULT_ENV_PREFIX,
    ) -> CredentialStore:
        """Discover secrets for every credential pool the registry references."""
        fallbacks: dict[str, list[str]] = {}
        for descriptor in registry:
            names = fallbacks.setdefault(descriptor.credential_pool, [])
            names.extend(n for n in descriptor.fallback_env if n not in names)

        pools = []
        for pool_id, fallback_env in fallbacks.items():
            secrets = discover_secrets(
                pool_id, environ=environ, prefix=prefix, fallback_env=fallback_env
            )
            if secrets:
                log.info("Loaded %d key(s) for %s", len(secrets), pool_id)
            pools.append(CredentialPool(pool_id, secrets))
        return cls(pools)

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.lower() in self._pools

    def pool(self, provider_id: str) -> CredentialPool | None:
        return self._pools.get(provider_id.lower())

    def acquire(self, provider_id: str) -> str | None:
        """Return the next secret for *provider_id*; absent is a valid result."""
        pool = self._pools.get(provider_id.lower())
        if pool is None:
            return None
        return pool.acquire()
