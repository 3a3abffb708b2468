"""Credential discovery and rotation."""

from __future__ import annotations

from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest

from streamgate.config import discover_secrets
from streamgate.credentials import CredentialPool, CredentialStore
from streamgate.registry import default_registry

pytestmark = pytest.mark.unit


# =============================================================================
# Discovery
# =============================================================================


def test_discovery_order_is_single_key_then_numbered() -> None:
    env = {
        "GROQ_KEY_2": "numbered-two",
        "GROQ_API_KEY": "single-key",
        "GROQ_KEY_1": "numbered-one",
    }

    assert discover_secrets("groq", environ=env) == [
        "single-key",
        "numbered-one",
        "numbered-two",
    ]


def test_prefixed_variable_wins_over_plain_one() -> None:
    env = {"STREAMGATE_GROQ_API_KEY": "prefixed-value", "GROQ_API_KEY": "plain-value"}

    assert discover_secrets("groq", environ=env) == ["prefixed-value"]


def test_short_and_duplicate_values_are_dropped() -> None:
    env = {
        "OPENAI_API_KEY": "sk-real-key",
        "OPENAI_KEY_1": "abc",
        "OPENAI_KEY_2": "sk-real-key",
        "OPENAI_KEY_3": "sk-other-key",
    }

    assert discover_secrets("openai", environ=env) == ["sk-real-key", "sk-other-key"]


def test_numbered_keys_stop_at_twenty() -> None:
    env = {f"XAI_KEY_{i}": f"xai-secret-{i:02d}" for i in range(1, 23)}

    secrets = discover_secrets("xai", environ=env)

    assert len(secrets) == 20
    assert secrets[-1] == "xai-secret-20"


def test_fallback_env_is_consulted_last() -> None:
    env = {"API_KEY": "generic-key", "GEMINI_KEY_1": "gemini-key"}

    assert discover_secrets("gemini", environ=env, fallback_env=("API_KEY",)) == [
        "gemini-key",
        "generic-key",
    ]


def test_store_from_env_builds_shared_pool_for_veo() -> None:
    env = {"GEMINI_API_KEY": "gemini-secret", "API_KEY": "generic-secret"}

    store = CredentialStore.from_env(default_registry(), environ=env)

    pool = store.pool("gemini")
    assert pool is not None
    assert len(pool) == 2
    assert "veo" not in store
    assert store.acquire("groq") is None


# =============================================================================
# Rotation
# =============================================================================


def test_round_robin_visits_each_secret_equally() -> None:
    pool = CredentialPool("groq", ["k1-secret", "k2-secret", "k3-secret"])

    picks = [pool.acquire() for _ in range(9)]

    assert picks == ["k1-secret", "k2-secret", "k3-secret"] * 3
    assert pool.rotations == 9


def test_round_robin_is_fair_under_concurrency() -> None:
    pool = CredentialPool("groq", ["k1-secret", "k2-secret", "k3-secret"])

    with ThreadPoolExecutor(max_workers=8) as executor:
        picks = list(executor.map(lambda _: pool.acquire(), range(300)))

    assert Counter(picks) == {"k1-secret": 100, "k2-secret": 100, "k3-secret": 100}


def test_empty_pool_yields_absent() -> None:
    pool = CredentialPool("mistral")

    assert pool.acquire() is None
    assert len(pool) == 0


def test_pool_repr_hides_secrets() -> None:
    pool = CredentialPool("groq", ["super-secret-value"])

    assert "super-secret-value" not in repr(pool)


def test_store_lookup_is_case_insensitive() -> None:
    store = CredentialStore.from_secrets({"Groq": ["groq-secret"]})

    assert "GROQ" in store
    assert store.acquire("groq") == "groq-secret"
