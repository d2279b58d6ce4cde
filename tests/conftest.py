"""Shared fixtures for the chatgate test suite."""

import json

import pytest

import chatgate.counters.factory as factory_mod
import chatgate.keys.pool as pool_mod
import chatgate.proxy.handler as handler_mod
import chatgate.security.ratelimit as ratelimit_mod
from chatgate.config.settings import get_settings
from chatgate.providers.base import StreamChunk


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """Reset all module-level singletons between tests."""
    monkeypatch.setattr(factory_mod, "_store", None)
    monkeypatch.setattr(ratelimit_mod, "_strategy", None)
    monkeypatch.setattr(handler_mod, "_provider", None)
    monkeypatch.setattr(pool_mod, "_initialized", False)
    yield


@pytest.fixture
def api_keys(monkeypatch):
    """Factory fixture: replace the upstream key pool in the environment.

    Usage:
        api_keys("sk-primary", "sk-second")   # primary, then _1, _2, ...
        api_keys()                            # empty pool
    """
    def _clear():
        monkeypatch.delenv(pool_mod.PRIMARY_ENV_VAR, raising=False)
        for i in range(1, pool_mod.MAX_INDEXED_KEYS + 1):
            monkeypatch.delenv(f"{pool_mod.PRIMARY_ENV_VAR}_{i}", raising=False)

    _clear()

    def _set(*keys: str):
        _clear()
        if not keys:
            return
        monkeypatch.setenv(pool_mod.PRIMARY_ENV_VAR, keys[0])
        for i, key in enumerate(keys[1:], start=1):
            monkeypatch.setenv(f"{pool_mod.PRIMARY_ENV_VAR}_{i}", key)

    return _set


@pytest.fixture
def chat_request_body() -> dict:
    """Standard chat request body from the browser client."""
    return {
        "messages": [
            {"role": "system", "content": "You are a helpful assistant."},
            {"role": "user", "content": "Hello, how are you?"},
        ],
    }


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(RATE_LIMIT_BACKEND="memory", LOG_LEVEL="DEBUG")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


def make_stream_chunks(text: str, chunk_size: int = 5) -> list[StreamChunk]:
    """Build a list of StreamChunk objects from text, splitting into small deltas."""
    chunks = []
    for i in range(0, len(text), chunk_size):
        delta = text[i:i + chunk_size]
        data = json.dumps({
            "id": "chatcmpl-test",
            "object": "chat.completion.chunk",
            "choices": [{"index": 0, "delta": {"content": delta}, "finish_reason": None}],
        })
        chunks.append(StreamChunk(data=data, is_done=False, text_delta=delta))
    # Finish reason chunk
    finish_data = json.dumps({
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
    })
    chunks.append(StreamChunk(data=finish_data, is_done=False, text_delta=""))
    # [DONE] sentinel
    chunks.append(StreamChunk(data="[DONE]", is_done=True, text_delta=""))
    return chunks
