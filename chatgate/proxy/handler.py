"""Outbound calls to the AI provider with bounded credential rotation.

The first attempt uses the key for the current minute; each failure
rotates to another pool member, up to MAX_ATTEMPTS calls in total. An
empty pool is not retried.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any, TypeVar

from chatgate.errors import UpstreamRequestFailed
from chatgate.keys.pool import current_key, rotate_on_failure
from chatgate.logging.audit import get_audit_logger
from chatgate.providers.base import LLMProvider, ProviderResponse, StreamChunk
from chatgate.providers.openrouter import OpenRouterProvider

MAX_ATTEMPTS = 5

T = TypeVar("T")

_provider: LLMProvider | None = None


def get_provider() -> LLMProvider:
    """Get or create the upstream provider singleton."""
    global _provider
    if _provider is None:
        _provider = OpenRouterProvider()
    return _provider


async def _with_rotation(call: Callable[[str], Awaitable[T]]) -> T:
    logger = get_audit_logger()
    selection = current_key()
    api_key = selection.key
    attempt = 1

    while True:
        try:
            return await call(api_key)
        except UpstreamRequestFailed as e:
            logger.warning(
                "Upstream request failed",
                extra={"audit_data": {
                    "attempt": attempt,
                    "max_attempts": MAX_ATTEMPTS,
                    "upstream_status": e.upstream_status,
                    "error": str(e),
                }},
            )
            if attempt >= MAX_ATTEMPTS:
                raise
        api_key = rotate_on_failure()
        attempt += 1


async def forward_with_rotation(body: dict) -> ProviderResponse:
    """Non-streaming completion, rotating keys on upstream failure.

    Raises:
        NoCredentialsConfigured: the pool is empty.
        UpstreamRequestFailed: every attempt failed (the last error is raised).
    """
    provider = get_provider()
    return await _with_rotation(lambda api_key: provider.chat_completion(body=body, api_key=api_key))


async def stream_with_rotation(body: dict) -> tuple[Any, AsyncGenerator[StreamChunk, None]]:
    """Open a streaming completion with rotation.

    Returns the open upstream response and its chunk iterator. The iterator
    closes the response when it finishes, but callers must still close the
    response themselves in case iteration never starts.

    Rotation only covers opening the stream; once bytes flow, a failure
    ends the stream.
    """
    provider = get_provider()
    response = await _with_rotation(lambda api_key: provider.open_stream(body=body, api_key=api_key))
    return response, provider.iter_stream(response)


async def close_client() -> None:
    """Gracefully close the provider on shutdown."""
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None
