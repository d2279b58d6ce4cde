"""Abstract base for upstream LLM providers."""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from dataclasses import dataclass


@dataclass
class ProviderResponse:
    status_code: int
    body: dict


@dataclass
class StreamChunk:
    data: str          # Raw SSE payload (JSON string or "[DONE]")
    is_done: bool      # True for terminal signal
    text_delta: str    # Extracted text for relaying


class LLMProvider(ABC):
    """Base class for provider implementations.

    Every call takes the upstream API key explicitly so the caller can
    rotate credentials between attempts.
    """

    @abstractmethod
    async def chat_completion(self, body: dict, api_key: str) -> ProviderResponse:
        """Send a chat completion request.

        Raises:
            UpstreamRateLimited: the provider answered 429.
            UpstreamRequestFailed: network error or any other non-2xx.
        """
        ...

    @abstractmethod
    async def open_stream(self, body: dict, api_key: str):
        """Start a streaming completion and return the open upstream response.

        Raises the same errors as ``chat_completion`` before any data is read,
        so the caller can still rotate keys.
        """
        ...

    @abstractmethod
    def iter_stream(self, response) -> AsyncGenerator[StreamChunk, None]:
        """Yield chunks from a response returned by ``open_stream``."""
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass
