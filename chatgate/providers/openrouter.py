"""OpenRouter provider (OpenAI-compatible chat completions API)."""

import json
from collections.abc import AsyncGenerator

import httpx

from chatgate.config.settings import get_settings
from chatgate.errors import UpstreamRateLimited, UpstreamRequestFailed
from chatgate.providers.base import LLMProvider, ProviderResponse, StreamChunk


def _raise_for_status(status_code: int) -> None:
    if status_code == 429:
        raise UpstreamRateLimited()
    if not 200 <= status_code < 300:
        raise UpstreamRequestFailed(
            f"Upstream returned HTTP {status_code}", upstream_status=status_code
        )


class OpenRouterProvider(LLMProvider):
    """Forwards chat requests to OpenRouter."""

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
        return self._client

    def _build_headers(self, api_key: str) -> dict:
        settings = get_settings()
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": settings.app_url,
            "X-Title": settings.app_title,
        }

    async def chat_completion(self, body: dict, api_key: str) -> ProviderResponse:
        settings = get_settings()
        headers = self._build_headers(api_key)

        client = await self._get_client()
        try:
            response = await client.post(settings.upstream_chat_url, json=body, headers=headers)
        except httpx.TimeoutException:
            raise UpstreamRequestFailed("Upstream provider timed out")
        except httpx.HTTPError as e:
            raise UpstreamRequestFailed(f"Cannot reach upstream provider: {e}")

        _raise_for_status(response.status_code)
        # ValueError on a non-JSON body propagates to the route handler
        return ProviderResponse(status_code=response.status_code, body=response.json())

    async def open_stream(self, body: dict, api_key: str) -> httpx.Response:
        settings = get_settings()
        headers = self._build_headers(api_key)

        # Ensure stream flag is set in the forwarded body
        stream_body = {**body, "stream": True}

        client = await self._get_client()
        request = client.build_request(
            "POST", settings.upstream_chat_url, json=stream_body, headers=headers
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException:
            raise UpstreamRequestFailed("Upstream provider timed out")
        except httpx.HTTPError as e:
            raise UpstreamRequestFailed(f"Cannot reach upstream provider: {e}")

        if not 200 <= response.status_code < 300:
            await response.aclose()
            _raise_for_status(response.status_code)
        return response

    async def iter_stream(self, response: httpx.Response) -> AsyncGenerator[StreamChunk, None]:
        try:
            async for line in response.aiter_lines():
                line = line.strip()
                if not line or not line.startswith("data:"):
                    continue

                payload = line[len("data:"):].strip()
                if payload == "[DONE]":
                    yield StreamChunk(data="[DONE]", is_done=True, text_delta="")
                    return

                # Extract text delta from chunk
                text_delta = ""
                try:
                    chunk = json.loads(payload)
                    choices = chunk.get("choices", [])
                    if choices:
                        delta = choices[0].get("delta", {})
                        text_delta = delta.get("content", "") or ""
                except json.JSONDecodeError:
                    pass

                yield StreamChunk(data=payload, is_done=False, text_delta=text_delta)
        except httpx.HTTPError as e:
            raise UpstreamRequestFailed(f"Upstream stream interrupted: {e}")
        finally:
            await response.aclose()

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
