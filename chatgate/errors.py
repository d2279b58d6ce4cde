"""Error taxonomy for the gateway.

Every error carries the HTTP status and the message shown to end clients.
Public messages are fixed strings: upstream error text, credential values
and stack traces stay in the audit log.
"""

from fastapi.responses import JSONResponse

SERVICE_UNAVAILABLE = "Service temporarily unavailable. Please try again later."


class GatewayError(Exception):
    status_code: int = 500
    public_message: str = "Internal server error"


class NoCredentialsConfigured(GatewayError):
    """The upstream credential pool is empty."""

    status_code = 503
    public_message = SERVICE_UNAVAILABLE

    def __init__(self, message: str = "No OpenRouter API keys configured"):
        super().__init__(message)


class UpstreamRequestFailed(GatewayError):
    """Network failure or non-2xx answer from the AI provider."""

    public_message = "Failed to connect to AI service. Please try again."

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status

    @property
    def status_code(self) -> int:
        # Upstream 401/403 means our pool is misconfigured
        if self.upstream_status in (401, 403):
            return 503
        return 502


class UpstreamRateLimited(UpstreamRequestFailed):
    """The AI provider answered 429."""

    public_message = "API rate limit exceeded. Please wait a moment and try again."

    def __init__(self, message: str = "Upstream rate limit exceeded"):
        super().__init__(message, upstream_status=429)

    @property
    def status_code(self) -> int:
        return 429


class CounterStoreUnavailable(GatewayError):
    """The shared rate-limit counter store failed. Admission fails open."""

    status_code = 503
    public_message = SERVICE_UNAVAILABLE


class InvalidClientIdentity(GatewayError):
    """No usable client IP. Callers degrade to the shared "unknown" bucket."""

    status_code = 400
    public_message = "Invalid client identity."


def error_response(exc: GatewayError, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.public_message},
        headers=headers,
    )
