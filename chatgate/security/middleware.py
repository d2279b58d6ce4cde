"""Rate limit wrapper for route handlers."""

from collections.abc import Awaitable, Callable
from functools import wraps

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from chatgate.errors import GatewayError, error_response
from chatgate.logging.audit import get_audit_logger
from chatgate.security.client_ip import rate_limit_key
from chatgate.security.ratelimit import RateLimitConfig, check_admission

Handler = Callable[[Request], Awaitable[Response]]


def with_rate_limit(config: RateLimitConfig, prefix: str) -> Callable[[Handler], Handler]:
    """Wrap ``handler`` with per-client admission control.

    Denied requests get a 429 and never reach the handler. Allowed requests
    get X-RateLimit-* headers on whatever the handler returns, including
    ``GatewayError`` responses.

    Usage:
        app.add_api_route("/api/chat", with_rate_limit(RATE_LIMITS[CHAT], "chat")(handler))
    """
    def decorator(handler: Handler) -> Handler:
        @wraps(handler)
        async def wrapper(request: Request) -> Response:
            identity = rate_limit_key(request.headers, prefix)
            result = await check_admission(identity, config)

            if not result.allowed:
                get_audit_logger().warning(
                    "Rate limit exceeded",
                    extra={"audit_data": {
                        "identity": identity,
                        "rate_limit": result.limit,
                        "retry_after": result.retry_after,
                    }},
                )
                return JSONResponse(
                    status_code=429,
                    content={
                        "error": "Too many requests. Please try again later.",
                        "retryAfter": result.retry_after,
                    },
                    headers={
                        "Retry-After": str(result.retry_after),
                        "X-RateLimit-Limit": str(config.max_requests),
                        "X-RateLimit-Remaining": "0",
                        "X-RateLimit-Reset": str(result.reset_epoch_seconds),
                    },
                )

            try:
                response = await handler(request)
            except GatewayError as e:
                response = error_response(e)

            response.headers["X-RateLimit-Limit"] = str(config.max_requests)
            response.headers["X-RateLimit-Remaining"] = str(result.remaining)
            response.headers["X-RateLimit-Reset"] = str(result.reset_epoch_seconds)
            return response

        return wrapper

    return decorator
