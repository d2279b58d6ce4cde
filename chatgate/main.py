"""Chatgate — FastAPI application entry point.

Chat back-end in front of an OpenRouter-compatible AI provider. Every
route is rate limited per client IP and endpoint class; outbound calls
rotate through a pool of upstream API keys.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from chatgate.config.settings import get_settings
from chatgate.errors import GatewayError, error_response
from chatgate.keys.pool import initialize, rotation_status
from chatgate.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from chatgate.proxy.handler import close_client, forward_with_rotation, stream_with_rotation
from chatgate.security.middleware import with_rate_limit
from chatgate.security.ratelimit import RATE_LIMITS, EndpointClass
from chatgate.security.validation import ChatRequest, validation_details

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    initialize()
    get_audit_logger().info("Gateway started")
    yield
    await close_client()
    get_audit_logger().info("Gateway stopped")


app = FastAPI(
    title="Chatgate",
    description="Rate-limited chat API over an upstream AI provider",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return error_response(exc)


@app.get("/api")
@app.get("/health")
async def health():
    return {"message": "Chatgate API", "version": VERSION, "status": "healthy"}


async def chat(request: Request) -> Response:
    """Chat completion, streamed as plain text or returned as one JSON body.

    Upstream failures raise GatewayError subclasses; the rate limit wrapper
    turns them into safe error responses.
    """
    logger = get_audit_logger()
    request_id_var.set(generate_request_id())

    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    try:
        chat_request = ChatRequest.model_validate(payload)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": validation_details(e)},
        )

    settings = get_settings()
    body = {
        "model": settings.openrouter_model,
        "messages": [m.model_dump() for m in chat_request.messages],
        "stream": chat_request.stream,
    }

    # Metadata only, never message contents
    logger.info(
        "Chat request",
        extra={"audit_data": {
            "message_count": len(chat_request.messages),
            "stream": chat_request.stream,
            "model": settings.openrouter_model,
        }},
    )

    if chat_request.stream:
        return await _handle_streaming(body)

    try:
        with RequestTimer() as timer:
            result = await forward_with_rotation(body)
        choices = result.body.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content")
    except (ValueError, AttributeError, IndexError):
        logger.error("Unparseable upstream response")
        return JSONResponse(status_code=500, content={"error": "Failed to parse response"})

    logger.info(
        "Chat completed",
        extra={"audit_data": {
            "upstream_status": result.status_code,
            "latency_ms": timer.elapsed_ms,
            "has_content": bool(content),
        }},
    )

    if not content:
        return JSONResponse(status_code=500, content={"error": "No response generated"})

    return JSONResponse(content={"success": True, "content": content})


async def _handle_streaming(body: dict) -> StreamingResponse:
    """Relay upstream text deltas as plain-text chunks."""
    upstream, chunks = await stream_with_rotation(body)
    logger = get_audit_logger()

    async def text_generator():
        try:
            async for chunk in chunks:
                if chunk.is_done:
                    return
                if chunk.text_delta:
                    yield chunk.text_delta
        except GatewayError as e:
            # Headers are already sent; all we can do is end the stream
            logger.error("Stream interrupted", extra={"audit_data": {"error": str(e)}})

    return StreamingResponse(
        text_generator(),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache"},
        # Releases the upstream connection even if the client left before the first chunk
        background=BackgroundTask(upstream.aclose),
    )


async def key_status(request: Request) -> Response:
    """Key rotation status for monitoring. Never includes key material."""
    status = rotation_status()
    current_index = status.current_index + 1 if status.current_index is not None else None
    return JSONResponse(content={
        "success": True,
        "status": {
            "totalKeys": status.total_keys,
            "activeKeys": status.total_keys - status.failed_count,
            "currentIndex": current_index,  # 1-indexed for display
            "lastReset": status.last_reset,
        },
    })


async def key_status_post():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})


app.add_api_route(
    "/api/chat",
    with_rate_limit(RATE_LIMITS[EndpointClass.CHAT], "chat")(chat),
    methods=["POST"],
)
app.add_api_route(
    "/api/keys",
    with_rate_limit(RATE_LIMITS[EndpointClass.PUBLIC], "keys:status")(key_status),
    methods=["GET"],
)
app.add_api_route("/api/keys", key_status_post, methods=["POST"])
