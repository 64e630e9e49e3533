"""Inference gateway application.

A thin FastAPI proxy in front of a local OpenAI-compatible inference server:
- POST /api/login: shared-password check
- GET  /api/models: model listing passthrough
- POST /api/chat: chat completions, streamed as SSE unless ``"stream": false``

Streaming responses open with a keepalive comment before any upstream byte and
relay upstream bytes unchanged. Upstream failures that happen after the
response has started are reported in-band as ``data: {"error", "details"}``
frames, which the client's SSE parser treats as terminal.

Serve the result of ``create_gateway_app()`` with any ASGI server.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from typing import Any, AsyncGenerator, Optional

import aiohttp
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from ..core.config import GatewayConfig

LOGGER = logging.getLogger(__name__)

_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}
_RELAY_CHUNK_SIZE = 4096

TIMEOUT_DETAILS = "The model took too long to respond"


class LoginRequest(BaseModel):
    password: str = ""


def _error_frame(error: str, details: Optional[str]) -> bytes:
    payload = json.dumps({"error": error, "details": details or ""}, ensure_ascii=False)
    return f"data: {payload}\n\n".encode("utf-8")


def _describe_transport_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return TIMEOUT_DETAILS
    return str(exc).strip() or type(exc).__name__


def create_gateway_app(
    config: Optional[GatewayConfig] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> FastAPI:
    """Build the gateway application bound to ``config``."""
    config = config or GatewayConfig()
    log = logger or LOGGER
    app = FastAPI(title="Local LLM Chat Gateway")
    app.state.config = config

    @app.post("/api/login")
    async def login(req: LoginRequest):
        expected = config.APP_PASSWORD.encode("utf-8")
        if secrets.compare_digest(req.password.encode("utf-8"), expected):
            return {"success": True}
        log.info("Rejected login attempt")
        return JSONResponse({"success": False}, status_code=401)

    @app.get("/api/models")
    async def list_models():
        log.debug("Fetching models from %s", config.models_url)
        timeout = aiohttp.ClientTimeout(total=config.MODELS_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(config.models_url) as resp:
                    if resp.status >= 400:
                        raise RuntimeError(f"Inference server answered with status {resp.status}")
                    data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError) as exc:
            log.error("Model listing failed: %s", _describe_transport_error(exc))
            return JSONResponse(
                {
                    "error": "Could not connect to the inference server",
                    "details": _describe_transport_error(exc),
                    "target": config.INFERENCE_BASE_URL,
                },
                status_code=500,
            )
        return JSONResponse(data)

    @app.post("/api/chat")
    async def chat(request: Request):
        try:
            body: Any = await request.json()
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        streaming = body.get("stream") is not False
        log.info(
            "Forwarding chat request (%s) to %s",
            "stream" if streaming else "json",
            config.chat_completions_url,
        )
        if not streaming:
            return await _forward_once(body)
        return StreamingResponse(
            _relay_stream(body),
            media_type="text/event-stream",
            headers=_STREAM_HEADERS,
        )

    async def _forward_once(body: dict[str, Any]) -> Response:
        timeout = aiohttp.ClientTimeout(total=config.CHAT_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(config.chat_completions_url, json=body) as resp:
                    text = await resp.text()
                    if resp.status >= 400:
                        log.warning("Inference server error %s: %.200s", resp.status, text)
                        return JSONResponse(
                            {"error": f"Inference server error: {resp.status}", "details": text},
                            status_code=resp.status,
                        )
                    return Response(content=text, media_type="application/json")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log.error("Chat request failed: %s", _describe_transport_error(exc))
            return JSONResponse(
                {"error": "Connection error", "details": _describe_transport_error(exc)},
                status_code=500,
            )

    async def _relay_stream(body: dict[str, Any]) -> AsyncGenerator[bytes, None]:
        yield f"{config.KEEPALIVE_COMMENT}\n\n".encode("utf-8")
        timeout = aiohttp.ClientTimeout(total=config.CHAT_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(config.chat_completions_url, json=body) as resp:
                    if resp.status >= 400:
                        text = await resp.text()
                        log.warning("Inference server error %s: %.200s", resp.status, text)
                        yield _error_frame(f"Inference server error: {resp.status}", text)
                        return
                    async for chunk in resp.content.iter_chunked(_RELAY_CHUNK_SIZE):
                        yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log.error("Chat stream failed: %s", _describe_transport_error(exc))
            yield _error_frame("Connection error", _describe_transport_error(exc))

    return app
