"""Tests for the FastAPI inference gateway.

The gateway is exercised in-process through httpx's ASGI transport; its
upstream calls to the inference server are mocked with aioresponses.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import aiohttp
import httpx
import pytest
import pytest_asyncio
from aioresponses import aioresponses
from yarl import URL

from local_llm_chat.api.gateway import create_gateway_app
from local_llm_chat.streaming.sse_parser import DeltaFrame, DoneFrame, ErrorFrame, SSEParser

COMPLETIONS_URL = "http://inference.test/v1/chat/completions"
UPSTREAM_MODELS_URL = "http://inference.test/v1/models"


def _sse(obj: dict[str, Any]) -> str:
    """Format object as SSE data line."""
    return f"data: {json.dumps(obj)}\n\n"


@pytest_asyncio.fixture
async def gateway_client(gateway_config):
    app = create_gateway_app(gateway_config)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def _frames(raw: bytes) -> list:
    async def _chunks():
        yield raw

    return [frame async for frame in SSEParser().iter_frames(_chunks())]


# -----------------------------------------------------------------------------
# /api/login
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_accepts_configured_password(gateway_client) -> None:
    resp = await gateway_client.post("/api/login", json={"password": "s3cret"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"password": "nope"}, {}])
async def test_login_rejects_wrong_or_missing_password(gateway_client, body) -> None:
    resp = await gateway_client.post("/api/login", json=body)

    assert resp.status_code == 401
    assert resp.json() == {"success": False}


# -----------------------------------------------------------------------------
# /api/models
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_models_passthrough(gateway_client) -> None:
    listing = {"object": "list", "data": [{"id": "qwen-7b", "object": "model"}]}
    with aioresponses() as mock_http:
        mock_http.get(UPSTREAM_MODELS_URL, payload=listing)
        resp = await gateway_client.get("/api/models")

    assert resp.status_code == 200
    assert resp.json() == listing


@pytest.mark.asyncio
async def test_models_connection_failure(gateway_client) -> None:
    with aioresponses() as mock_http:
        mock_http.get(UPSTREAM_MODELS_URL, exception=aiohttp.ClientConnectionError("Connection refused"))
        resp = await gateway_client.get("/api/models")

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "Could not connect to the inference server",
        "details": "Connection refused",
        "target": "http://inference.test/v1",
    }


@pytest.mark.asyncio
async def test_models_upstream_error_status(gateway_client) -> None:
    with aioresponses() as mock_http:
        mock_http.get(UPSTREAM_MODELS_URL, status=503, body="busy")
        resp = await gateway_client.get("/api/models")

    assert resp.status_code == 500
    assert "503" in resp.json()["details"]


# -----------------------------------------------------------------------------
# /api/chat, non-streaming
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_chat_rejects_invalid_json(gateway_client) -> None:
    resp = await gateway_client.post(
        "/api/chat",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid JSON body"}


@pytest.mark.asyncio
async def test_chat_rejects_non_object_body(gateway_client) -> None:
    resp = await gateway_client.post("/api/chat", json=[1, 2, 3])
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_chat_non_streaming_passthrough(gateway_client) -> None:
    upstream = json.dumps({"choices": [{"message": {"role": "assistant", "content": "42"}}]})
    body = {"model": "qwen-7b", "messages": [{"role": "user", "content": "?"}], "stream": False}
    with aioresponses() as mock_http:
        mock_http.post(COMPLETIONS_URL, body=upstream, content_type="application/json")
        resp = await gateway_client.post("/api/chat", json=body)
        forwarded = mock_http.requests[("POST", URL(COMPLETIONS_URL))][0].kwargs["json"]

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.text == upstream
    assert forwarded == body


@pytest.mark.asyncio
async def test_chat_non_streaming_upstream_error(gateway_client) -> None:
    with aioresponses() as mock_http:
        mock_http.post(COMPLETIONS_URL, status=503, body="model is loading")
        resp = await gateway_client.post("/api/chat", json={"messages": [], "stream": False})

    assert resp.status_code == 503
    assert resp.json() == {"error": "Inference server error: 503", "details": "model is loading"}


@pytest.mark.asyncio
async def test_chat_non_streaming_connection_error(gateway_client) -> None:
    with aioresponses() as mock_http:
        mock_http.post(COMPLETIONS_URL, exception=aiohttp.ClientConnectionError("Connection refused"))
        resp = await gateway_client.post("/api/chat", json={"messages": [], "stream": False})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Connection error", "details": "Connection refused"}


# -----------------------------------------------------------------------------
# /api/chat, streaming
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_chat_stream_starts_with_keepalive_and_relays_bytes(gateway_client) -> None:
    upstream = (
        _sse({"choices": [{"delta": {"content": "[THINK]hmm"}}]})
        + _sse({"choices": [{"delta": {"content": "[/THINK]42"}}]})
        + "data: [DONE]\n\n"
    )
    with aioresponses() as mock_http:
        mock_http.post(COMPLETIONS_URL, body=upstream)
        resp = await gateway_client.post("/api/chat", json={"messages": [], "stream": True})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.content == b": ping\n\n" + upstream.encode("utf-8")

    frames = await _frames(resp.content)
    assert [type(frame) for frame in frames] == [DeltaFrame, DeltaFrame, DoneFrame]


@pytest.mark.asyncio
async def test_chat_stream_is_default(gateway_client) -> None:
    with aioresponses() as mock_http:
        mock_http.post(COMPLETIONS_URL, body="data: [DONE]\n\n")
        resp = await gateway_client.post("/api/chat", json={"messages": []})

    assert resp.headers["content-type"].startswith("text/event-stream")


@pytest.mark.asyncio
async def test_chat_stream_upstream_error_becomes_error_frame(gateway_client) -> None:
    with aioresponses() as mock_http:
        mock_http.post(COMPLETIONS_URL, status=500, body="kaput")
        resp = await gateway_client.post("/api/chat", json={"messages": []})

    assert resp.status_code == 200
    frames = await _frames(resp.content)
    assert frames == [ErrorFrame(error="Inference server error: 500", details="kaput")]


@pytest.mark.asyncio
async def test_chat_stream_timeout_becomes_error_frame(gateway_client) -> None:
    with aioresponses() as mock_http:
        mock_http.post(COMPLETIONS_URL, exception=asyncio.TimeoutError())
        resp = await gateway_client.post("/api/chat", json={"messages": []})

    assert resp.content.startswith(b": ping\n\n")
    frames = await _frames(resp.content)
    assert frames == [ErrorFrame(error="Connection error", details="The model took too long to respond")]
