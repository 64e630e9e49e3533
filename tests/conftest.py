"""Test configuration helpers for unit tests."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import aiohttp
import pytest

from local_llm_chat.core.config import ClientConfig, GatewayConfig
from local_llm_chat.state.app_state import AppState
from local_llm_chat.storage.persistence import ChatPersistence, LocalStore

GATEWAY_URL = "http://gateway.test"
INFERENCE_URL = "http://inference.test/v1"


# -----------------------------------------------------------------------------
# Fake aiohttp objects
# -----------------------------------------------------------------------------

class _FakeContent:
    """Fake aiohttp response content yielding pre-cut chunks."""

    def __init__(
        self,
        chunks: list[bytes],
        *,
        raise_after: int | None = None,
        exception: BaseException | None = None,
        on_chunk=None,
    ) -> None:
        self._chunks = chunks
        self._raise_after = raise_after
        self._exception = exception or aiohttp.ClientPayloadError("Simulated stream error")
        self._on_chunk = on_chunk
        self.chunks_read = 0

    async def iter_chunked(self, _size: int):
        for idx, chunk in enumerate(self._chunks):
            if self._raise_after is not None and idx >= self._raise_after:
                raise self._exception
            await asyncio.sleep(0)
            self.chunks_read += 1
            if self._on_chunk is not None:
                self._on_chunk(idx)
            yield chunk


class _FakeResponse:
    """Fake aiohttp response usable as an async context manager."""

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        *,
        status: int = 200,
        body: str | None = None,
        raise_after: int | None = None,
        exception: BaseException | None = None,
        on_chunk=None,
    ) -> None:
        self.status = status
        self.reason = "OK" if status < 400 else "Error"
        self._body = body if body is not None else b"".join(chunks or []).decode("utf-8", "replace")
        self.content = _FakeContent(
            chunks or [],
            raise_after=raise_after,
            exception=exception,
            on_chunk=on_chunk,
        )

    async def text(self) -> str:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakeSession:
    """Fake aiohttp ClientSession recording POSTs and replaying one response."""

    def __init__(self, response: _FakeResponse | None = None, *, error: BaseException | None = None) -> None:
        self._response = response
        self._error = error
        self.post_calls: list[dict[str, Any]] = []

    def post(self, url: str, json=None, headers=None, timeout=None):
        self.post_calls.append({"url": url, "json": json, "timeout": timeout})
        if self._error is not None:
            raise self._error
        assert self._response is not None
        return self._response


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def fake_session_factory():
    def _factory(chunks: list[bytes] | None = None, **kwargs: Any) -> _FakeSession:
        error = kwargs.pop("error", None)
        if error is not None:
            return _FakeSession(error=error)
        return _FakeSession(_FakeResponse(chunks, **kwargs))

    return _factory


@pytest.fixture
def client_config(tmp_path) -> ClientConfig:
    return ClientConfig(
        GATEWAY_URL=GATEWAY_URL,
        MODEL="local-model",
        STORAGE_DIR=str(tmp_path / "storage"),
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        INFERENCE_BASE_URL=INFERENCE_URL,
        APP_PASSWORD="s3cret",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def local_store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "storage")


@pytest.fixture
def persistence(local_store) -> ChatPersistence:
    return ChatPersistence(local_store)


@pytest.fixture
def clock():
    counter = itertools.count(1_700_000_000_000)
    return lambda: next(counter)


@pytest.fixture
def app_state(persistence, clock) -> AppState:
    state = AppState(persistence, clock=clock)
    state.load()
    return state


@pytest.fixture
def recorded_changes(app_state):
    changes: list = []
    app_state.subscribe(changes.append)
    return changes
