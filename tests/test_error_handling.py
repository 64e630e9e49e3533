"""Tests for error envelope parsing and assistant-visible error messages."""

from __future__ import annotations

import asyncio

import aiohttp
import pytest

from local_llm_chat.core.config import ClientConfig
from local_llm_chat.core.errors import (
    InferenceAPIError,
    _build_inference_api_error,
    _extract_error_envelope,
    format_internal_error,
    format_transport_error,
)
from local_llm_chat.core.utils import _render_error_template


# -----------------------------------------------------------------------------
# Envelope parsing
# -----------------------------------------------------------------------------

@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ('{"error": "boom"}', {"error": "boom", "details": None}),
        ('{"error": "boom", "details": "why"}', {"error": "boom", "details": "why"}),
        ('{"error": {"message": "nested", "details": "deep"}}', {"error": "nested", "details": "deep"}),
        ("upstream exploded", {"error": None, "details": "upstream exploded"}),
        ("", {"error": None, "details": None}),
    ],
)
def test_extract_error_envelope(body: str, expected: dict) -> None:
    assert _extract_error_envelope(body) == expected


def test_build_error_from_status_and_body() -> None:
    err = _build_inference_api_error(502, "Bad Gateway", '{"error": "Inference server error: 502"}')

    assert err.status == 502
    assert err.reason == "Bad Gateway"
    assert str(err) == "Inference server error: 502"
    assert err.raw_body == '{"error": "Inference server error: 502"}'


def test_error_summary_without_envelope() -> None:
    assert str(InferenceAPIError(status=500, reason="Internal Server Error")) == (
        "Inference request failed (500 Internal Server Error)"
    )
    assert str(InferenceAPIError(status=None)) == "Inference request failed"


# -----------------------------------------------------------------------------
# Templates
# -----------------------------------------------------------------------------

def test_conditional_blocks_drop_when_value_missing() -> None:
    template = "Error: {error}.\n{{#if details}}\nDetails: {details}\n{{/if}}\nDone."

    assert _render_error_template(template, {"error": "x", "details": ""}) == "Error: x.\nDone."
    assert _render_error_template(template, {"error": "x", "details": "y"}) == "Error: x.\nDetails: y\nDone."


def test_lines_with_empty_placeholders_are_dropped() -> None:
    assert _render_error_template("A\nStatus: {status}\nB", {"status": None}) == "A\nB"


def test_numeric_zero_counts_as_present() -> None:
    template = "{{#if timeout_seconds}}\nTimeout: {timeout_seconds}s\n{{/if}}"

    assert _render_error_template(template, {"timeout_seconds": 0}) == "Timeout: 0s"


def test_nested_blocks_and_unknown_placeholders() -> None:
    template = "{{#if error}}\n{{#if details}}\n{details}\n{{/if}}\nsee {docs}\n{{/if}}"

    assert _render_error_template(template, {"error": "e", "details": " "}) == "see {docs}"
    assert _render_error_template(template, {"error": "", "details": "d"}) == ""


def test_upstream_message_uses_default_template() -> None:
    config = ClientConfig()
    err = _build_inference_api_error(500, "", '{"error": "boom"}')

    message = err.to_message(config.UPSTREAM_ERROR_TEMPLATE)

    assert message == "Error: the inference gateway answered with HTTP 500.\nboom"


def test_stream_error_message() -> None:
    config = ClientConfig()
    err = InferenceAPIError(status=200, error="Connection error", details="reset", is_streaming_error=True)

    assert err.to_message(config.STREAM_ERROR_TEMPLATE) == "Error: Connection error.\nreset"


def test_custom_template_is_honoured() -> None:
    config = ClientConfig(UPSTREAM_ERROR_TEMPLATE="[{status}] {error}")
    err = _build_inference_api_error(418, "", '{"error": "teapot"}')

    assert err.to_message(config.UPSTREAM_ERROR_TEMPLATE) == "[418] teapot"


# -----------------------------------------------------------------------------
# Transport and internal errors
# -----------------------------------------------------------------------------

def test_timeout_message_mentions_limit() -> None:
    config = ClientConfig(REQUEST_TIMEOUT_SECONDS=30)

    message = format_transport_error(asyncio.TimeoutError(), config)

    assert message == "Error: the model took too long to respond.\nTimeout: 30s"


def test_connection_error_message() -> None:
    message = format_transport_error(aiohttp.ClientConnectionError("Connection refused"), ClientConfig())

    assert message == "Error: Connection refused.\nCheck the connection to the inference server."


def test_connection_error_without_text_uses_type_name() -> None:
    message = format_transport_error(aiohttp.ServerDisconnectedError(message=""), ClientConfig())
    assert "ServerDisconnectedError" in message


def test_internal_error_names_exception_type() -> None:
    message = format_internal_error(KeyError("x"), ClientConfig())

    assert "Error type: KeyError" in message
    assert "'x'" not in message
