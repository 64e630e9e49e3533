"""Configuration management for the local LLM chat client and gateway.

This module contains all configuration schemas and constants:
- ClientConfig: Settings for the chat client (gateway URL, timeouts, storage, templates)
- GatewayConfig: Settings for the inference gateway (upstream URL, password, timeouts)
- User-facing defaults (chat title, system prompt, attachment limits)
- Error template constants
"""

from __future__ import annotations

import logging
import os
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field

LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

DEFAULT_CHAT_TITLE = "Nuevo chat"
IMAGE_ONLY_TITLE = "Imagen"
TITLE_MAX_CHARS = 30
FILE_CONTENT_MAX_CHARS = 5000
DEFAULT_SYSTEM_PROMPT = "You are a helpful and concise assistant."

STORAGE_KEY_CHATS = "ai_chat_history"
STORAGE_KEY_SETTINGS = "ai_chat_settings"

_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_STREAM_ERROR_TEMPLATE = (
    "Error: {error}.\n"
    "{{#if details}}\n"
    "{details}\n"
    "{{/if}}\n"
)

DEFAULT_UPSTREAM_ERROR_TEMPLATE = (
    "Error: the inference gateway answered with HTTP {status}.\n"
    "{{#if error}}\n"
    "{error}\n"
    "{{/if}}\n"
    "{{#if details}}\n"
    "{details}\n"
    "{{/if}}\n"
)

DEFAULT_TRANSPORT_ERROR_TEMPLATE = (
    "Error: {error}.\n"
    "Check the connection to the inference server.\n"
)

DEFAULT_TIMEOUT_ERROR_TEMPLATE = (
    "Error: the model took too long to respond.\n"
    "{{#if timeout_seconds}}\n"
    "Timeout: {timeout_seconds}s\n"
    "{{/if}}\n"
)

DEFAULT_INTERNAL_ERROR_TEMPLATE = (
    "Error: something unexpected went wrong while processing your request.\n"
    "{{#if error_type}}\n"
    "Error type: {error_type}\n"
    "{{/if}}\n"
)


def _resolve_log_level_default() -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
    """Normalize env-provided log level to the allowed literal set."""
    value = (os.getenv("GLOBAL_LOG_LEVEL") or "INFO").strip().upper()
    if value not in _ALLOWED_LOG_LEVELS:
        value = "INFO"
    return cast(Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], value)


def _default_storage_dir() -> str:
    raw = (os.getenv("LOCAL_LLM_CHAT_STORAGE_DIR") or "").strip()
    return raw or os.path.join("~", ".local_llm_chat")


# -----------------------------------------------------------------------------
# Client and Gateway Configuration Classes
# -----------------------------------------------------------------------------

class ClientConfig(BaseModel):
    """Chat client configuration, read once at startup."""

    model_config = ConfigDict(validate_assignment=True)

    # Connection
    GATEWAY_URL: str = Field(
        default_factory=lambda: (os.getenv("CHAT_GATEWAY_URL") or "").strip() or "http://127.0.0.1:8000",
        description="Base URL of the gateway serving /api/chat, /api/models and /api/login.",
    )
    MODEL: str = Field(
        default_factory=lambda: (os.getenv("MODEL_ID") or "").strip(),
        description="Preferred model id. Empty selects the first model reported by the gateway.",
    )
    REQUEST_TIMEOUT_SECONDS: int = Field(
        default=180,
        ge=1,
        description="Total upper bound (seconds) on a chat request, including the full streamed body.",
    )
    MODELS_TIMEOUT_SECONDS: int = Field(
        default=5,
        ge=1,
        description="Total timeout (seconds) for a single model listing request.",
    )
    MODELS_FETCH_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made when listing models before giving up. Chat requests are never retried.",
    )
    READ_CHUNK_SIZE: int = Field(
        default=4096,
        ge=1,
        description="Maximum number of bytes read from the response body per iteration.",
    )

    # Storage & Logging
    STORAGE_DIR: str = Field(
        default_factory=_default_storage_dir,
        description="Directory holding the persisted conversations and settings (JSON files).",
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default_factory=_resolve_log_level_default,
        description="Minimum level written to the console for chat operations.",
    )

    # Error templates
    STREAM_ERROR_TEMPLATE: str = Field(
        default=DEFAULT_STREAM_ERROR_TEMPLATE,
        description="Template for error frames received inside a streamed response. Placeholders: {error}, {details}.",
    )
    UPSTREAM_ERROR_TEMPLATE: str = Field(
        default=DEFAULT_UPSTREAM_ERROR_TEMPLATE,
        description="Template for non-2xx gateway responses. Placeholders: {status}, {reason}, {error}, {details}.",
    )
    TRANSPORT_ERROR_TEMPLATE: str = Field(
        default=DEFAULT_TRANSPORT_ERROR_TEMPLATE,
        description="Template for network failures. Placeholders: {error}, {error_type}.",
    )
    TIMEOUT_ERROR_TEMPLATE: str = Field(
        default=DEFAULT_TIMEOUT_ERROR_TEMPLATE,
        description="Template for requests exceeding REQUEST_TIMEOUT_SECONDS. Placeholders: {timeout_seconds}.",
    )
    INTERNAL_ERROR_TEMPLATE: str = Field(
        default=DEFAULT_INTERNAL_ERROR_TEMPLATE,
        description="Template for unexpected failures. Placeholders: {error_type}.",
    )

    @property
    def chat_url(self) -> str:
        return f"{self.GATEWAY_URL.rstrip('/')}/api/chat"

    @property
    def models_url(self) -> str:
        return f"{self.GATEWAY_URL.rstrip('/')}/api/models"

    @property
    def login_url(self) -> str:
        return f"{self.GATEWAY_URL.rstrip('/')}/api/login"


class GatewayConfig(BaseModel):
    """Inference gateway configuration."""

    INFERENCE_BASE_URL: str = Field(
        default_factory=lambda: (os.getenv("LM_STUDIO_URL") or "").strip() or "http://127.0.0.1:1234/v1",
        description="OpenAI-compatible base URL of the local inference server.",
    )
    APP_PASSWORD: str = Field(
        default_factory=lambda: os.getenv("APP_PASSWORD") or "admin123",
        description="Shared password checked by the login gate.",
    )
    CHAT_TIMEOUT_SECONDS: int = Field(
        default=180,
        ge=1,
        description="Total timeout (seconds) for a proxied chat completion, streamed or not.",
    )
    MODELS_TIMEOUT_SECONDS: int = Field(
        default=5,
        ge=1,
        description="Total timeout (seconds) for the proxied model listing.",
    )
    KEEPALIVE_COMMENT: str = Field(
        default=": ping",
        description="Comment line written before any upstream byte so idle proxies keep the stream open.",
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default_factory=_resolve_log_level_default,
        description="Minimum level written to the console by the gateway.",
    )

    @property
    def chat_completions_url(self) -> str:
        return f"{self.INFERENCE_BASE_URL.rstrip('/')}/chat/completions"

    @property
    def models_url(self) -> str:
        return f"{self.INFERENCE_BASE_URL.rstrip('/')}/models"
