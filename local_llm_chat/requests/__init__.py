"""Request handling subsystem.

This module provides the send pipeline pieces:
- RequestOrchestrator: Per-send lifecycle (build, post, stream or read, finalize)
- NonStreamingAdapter: Reads a complete JSON completion
- Transformer helpers: Outgoing messages, titles and the request body
"""

from __future__ import annotations

from .nonstreaming_adapter import NonStreamingAdapter
from .orchestrator import RequestOrchestrator, SendResult
from .transformer import (
    ChatCompletionsBody,
    build_chat_body,
    build_outgoing_messages,
    derive_title,
    to_api_messages,
)

__all__ = [
    "NonStreamingAdapter",
    "RequestOrchestrator",
    "SendResult",
    "ChatCompletionsBody",
    "build_chat_body",
    "build_outgoing_messages",
    "derive_title",
    "to_api_messages",
]
