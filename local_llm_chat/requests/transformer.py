"""Outgoing request construction.

This module turns the user's input into the messages and body sent upstream:
- build_outgoing_messages: history + optional system prompt + new user message
- derive_title: first-exchange conversation title
- to_api_messages: Message objects -> OpenAI chat message dicts (reasoning excluded)
- ChatCompletionsBody: validated request body
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from ..core.config import DEFAULT_CHAT_TITLE, IMAGE_ONLY_TITLE, TITLE_MAX_CHARS
from ..core.errors import NothingToSendError
from ..state.models import Attachment, Message, Settings

FILE_BLOCK_TEMPLATE = "\n\n[File: {name}]\n{content}"


class ChatCompletionsBody(BaseModel):
    """
    Body of a chat completions request sent to the gateway.
    """
    model: Optional[str] = None
    messages: List[Dict[str, Any]]
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    stream: bool = True
    model_config = ConfigDict(extra="forbid")

    def to_payload(self) -> dict[str, Any]:
        # An unbounded max_tokens is omitted, never sent as null.
        return self.model_dump(exclude_none=True)


def _render_user_content(text: str, attachments: Sequence[Attachment]) -> str:
    blocks = [
        FILE_BLOCK_TEMPLATE.format(name=item.name, content=item.content or "")
        for item in attachments
        if item.kind == "file"
    ]
    return text + "".join(blocks)


def build_outgoing_messages(
    history: Sequence[Message],
    text: str,
    attachments: Sequence[Attachment] = (),
    *,
    system_prompt: str = "",
) -> tuple[Message, ...]:
    """Return the conversation's new message list ending with the user message.

    Raises:
        NothingToSendError: when ``text`` is blank and nothing is attached.
    """
    text = text or ""
    if not text.strip() and not attachments:
        raise NothingToSendError("Nothing to send: the message is empty and has no attachments.")

    messages = list(history)
    if not messages and system_prompt:
        messages.append(Message(role="system", content=system_prompt))

    images = tuple(item.data for item in attachments if item.kind == "image" and item.data)
    messages.append(
        Message(
            role="user",
            content=_render_user_content(text, attachments),
            images=images or None,
        )
    )
    return tuple(messages)


def derive_title(current_title: str, text: str) -> str:
    """Title a conversation from its first typed text; later sends keep the title."""
    if current_title != DEFAULT_CHAT_TITLE:
        return current_title
    return (text or "")[:TITLE_MAX_CHARS] or IMAGE_ONLY_TITLE


def _to_api_content(message: Message) -> Union[str, List[Dict[str, Any]]]:
    if message.role != "user" or not message.images:
        return message.content
    parts: List[Dict[str, Any]] = [{"type": "text", "text": message.content}]
    parts.extend({"type": "image_url", "image_url": {"url": url}} for url in message.images)
    return parts


def to_api_messages(messages: Sequence[Message]) -> List[Dict[str, Any]]:
    """Convert to upstream message dicts. Reasoning is never sent back to the model."""
    return [
        {"role": message.role, "content": _to_api_content(message)}
        for message in messages
        if message.role != "reasoning"
    ]


def build_chat_body(
    model: Optional[str],
    messages: Sequence[Message],
    settings: Settings,
) -> ChatCompletionsBody:
    return ChatCompletionsBody(
        model=model or None,
        messages=to_api_messages(messages),
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        stream=settings.streaming_enabled,
    )
