"""Conversation data model.

Messages and conversations are frozen pydantic models: every update builds a
new object (``model_copy``) and a new container, so observers holding a
previous snapshot can detect changes by identity.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core.config import (
    DEFAULT_CHAT_TITLE,
    DEFAULT_SYSTEM_PROMPT,
    FILE_CONTENT_MAX_CHARS,
)
from ..core.utils import _truncate

Role = Literal["user", "assistant", "system", "reasoning"]


class Message(BaseModel):
    """One conversation entry."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Role
    content: str = ""
    images: Optional[tuple[str, ...]] = None
    had_images: bool = Field(default=False, alias="hadImages")

    @field_validator("role", mode="before")
    @classmethod
    def _legacy_role(cls, value):
        return "reasoning" if value == "thinking" else value

    def for_storage(self) -> "Message":
        """Return a copy without image payloads, remembering that some existed."""
        return self.model_copy(
            update={"images": None, "had_images": bool(self.images) or self.had_images}
        )


class Conversation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = DEFAULT_CHAT_TITLE
    messages: tuple[Message, ...] = ()
    created: int = 0

    def with_messages(self, messages: tuple[Message, ...], *, title: Optional[str] = None) -> "Conversation":
        update: dict[str, object] = {"messages": tuple(messages)}
        if title is not None:
            update["title"] = title
        return self.model_copy(update=update)


class Settings(BaseModel):
    """User-adjustable settings, persisted on every mutation."""

    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    streaming_enabled: bool = Field(default=True, alias="stream")
    show_reasoning: bool = Field(default=True, alias="showThinking")
    temperature: float = Field(default=0.7, ge=0, le=2)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, alias="systemPrompt")
    max_tokens: Optional[int] = Field(
        default=None,
        alias="maxTokens",
        description="Upper bound on generated tokens. None means unbounded.",
    )

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _normalize_unbounded(cls, value):
        # -1 is how older stores spelled "unbounded".
        if value is None or isinstance(value, bool):
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            return None
        return number if number > 0 else None


class Attachment(BaseModel):
    """A file or image attached to the next user message."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["image", "file"]
    name: str
    data: Optional[str] = None
    content: Optional[str] = None

    @field_validator("content")
    @classmethod
    def _limit_content(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _truncate(value, FILE_CONTENT_MAX_CHARS)

    @model_validator(mode="after")
    def _check_payload(self) -> "Attachment":
        if self.kind == "image" and not self.data:
            raise ValueError("image attachments need a data URI")
        if self.kind == "file" and self.content is None:
            raise ValueError("file attachments need text content")
        return self
