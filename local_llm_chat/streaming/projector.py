"""Project accumulated response text onto a conversation's message list."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..state.models import Message
from .reasoning_tracker import AccumulatedText

LOGGER = logging.getLogger(__name__)


class ConversationProjector:
    """Map ``(reasoning, answer)`` pairs onto the in-progress message list.

    ``base_messages`` must end with the assistant placeholder created at send
    time. Every call returns a brand-new tuple; previously returned tuples and
    the messages inside them are never mutated. A reasoning message is
    materialized the first time reasoning text is non-empty and is always
    placed immediately before the trailing assistant message.
    """

    def __init__(self, base_messages: Sequence[Message], *, logger: Optional[logging.Logger] = None):
        if not base_messages or base_messages[-1].role != "assistant":
            raise ValueError("Projection requires a trailing assistant placeholder message.")
        self.logger = logger or LOGGER
        self._prefix: tuple[Message, ...] = tuple(base_messages[:-1])
        self._assistant: Message = base_messages[-1]
        self._reasoning: Optional[Message] = None

    @property
    def has_reasoning(self) -> bool:
        return self._reasoning is not None

    def _assemble(self) -> tuple[Message, ...]:
        if self._reasoning is None:
            return self._prefix + (self._assistant,)
        return self._prefix + (self._reasoning, self._assistant)

    def project(self, text: AccumulatedText) -> tuple[Message, ...]:
        reasoning, answer = text
        if reasoning and self._reasoning is None:
            self._reasoning = Message(role="reasoning", content="")
            self.logger.debug("Materializing reasoning message")
        if self._reasoning is not None and self._reasoning.content != reasoning:
            self._reasoning = self._reasoning.model_copy(update={"content": reasoning})
        if self._assistant.content != answer:
            self._assistant = self._assistant.model_copy(update={"content": answer})
        return self._assemble()

    def complete(self, content: str) -> tuple[Message, ...]:
        """Single atomic update used for non-streaming responses."""
        self._reasoning = None
        self._assistant = self._assistant.model_copy(update={"content": content})
        return self._assemble()

    def fail(self, error_text: str) -> tuple[Message, ...]:
        """Replace reasoning and answer with exactly one assistant error message."""
        self._reasoning = None
        self._assistant = Message(role="assistant", content=error_text)
        return self._assemble()
