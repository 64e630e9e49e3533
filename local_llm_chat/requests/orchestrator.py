"""Send-operation orchestration.

One call to ``RequestOrchestrator.send`` runs one operation through:

    Building -> InFlight -> Streaming | NonStreaming -> Completed | Failed

Building snapshots the active conversation and writes the user message plus an
empty assistant placeholder. InFlight posts the request. Streaming drives the
SSE parser, delta accumulator and projector; NonStreaming performs one atomic
update. Every failure leaves exactly one assistant message describing it.

Writes go through ``AppState.replace_messages`` with the operation's token, so
once the operation is abandoned (new send, chat switch, delete, create) its
remaining output is read but discarded.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

import aiohttp

from ..core.config import ClientConfig
from ..core.errors import (
    InferenceAPIError,
    NothingToSendError,
    _build_inference_api_error,
    format_internal_error,
    format_transport_error,
)
from ..core.logging_system import SessionLogger
from ..state.app_state import AppState, OperationToken
from ..state.models import Attachment, Message
from ..streaming.projector import ConversationProjector
from ..streaming.reasoning_tracker import DeltaAccumulator
from ..streaming.sse_parser import DeltaFrame, ErrorFrame, SSEParser
from .nonstreaming_adapter import NonStreamingAdapter
from .transformer import build_chat_body, build_outgoing_messages, derive_title

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SendResult:
    """Outcome of one send operation."""

    conversation_id: str
    status: Literal["completed", "failed", "abandoned"]
    content: str = ""
    reasoning: str = ""
    error: Optional[str] = None


class RequestOrchestrator:
    """Owns the per-send lifecycle against the chat gateway."""

    def __init__(
        self,
        state: AppState,
        session: aiohttp.ClientSession,
        config: Optional[ClientConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._state = state
        self._session = session
        self.config = config or ClientConfig()
        self.logger = logger or LOGGER
        self._nonstreaming = NonStreamingAdapter(logger=self.logger)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def send(
        self,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> Optional[SendResult]:
        """Send ``text`` (plus attachments) in the active conversation.

        Returns None when there is nothing to send or no active conversation.
        A running operation is abandoned before the new one starts.
        """
        state = self._state
        chat = state.active_conversation
        if chat is None:
            self.logger.warning("Send ignored: no active conversation")
            return None
        settings = state.settings
        try:
            outgoing = build_outgoing_messages(
                chat.messages,
                text,
                attachments,
                system_prompt=settings.system_prompt,
            )
        except NothingToSendError:
            self.logger.debug("Send ignored: empty input and no attachments")
            return None

        token = state.begin_operation(chat.id)
        context_tokens = self._apply_logging_context(token)
        try:
            base = outgoing + (Message(role="assistant", content=""),)
            state.replace_messages(chat.id, base, token=token, title=derive_title(chat.title, text))
            state.persist_conversations()

            body = build_chat_body(state.selected_model or self.config.MODEL, outgoing, settings)
            self.logger.debug(
                "Sending %d message(s) to %s (model=%s, stream=%s)",
                len(body.messages),
                self.config.chat_url,
                body.model,
                body.stream,
            )
            projector = ConversationProjector(base, logger=self.logger)
            result = await self._execute(token, body.to_payload(), projector)
        except asyncio.CancelledError:
            if state.is_current(token):
                state.abandon_operation()
            raise
        finally:
            state.persist_conversations()
            state.finish_operation(token)
            for var, ctx_token in reversed(context_tokens):
                var.reset(ctx_token)
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _apply_logging_context(
        self, token: OperationToken
    ) -> list[tuple[ContextVar[Any], contextvars.Token[Any]]]:
        log_level = getattr(logging, self.config.LOG_LEVEL)
        return [
            (SessionLogger.request_id, SessionLogger.request_id.set(token.id)),
            (SessionLogger.conversation_id, SessionLogger.conversation_id.set(token.conversation_id)),
            (SessionLogger.log_level, SessionLogger.log_level.set(log_level)),
        ]

    def _write(self, token: OperationToken, messages: tuple[Message, ...]) -> bool:
        return self._state.replace_messages(token.conversation_id, messages, token=token)

    def _status(self, token: OperationToken, status: Literal["completed", "failed"]) -> str:
        return status if self._state.is_current(token) else "abandoned"

    async def _execute(
        self,
        token: OperationToken,
        payload: dict[str, Any],
        projector: ConversationProjector,
    ) -> SendResult:
        config = self.config
        timeout = aiohttp.ClientTimeout(total=config.REQUEST_TIMEOUT_SECONDS)
        try:
            async with self._session.post(config.chat_url, json=payload, timeout=timeout) as resp:
                if not 200 <= resp.status < 300:
                    body_text = await resp.text()
                    raise _build_inference_api_error(resp.status, resp.reason or "", body_text)
                if payload.get("stream"):
                    return await self._consume_stream(token, resp, projector)
                content = await self._nonstreaming.read_content(resp)
                self._write(token, projector.complete(content))
                return SendResult(token.conversation_id, self._status(token, "completed"), content=content)
        except InferenceAPIError as exc:
            template = config.STREAM_ERROR_TEMPLATE if exc.is_streaming_error else config.UPSTREAM_ERROR_TEMPLATE
            self.logger.warning("Inference gateway reported an error: %s", exc)
            message = exc.to_message(template)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.logger.error("Chat request failed: %s", str(exc) or type(exc).__name__)
            message = format_transport_error(exc, config)
        except Exception as exc:
            self.logger.error("Unexpected error while processing chat response", exc_info=True)
            message = format_internal_error(exc, config)

        self._write(token, projector.fail(message))
        return SendResult(
            token.conversation_id,
            self._status(token, "failed"),
            content=message,
            error=message,
        )

    async def _consume_stream(
        self,
        token: OperationToken,
        resp: aiohttp.ClientResponse,
        projector: ConversationProjector,
    ) -> SendResult:
        accumulator = DeltaAccumulator()
        parser = SSEParser(logger=self.logger)
        stale_logged = False
        async for frame in parser.iter_frames(resp.content.iter_chunked(self.config.READ_CHUNK_SIZE)):
            if isinstance(frame, ErrorFrame):
                raise InferenceAPIError(
                    status=resp.status,
                    error=frame.error,
                    details=frame.details,
                    is_streaming_error=True,
                )
            if not isinstance(frame, DeltaFrame):
                break
            text = accumulator.append(frame.text)
            if not self._write(token, projector.project(text)) and not stale_logged:
                stale_logged = True
                self.logger.info("Operation %s was abandoned; draining the rest of the response", token.id)
        return SendResult(
            token.conversation_id,
            self._status(token, "completed"),
            content=accumulator.answer_text,
            reasoning=accumulator.reasoning_text,
        )
