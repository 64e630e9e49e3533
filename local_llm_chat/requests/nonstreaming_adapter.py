"""Non-streaming response handling.

When streaming is disabled the gateway answers with one JSON document; this
module reads it and extracts the first choice's message content. No reasoning
sentinel splitting is applied.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Union

import aiohttp
from pydantic import BaseModel, ConfigDict, ValidationError

from ..core.errors import InferenceAPIError, _error_envelope_from_payload
from ..core.utils import _safe_json_loads

LOGGER = logging.getLogger(__name__)


class _CompletionMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: Union[str, List[Any], None] = None


class _CompletionChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: Optional[_CompletionMessage] = None


class _CompletionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: Optional[List[_CompletionChoice]] = None
    error: Any = None


def _extract_chat_message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        fragments: list[str] = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                text_val = part.get("text")
                if isinstance(text_val, str):
                    fragments.append(text_val)
        return "".join(fragments)
    return ""


class NonStreamingAdapter:
    """Read a complete chat completion response."""

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self.logger = logger or LOGGER

    async def read_content(self, resp: aiohttp.ClientResponse) -> str:
        """Return the assistant text of a 2xx non-streaming response.

        Raises:
            InferenceAPIError: when the body is not JSON, carries an error
                envelope, or has no choices.
        """
        body_text = await resp.text()
        return self.extract_content(body_text, status=resp.status)

    def extract_content(self, body_text: str, *, status: Optional[int] = None) -> str:
        raw = _safe_json_loads(body_text)
        if not isinstance(raw, dict):
            raise InferenceAPIError(
                status=status,
                error="The inference gateway returned an invalid response",
                details=body_text[:500] if body_text else None,
                raw_body=body_text,
            )
        try:
            payload = _CompletionPayload.model_validate(raw)
        except ValidationError as exc:
            self.logger.warning("Unexpected completion payload shape: %s", exc.errors(include_url=False))
            raise InferenceAPIError(
                status=status,
                error="The inference gateway returned an unexpected response",
                raw_body=body_text,
            ) from exc

        if payload.error:
            envelope = _error_envelope_from_payload(raw)
            raise InferenceAPIError(
                status=status,
                error=envelope["error"],
                details=envelope["details"],
                raw_body=body_text,
            )
        if not payload.choices:
            raise InferenceAPIError(
                status=status,
                error="The response did not contain any choices",
                raw_body=body_text,
            )
        message = payload.choices[0].message
        return _extract_chat_message_text(message.content if message else None)
