"""Error handling and user-facing error formatting.

This module handles all error-related functionality:
- InferenceAPIError: Rich error class for non-2xx gateway responses and in-band error frames
- Error envelope parsing ({"error": ..., "details": ...})
- Transport error classification (timeouts vs. connection failures)

Responsible for translating technical errors into the single assistant message
a failed send operation leaves in the conversation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional

import aiohttp

from .utils import _normalize_optional_str, _render_error_template, _safe_json_loads

if TYPE_CHECKING:
    from .config import ClientConfig

LOGGER = logging.getLogger(__name__)


class NothingToSendError(ValueError):
    """Raised when a send has neither text nor attachments."""


# -----------------------------------------------------------------------------
# InferenceAPIError Class
# -----------------------------------------------------------------------------

class InferenceAPIError(RuntimeError):
    """User-facing error raised when the inference gateway reports a failure."""

    def __init__(
        self,
        *,
        status: Optional[int],
        reason: str = "",
        error: Optional[str] = None,
        details: Optional[str] = None,
        raw_body: Optional[str] = None,
        is_streaming_error: bool = False,
    ) -> None:
        self.status = status
        self.reason = (reason or "").strip()
        self.error = _normalize_optional_str(error)
        self.details = _normalize_optional_str(details)
        self.raw_body = raw_body or ""
        self.is_streaming_error = is_streaming_error
        if self.error:
            summary = self.error
        elif status is not None:
            status_label = f"{status} {self.reason}" if self.reason else str(status)
            summary = f"Inference request failed ({status_label})"
        else:
            summary = "Inference request failed"
        super().__init__(summary)

    def template_values(self) -> dict[str, Any]:
        return {
            "status": self.status if self.status is not None else "",
            "reason": self.reason,
            "error": self.error or str(self),
            "details": self.details or "",
        }

    def to_message(self, template: str) -> str:
        """Return the assistant-visible description of this failure."""
        return _render_error_template(template, self.template_values())


# -----------------------------------------------------------------------------
# Error Helper Functions
# -----------------------------------------------------------------------------

def _coerce_error_text(value: Any) -> Optional[str]:
    """Accept both ``"error": "text"`` and OpenAI-style ``"error": {"message": ...}``."""
    if isinstance(value, dict):
        return _normalize_optional_str(value.get("message") or value.get("error"))
    return _normalize_optional_str(value)


def _error_envelope_from_payload(payload: dict[str, Any]) -> dict[str, Optional[str]]:
    details = payload.get("details")
    if details is None and isinstance(payload.get("error"), dict):
        details = payload["error"].get("details")
    return {
        "error": _coerce_error_text(payload.get("error")),
        "details": _normalize_optional_str(details) if isinstance(details, (str, int, float)) else None,
    }


def _extract_error_envelope(body_text: Optional[str]) -> dict[str, Optional[str]]:
    """Normalize a gateway error body into ``{"error", "details"}``.

    Bodies that are not JSON objects are surfaced verbatim as details.
    """
    parsed = _safe_json_loads(body_text) if body_text else None
    if not isinstance(parsed, dict):
        return {"error": None, "details": _normalize_optional_str(body_text)}
    return _error_envelope_from_payload(parsed)


def _build_inference_api_error(
    status: int,
    reason: str,
    body_text: Optional[str],
) -> InferenceAPIError:
    """Create a structured error wrapper for non-2xx gateway responses."""
    envelope = _extract_error_envelope(body_text)
    return InferenceAPIError(
        status=status,
        reason=reason,
        error=envelope["error"],
        details=envelope["details"],
        raw_body=body_text,
    )


def format_transport_error(exc: BaseException, config: "ClientConfig") -> str:
    """Render a network failure or timeout into the assistant error message."""
    if isinstance(exc, asyncio.TimeoutError):
        return _render_error_template(
            config.TIMEOUT_ERROR_TEMPLATE,
            {"timeout_seconds": config.REQUEST_TIMEOUT_SECONDS},
        )
    detail = str(exc).strip() or type(exc).__name__
    if not isinstance(exc, aiohttp.ClientError):
        LOGGER.debug("Formatting non-aiohttp transport error: %r", exc)
    return _render_error_template(
        config.TRANSPORT_ERROR_TEMPLATE,
        {"error": detail, "error_type": type(exc).__name__},
    )


def format_internal_error(exc: BaseException, config: "ClientConfig") -> str:
    return _render_error_template(
        config.INTERNAL_ERROR_TEMPLATE,
        {"error_type": type(exc).__name__},
    )
